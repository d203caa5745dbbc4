"""Attendance registry and weighted quorum."""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.core.errors import Conflict, NotFound, NoVotingRights, ValidationError
from assemblyvote.db.session import serializable_transaction
from assemblyvote.models import ELEVATED_ROLES, Assembly, AttendanceLog, IdentityRole, Unit
from assemblyvote.obs import ATTENDANCE_TOGGLE_COUNTER, core_span
from assemblyvote.services.audit_trail import record_audit
from assemblyvote.services.events import AssemblyEvent, EventPublisher, publish_safely
from assemblyvote.services.identities import IdentityDirectory, authorize
from assemblyvote.services.tally import percentage

logger = logging.getLogger(__name__)

_WEIGHT_SCALE = Decimal("0.00000001")


def as_weight(value: object) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value)).quantize(_WEIGHT_SCALE)


@dataclass(slots=True, frozen=True)
class QuorumSnapshot:
    assembly_id: str
    present_weight: Decimal
    total_weight: Decimal
    ratio: Decimal
    percentage: Decimal
    present_units: int
    total_units: int
    has_quorum: bool


@dataclass(slots=True, frozen=True)
class AttendanceOutcome:
    unit_id: str
    present: bool
    quorum: QuorumSnapshot


@dataclass(slots=True, frozen=True)
class BulkAttendanceOutcome:
    identity_id: str
    checked_in_units: list[str]
    already_present_units: list[str] = field(default_factory=list)
    quorum: QuorumSnapshot | None = None


class QuorumCache:
    """Short-lived read-through cache of quorum snapshots per assembly."""

    def __init__(self, ttl_seconds: float = 2.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, QuorumSnapshot]] = {}
        self._lock = threading.Lock()

    def get(self, assembly_id: str) -> QuorumSnapshot | None:
        with self._lock:
            entry = self._entries.get(assembly_id)
            if entry is None:
                return None
            stored_at, snapshot = entry
            if self._clock() - stored_at > self._ttl:
                del self._entries[assembly_id]
                return None
            return snapshot

    def put(self, snapshot: QuorumSnapshot) -> None:
        with self._lock:
            self._entries[snapshot.assembly_id] = (self._clock(), snapshot)

    def invalidate(self, assembly_id: str | None = None) -> None:
        with self._lock:
            if assembly_id is None:
                self._entries.clear()
            else:
                self._entries.pop(assembly_id, None)


quorum_cache = QuorumCache(get_settings().quorum_cache_ttl_seconds)


class AttendanceRegistry:
    """Check-ins per unit and the coefficient-weighted quorum derived from them."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        cache: QuorumCache | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._cache = cache if cache is not None else quorum_cache
        self._publisher = publisher
        self._directory = IdentityDirectory(session, settings=self._settings)

    def toggle_attendance(self, actor_id: str, unit_id: str) -> AttendanceOutcome:
        actor = authorize(self._directory.require(actor_id), *ELEVATED_ROLES)
        unit = self._session.get(Unit, unit_id)
        if unit is None:
            raise NotFound(f"Unit '{unit_id}' was not found")

        with core_span("attendance.toggle", unit_id=unit_id):
            try:
                with serializable_transaction(self._session):
                    log = self._session.scalar(select(AttendanceLog).where(AttendanceLog.unit_id == unit_id))
                    if log is not None:
                        self._session.delete(log)
                        present = False
                    else:
                        self._session.add(
                            AttendanceLog(unit_id=unit_id, identity_id=unit.current_representative_id)
                        )
                        present = True
                    record_audit(
                        self._session,
                        action="attendance.check_in" if present else "attendance.check_out",
                        resource_type="Unit",
                        resource_id=unit_id,
                        assembly_id=unit.assembly_id,
                        actor_id=actor.id,
                    )
            except IntegrityError as exc:
                raise Conflict("Attendance for this unit changed concurrently; retry") from exc

        assembly_id = unit.assembly_id
        self._cache.invalidate(assembly_id)
        ATTENDANCE_TOGGLE_COUNTER.labels(direction="in" if present else "out").inc()
        publish_safely(self._publisher, [AssemblyEvent.attendance_toggled(unit, present=present)])
        return AttendanceOutcome(unit_id=unit_id, present=present, quorum=self.get_quorum(assembly_id))

    def register_attendance_by_document(self, actor_id: str, document: str) -> BulkAttendanceOutcome:
        """Check in every unit the holder of ``document`` currently represents."""

        actor = authorize(self._directory.require(actor_id), *ELEVATED_ROLES)
        identity = self._directory.owner_identity_of(document)
        if identity is None:
            raise NotFound(f"No identity registered for document '{document}'")
        if identity.role != IdentityRole.USER:
            raise ValidationError("Only assembly participants can be checked in by document")
        units = self._directory.units_represented_by(identity.id)
        if not units:
            raise NoVotingRights("This person does not represent any unit")

        checked_in: list[str] = []
        already: list[str] = []
        with serializable_transaction(self._session):
            present_ids = set(
                self._session.scalars(
                    select(AttendanceLog.unit_id).where(AttendanceLog.unit_id.in_([unit.id for unit in units]))
                )
            )
            for unit in units:
                if unit.id in present_ids:
                    already.append(unit.number)
                    continue
                self._session.add(AttendanceLog(unit_id=unit.id, identity_id=identity.id))
                checked_in.append(unit.number)
            if checked_in:
                record_audit(
                    self._session,
                    action="attendance.check_in",
                    resource_type="Identity",
                    resource_id=identity.id,
                    assembly_id=units[0].assembly_id,
                    actor_id=actor.id,
                    payload={"units": checked_in},
                )

        assembly_ids = {unit.assembly_id for unit in units}
        for assembly_id in assembly_ids:
            self._cache.invalidate(assembly_id)
        if checked_in:
            ATTENDANCE_TOGGLE_COUNTER.labels(direction="in").inc(len(checked_in))
            publish_safely(
                self._publisher,
                [AssemblyEvent.attendance_toggled(unit, present=True) for unit in units if unit.number in checked_in],
            )
        logger.info(
            "registered attendance by document",
            extra={"identity_id": identity.id, "units": len(checked_in)},
        )
        quorum = self.get_quorum(units[0].assembly_id) if len(assembly_ids) == 1 else None
        return BulkAttendanceOutcome(
            identity_id=identity.id,
            checked_in_units=checked_in,
            already_present_units=already,
            quorum=quorum,
        )

    def get_quorum(self, assembly_id: str) -> QuorumSnapshot:
        cached = self._cache.get(assembly_id)
        if cached is not None:
            return cached
        if self._session.get(Assembly, assembly_id) is None:
            raise NotFound(f"Assembly '{assembly_id}' was not found")

        total_weight, total_units = self._session.execute(
            select(func.coalesce(func.sum(Unit.coefficient), 0), func.count(Unit.id)).where(
                Unit.assembly_id == assembly_id
            )
        ).one()
        present_weight, present_units = self._session.execute(
            select(func.coalesce(func.sum(Unit.coefficient), 0), func.count(Unit.id))
            .join(AttendanceLog, AttendanceLog.unit_id == Unit.id)
            .where(Unit.assembly_id == assembly_id)
        ).one()

        total = as_weight(total_weight)
        present = as_weight(present_weight)
        ratio = present / total if total else Decimal("0")
        snapshot = QuorumSnapshot(
            assembly_id=assembly_id,
            present_weight=present,
            total_weight=total,
            ratio=ratio,
            percentage=percentage(present, total),
            present_units=int(present_units),
            total_units=int(total_units),
            has_quorum=ratio > Decimal(str(self._settings.quorum_threshold)),
        )
        self._cache.put(snapshot)
        return snapshot


__all__ = [
    "AttendanceOutcome",
    "AttendanceRegistry",
    "BulkAttendanceOutcome",
    "QuorumCache",
    "QuorumSnapshot",
    "as_weight",
    "quorum_cache",
]
