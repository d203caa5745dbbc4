"""Representation ledger: which identity currently casts each unit's vote."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from assemblyvote.core.documents import DocumentId
from assemblyvote.models import Identity, Proxy, ProxyStatus, Unit
from assemblyvote.services.identities import IdentityDirectory

logger = logging.getLogger(__name__)

COEFFICIENT_TOLERANCE = Decimal("0.000001")


@dataclass(slots=True, frozen=True)
class RepairedUnit:
    unit_id: str
    number: str
    previous_representative_id: str | None
    representative_id: str


class RepresentationLedger:
    """Moves units between representatives.

    None of these methods commit; callers run them inside
    :func:`assemblyvote.db.session.serializable_transaction` together with the
    proxy status change that justifies the move.
    """

    def __init__(self, session: Session, *, directory: IdentityDirectory | None = None) -> None:
        self._session = session
        self._directory = directory or IdentityDirectory(session)

    def transfer_rights(
        self,
        owner_document: object,
        from_representative_id: str | None,
        to_representative_id: str | None,
    ) -> int:
        """Reassign the owner's units currently held by ``from_representative_id``.

        Units held by anyone else are left untouched, so a stale transfer
        cannot steal a unit that has already moved on. Returns the number of
        units moved.
        """

        document_id = str(DocumentId(owner_document))
        if from_representative_id is None:
            holder = Unit.current_representative_id.is_(None)
        else:
            holder = Unit.current_representative_id == from_representative_id
        statement = (
            update(Unit)
            .where(Unit.owner_document_id == document_id, holder)
            .values(current_representative_id=to_representative_id)
        )
        moved = self._session.execute(statement).rowcount or 0
        logger.debug(
            "transferred representation",
            extra={
                "from_representative_id": from_representative_id,
                "to_representative_id": to_representative_id,
                "units": moved,
            },
        )
        return moved

    def restore_rights(self, owner_document: object, representative_id: str) -> int:
        """Return units held by ``representative_id`` to their owner's identity."""

        owner = self._directory.owner_identity_of(owner_document)
        if owner is None:
            logger.warning(
                "cannot restore representation without an owner identity",
                extra={"representative_id": representative_id},
            )
            return 0
        return self.transfer_rights(owner.document_id, representative_id, owner.id)

    def expected_representative(self, owner: Identity) -> str:
        approved = self._session.scalar(
            select(Proxy.representative_id).where(
                Proxy.principal_id == owner.id,
                Proxy.status == ProxyStatus.APPROVED,
            )
        )
        return approved or owner.id

    def reconcile(self, assembly_id: str | None = None) -> list[RepairedUnit]:
        """Point every unit at its owner or the owner's approved representative."""

        statement = select(Unit).order_by(Unit.number)
        if assembly_id is not None:
            statement = statement.where(Unit.assembly_id == assembly_id)

        owners: dict[str, Identity | None] = {}
        repaired: list[RepairedUnit] = []
        for unit in self._session.scalars(statement):
            if unit.owner_document_id not in owners:
                owners[unit.owner_document_id] = self._directory.owner_identity_of(unit.owner_document_id)
            owner = owners[unit.owner_document_id]
            if owner is None:
                continue
            expected = self.expected_representative(owner)
            if unit.current_representative_id == expected:
                continue
            repaired.append(
                RepairedUnit(
                    unit_id=unit.id,
                    number=unit.number,
                    previous_representative_id=unit.current_representative_id,
                    representative_id=expected,
                )
            )
            unit.current_representative_id = expected
        if repaired:
            self._session.flush()
            logger.warning("repaired unit representation", extra={"units": len(repaired)})
        return repaired

    def coefficient_total(self, assembly_id: str) -> Decimal:
        """Sum of unit coefficients; warns when it drifts away from 1."""

        total = self._session.scalar(
            select(func.coalesce(func.sum(Unit.coefficient), 0)).where(Unit.assembly_id == assembly_id)
        )
        total = Decimal(str(total)).quantize(Decimal("0.00000001"))
        if abs(total - Decimal(1)) > COEFFICIENT_TOLERANCE:
            logger.warning(
                "coefficient_sum_warning",
                extra={"assembly_id": assembly_id, "coefficient_total": str(total)},
            )
        return total


__all__ = ["COEFFICIENT_TOLERANCE", "RepairedUnit", "RepresentationLedger"]
