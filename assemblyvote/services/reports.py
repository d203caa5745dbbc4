"""Assembly reports: attendance, absence, proxies and vote results."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from assemblyvote.core.errors import NotFound
from assemblyvote.models import ELEVATED_ROLES, Assembly, AttendanceLog, Identity, Proxy, Unit, Vote
from assemblyvote.services.attendance import as_weight
from assemblyvote.services.identities import IdentityDirectory, authorize
from assemblyvote.services.tally import VoteTally
from assemblyvote.services.voting import VotingService

_UNASSIGNED = "Unassigned"


@dataclass(slots=True, frozen=True)
class AttendanceRow:
    unit: str
    coefficient: Decimal
    representative: str
    checked_in_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class UnitReport:
    rows: list[AttendanceRow]
    total_coefficient: Decimal


@dataclass(slots=True, frozen=True)
class ProxyRow:
    proxy_id: str
    type: str
    status: str
    principal: str
    principal_units: list[str]
    principal_coefficient: Decimal
    representative: str
    representative_document: str | None
    created_at: datetime


@dataclass(slots=True, frozen=True)
class VotesReport:
    tallies: list[VoteTally] = field(default_factory=list)
    titles: dict[str, str] = field(default_factory=dict)


class ReportService:
    """Read-only summaries for operators and admins."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._directory = IdentityDirectory(session)

    def attendance_report(self, actor_id: str, assembly_id: str) -> UnitReport:
        self._authorize(actor_id, assembly_id)
        representative = aliased(Identity)
        rows = self._session.execute(
            select(Unit.number, Unit.coefficient, representative.full_name, AttendanceLog.checked_in_at)
            .join(AttendanceLog, AttendanceLog.unit_id == Unit.id)
            .outerjoin(representative, representative.id == Unit.current_representative_id)
            .where(Unit.assembly_id == assembly_id)
            .order_by(AttendanceLog.checked_in_at.desc(), Unit.number)
        ).all()
        report_rows = [
            AttendanceRow(
                unit=number,
                coefficient=as_weight(coefficient),
                representative=name or _UNASSIGNED,
                checked_in_at=checked_in_at,
            )
            for number, coefficient, name, checked_in_at in rows
        ]
        return UnitReport(
            rows=report_rows,
            total_coefficient=sum((row.coefficient for row in report_rows), Decimal("0")),
        )

    def absence_report(self, actor_id: str, assembly_id: str) -> UnitReport:
        self._authorize(actor_id, assembly_id)
        representative = aliased(Identity)
        present = select(AttendanceLog.unit_id)
        rows = self._session.execute(
            select(Unit.number, Unit.coefficient, representative.full_name)
            .outerjoin(representative, representative.id == Unit.current_representative_id)
            .where(Unit.assembly_id == assembly_id, Unit.id.not_in(present))
            .order_by(Unit.number)
        ).all()
        report_rows = [
            AttendanceRow(unit=number, coefficient=as_weight(coefficient), representative=name or _UNASSIGNED)
            for number, coefficient, name in rows
        ]
        return UnitReport(
            rows=report_rows,
            total_coefficient=sum((row.coefficient for row in report_rows), Decimal("0")),
        )

    def proxies_report(self, actor_id: str, assembly_id: str) -> list[ProxyRow]:
        self._authorize(actor_id, assembly_id)
        owners = select(Unit.owner_document_id).where(Unit.assembly_id == assembly_id).distinct()
        proxies = self._session.scalars(
            select(Proxy)
            .join(Identity, Identity.id == Proxy.principal_id)
            .where(Identity.document_id.in_(owners))
            .order_by(Proxy.created_at.desc())
        ).all()

        rows: list[ProxyRow] = []
        for proxy in proxies:
            principal = proxy.principal
            units = [
                unit
                for unit in self._directory.units_owned_by(principal.document_id)
                if unit.assembly_id == assembly_id
            ]
            representative = proxy.representative
            rows.append(
                ProxyRow(
                    proxy_id=proxy.id,
                    type=proxy.type.value,
                    status=proxy.status.value,
                    principal=principal.full_name,
                    principal_units=[unit.number for unit in units],
                    principal_coefficient=sum((as_weight(unit.coefficient) for unit in units), Decimal("0")),
                    representative=(
                        representative.full_name if representative else proxy.external_name or "Unknown"
                    ),
                    representative_document=(
                        representative.document_id if representative else proxy.external_doc_number
                    ),
                    created_at=proxy.created_at,
                )
            )
        return rows

    def votes_report(self, actor_id: str, assembly_id: str) -> VotesReport:
        self._authorize(actor_id, assembly_id)
        voting = VotingService(self._session)
        votes = self._session.scalars(
            select(Vote).where(Vote.assembly_id == assembly_id).order_by(Vote.created_at.desc())
        ).all()
        report = VotesReport()
        for vote in votes:
            report.tallies.append(voting.get_vote_tally(vote.id))
            report.titles[vote.id] = vote.title
        return report

    def _authorize(self, actor_id: str, assembly_id: str) -> None:
        authorize(self._directory.require(actor_id), *ELEVATED_ROLES)
        if self._session.get(Assembly, assembly_id) is None:
            raise NotFound(f"Assembly '{assembly_id}' was not found")


__all__ = ["AttendanceRow", "ProxyRow", "ReportService", "UnitReport", "VotesReport"]
