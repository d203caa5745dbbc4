"""Assembly report and notification administration endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assemblyvote.api.deps import get_db_session, get_notification_gateway
from assemblyvote.api.routes.auth import AuthenticatedUser, get_current_user
from assemblyvote.models import NotificationChannel, NotificationType
from assemblyvote.schemas import (
    AttendanceRowRead,
    OptionTallyRead,
    ProxiesReportRead,
    ProxyRowRead,
    TemplateRead,
    TemplateSave,
    UnitReportRead,
    VoteReportEntry,
    VotesReportRead,
    WelcomeSent,
)
from assemblyvote.services.notifications import NotificationGateway
from assemblyvote.services.reports import ReportService, UnitReport
from assemblyvote.services.templates import TemplateRenderer
from assemblyvote.services.welcome import WelcomeNotifier

router = APIRouter(prefix="/assemblies/{assembly_id}")


def _unit_report(report: UnitReport) -> UnitReportRead:
    return UnitReportRead(
        rows=[AttendanceRowRead.model_validate(row) for row in report.rows],
        total_coefficient=report.total_coefficient,
    )


@router.get("/reports/attendance", response_model=UnitReportRead)
def attendance_report(
    assembly_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> UnitReportRead:
    return _unit_report(ReportService(session).attendance_report(user.identity_id, assembly_id))


@router.get("/reports/absence", response_model=UnitReportRead)
def absence_report(
    assembly_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> UnitReportRead:
    return _unit_report(ReportService(session).absence_report(user.identity_id, assembly_id))


@router.get("/reports/proxies", response_model=ProxiesReportRead)
def proxies_report(
    assembly_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ProxiesReportRead:
    rows = ReportService(session).proxies_report(user.identity_id, assembly_id)
    return ProxiesReportRead(rows=[ProxyRowRead.model_validate(row) for row in rows])


@router.get("/reports/votes", response_model=VotesReportRead)
def votes_report(
    assembly_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> VotesReportRead:
    report = ReportService(session).votes_report(user.identity_id, assembly_id)
    entries = [
        VoteReportEntry(
            vote_id=tally.vote_id,
            status=tally.status,
            total_weight=tally.total_weight,
            total_ballots=tally.total_ballots,
            options=[OptionTallyRead.model_validate(option) for option in tally.options],
            title=report.titles[tally.vote_id],
        )
        for tally in report.tallies
    ]
    return VotesReportRead(votes=entries)


@router.put("/templates/{template_type}/{channel}", response_model=TemplateRead)
def save_template(
    assembly_id: str,
    template_type: NotificationType,
    channel: NotificationChannel,
    payload: TemplateSave,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TemplateRead:
    row = TemplateRenderer(session).save_template(
        user.identity_id,
        assembly_id,
        template_type,
        channel,
        body=payload.body,
        subject=payload.subject,
    )
    return TemplateRead(
        assembly_id=row.assembly_id,
        type=row.type.value,
        channel=row.channel.value,
        subject=row.subject,
        body=row.body,
    )


@router.post("/notifications/welcome", response_model=WelcomeSent)
def send_welcome(
    assembly_id: str,
    session: Session = Depends(get_db_session),
    gateway: NotificationGateway = Depends(get_notification_gateway),
    user: AuthenticatedUser = Depends(get_current_user),
) -> WelcomeSent:
    report = WelcomeNotifier(session, gateway=gateway).send_welcome(user.identity_id, assembly_id)
    return WelcomeSent(
        recipients=report.recipients,
        emails_sent=report.emails_sent,
        sms_sent=report.sms_sent,
        warnings=report.failures,
    )


__all__ = ["router"]
