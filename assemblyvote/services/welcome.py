"""Bulk credential notices sent to every participant of an assembly."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.core.errors import NotFound, ValidationError
from assemblyvote.models import Assembly, IdentityRole, NotificationChannel, NotificationType, Unit
from assemblyvote.services.audit_trail import record_audit
from assemblyvote.services.identities import IdentityDirectory, authorize
from assemblyvote.services.notifications import NotificationGateway
from assemblyvote.services.templates import TemplateRenderer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Recipient:
    key: str
    name: str
    document: str
    email: str | None
    phone: str | None


@dataclass(slots=True)
class WelcomeReport:
    recipients: int = 0
    emails_sent: int = 0
    sms_sent: int = 0
    failures: list[str] = field(default_factory=list)


class WelcomeNotifier:
    def __init__(
        self,
        session: Session,
        *,
        gateway: NotificationGateway,
        renderer: TemplateRenderer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._gateway = gateway
        self._renderer = renderer or TemplateRenderer(session)
        self._settings = settings or get_settings()
        self._directory = IdentityDirectory(session, settings=self._settings)

    def recipients(self, assembly_id: str) -> list[Recipient]:
        """One recipient per current representative, or per owner for unassigned units."""

        units = self._session.scalars(select(Unit).where(Unit.assembly_id == assembly_id).order_by(Unit.number))
        found: dict[str, Recipient] = {}
        for unit in units:
            representative = unit.current_representative
            if representative is not None:
                key = representative.id
                candidate = Recipient(
                    key=key,
                    name=representative.full_name,
                    document=representative.document_id,
                    email=representative.email or unit.owner_email,
                    phone=representative.phone or unit.owner_phone,
                )
            else:
                key = unit.owner_document_id
                candidate = Recipient(
                    key=key,
                    name=unit.owner_name or unit.owner_document_id,
                    document=unit.owner_document_id,
                    email=unit.owner_email,
                    phone=unit.owner_phone,
                )
            found.setdefault(key, candidate)
        return list(found.values())

    def send_welcome(self, actor_id: str, assembly_id: str) -> WelcomeReport:
        actor = authorize(self._directory.require(actor_id), IdentityRole.ADMIN)
        assembly = self._session.get(Assembly, assembly_id)
        if assembly is None:
            raise NotFound(f"Assembly '{assembly_id}' was not found")
        recipients = self.recipients(assembly_id)
        if not recipients:
            raise ValidationError("This assembly has no units to notify")

        email_template = self._renderer.get_template(assembly_id, NotificationType.WELCOME, NotificationChannel.EMAIL)
        sms_template = self._renderer.get_template(assembly_id, NotificationType.WELCOME, NotificationChannel.SMS)
        report = WelcomeReport(recipients=len(recipients))
        for recipient in recipients:
            variables = {
                "name": recipient.name,
                "doc_number": recipient.document,
                "password": recipient.document,
                "appUrl": self._settings.app_url,
                "assembly_name": assembly.name,
            }
            if recipient.email:
                message = self._renderer.render(email_template, variables)
                result = self._gateway.send_email(recipient.email, message.subject or assembly.name, message.body)
                if result.success:
                    report.emails_sent += 1
                else:
                    report.failures.append(f"email {recipient.document}: {result.error}")
            if recipient.phone:
                message = self._renderer.render(sms_template, variables)
                result = self._gateway.send_sms(recipient.phone, message.body)
                if result.success:
                    report.sms_sent += 1
                else:
                    report.failures.append(f"sms {recipient.document}: {result.error}")

        record_audit(
            self._session,
            action="notifications.welcome",
            resource_type="Assembly",
            resource_id=assembly_id,
            assembly_id=assembly_id,
            actor_id=actor.id,
            payload={
                "recipients": report.recipients,
                "emails": report.emails_sent,
                "sms": report.sms_sent,
                "failures": len(report.failures),
            },
        )
        self._session.commit()
        logger.info(
            "welcome notifications sent",
            extra={"assembly_id": assembly_id, "emails": report.emails_sent, "sms": report.sms_sent},
        )
        return report


__all__ = ["Recipient", "WelcomeNotifier", "WelcomeReport"]
