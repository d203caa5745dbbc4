"""Notification templates: per-assembly overrides with built-in defaults."""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from assemblyvote.core.errors import NotFound, ValidationError
from assemblyvote.models import (
    Assembly,
    IdentityRole,
    NotificationChannel,
    NotificationTemplate,
    NotificationType,
)
from assemblyvote.services.audit_trail import record_audit
from assemblyvote.services.identities import IdentityDirectory, authorize

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"{{\s*([A-Za-z0-9_]+)\s*}}")


@dataclass(slots=True, frozen=True)
class TemplateContent:
    type: NotificationType
    channel: NotificationChannel
    subject: str | None
    body: str
    customized: bool = False


@dataclass(slots=True, frozen=True)
class RenderedMessage:
    subject: str | None
    body: str


_WELCOME_EMAIL = """<html lang="es"><body style="font-family: Arial, sans-serif;">
<h2>Asamblea {{assembly_name}}</h2>
<p>Hola {{name}},</p>
<p>Sus datos para ingresar a la plataforma de votacion:</p>
<p>Usuario: <strong>{{doc_number}}</strong><br/>Contrasena: <strong>{{password}}</strong></p>
<p><a href="{{appUrl}}/login?user={{doc_number}}">Ingresar a la asamblea</a></p>
<p>Si no puede asistir, otorgue su poder desde la plataforma.</p>
</body></html>"""

_OTP_EMAIL = """<html lang="es"><body style="font-family: Arial, sans-serif;">
<h2>Firma de poder</h2>
<p>Hola {{name}},</p>
<p>Su codigo de verificacion para firmar el poder de la asamblea {{assembly_name}} es:</p>
<p style="font-size: 28px; letter-spacing: 6px;"><strong>{{otp_code}}</strong></p>
<p>Unidades: {{units}} (coeficiente {{coef}})</p>
<p>El codigo vence en {{expires_minutes}} minutos. No lo comparta.</p>
</body></html>"""

_PROXY_DOCUMENT = """<div style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;">
<h2 style="text-align: center;">PODER PARA REPRESENTACION EN ASAMBLEA GENERAL DE COPROPIETARIOS</h2>
<p>Yo, <strong>{{NOMBRE_PODERDANTE}}</strong>, identificado(a) con documento No.
<strong>{{CEDULA_PODERDANTE}}</strong>, en mi calidad de propietario(a), confiero poder amplio y
suficiente a <strong>{{NOMBRE_APODERADO}}</strong>, identificado(a) con documento No.
<strong>{{CEDULA_APODERADO}}</strong>, para que me represente con voz y voto en la asamblea
que se realizara el dia <strong>{{FECHA_ASAMBLEA}}</strong>.</p>
<p>Se firma en {{CIUDAD}}, a los {{DIA}} dias del mes de {{MES}} de {{ANIO}}.</p>
<p>Firma electronica: codigo {{OTP}} verificado el {{TIMESTAMP}}.</p>
<p>Huella del documento: {{HASH}}</p>
</div>"""

DEFAULT_TEMPLATES: dict[NotificationType, dict[NotificationChannel, tuple[str | None, str]]] = {
    NotificationType.WELCOME: {
        NotificationChannel.EMAIL: ("Credenciales de acceso a su asamblea", _WELCOME_EMAIL),
        NotificationChannel.SMS: (
            None,
            "Asamblea {{assembly_name}}\nUsuario: {{doc_number}}\nContrasena: {{password}}\n"
            "Ingrese aqui: {{appUrl}}/login?user={{doc_number}}",
        ),
    },
    NotificationType.OTP_SIGN: {
        NotificationChannel.EMAIL: ("Codigo de verificacion para firma de poder", _OTP_EMAIL),
        NotificationChannel.SMS: (None, "Su codigo de firma es {{otp_code}}\nNo lo comparta."),
    },
    NotificationType.PROXY_DOCUMENT: {
        NotificationChannel.EMAIL: ("Poder para representacion", _PROXY_DOCUMENT),
        NotificationChannel.SMS: (None, "Su poder para la asamblea fue firmado el {{TIMESTAMP}}."),
    },
}


def render_text(text: str, variables: Mapping[str, object]) -> str:
    """Replace ``{{name}}`` placeholders; unknown placeholders are left as-is."""

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER.sub(substitute, text)


class TemplateRenderer:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_template(
        self,
        assembly_id: str | None,
        type_: NotificationType,
        channel: NotificationChannel,
    ) -> TemplateContent:
        if assembly_id is not None:
            row = self._session.scalar(
                select(NotificationTemplate).where(
                    NotificationTemplate.assembly_id == assembly_id,
                    NotificationTemplate.type == type_,
                    NotificationTemplate.channel == channel,
                )
            )
            if row is not None:
                return TemplateContent(
                    type=type_, channel=channel, subject=row.subject, body=row.body, customized=True
                )
        subject, body = DEFAULT_TEMPLATES[type_][channel]
        return TemplateContent(type=type_, channel=channel, subject=subject, body=body)

    def render(self, template: TemplateContent, variables: Mapping[str, object]) -> RenderedMessage:
        subject = render_text(template.subject, variables) if template.subject else None
        return RenderedMessage(subject=subject, body=render_text(template.body, variables))

    def save_template(
        self,
        actor_id: str,
        assembly_id: str,
        type_: NotificationType,
        channel: NotificationChannel,
        *,
        body: str,
        subject: str | None = None,
    ) -> NotificationTemplate:
        """Create or replace the assembly's template for ``type_``/``channel``."""

        actor = authorize(IdentityDirectory(self._session).require(actor_id), IdentityRole.ADMIN)
        if self._session.get(Assembly, assembly_id) is None:
            raise NotFound(f"Assembly '{assembly_id}' was not found")
        if not body.strip():
            raise ValidationError("Template body must not be empty")

        row = self._session.scalar(
            select(NotificationTemplate).where(
                NotificationTemplate.assembly_id == assembly_id,
                NotificationTemplate.type == type_,
                NotificationTemplate.channel == channel,
            )
        )
        if row is None:
            row = NotificationTemplate(assembly_id=assembly_id, type=type_, channel=channel)
            self._session.add(row)
        row.subject = subject
        row.body = body
        record_audit(
            self._session,
            action="template.saved",
            resource_type="NotificationTemplate",
            resource_id=f"{type_.value}/{channel.value}",
            assembly_id=assembly_id,
            actor_id=actor.id,
        )
        self._session.commit()
        self._session.refresh(row)
        logger.info(
            "notification template saved",
            extra={"assembly_id": assembly_id, "type": type_.value, "channel": channel.value},
        )
        return row


__all__ = [
    "DEFAULT_TEMPLATES",
    "RenderedMessage",
    "TemplateContent",
    "TemplateRenderer",
    "render_text",
]
