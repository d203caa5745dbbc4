from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from assemblyvote.core.errors import Forbidden, NotFound, ValidationError
from assemblyvote.models import NotificationChannel, NotificationTemplate, NotificationType
from assemblyvote.services.templates import TemplateRenderer, render_text


def test_render_text_leaves_unknown_placeholders() -> None:
    rendered = render_text("Hola {{ name }}, codigo {{otp_code}} {{missing}}", {"name": "Alice", "otp_code": None})

    assert rendered == "Hola Alice, codigo {{otp_code}} {{missing}}"


def test_defaults_are_used_without_override(db_session: Session, community) -> None:
    renderer = TemplateRenderer(db_session)

    template = renderer.get_template(community.assembly.id, NotificationType.OTP_SIGN, NotificationChannel.SMS)
    message = renderer.render(template, {"otp_code": "123456"})

    assert not template.customized
    assert message.subject is None
    assert message.body.startswith("Su codigo de firma es 123456")


def test_saved_template_overrides_default(db_session: Session, community) -> None:
    renderer = TemplateRenderer(db_session)

    renderer.save_template(
        community.admin.id,
        community.assembly.id,
        NotificationType.WELCOME,
        NotificationChannel.EMAIL,
        subject="Bienvenido a {{assembly_name}}",
        body="<p>{{name}}</p>",
    )
    renderer.save_template(
        community.admin.id,
        community.assembly.id,
        NotificationType.WELCOME,
        NotificationChannel.EMAIL,
        subject="Bienvenida a {{assembly_name}}",
        body="<p>Hola {{name}}</p>",
    )

    template = renderer.get_template(community.assembly.id, NotificationType.WELCOME, NotificationChannel.EMAIL)
    message = renderer.render(template, {"name": "Bob", "assembly_name": "Torres del Parque"})

    assert template.customized
    assert message.subject == "Bienvenida a Torres del Parque"
    assert message.body == "<p>Hola Bob</p>"
    assert db_session.scalar(select(func.count(NotificationTemplate.id))) == 1
    # Other assemblies keep the defaults.
    assert not renderer.get_template(None, NotificationType.WELCOME, NotificationChannel.EMAIL).customized


def test_save_template_validation(db_session: Session, community) -> None:
    renderer = TemplateRenderer(db_session)

    with pytest.raises(Forbidden):
        renderer.save_template(
            community.operator.id, community.assembly.id, NotificationType.WELCOME, NotificationChannel.SMS, body="x"
        )
    with pytest.raises(ValidationError):
        renderer.save_template(
            community.admin.id, community.assembly.id, NotificationType.WELCOME, NotificationChannel.SMS, body="  "
        )
    with pytest.raises(NotFound):
        renderer.save_template(
            community.admin.id, "missing", NotificationType.WELCOME, NotificationChannel.SMS, body="x"
        )
