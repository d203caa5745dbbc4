"""Per-assembly notification template overrides."""
from __future__ import annotations

import enum

from sqlalchemy import Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from assemblyvote.models.base import Base, TimestampMixin, uuid_pk


class NotificationType(str, enum.Enum):
    WELCOME = "WELCOME"
    OTP_SIGN = "OTP_SIGN"
    PROXY_DOCUMENT = "PROXY_DOCUMENT"


class NotificationChannel(str, enum.Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"


class NotificationTemplate(TimestampMixin, Base):
    __tablename__ = "notification_templates"
    __table_args__ = (
        UniqueConstraint(
            "assembly_id", "type", "channel", name="uq_notification_templates_assembly_type_channel"
        ),
    )

    id: Mapped[str] = uuid_pk()
    assembly_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assemblies.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type"), nullable=False
    )
    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel, name="notification_channel"), nullable=False
    )
    subject: Mapped[str | None] = mapped_column(String(255))
    body: Mapped[str] = mapped_column(Text, nullable=False)


__all__ = ["NotificationChannel", "NotificationTemplate", "NotificationType"]
