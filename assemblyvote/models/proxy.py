"""Proxy (delegation of voting rights) and OTP digital signature models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assemblyvote.models.base import Base, TimestampMixin, uuid_pk


class ProxyType(str, enum.Enum):
    DIGITAL = "DIGITAL"
    PDF = "PDF"
    OPERATOR = "OPERATOR"


class ProxyStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


class SignatureStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    EXPIRED = "EXPIRED"


class Proxy(TimestampMixin, Base):
    """A principal's delegation of their units' vote to a representative."""

    __tablename__ = "proxies"
    __table_args__ = (
        Index("ix_proxies_principal_id", "principal_id"),
        Index(
            "uq_proxies_one_approved_per_principal",
            "principal_id",
            unique=True,
            sqlite_where=text("status = 'APPROVED'"),
            postgresql_where=text("status = 'APPROVED'"),
        ),
    )

    id: Mapped[str] = uuid_pk()
    principal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    representative_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="SET NULL")
    )
    external_name: Mapped[str | None] = mapped_column(String(255))
    external_doc_number: Mapped[str | None] = mapped_column(String(64))
    type: Mapped[ProxyType] = mapped_column(Enum(ProxyType, name="proxy_type"), nullable=False)
    status: Mapped[ProxyStatus] = mapped_column(
        Enum(ProxyStatus, name="proxy_status"), nullable=False, default=ProxyStatus.PENDING
    )
    document_url: Mapped[str | None] = mapped_column(String(1024))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    principal = relationship("Identity", foreign_keys=[principal_id])
    representative = relationship("Identity", foreign_keys=[representative_id])
    signature = relationship(
        "DigitalSignature", back_populates="proxy", uselist=False, cascade="all, delete-orphan"
    )


class DigitalSignature(TimestampMixin, Base):
    """OTP possession proof paired with a PENDING digital proxy."""

    __tablename__ = "digital_signatures"
    __table_args__ = (Index("ix_digital_signatures_principal_id", "principal_id"),)

    id: Mapped[str] = uuid_pk()
    proxy_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("proxies.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    principal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    otp_code: Mapped[str] = mapped_column(String(12), nullable=False)
    otp_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[SignatureStatus] = mapped_column(
        Enum(SignatureStatus, name="signature_status"),
        nullable=False,
        default=SignatureStatus.PENDING,
    )
    document_hash: Mapped[str | None] = mapped_column(String(64))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(512))
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    proxy = relationship("Proxy", back_populates="signature")


__all__ = ["DigitalSignature", "Proxy", "ProxyStatus", "ProxyType", "SignatureStatus"]
