"""Audit log ORM model."""
from __future__ import annotations

from sqlalchemy import ForeignKey, Index, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assemblyvote.models.base import Base, TimestampMixin, uuid_pk


class AuditLog(TimestampMixin, Base):
    """Captured delegation, ballot and attendance events per assembly."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_assembly_id", "assembly_id"),
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )

    id: Mapped[str] = uuid_pk()
    assembly_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("assemblies.id", ondelete="CASCADE")
    )
    actor_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(128), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(128))
    payload: Mapped[dict | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(64))

    actor = relationship("Identity")


__all__ = ["AuditLog"]
