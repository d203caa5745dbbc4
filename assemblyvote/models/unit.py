"""Unit ORM model and attendance log."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from assemblyvote.core.documents import DocumentId
from assemblyvote.models.base import Base, TimestampMixin, uuid_pk


class Unit(TimestampMixin, Base):
    """A voting property with a fixed ownership coefficient."""

    __tablename__ = "units"
    __table_args__ = (
        UniqueConstraint("assembly_id", "number", name="uq_units_assembly_number"),
        CheckConstraint("coefficient > 0 AND coefficient <= 1", name="ck_units_coefficient_range"),
        Index("ix_units_assembly_id", "assembly_id"),
        Index("ix_units_owner_document_id", "owner_document_id"),
        Index("ix_units_current_representative_id", "current_representative_id"),
    )

    id: Mapped[str] = uuid_pk()
    assembly_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assemblies.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[str] = mapped_column(String(32), nullable=False)
    coefficient: Mapped[Decimal] = mapped_column(Numeric(12, 8), nullable=False)
    owner_document_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_name: Mapped[str | None] = mapped_column(String(255))
    owner_email: Mapped[str | None] = mapped_column(String(320))
    owner_phone: Mapped[str | None] = mapped_column(String(32))
    current_representative_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="SET NULL")
    )

    assembly = relationship("Assembly", back_populates="units")
    current_representative = relationship("Identity")
    attendance = relationship(
        "AttendanceLog", back_populates="unit", uselist=False, cascade="all, delete-orphan"
    )

    @validates("owner_document_id")
    def _canonical_owner_document(self, _key: str, value: str) -> str:
        return str(DocumentId(value))


class AttendanceLog(Base):
    """Check-in marker; at most one row per unit."""

    __tablename__ = "attendance_logs"

    id: Mapped[str] = uuid_pk()
    unit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("units.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    identity_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="SET NULL")
    )
    checked_in_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    unit = relationship("Unit", back_populates="attendance")


__all__ = ["AttendanceLog", "Unit"]
