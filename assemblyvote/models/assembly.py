"""Assembly ORM model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assemblyvote.models.base import Base, TimestampMixin, uuid_pk


class Assembly(TimestampMixin, Base):
    """A property-owner assembly; scopes units, identities and votes."""

    __tablename__ = "assemblies"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(128))
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    units = relationship("Unit", back_populates="assembly", cascade="all, delete-orphan")
    votes = relationship("Vote", back_populates="assembly")


__all__ = ["Assembly"]
