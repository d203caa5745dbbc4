"""Vote, option and ballot ORM models."""
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assemblyvote.models.base import Base, TimestampMixin, uuid_pk


class VoteStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PAUSED = "PAUSED"
    CLOSED = "CLOSED"


class Vote(TimestampMixin, Base):
    """A question put to the assembly."""

    __tablename__ = "votes"
    __table_args__ = (Index("ix_votes_assembly_id", "assembly_id"),)

    id: Mapped[str] = uuid_pk()
    assembly_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assemblies.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[VoteStatus] = mapped_column(
        Enum(VoteStatus, name="vote_status"), nullable=False, default=VoteStatus.DRAFT
    )
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    assembly = relationship("Assembly", back_populates="votes")
    options = relationship(
        "VoteOption",
        back_populates="vote",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="VoteOption.order_index",
    )


class VoteOption(Base):
    __tablename__ = "vote_options"

    id: Mapped[str] = uuid_pk()
    vote_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("votes.id", ondelete="CASCADE"), nullable=False
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    vote = relationship("Vote", back_populates="options")


class Ballot(TimestampMixin, Base):
    """One unit's recorded choice; the unit, not the identity, is unique per vote."""

    __tablename__ = "ballots"
    __table_args__ = (
        UniqueConstraint("vote_id", "unit_id", name="uq_ballots_vote_unit"),
        Index("ix_ballots_vote_id", "vote_id"),
    )

    id: Mapped[str] = uuid_pk()
    vote_id: Mapped[str] = mapped_column(String(36), ForeignKey("votes.id"), nullable=False)
    option_id: Mapped[str] = mapped_column(String(36), ForeignKey("vote_options.id"), nullable=False)
    unit_id: Mapped[str] = mapped_column(String(36), ForeignKey("units.id"), nullable=False)
    voter_identity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id"), nullable=False
    )
    cast_by_identity_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="SET NULL")
    )
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 8), nullable=False)


__all__ = ["Ballot", "Vote", "VoteOption", "VoteStatus"]
