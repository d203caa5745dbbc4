"""Identity (owner/delegate profile) and authentication account models."""
from __future__ import annotations

import enum

from sqlalchemy import Enum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from assemblyvote.core.documents import DocumentId
from assemblyvote.models.base import Base, TimestampMixin, uuid_pk


class IdentityRole(str, enum.Enum):
    USER = "USER"
    OPERATOR = "OPERATOR"
    ADMIN = "ADMIN"


ELEVATED_ROLES = frozenset({IdentityRole.OPERATOR, IdentityRole.ADMIN})


class Identity(TimestampMixin, Base):
    """A person who may own units or represent them."""

    __tablename__ = "identities"
    __table_args__ = (Index("ix_identities_assembly_id", "assembly_id"),)

    id: Mapped[str] = uuid_pk()
    assembly_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("assemblies.id", ondelete="SET NULL")
    )
    document_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320))
    phone: Mapped[str | None] = mapped_column(String(32))
    role: Mapped[IdentityRole] = mapped_column(
        Enum(IdentityRole, name="identity_role"), nullable=False, default=IdentityRole.USER
    )

    auth_account = relationship("AuthAccount", back_populates="identity", uselist=False)

    @validates("document_id")
    def _canonical_document(self, _key: str, value: str) -> str:
        return str(DocumentId(value))

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES


class AuthAccount(TimestampMixin, Base):
    """Login credentials; ``identity_id`` is NULL for a half-created (ghost) identity."""

    __tablename__ = "auth_accounts"

    id: Mapped[str] = uuid_pk()
    login_handle: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    identity_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="SET NULL"), unique=True
    )

    identity = relationship("Identity", back_populates="auth_account")


__all__ = ["AuthAccount", "ELEVATED_ROLES", "Identity", "IdentityRole"]
