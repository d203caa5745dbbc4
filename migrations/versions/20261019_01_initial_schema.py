"""Initial schema for assemblies, representation, delegation and voting."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:  # noqa: D401
    """Create initial tables and constraints."""

    identity_role = sa.Enum("USER", "OPERATOR", "ADMIN", name="identity_role")
    proxy_type = sa.Enum("DIGITAL", "PDF", "OPERATOR", name="proxy_type")
    proxy_status = sa.Enum("PENDING", "APPROVED", "REVOKED", "EXPIRED", name="proxy_status")
    signature_status = sa.Enum("PENDING", "VERIFIED", "EXPIRED", name="signature_status")
    vote_status = sa.Enum("DRAFT", "OPEN", "PAUSED", "CLOSED", name="vote_status")
    notification_type = sa.Enum("WELCOME", "OTP_SIGN", "PROXY_DOCUMENT", name="notification_type")
    notification_channel = sa.Enum("EMAIL", "SMS", name="notification_channel")

    for enum_type in (
        identity_role,
        proxy_type,
        proxy_status,
        signature_status,
        vote_status,
        notification_type,
        notification_channel,
    ):
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "assemblies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=128)),
        sa.Column("scheduled_for", sa.DateTime(timezone=True)),
        *_timestamps(),
    )

    op.create_table(
        "identities",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("assembly_id", sa.String(length=36)),
        sa.Column("document_id", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("role", identity_role, nullable=False, server_default="USER"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assembly_id"], ["assemblies.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("document_id", name="uq_identities_document_id"),
    )
    op.create_index("ix_identities_assembly_id", "identities", ["assembly_id"])

    op.create_table(
        "auth_accounts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("login_handle", sa.String(length=320), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("identity_id", sa.String(length=36)),
        *_timestamps(),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("login_handle", name="uq_auth_accounts_login_handle"),
        sa.UniqueConstraint("identity_id", name="uq_auth_accounts_identity_id"),
    )

    op.create_table(
        "units",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("assembly_id", sa.String(length=36), nullable=False),
        sa.Column("number", sa.String(length=32), nullable=False),
        sa.Column("coefficient", sa.Numeric(12, 8), nullable=False),
        sa.Column("owner_document_id", sa.String(length=64), nullable=False),
        sa.Column("owner_name", sa.String(length=255)),
        sa.Column("owner_email", sa.String(length=320)),
        sa.Column("owner_phone", sa.String(length=32)),
        sa.Column("current_representative_id", sa.String(length=36)),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assembly_id"], ["assemblies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["current_representative_id"], ["identities.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("assembly_id", "number", name="uq_units_assembly_number"),
        sa.CheckConstraint("coefficient > 0 AND coefficient <= 1", name="ck_units_coefficient_range"),
    )
    op.create_index("ix_units_assembly_id", "units", ["assembly_id"])
    op.create_index("ix_units_owner_document_id", "units", ["owner_document_id"])
    op.create_index("ix_units_current_representative_id", "units", ["current_representative_id"])

    op.create_table(
        "attendance_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("unit_id", sa.String(length=36), nullable=False),
        sa.Column("identity_id", sa.String(length=36)),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["identity_id"], ["identities.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("unit_id", name="uq_attendance_logs_unit_id"),
    )

    op.create_table(
        "proxies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("principal_id", sa.String(length=36), nullable=False),
        sa.Column("representative_id", sa.String(length=36)),
        sa.Column("external_name", sa.String(length=255)),
        sa.Column("external_doc_number", sa.String(length=64)),
        sa.Column("type", proxy_type, nullable=False),
        sa.Column("status", proxy_status, nullable=False, server_default="PENDING"),
        sa.Column("document_url", sa.String(length=1024)),
        sa.Column("revoked_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.ForeignKeyConstraint(["principal_id"], ["identities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["representative_id"], ["identities.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_proxies_principal_id", "proxies", ["principal_id"])
    op.create_index(
        "uq_proxies_one_approved_per_principal",
        "proxies",
        ["principal_id"],
        unique=True,
        sqlite_where=sa.text("status = 'APPROVED'"),
        postgresql_where=sa.text("status = 'APPROVED'"),
    )

    op.create_table(
        "digital_signatures",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("proxy_id", sa.String(length=36), nullable=False),
        sa.Column("principal_id", sa.String(length=36), nullable=False),
        sa.Column("otp_code", sa.String(length=12), nullable=False),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", signature_status, nullable=False, server_default="PENDING"),
        sa.Column("document_hash", sa.String(length=64)),
        sa.Column("ip_address", sa.String(length=64)),
        sa.Column("user_agent", sa.String(length=512)),
        sa.Column("verified_at", sa.DateTime(timezone=True)),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["proxy_id"], ["proxies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["principal_id"], ["identities.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("proxy_id", name="uq_digital_signatures_proxy_id"),
    )
    op.create_index("ix_digital_signatures_principal_id", "digital_signatures", ["principal_id"])

    op.create_table(
        "votes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("assembly_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("status", vote_status, nullable=False, server_default="DRAFT"),
        sa.Column("opened_at", sa.DateTime(timezone=True)),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assembly_id"], ["assemblies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_votes_assembly_id", "votes", ["assembly_id"])

    op.create_table(
        "vote_options",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("vote_id", sa.String(length=36), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["vote_id"], ["votes.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "ballots",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("vote_id", sa.String(length=36), nullable=False),
        sa.Column("option_id", sa.String(length=36), nullable=False),
        sa.Column("unit_id", sa.String(length=36), nullable=False),
        sa.Column("voter_identity_id", sa.String(length=36), nullable=False),
        sa.Column("cast_by_identity_id", sa.String(length=36)),
        sa.Column("weight", sa.Numeric(12, 8), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["vote_id"], ["votes.id"]),
        sa.ForeignKeyConstraint(["option_id"], ["vote_options.id"]),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.ForeignKeyConstraint(["voter_identity_id"], ["identities.id"]),
        sa.ForeignKeyConstraint(["cast_by_identity_id"], ["identities.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("vote_id", "unit_id", name="uq_ballots_vote_unit"),
    )
    op.create_index("ix_ballots_vote_id", "ballots", ["vote_id"])

    op.create_table(
        "notification_templates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("assembly_id", sa.String(length=36), nullable=False),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("channel", notification_channel, nullable=False),
        sa.Column("subject", sa.String(length=255)),
        sa.Column("body", sa.Text(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assembly_id"], ["assemblies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "assembly_id", "type", "channel", name="uq_notification_templates_assembly_type_channel"
        ),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("assembly_id", sa.String(length=36)),
        sa.Column("actor_id", sa.String(length=36)),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("resource_type", sa.String(length=128), nullable=False),
        sa.Column("resource_id", sa.String(length=128)),
        sa.Column("payload", sa.JSON()),
        sa.Column("ip_address", sa.String(length=64)),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assembly_id"], ["assemblies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_id"], ["identities.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_audit_logs_assembly_id", "audit_logs", ["assembly_id"])
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])


def downgrade() -> None:  # noqa: D401
    """Drop every assembly table."""

    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    op.drop_index("ix_audit_logs_assembly_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("notification_templates")

    op.drop_index("ix_ballots_vote_id", table_name="ballots")
    op.drop_table("ballots")
    op.drop_table("vote_options")
    op.drop_index("ix_votes_assembly_id", table_name="votes")
    op.drop_table("votes")

    op.drop_index("ix_digital_signatures_principal_id", table_name="digital_signatures")
    op.drop_table("digital_signatures")
    op.drop_index("uq_proxies_one_approved_per_principal", table_name="proxies")
    op.drop_index("ix_proxies_principal_id", table_name="proxies")
    op.drop_table("proxies")

    op.drop_table("attendance_logs")
    op.drop_index("ix_units_current_representative_id", table_name="units")
    op.drop_index("ix_units_owner_document_id", table_name="units")
    op.drop_index("ix_units_assembly_id", table_name="units")
    op.drop_table("units")
    op.drop_table("auth_accounts")
    op.drop_index("ix_identities_assembly_id", table_name="identities")
    op.drop_table("identities")
    op.drop_table("assemblies")

    for enum_name in (
        "notification_channel",
        "notification_type",
        "vote_status",
        "signature_status",
        "proxy_status",
        "proxy_type",
        "identity_role",
    ):
        _drop_enum(enum_name)
