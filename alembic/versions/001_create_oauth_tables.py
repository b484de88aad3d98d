"""Create delegated access tables.

Revision ID: 001
Revises:
Create Date: 2025-07-21

Creates the tables the authorization server owns:
1. oauth_applications - Registered third-party applications
2. oauth_tokens - One row per grant lifecycle (code, then token pair)
3. oauth_audit_logs - Security audit trail for grant activity

The ``users`` table belongs to the account service and is only read.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create OAuth tables."""

    op.create_table(
        "oauth_applications",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("client_secret_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "redirect_uris",
            postgresql.ARRAY(sa.Text()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column(
            "approved_scopes",
            postgresql.ARRAY(sa.String(50)),
            nullable=False,
            server_default="{}",
        ),
        sa.Column(
            "environment",
            sa.String(20),
            nullable=False,
            server_default="development",
        ),
        sa.Column(
            "rate_limit_override",
            sa.Integer(),
            nullable=True,
            comment="Requests per window; overrides the environment tier",
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_oauth_applications")),
        sa.UniqueConstraint("client_id", name=op.f("uq_oauth_applications_client_id")),
        sa.CheckConstraint(
            "environment IN ('development', 'production')",
            name=op.f("ck_oauth_applications_environment"),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'suspended')",
            name=op.f("ck_oauth_applications_status"),
        ),
        sa.CheckConstraint(
            "rate_limit_override IS NULL OR rate_limit_override > 0",
            name=op.f("ck_oauth_applications_rate_limit_override"),
        ),
    )

    op.create_table(
        "oauth_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            nullable=True,
            comment="NULL for client_credentials grants",
        ),
        sa.Column(
            "scopes",
            postgresql.ARRAY(sa.String(50)),
            nullable=False,
            server_default="{}",
        ),
        # Code state
        sa.Column("code", sa.String(128), nullable=True),
        sa.Column("code_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redirect_uri", sa.Text(), nullable=True),
        sa.Column("pkce_challenge", sa.String(128), nullable=True),
        sa.Column("pkce_method", sa.String(10), nullable=True),
        # Token state
        sa.Column("access_token_hash", sa.String(255), nullable=True),
        sa.Column("access_token_fingerprint", sa.String(64), nullable=True),
        sa.Column("refresh_token_hash", sa.String(255), nullable=True),
        sa.Column("refresh_token_fingerprint", sa.String(64), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refresh_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["application_id"],
            ["oauth_applications.id"],
            name=op.f("fk_oauth_tokens_application_id_oauth_applications"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_oauth_tokens")),
        sa.CheckConstraint(
            "pkce_method IS NULL OR pkce_method IN ('S256', 'plain')",
            name=op.f("ck_oauth_tokens_pkce_method"),
        ),
    )

    op.create_index(
        "ix_oauth_tokens_code",
        "oauth_tokens",
        ["code"],
        unique=True,
        postgresql_where=sa.text("code IS NOT NULL"),
    )
    op.create_index(
        "ix_oauth_tokens_access_token_fingerprint",
        "oauth_tokens",
        ["access_token_fingerprint"],
        unique=True,
        postgresql_where=sa.text("access_token_fingerprint IS NOT NULL"),
    )
    op.create_index(
        "ix_oauth_tokens_refresh_token_fingerprint",
        "oauth_tokens",
        ["refresh_token_fingerprint"],
        unique=True,
        postgresql_where=sa.text("refresh_token_fingerprint IS NOT NULL"),
    )
    op.create_index(
        "ix_oauth_tokens_application_user",
        "oauth_tokens",
        ["application_id", "user_id"],
    )

    op.create_table(
        "oauth_audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("risk_level", sa.String(20), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("token_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "event_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_oauth_audit_logs")),
    )

    op.create_index(
        "ix_oauth_audit_logs_event_type_created_at",
        "oauth_audit_logs",
        ["event_type", "created_at"],
    )
    op.create_index(
        "ix_oauth_audit_logs_application_id",
        "oauth_audit_logs",
        ["application_id"],
    )


def downgrade() -> None:
    """Drop OAuth tables."""
    op.drop_index("ix_oauth_audit_logs_application_id", table_name="oauth_audit_logs")
    op.drop_index(
        "ix_oauth_audit_logs_event_type_created_at", table_name="oauth_audit_logs"
    )
    op.drop_table("oauth_audit_logs")

    op.drop_index("ix_oauth_tokens_application_user", table_name="oauth_tokens")
    op.drop_index(
        "ix_oauth_tokens_refresh_token_fingerprint", table_name="oauth_tokens"
    )
    op.drop_index("ix_oauth_tokens_access_token_fingerprint", table_name="oauth_tokens")
    op.drop_index("ix_oauth_tokens_code", table_name="oauth_tokens")
    op.drop_table("oauth_tokens")

    op.drop_table("oauth_applications")
