"""Initial consent and data-subject request schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

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

CONSENT_TYPES = ("email_marketing", "website_cookies")
LEGAL_BASES = (
    "consent",
    "contract",
    "legal_obligation",
    "vital_interests",
    "public_task",
    "legitimate_interests",
    "consent_withdrawn",
)
REQUEST_TYPES = ("EXPORT", "DELETE", "RECTIFY", "RESTRICT", "PORTABILITY")
REQUEST_STATUSES = ("PENDING", "VERIFIED", "COMPLETED", "EXPIRED")
TOKEN_PURPOSES = ("email_verification", "unsubscribe", "dsr_verification")
ADMIN_ROLES = ("SUPER_ADMIN", "ADMIN", "MODERATOR")


def _timestamps() -> list[sa.Column]:  # type: ignore[type-arg]
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # Subscribers
    op.create_table(
        "email_subscribers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("email_hash", sa.String(64), nullable=False),
        sa.Column("consent_given", sa.Boolean(), nullable=False),
        sa.Column("consent_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consent_ip_address", sa.String(64), nullable=True),
        sa.Column("consent_user_agent", sa.String(512), nullable=True),
        sa.Column("consent_version", sa.String(20), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("verification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unsubscribed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(100), nullable=False),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_subscribers")),
    )
    op.create_index(
        op.f("ix_email_subscribers_email_hash"),
        "email_subscribers",
        ["email_hash"],
        unique=True,
    )

    # Consent proof (append-only)
    op.create_table(
        "consent_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("consent_type", sa.Enum(*CONSENT_TYPES, name="consent_type"), nullable=False),
        sa.Column("consent_given", sa.Boolean(), nullable=False),
        sa.Column("consent_version", sa.String(20), nullable=False),
        sa.Column("legal_basis", sa.Enum(*LEGAL_BASES, name="legal_basis"), nullable=False),
        sa.Column("purpose", sa.String(255), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("source", sa.String(100), nullable=False),
        sa.Column("choices", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_consent_records")),
    )
    op.create_index(op.f("ix_consent_records_email"), "consent_records", ["email"])

    # Data-subject requests
    op.create_table(
        "data_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=True),
        sa.Column("type", sa.Enum(*REQUEST_TYPES, name="data_request_type"), nullable=False),
        sa.Column(
            "status", sa.Enum(*REQUEST_STATUSES, name="data_request_status"), nullable=False
        ),
        sa.Column("request_email", sa.String(255), nullable=True),
        sa.Column("request_email_hash", sa.String(64), nullable=False),
        sa.Column("verification_sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("export_id", sa.Uuid(), nullable=True),
        sa.Column("export_url", sa.String(255), nullable=True),
        sa.Column("export_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["subscriber_id"],
            ["email_subscribers.id"],
            name=op.f("fk_data_requests_subscriber_id_email_subscribers"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_data_requests")),
        sa.UniqueConstraint("export_id", name=op.f("uq_data_requests_export_id")),
    )
    op.create_index(op.f("ix_data_requests_subscriber_id"), "data_requests", ["subscriber_id"])
    op.create_index(
        op.f("ix_data_requests_request_email_hash"), "data_requests", ["request_email_hash"]
    )
    op.create_index(
        "ix_data_requests_status_sent", "data_requests", ["status", "verification_sent_at"]
    )

    # Audit trail
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("legal_basis", sa.String(32), nullable=True),
        sa.Column("old_data", postgresql.JSONB(), nullable=True),
        sa.Column("new_data", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["subscriber_id"],
            ["email_subscribers.id"],
            name=op.f("fk_audit_logs_subscriber_id_email_subscribers"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
    )
    op.create_index(op.f("ix_audit_logs_subscriber_id"), "audit_logs", ["subscriber_id"])
    op.create_index(op.f("ix_audit_logs_request_id"), "audit_logs", ["request_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_action_created", "audit_logs", ["action", "created_at"])

    # Verification / unsubscribe tokens
    op.create_table(
        "issued_tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("purpose", sa.Enum(*TOKEN_PURPOSES, name="token_purpose"), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_issued_tokens")),
        sa.UniqueConstraint("token", name=op.f("uq_issued_tokens_token")),
    )
    op.create_index("ix_issued_tokens_owner_purpose", "issued_tokens", ["owner_id", "purpose"])

    # Admin accounts
    op.create_table(
        "admin_users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum(*ADMIN_ROLES, name="admin_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_ip", sa.String(64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_admin_users")),
    )
    op.create_index(op.f("ix_admin_users_email"), "admin_users", ["email"], unique=True)


def downgrade() -> None:
    op.drop_table("admin_users")
    op.drop_table("issued_tokens")
    op.drop_table("audit_logs")
    op.drop_table("data_requests")
    op.drop_table("consent_records")
    op.drop_table("email_subscribers")

    for enum_name in (
        "admin_role",
        "token_purpose",
        "data_request_status",
        "data_request_type",
        "legal_basis",
        "consent_type",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
