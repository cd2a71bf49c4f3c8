"""AuditLog model: append-only trail of security-relevant actions."""

import enum
import uuid
from typing import Any

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from consent_api.models.base import Base, JSONType


class AuditAction(str, enum.Enum):
    """Closed vocabulary of audited events."""

    # Cookie / consent banner
    CONSENT_RECORDED = "CONSENT_RECORDED"
    CONSENT_VALIDATION_FAILED = "CONSENT_VALIDATION_FAILED"

    # Subscription lifecycle
    SUBSCRIPTION_CREATED = "SUBSCRIPTION_CREATED"
    SUBSCRIPTION_REACTIVATED = "SUBSCRIPTION_REACTIVATED"
    SUBSCRIPTION_FAILED = "SUBSCRIPTION_FAILED"
    DUPLICATE_SUBSCRIPTION_ATTEMPT = "DUPLICATE_SUBSCRIPTION_ATTEMPT"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    VERIFICATION_EXPIRED = "VERIFICATION_EXPIRED"
    VERIFICATION_RESENT = "VERIFICATION_RESENT"
    UNSUBSCRIBED = "UNSUBSCRIBED"
    UNSUBSCRIBE_FAILED = "UNSUBSCRIBE_FAILED"

    # Data-subject requests
    GDPR_REQUEST_CREATED = "GDPR_REQUEST_CREATED"
    GDPR_REQUEST_VERIFIED = "GDPR_REQUEST_VERIFIED"
    GDPR_REQUEST_COMPLETED = "GDPR_REQUEST_COMPLETED"
    GDPR_REQUEST_EXPIRED = "GDPR_REQUEST_EXPIRED"
    GDPR_REQUEST_FAILED = "GDPR_REQUEST_FAILED"
    GDPR_VERIFICATION_FAILED = "GDPR_VERIFICATION_FAILED"
    DATA_EXPORT_CREATED = "DATA_EXPORT_CREATED"
    DATA_EXPORT_DOWNLOADED = "DATA_EXPORT_DOWNLOADED"
    DATA_DELETION_INITIATED = "DATA_DELETION_INITIATED"
    DATA_DELETION_COMPLETED = "DATA_DELETION_COMPLETED"
    DATA_PROCESSING_RESTRICTED = "DATA_PROCESSING_RESTRICTED"
    DATA_RECTIFICATION_REQUESTED = "DATA_RECTIFICATION_REQUESTED"

    # Admin surface
    ADMIN_LOGIN_SUCCESS = "ADMIN_LOGIN_SUCCESS"
    ADMIN_LOGIN_FAILED = "ADMIN_LOGIN_FAILED"
    ADMIN_LOGIN_BLOCKED = "ADMIN_LOGIN_BLOCKED"
    ADMIN_AUTH_FAILED = "ADMIN_AUTH_FAILED"
    ADMIN_ACCESS_DENIED = "ADMIN_ACCESS_DENIED"
    ADMIN_DATA_EXPORT = "ADMIN_DATA_EXPORT"


class AuditLog(Base):
    """One audit entry. Never updated after insert.

    ``subscriber_id`` is nulled by the database when the subject row goes
    away; entries that must outlive an erasure are written without it.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_action_created", "action", "created_at"),
    )

    subscriber_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("email_subscribers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Stored as plain string so retired actions stay readable
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    legal_basis: Mapped[str | None] = mapped_column(String(32), nullable=True)

    old_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    new_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} subscriber={self.subscriber_id}>"
