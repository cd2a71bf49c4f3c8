"""EmailSubscriber model: the identity anchor for a mailing-list member."""

from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from consent_api.models.base import Base, UTCDateTime


class Subscriber(Base):
    """A newsletter subscriber, looked up exclusively by ``email_hash``.

    ``email_hash`` is unique across every row ever written; erasure removes the
    row outright, so a re-subscribe after deletion starts a fresh subject.
    """

    __tablename__ = "email_subscribers"

    # Identity
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    email_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    # Consent snapshot (full history lives in consent_records)
    consent_given: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consent_timestamp: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    consent_ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    consent_user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    consent_version: Mapped[str] = mapped_column(String(20), default="1.0", nullable=False)

    # Lifecycle
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    verification_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    unsubscribed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Attribution
    source: Mapped[str] = mapped_column(String(100), default="website", nullable=False)
    utm_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<Subscriber {self.email_hash[:12]} ({state})>"
