"""ConsentRecord model: append-only ledger of consent grants and withdrawals."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from consent_api.models.base import Base, JSONType, UTCDateTime, utcnow

ANONYMOUS_EMAIL = "anonymous"


class LegalBasis(str, enum.Enum):
    """GDPR Article 6 basis recorded for an act of processing."""

    CONSENT = "consent"
    CONTRACT = "contract"
    LEGAL_OBLIGATION = "legal_obligation"
    VITAL_INTERESTS = "vital_interests"
    PUBLIC_TASK = "public_task"
    LEGITIMATE_INTERESTS = "legitimate_interests"
    CONSENT_WITHDRAWN = "consent_withdrawn"


class ConsentType(str, enum.Enum):
    EMAIL_MARKETING = "email_marketing"
    WEBSITE_COOKIES = "website_cookies"


class ConsentRecord(Base):
    """Immutable proof of a consent event.

    Keyed by plain email rather than a subscriber FK so the proof outlives
    the subscriber it describes. Rows are only ever inserted; the erasure flow
    is the sole path that removes them.
    """

    __tablename__ = "consent_records"

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    consent_type: Mapped[ConsentType] = mapped_column(
        Enum(
            ConsentType,
            name="consent_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    consent_given: Mapped[bool] = mapped_column(Boolean, nullable=False)
    consent_version: Mapped[str] = mapped_column(String(20), nullable=False)
    legal_basis: Mapped[LegalBasis] = mapped_column(
        Enum(
            LegalBasis,
            name="legal_basis",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    purpose: Mapped[str] = mapped_column(String(255), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    source: Mapped[str] = mapped_column(String(100), default="website", nullable=False)

    # Per-category choices for cookie-banner consent
    choices: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        given = "granted" if self.consent_given else "withdrawn"
        return f"<ConsentRecord {self.consent_type.value} {given}>"
