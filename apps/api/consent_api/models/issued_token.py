"""IssuedToken model: single table for every emailed credential."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from consent_api.models.base import Base, UTCDateTime


class TokenPurpose(str, enum.Enum):
    EMAIL_VERIFICATION = "email_verification"
    UNSUBSCRIBE = "unsubscribe"
    DSR_VERIFICATION = "dsr_verification"


class IssuedToken(Base):
    """A random credential bound to one owner row for one purpose.

    ``owner_id`` points at a subscriber or a data request depending on the
    purpose and is intentionally not a foreign key: the erasure flow removes
    tokens explicitly, inside the same transaction as their owners.
    """

    __tablename__ = "issued_tokens"
    __table_args__ = (Index("ix_issued_tokens_owner_purpose", "owner_id", "purpose"),)

    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    purpose: Mapped[TokenPurpose] = mapped_column(
        Enum(
            TokenPurpose,
            name="token_purpose",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    consumed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def __repr__(self) -> str:
        return f"<IssuedToken {self.purpose.value} owner={self.owner_id}>"
