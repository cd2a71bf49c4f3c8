"""DataRequest model: one GDPR data-subject request and its lifecycle."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from consent_api.models.base import Base, UTCDateTime


class DataRequestType(str, enum.Enum):
    """GDPR rights a data subject can exercise."""

    EXPORT = "EXPORT"  # Art. 15
    DELETE = "DELETE"  # Art. 17
    RECTIFY = "RECTIFY"  # Art. 16
    RESTRICT = "RESTRICT"  # Art. 18
    PORTABILITY = "PORTABILITY"  # Art. 20


class DataRequestStatus(str, enum.Enum):
    """Lifecycle of a data request.

    PENDING -> VERIFIED -> COMPLETED, or PENDING -> EXPIRED.
    VERIFIED falls back to PENDING when processing fails.
    """

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in (DataRequestStatus.COMPLETED, DataRequestStatus.EXPIRED)


class DataRequest(Base):
    """A data-subject request, tracked whether or not the subject is known."""

    __tablename__ = "data_requests"
    __table_args__ = (
        Index("ix_data_requests_status_sent", "status", "verification_sent_at"),
    )

    subscriber_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("email_subscribers.id"),
        nullable=True,
        index=True,
    )

    type: Mapped[DataRequestType] = mapped_column(
        Enum(
            DataRequestType,
            name="data_request_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    status: Mapped[DataRequestStatus] = mapped_column(
        Enum(
            DataRequestStatus,
            name="data_request_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=DataRequestStatus.PENDING,
        nullable=False,
    )

    # Scrubbed once an erasure request completes; the hash stays as evidence
    request_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    request_email_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    verification_sent_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Export artifact
    export_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        unique=True,
        nullable=True,
    )
    export_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    export_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<DataRequest {self.type.value} ({self.status.value})>"
