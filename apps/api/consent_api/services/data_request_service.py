"""Lifecycle of GDPR data-subject requests.

PENDING -> VERIFIED -> COMPLETED, or PENDING -> EXPIRED. Every transition is
a conditional UPDATE on the current status, so of two concurrent clicks on
the same link only one runs the processor. A processor failure puts the
request back to PENDING and the emailed link can be used again.

Processing runs synchronously inside the verifying HTTP request.
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from consent_api.core.errors import ExportExpired, NotFound, ProcessingFailed, TokenExpired
from consent_api.core.security import hash_email, normalize_email
from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import LegalBasis
from consent_api.models.data_request import DataRequest, DataRequestStatus
from consent_api.models.issued_token import TokenPurpose
from consent_api.repositories.data_request_repository import DataRequestRepository
from consent_api.repositories.subscriber_repository import SubscriberRepository
from consent_api.repositories.token_repository import TokenRepository
from consent_api.schemas.gdpr import (
    DataRequestCreate,
    DataRequestCreated,
    DataRequestView,
    VerifyRequestResponse,
)
from consent_api.services.audit_service import SYSTEM_CONTEXT, AuditContext, AuditLogger
from consent_api.services.email_service import EmailService
from consent_api.services.export_storage import ExportStorage
from consent_api.services.processors import PROCESSORS, ProcessorResult
from consent_api.services.token_service import TokenIssuer

logger = logging.getLogger(__name__)

ESTIMATED_PROCESSING_TIME = "30 days"


class RequestStateMachine:
    """Submits, verifies, processes and expires data-subject requests."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditLogger,
        email: EmailService,
        storage: ExportStorage | None = None,
    ) -> None:
        self.db = db
        self.audit = audit
        self.email = email
        self.storage = storage or ExportStorage()
        self.requests = DataRequestRepository(db)
        self.subscribers = SubscriberRepository(db)
        self.tokens = TokenIssuer(TokenRepository(db))

    async def submit(self, data: DataRequestCreate, ctx: AuditContext) -> DataRequestCreated:
        """Open a request whether or not the email belongs to a known subject."""
        email = normalize_email(data.email)
        email_hash = hash_email(email)
        subscriber = await self.subscribers.get_by_email_hash(email_hash)

        now = datetime.now(UTC)
        request = self.requests.add(
            DataRequest(
                id=uuid.uuid4(),
                subscriber_id=subscriber.id if subscriber else None,
                type=data.request_type,
                status=DataRequestStatus.PENDING,
                request_email=email,
                request_email_hash=email_hash,
                verification_sent_at=now,
            )
        )
        token = self.tokens.issue(TokenPurpose.DSR_VERIFICATION, request.id, now)
        await self.db.commit()

        await self.email.send_data_request_verification(
            email, token.token, data.request_type.value
        )
        await self.audit.record(
            AuditAction.GDPR_REQUEST_CREATED,
            f"GDPR {data.request_type.value} request created",
            ctx,
            subscriber_id=request.subscriber_id,
            legal_basis=LegalBasis.LEGAL_OBLIGATION,
            new_data={
                "requestType": data.request_type.value,
                "dataRequestId": request.id,
                "emailHash": email_hash,
            },
        )
        return DataRequestCreated(
            message="Data request submitted. Please check your email to verify your identity.",
            data_request_id=request.id,
            estimated_processing_time=ESTIMATED_PROCESSING_TIME,
        )

    async def verify(self, token: str, ctx: AuditContext) -> VerifyRequestResponse:
        issued = await self.tokens.lookup(token, TokenPurpose.DSR_VERIFICATION)
        request = await self.requests.get(issued.owner_id) if issued else None
        if issued is None or request is None:
            await self.audit.record(
                AuditAction.GDPR_VERIFICATION_FAILED,
                "GDPR request verification failed - invalid token",
                ctx,
            )
            raise NotFound("Invalid or expired verification token")

        if request.status is not DataRequestStatus.PENDING:
            return self._already_processed(request)

        now = datetime.now(UTC)
        if issued.is_expired(now):
            if await self.requests.transition(
                request.id, DataRequestStatus.PENDING, DataRequestStatus.EXPIRED
            ):
                await self.db.commit()
                await self.audit.record(
                    AuditAction.GDPR_REQUEST_EXPIRED,
                    "GDPR request verification expired",
                    ctx,
                    subscriber_id=request.subscriber_id,
                    new_data={"dataRequestId": request.id, "expiredAt": issued.expires_at},
                )
                raise TokenExpired("Verification token has expired. Please submit a new request.")
            return await self._lost_race(request.id)

        claimed = await self.requests.transition(
            request.id,
            DataRequestStatus.PENDING,
            DataRequestStatus.VERIFIED,
            verified_at=now,
        )
        if not claimed:
            return await self._lost_race(request.id)
        await self.db.commit()
        await self.db.refresh(request)

        await self.audit.record(
            AuditAction.GDPR_REQUEST_VERIFIED,
            f"GDPR {request.type.value} request verified",
            ctx,
            subscriber_id=request.subscriber_id,
            legal_basis=LegalBasis.LEGAL_OBLIGATION,
            new_data={"dataRequestId": request.id, "requestType": request.type.value},
        )

        data = await self._process(request, token, ctx)
        return VerifyRequestResponse(
            message=f"Your {request.type.value.lower()} request has been verified and processed.",
            status="PROCESSED",
            data=data,
        )

    async def _process(
        self, request: DataRequest, token: str, ctx: AuditContext
    ) -> dict[str, Any]:
        request_id = request.id
        request_type = request.type
        subscriber_id = request.subscriber_id
        processor = PROCESSORS[request_type](self.db, self.audit, self.email, self.storage)
        now = datetime.now(UTC)

        result: ProcessorResult | None = None
        try:
            result = await processor.process(request, ctx, now)
            request.status = DataRequestStatus.COMPLETED
            request.processed_at = now
            await self.tokens.consume(token, TokenPurpose.DSR_VERIFICATION, now)
            await self.db.commit()
        except Exception as exc:
            await self.db.rollback()
            for undo in result.on_rollback if result else []:
                await undo()
            await self.requests.transition(
                request_id,
                DataRequestStatus.VERIFIED,
                DataRequestStatus.PENDING,
                verified_at=None,
            )
            await self.db.commit()
            logger.exception("Processing failed for %s request %s", request_type.value, request_id)
            await self.audit.record(
                AuditAction.GDPR_REQUEST_FAILED,
                f"GDPR {request_type.value} request processing failed",
                ctx,
                subscriber_id=subscriber_id,
                new_data={"dataRequestId": request_id, "error": type(exc).__name__},
            )
            raise ProcessingFailed() from exc

        for effect in result.after_commit:
            await effect()
        await self.audit.record(
            AuditAction.GDPR_REQUEST_COMPLETED,
            f"GDPR {request_type.value} request completed",
            ctx,
            subscriber_id=request.subscriber_id,
            legal_basis=LegalBasis.LEGAL_OBLIGATION,
            new_data={"dataRequestId": request_id, "requestType": request_type.value},
        )
        return result.data

    async def _lost_race(self, request_id: UUID) -> VerifyRequestResponse:
        """Another caller moved the request first; report where it ended up."""
        await self.db.rollback()
        current = await self.requests.get(request_id)
        if current is None:
            raise NotFound("Data request not found")
        return self._already_processed(current)

    @staticmethod
    def _already_processed(request: DataRequest) -> VerifyRequestResponse:
        return VerifyRequestResponse(
            message="Request already processed",
            status=request.status.value,
            already_processed=True,
        )

    async def status(self, request_id: UUID) -> DataRequestView:
        request = await self.requests.get(request_id)
        if request is None:
            raise NotFound("Data request not found")
        return DataRequestView.model_validate(request)

    async def download(self, export_id: UUID, ctx: AuditContext) -> bytes:
        """Export body for a completed request, while its link is still valid."""
        request = await self.requests.get_by_export_id(export_id)
        if request is None or request.status is not DataRequestStatus.COMPLETED:
            raise NotFound("Export not found")
        if request.export_expires_at is None or datetime.now(UTC) >= request.export_expires_at:
            raise ExportExpired()

        body = await self.storage.read(export_id)
        if body is None:
            raise NotFound("Export file not found")

        await self.audit.record(
            AuditAction.DATA_EXPORT_DOWNLOADED,
            "User downloaded their data export",
            ctx,
            subscriber_id=request.subscriber_id,
            legal_basis=LegalBasis.LEGAL_OBLIGATION,
            new_data={"exportId": export_id, "dataRequestId": request.id},
        )
        return body

    async def expire_stale(self) -> int:
        """Move PENDING requests past their verification window to EXPIRED."""
        now = datetime.now(UTC)
        window = TokenIssuer.expiry_for(TokenPurpose.DSR_VERIFICATION)
        if window is None:
            raise RuntimeError("Data request verification tokens have no expiry window")
        stale = await self.requests.list_stale_pending(now - window)

        expired: list[DataRequest] = []
        for request in stale:
            if await self.requests.transition(
                request.id, DataRequestStatus.PENDING, DataRequestStatus.EXPIRED
            ):
                expired.append(request)
        await self.db.commit()

        for request in expired:
            await self.audit.record(
                AuditAction.GDPR_REQUEST_EXPIRED,
                "GDPR request expired without verification",
                SYSTEM_CONTEXT,
                subscriber_id=request.subscriber_id,
                new_data={"dataRequestId": request.id, "requestType": request.type.value},
            )
        if expired:
            logger.info("Expired %d stale data requests", len(expired))
        return len(expired)

    async def purge_expired_exports(self) -> int:
        """Delete export files whose download window has closed."""
        removed = 0
        for request in await self.requests.list_expired_exports(datetime.now(UTC)):
            if request.export_id and await self.storage.delete(request.export_id):
                removed += 1
        if removed:
            logger.info("Purged %d expired export files", removed)
        return removed
