"""Right to rectification (Art. 16). Handled by a person, not automatically."""

from datetime import datetime

from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import LegalBasis
from consent_api.models.data_request import DataRequest
from consent_api.services.audit_service import AuditContext
from consent_api.services.processors.base import ProcessorResult, RequestProcessor

MANUAL_REVIEW_NOTE = (
    "Data rectification requires manual review. Our team will contact you within 30 days."
)


class RectifyProcessor(RequestProcessor):
    async def process(
        self, request: DataRequest, ctx: AuditContext, now: datetime
    ) -> ProcessorResult:
        request.notes = MANUAL_REVIEW_NOTE
        subscriber_id = request.subscriber_id
        request_id = request.id

        async def audit_requested() -> None:
            await self.audit.record(
                AuditAction.DATA_RECTIFICATION_REQUESTED,
                "Data rectification queued for manual review",
                ctx,
                subscriber_id=subscriber_id,
                legal_basis=LegalBasis.LEGAL_OBLIGATION,
                new_data={"dataRequestId": request_id},
            )

        return ProcessorResult(
            data={
                "message": (
                    "Data rectification request received. Our team will review and "
                    "contact you within 30 days."
                ),
                "requiresManualReview": True,
            },
            after_commit=[audit_requested],
        )
