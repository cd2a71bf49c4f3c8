"""Right to restriction of processing (Art. 18)."""

from datetime import datetime

from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import LegalBasis
from consent_api.models.data_request import DataRequest
from consent_api.services.audit_service import AuditContext
from consent_api.services.processors.base import ProcessorResult, RequestProcessor


class RestrictProcessor(RequestProcessor):
    """Stops marketing use of the subject's data without deleting it."""

    async def process(
        self, request: DataRequest, ctx: AuditContext, now: datetime
    ) -> ProcessorResult:
        subscriber = await self.load_subject(request)
        was_active = subscriber.is_active if subscriber else None
        if subscriber is not None:
            subscriber.is_active = False
            if subscriber.unsubscribed_at is None:
                subscriber.unsubscribed_at = now
        request.notes = "Processing restricted. Data retained but excluded from marketing."

        subscriber_id = request.subscriber_id

        async def audit_restricted() -> None:
            await self.audit.record(
                AuditAction.DATA_PROCESSING_RESTRICTED,
                "Processing of personal data restricted under GDPR Article 18",
                ctx,
                subscriber_id=subscriber_id,
                legal_basis=LegalBasis.LEGAL_OBLIGATION,
                old_data={"isActive": was_active},
                new_data={"isActive": False if subscriber_id else None},
            )

        return ProcessorResult(
            data={
                "message": (
                    "Processing restriction applied. Your data will not be used for "
                    "marketing purposes."
                ),
                "restricted": True,
            },
            after_commit=[audit_restricted],
        )
