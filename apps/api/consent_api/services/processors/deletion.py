"""Right to erasure (Art. 17)."""

from datetime import datetime
from functools import partial

from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import LegalBasis
from consent_api.models.data_request import DataRequest
from consent_api.repositories.audit_repository import AuditRepository
from consent_api.repositories.consent_repository import ConsentRepository
from consent_api.repositories.data_request_repository import DataRequestRepository
from consent_api.repositories.token_repository import TokenRepository
from consent_api.services.audit_service import AuditContext
from consent_api.services.processors.base import ProcessorResult, RequestProcessor


class DeletionProcessor(RequestProcessor):
    """Erases the subject and everything keyed to them.

    The initiation entry is written before any row is touched and the
    completion entry after commit. Both carry only the email hash and counts,
    with no subscriber reference, so they survive the erasure they record.
    """

    async def process(
        self, request: DataRequest, ctx: AuditContext, now: datetime
    ) -> ProcessorResult:
        audits = AuditRepository(self.db)
        consents = ConsentRepository(self.db)
        requests = DataRequestRepository(self.db)
        tokens = TokenRepository(self.db)

        subscriber = await self.load_subject(request)
        email = request.request_email or ""
        email_hash = request.request_email_hash

        related = await requests.list_related(
            email_hash, subscriber.id if subscriber else None, exclude=request.id
        )
        related_ids = [rid for rid, _ in related]
        export_ids = [export_id for _, export_id in related if export_id is not None]

        before = {
            "subscriber": 1 if subscriber else 0,
            "auditLogs": await audits.count_for_subscriber(subscriber.id) if subscriber else 0,
            "dataRequests": len(related),
            "consentRecords": await consents.count_for_email(email),
        }
        await self.audit.record(
            AuditAction.DATA_DELETION_INITIATED,
            "User requested complete data deletion under GDPR Article 17",
            ctx,
            legal_basis=LegalBasis.LEGAL_OBLIGATION,
            new_data={"emailHash": email_hash, "dataRequestId": request.id, "before": before},
        )

        deleted = {
            "subscriber": 0,
            "tokens": 0,
            "auditLogs": 0,
            "dataRequests": 0,
            "consentRecords": 0,
        }
        owners = [subscriber.id, *related_ids] if subscriber else related_ids
        deleted["tokens"] = await tokens.delete_for_owners(owners)
        if subscriber is not None:
            deleted["auditLogs"] = await audits.delete_for_subscriber(subscriber.id)
            # Keep this request as the record of the erasure, detached from its subject
            request.subscriber_id = None
            await self.db.flush()

        deleted["dataRequests"] = await requests.delete_many(related_ids)
        if subscriber is not None:
            await self.subscribers.delete(subscriber)
            deleted["subscriber"] = 1

        deleted["consentRecords"] = await consents.delete_for_email(email)
        request.request_email = None
        request.notes = "Personal data erased under GDPR Article 17."

        request_id = request.id

        async def audit_completed() -> None:
            await self.audit.record(
                AuditAction.DATA_DELETION_COMPLETED,
                "Complete data deletion executed under GDPR Article 17",
                ctx,
                legal_basis=LegalBasis.LEGAL_OBLIGATION,
                new_data={"emailHash": email_hash, "dataRequestId": request_id, "deleted": deleted},
            )

        return ProcessorResult(
            data={
                "message": "Your personal data has been permanently deleted.",
                "dataFound": any(deleted.values()),
                "itemsDeleted": deleted,
            },
            after_commit=[
                *(partial(self.storage.delete, export_id) for export_id in export_ids),
                audit_completed,
            ],
        )
