"""Right of access (Art. 15) and data portability (Art. 20)."""

import uuid
from datetime import datetime
from typing import Any

from consent_api.core.config import settings
from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import LegalBasis
from consent_api.models.data_request import DataRequest
from consent_api.models.subscriber import Subscriber
from consent_api.repositories.audit_repository import AuditRepository
from consent_api.repositories.consent_repository import ConsentRepository
from consent_api.services.audit_service import AuditContext
from consent_api.services.processors.base import ProcessorResult, RequestProcessor
from consent_api.services.subscription_service import subscriber_snapshot
from consent_api.services.token_service import TokenIssuer


class ExportProcessor(RequestProcessor):
    """Collects everything held about the subject into one downloadable JSON file."""

    completion_message = "Data export completed. Download link sent to your email."

    async def build_document(
        self, request: DataRequest, subscriber: Subscriber | None, now: datetime
    ) -> dict[str, Any]:
        email = request.request_email or ""
        consent_records = await ConsentRepository(self.db).list_for_email(email)
        audit_entries = (
            await AuditRepository(self.db).list_for_subscriber(subscriber.id)
            if subscriber
            else []
        )
        return {
            "requestedAt": now.isoformat(),
            "requestType": request.type.value,
            "requestEmail": email,
            "dataFound": subscriber is not None or bool(consent_records),
            "subscriber": subscriber_snapshot(subscriber) if subscriber else None,
            "auditLogs": [
                {
                    "action": entry.action,
                    "description": entry.description,
                    "legalBasis": entry.legal_basis,
                    "createdAt": entry.created_at,
                }
                for entry in audit_entries
            ],
            "consentRecords": [
                {
                    "consentType": record.consent_type.value,
                    "consentGiven": record.consent_given,
                    "consentVersion": record.consent_version,
                    "legalBasis": record.legal_basis.value,
                    "purpose": record.purpose,
                    "source": record.source,
                    "timestamp": record.timestamp,
                }
                for record in consent_records
            ],
        }

    async def process(
        self, request: DataRequest, ctx: AuditContext, now: datetime
    ) -> ProcessorResult:
        subscriber = await self.load_subject(request)
        document = await self.build_document(request, subscriber, now)

        export_id = uuid.uuid4()
        expires_at = now + TokenIssuer.export_expiry()
        await self.storage.write(export_id, document)

        request.export_id = export_id
        request.export_url = f"{settings.api_v1_prefix}/gdpr/download-export/{export_id}"
        request.export_expires_at = expires_at

        recipient = request.request_email
        subscriber_id = request.subscriber_id
        request_type = request.type.value

        async def send_link() -> None:
            if recipient:
                await self.email.send_export_ready(recipient, export_id, expires_at)

        async def audit_created() -> None:
            await self.audit.record(
                AuditAction.DATA_EXPORT_CREATED,
                f"Data export generated for {request_type} request",
                ctx,
                subscriber_id=subscriber_id,
                legal_basis=LegalBasis.LEGAL_OBLIGATION,
                new_data={"exportId": export_id, "expiresAt": expires_at},
            )

        async def discard_file() -> None:
            await self.storage.delete(export_id)

        return ProcessorResult(
            data={
                "message": self.completion_message,
                "exportId": str(export_id),
                "expiresAt": expires_at.isoformat(),
                "dataFound": document["dataFound"],
            },
            after_commit=[send_link, audit_created],
            on_rollback=[discard_file],
        )


class PortabilityProcessor(ExportProcessor):
    """Same content as an export, declared as a structured machine-readable format."""

    completion_message = (
        "Data portability export completed. Your data is provided in a structured, "
        "machine-readable format."
    )

    async def build_document(
        self, request: DataRequest, subscriber: Subscriber | None, now: datetime
    ) -> dict[str, Any]:
        document = await super().build_document(request, subscriber, now)
        document["format"] = "application/json"
        return document

    async def process(
        self, request: DataRequest, ctx: AuditContext, now: datetime
    ) -> ProcessorResult:
        result = await super().process(request, ctx, now)
        result.data["format"] = "application/json"
        return result
