"""Cookie-banner consent recording."""

from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from consent_api.core.config import settings
from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import (
    ANONYMOUS_EMAIL,
    ConsentRecord,
    ConsentType,
    LegalBasis,
)
from consent_api.repositories.consent_repository import ConsentRepository
from consent_api.schemas.consent import CookieConsentRequest
from consent_api.services.audit_service import AuditContext, AuditLogger


class ConsentService:
    def __init__(self, db: AsyncSession, audit: AuditLogger) -> None:
        self.db = db
        self.audit = audit
        self.consents = ConsentRepository(db)

    async def record_cookie_consent(
        self, data: CookieConsentRequest, ctx: AuditContext
    ) -> ConsentRecord:
        """Store an anonymous cookie-banner decision. Essential cookies are always on."""
        choices = data.consent.model_dump()
        choices["essential"] = True
        record = self.consents.add(
            ConsentRecord(
                email=ANONYMOUS_EMAIL,
                consent_type=ConsentType.WEBSITE_COOKIES,
                consent_given=choices["analytics"] or choices["marketing"],
                consent_version=settings.consent_version,
                legal_basis=LegalBasis.CONSENT,
                purpose="Website cookies and analytics",
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
                source=data.source,
                choices=choices,
                timestamp=datetime.now(UTC),
            )
        )
        await self.db.commit()

        await self.audit.record(
            AuditAction.CONSENT_RECORDED,
            "Cookie consent preferences recorded",
            ctx,
            legal_basis=LegalBasis.CONSENT,
            new_data={"consentId": record.id, "choices": choices, "source": data.source},
        )
        return record
