"""Newsletter subscription, email verification and consent withdrawal."""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consent_api.core.config import settings
from consent_api.core.errors import ConsentRequired, NotFound, TokenExpired, ValidationFailed
from consent_api.core.security import hash_email, normalize_email
from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import ConsentRecord, ConsentType, LegalBasis
from consent_api.models.issued_token import TokenPurpose
from consent_api.models.subscriber import Subscriber
from consent_api.repositories.consent_repository import ConsentRepository
from consent_api.repositories.subscriber_repository import SubscriberRepository
from consent_api.repositories.token_repository import TokenRepository
from consent_api.schemas.email import (
    ResendVerificationResponse,
    SubscribeRequest,
    SubscribeResponse,
    UnsubscribeResponse,
    VerifyEmailResponse,
)
from consent_api.services.audit_service import AuditContext, AuditLogger
from consent_api.services.email_service import EmailService
from consent_api.services.token_service import TokenIssuer

logger = logging.getLogger(__name__)

MARKETING_PURPOSE = "Email newsletter and community updates"


@dataclass(slots=True)
class SubscribeOutcome:
    response: SubscribeResponse
    created: bool = False


class SubscriptionService:
    """Owns the subscriber lifecycle from first consent to withdrawal."""

    def __init__(self, db: AsyncSession, audit: AuditLogger, email: EmailService) -> None:
        self.db = db
        self.audit = audit
        self.email = email
        self.subscribers = SubscriberRepository(db)
        self.consents = ConsentRepository(db)
        self.tokens = TokenIssuer(TokenRepository(db))

    # ------------------------------------------------------------------
    # Subscribe
    # ------------------------------------------------------------------

    async def subscribe(self, data: SubscribeRequest, ctx: AuditContext) -> SubscribeOutcome:
        email = normalize_email(data.email)
        email_hash = hash_email(email)

        if data.consent is not True:
            await self.audit.record(
                AuditAction.SUBSCRIPTION_FAILED,
                "Email subscription failed - consent not given",
                ctx,
                new_data={"emailHash": email_hash, "source": data.source},
            )
            raise ConsentRequired()

        subscriber = await self.subscribers.get_by_email_hash(email_hash)
        if subscriber is None:
            outcome = await self._create(email, email_hash, data, ctx)
            if outcome is not None:
                return outcome
            # Lost the insert race: the winner's row is now visible
            subscriber = await self.subscribers.get_by_email_hash(email_hash)
            if subscriber is None:
                raise RuntimeError("Subscriber vanished after unique constraint conflict")

        await self.audit.record(
            AuditAction.DUPLICATE_SUBSCRIPTION_ATTEMPT,
            "Attempted to subscribe with existing email",
            ctx,
            subscriber_id=subscriber.id,
            new_data={
                "source": data.source,
                "existingStatus": "active" if subscriber.is_active else "inactive",
            },
        )

        if not subscriber.is_active:
            return await self._reactivate(subscriber, data, ctx)

        if subscriber.is_verified:
            return SubscribeOutcome(
                SubscribeResponse(
                    message="You are already subscribed to our newsletter!",
                    already_subscribed=True,
                )
            )
        return SubscribeOutcome(
            SubscribeResponse(
                message="Verification email already sent. Please check your inbox.",
                requires_verification=True,
            )
        )

    async def _create(
        self,
        email: str,
        email_hash: str,
        data: SubscribeRequest,
        ctx: AuditContext,
    ) -> SubscribeOutcome | None:
        now = datetime.now(UTC)
        subscriber = self.subscribers.add(
            Subscriber(
                id=uuid.uuid4(),
                email=email,
                email_hash=email_hash,
                consent_given=True,
                consent_timestamp=now,
                consent_ip_address=ctx.ip_address,
                consent_user_agent=ctx.user_agent,
                consent_version=settings.consent_version,
                is_verified=False,
                is_active=True,
                verification_sent_at=now,
                source=data.source or "website",
                utm_source=data.utm_source,
                utm_medium=data.utm_medium,
                utm_campaign=data.utm_campaign,
            )
        )
        self._record_consent(email, data.source, ctx, given=True, now=now)
        verification = self.tokens.issue(TokenPurpose.EMAIL_VERIFICATION, subscriber.id, now)
        self.tokens.issue(TokenPurpose.UNSUBSCRIBE, subscriber.id, now)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Concurrent subscribe for the same email resolved to existing row")
            return None

        await self.email.send_verification_email(email, verification.token)
        await self.audit.record(
            AuditAction.SUBSCRIPTION_CREATED,
            "New email subscription created",
            ctx,
            subscriber_id=subscriber.id,
            legal_basis=LegalBasis.CONSENT,
            new_data={
                "source": subscriber.source,
                "consentVersion": subscriber.consent_version,
                "utmSource": data.utm_source,
                "utmMedium": data.utm_medium,
                "utmCampaign": data.utm_campaign,
            },
        )
        return SubscribeOutcome(
            SubscribeResponse(
                message=(
                    "Subscription successful! Please check your email to verify "
                    "your subscription."
                ),
                requires_verification=True,
            ),
            created=True,
        )

    async def _reactivate(
        self, subscriber: Subscriber, data: SubscribeRequest, ctx: AuditContext
    ) -> SubscribeOutcome:
        now = datetime.now(UTC)
        old_data = {
            "isActive": subscriber.is_active,
            "isVerified": subscriber.is_verified,
            "unsubscribedAt": subscriber.unsubscribed_at,
        }

        subscriber.is_active = True
        subscriber.is_verified = False
        subscriber.verified_at = None
        subscriber.unsubscribed_at = None
        subscriber.consent_given = True
        subscriber.consent_timestamp = now
        subscriber.consent_ip_address = ctx.ip_address
        subscriber.consent_user_agent = ctx.user_agent
        subscriber.consent_version = settings.consent_version
        subscriber.verification_sent_at = now
        subscriber.source = data.source or subscriber.source
        subscriber.utm_source = data.utm_source
        subscriber.utm_medium = data.utm_medium
        subscriber.utm_campaign = data.utm_campaign

        self._record_consent(subscriber.email, data.source, ctx, given=True, now=now)
        # Links from the earlier subscription must not report the new one as verified
        verification = await self.tokens.restart(TokenPurpose.EMAIL_VERIFICATION, subscriber.id)
        await self.db.commit()

        await self.email.send_verification_email(subscriber.email, verification.token)
        await self.audit.record(
            AuditAction.SUBSCRIPTION_REACTIVATED,
            "Reactivated existing inactive subscription",
            ctx,
            subscriber_id=subscriber.id,
            legal_basis=LegalBasis.CONSENT,
            old_data=old_data,
            new_data={
                "isActive": True,
                "source": subscriber.source,
                "consentVersion": subscriber.consent_version,
            },
        )
        return SubscribeOutcome(
            SubscribeResponse(
                message="Subscription reactivated. Please check your email to verify.",
                requires_verification=True,
            )
        )

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    async def verify_email(self, token: str, ctx: AuditContext) -> VerifyEmailResponse:
        issued = await self.tokens.lookup(token, TokenPurpose.EMAIL_VERIFICATION)
        subscriber = await self.subscribers.get(issued.owner_id) if issued else None
        if issued is None or subscriber is None:
            await self.audit.record(
                AuditAction.VERIFICATION_FAILED,
                "Email verification failed - invalid token",
                ctx,
            )
            raise NotFound("Invalid or expired verification token")

        if issued.consumed_at is not None or subscriber.is_verified:
            return VerifyEmailResponse(message="Email already verified", already_verified=True)

        now = datetime.now(UTC)
        if issued.is_expired(now):
            await self.audit.record(
                AuditAction.VERIFICATION_EXPIRED,
                "Email verification failed - token expired",
                ctx,
                subscriber_id=subscriber.id,
                new_data={"expiredAt": issued.expires_at},
            )
            raise TokenExpired("Verification token has expired. Please request a new one.")

        if not await self.tokens.consume(token, TokenPurpose.EMAIL_VERIFICATION, now):
            await self.db.rollback()
            return VerifyEmailResponse(message="Email already verified", already_verified=True)

        subscriber.is_verified = True
        subscriber.verified_at = now
        unsubscribe = await self.tokens.unsubscribe_token_for(subscriber.id)
        await self.db.commit()

        await self.email.send_welcome_email(subscriber.email, unsubscribe.token)
        await self.audit.record(
            AuditAction.EMAIL_VERIFIED,
            "Email address verified",
            ctx,
            subscriber_id=subscriber.id,
            legal_basis=LegalBasis.CONSENT,
            old_data={"isVerified": False},
            new_data={"isVerified": True, "verifiedAt": now},
        )
        return VerifyEmailResponse(
            message="Email successfully verified! Welcome to the Queer Grid community.",
            verified=True,
        )

    # ------------------------------------------------------------------
    # Unsubscribe
    # ------------------------------------------------------------------

    async def unsubscribe(self, token: str, ctx: AuditContext) -> UnsubscribeResponse:
        issued = await self.tokens.lookup(token, TokenPurpose.UNSUBSCRIBE)
        subscriber = await self.subscribers.get(issued.owner_id) if issued else None
        if issued is None or subscriber is None:
            await self.audit.record(
                AuditAction.UNSUBSCRIBE_FAILED,
                "Unsubscribe failed - invalid token",
                ctx,
            )
            raise NotFound("Invalid unsubscribe token")

        if not subscriber.is_active:
            return UnsubscribeResponse(
                message="You are already unsubscribed",
                already_unsubscribed=True,
            )

        now = datetime.now(UTC)
        if not await self.subscribers.deactivate(subscriber.id, now):
            # A concurrent click withdrew consent first
            await self.db.rollback()
            return UnsubscribeResponse(
                message="You are already unsubscribed",
                already_unsubscribed=True,
            )
        self._record_consent(subscriber.email, "unsubscribe_link", ctx, given=False, now=now)
        await self.db.commit()

        await self.audit.record(
            AuditAction.UNSUBSCRIBED,
            "User unsubscribed via email link",
            ctx,
            subscriber_id=subscriber.id,
            legal_basis=LegalBasis.CONSENT_WITHDRAWN,
            old_data={"isActive": True},
            new_data={"isActive": False, "unsubscribedAt": now},
        )
        return UnsubscribeResponse(
            message="You have been successfully unsubscribed from our newsletter.",
            unsubscribed=True,
        )

    # ------------------------------------------------------------------
    # Resend verification
    # ------------------------------------------------------------------

    async def resend_verification(
        self, email: str, ctx: AuditContext
    ) -> ResendVerificationResponse:
        subscriber = await self.subscribers.get_by_email_hash(hash_email(email))
        if subscriber is None:
            # Same answer whether or not the address is known
            return ResendVerificationResponse(
                message="If this email is in our system, a verification email has been sent."
            )
        if subscriber.is_verified:
            return ResendVerificationResponse(
                message="This email is already verified.",
                already_verified=True,
            )
        if not subscriber.is_active:
            raise ValidationFailed("This subscription is inactive. Please subscribe again.")

        subscriber.verification_sent_at = datetime.now(UTC)
        verification = await self.tokens.reissue(TokenPurpose.EMAIL_VERIFICATION, subscriber.id)
        await self.db.commit()

        await self.email.send_verification_email(subscriber.email, verification.token)
        await self.audit.record(
            AuditAction.VERIFICATION_RESENT,
            "Verification email resent",
            ctx,
            subscriber_id=subscriber.id,
        )
        return ResendVerificationResponse(
            message="Verification email sent. Please check your inbox."
        )

    def _record_consent(
        self,
        email: str,
        source: str | None,
        ctx: AuditContext,
        *,
        given: bool,
        now: datetime,
    ) -> ConsentRecord:
        return self.consents.add(
            ConsentRecord(
                email=email,
                consent_type=ConsentType.EMAIL_MARKETING,
                consent_given=given,
                consent_version=settings.consent_version,
                legal_basis=LegalBasis.CONSENT if given else LegalBasis.CONSENT_WITHDRAWN,
                purpose=MARKETING_PURPOSE,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
                source=source or "website",
                choices={},
                timestamp=now,
            )
        )


def subscriber_snapshot(subscriber: Subscriber) -> dict[str, Any]:
    """Export-friendly view of a subscriber row."""
    return {
        "id": str(subscriber.id),
        "email": subscriber.email,
        "consentGiven": subscriber.consent_given,
        "consentTimestamp": subscriber.consent_timestamp,
        "consentIpAddress": subscriber.consent_ip_address,
        "consentUserAgent": subscriber.consent_user_agent,
        "consentVersion": subscriber.consent_version,
        "isVerified": subscriber.is_verified,
        "isActive": subscriber.is_active,
        "source": subscriber.source,
        "utmSource": subscriber.utm_source,
        "utmMedium": subscriber.utm_medium,
        "utmCampaign": subscriber.utm_campaign,
        "verifiedAt": subscriber.verified_at,
        "unsubscribedAt": subscriber.unsubscribed_at,
        "createdAt": subscriber.created_at,
        "updatedAt": subscriber.updated_at,
    }
