"""Tests for subscribe, verify, unsubscribe and resend-verification.

Covers:
- Explicit consent requirement
- Case-insensitive duplicate detection and concurrent duplicate subscribes
- Reactivation of unsubscribed addresses
- Verification idempotency and the expiry boundary
- Consent withdrawal via the unsubscribe link
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consent_api.core.security import hash_email
from consent_api.models import (
    AuditAction,
    ConsentRecord,
    ConsentType,
    IssuedToken,
    LegalBasis,
    Subscriber,
    TokenPurpose,
)
from consent_api.schemas.email import SubscribeRequest
from consent_api.services.audit_service import AuditContext, AuditLogger
from consent_api.services.subscription_service import SubscriptionService

SUBSCRIBE_URL = "/api/v1/email/subscribe"


async def _count(factory: async_sessionmaker[AsyncSession], model: type[Any]) -> int:
    async with factory() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


async def _subscriber(factory: async_sessionmaker[AsyncSession], email: str) -> Subscriber | None:
    async with factory() as s:
        stmt = select(Subscriber).where(Subscriber.email_hash == hash_email(email))
        return (await s.execute(stmt)).scalar_one_or_none()


# ---------------------------------------------------------------------------
# Subscribe
# ---------------------------------------------------------------------------


class TestSubscribe:
    """Tests for POST /api/v1/email/subscribe."""

    @pytest.mark.asyncio
    async def test_new_subscription(
        self,
        client: AsyncClient,
        mailer: AsyncMock,
        session_factory: async_sessionmaker[AsyncSession],
        audit_entries: Callable[..., Any],
    ) -> None:
        """A new address with consent is stored unverified and gets a verification email."""
        response = await client.post(
            SUBSCRIBE_URL,
            json={"email": "Ada@Example.com", "consent": True, "utmSource": "poster"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["requiresVerification"] is True
        assert "alreadySubscribed" not in body

        subscriber = await _subscriber(session_factory, "ada@example.com")
        assert subscriber is not None
        assert subscriber.email == "ada@example.com"
        assert subscriber.is_verified is False
        assert subscriber.is_active is True
        assert subscriber.consent_given is True
        assert subscriber.consent_ip_address == "203.0.113.7"
        assert subscriber.utm_source == "poster"

        mailer.send_verification_email.assert_awaited_once()
        assert mailer.send_verification_email.await_args.args[0] == "ada@example.com"

        async with session_factory() as s:
            record = (await s.execute(select(ConsentRecord))).scalar_one()
        assert record.consent_type is ConsentType.EMAIL_MARKETING
        assert record.consent_given is True
        assert record.legal_basis is LegalBasis.CONSENT

        (entry,) = await audit_entries(AuditAction.SUBSCRIPTION_CREATED)
        assert entry.subscriber_id == subscriber.id
        assert entry.legal_basis == "consent"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("consent", [None, False, "true", 1])
    async def test_consent_must_be_literal_true(
        self,
        client: AsyncClient,
        session_factory: async_sessionmaker[AsyncSession],
        audit_entries: Callable[..., Any],
        consent: Any,
    ) -> None:
        """Anything other than consent=true is rejected and audited."""
        payload: dict[str, Any] = {"email": "ada@example.com"}
        if consent is not None:
            payload["consent"] = consent

        response = await client.post(SUBSCRIBE_URL, json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "CONSENT_REQUIRED"
        assert "requestId" in body
        assert await _count(session_factory, Subscriber) == 0
        assert len(await audit_entries(AuditAction.SUBSCRIPTION_FAILED)) == 1

    @pytest.mark.asyncio
    async def test_invalid_email(self, client: AsyncClient) -> None:
        """Malformed addresses fail validation with field details."""
        response = await client.post(SUBSCRIBE_URL, json={"email": "not-an-email", "consent": True})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_FAILED"
        assert body["details"][0]["field"] == "email"

    @pytest.mark.asyncio
    async def test_duplicate_is_case_insensitive(
        self,
        client: AsyncClient,
        session_factory: async_sessionmaker[AsyncSession],
        audit_entries: Callable[..., Any],
    ) -> None:
        """Foo@X.com and foo@x.com resolve to the same subscriber."""
        first = await client.post(SUBSCRIBE_URL, json={"email": "Foo@X.com", "consent": True})
        second = await client.post(SUBSCRIBE_URL, json={"email": "foo@x.com", "consent": True})

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["requiresVerification"] is True
        assert await _count(session_factory, Subscriber) == 1
        assert len(await audit_entries(AuditAction.DUPLICATE_SUBSCRIPTION_ATTEMPT)) == 1

    @pytest.mark.asyncio
    async def test_already_verified(
        self, client: AsyncClient, subscriber_factory: Callable[..., Any]
    ) -> None:
        await subscriber_factory(email="ada@example.com", is_verified=True)

        response = await client.post(
            SUBSCRIBE_URL, json={"email": "ada@example.com", "consent": True}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["alreadySubscribed"] is True
        assert "requiresVerification" not in body

    @pytest.mark.asyncio
    async def test_reactivates_unsubscribed(
        self,
        client: AsyncClient,
        mailer: AsyncMock,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
        reload: Callable[..., Any],
        latest_token: Callable[..., Any],
        audit_entries: Callable[..., Any],
    ) -> None:
        """An inactive subscriber is reactivated and must verify again."""
        subscriber = await subscriber_factory(is_verified=True, is_active=False)
        stale = await token_factory(
            owner_id=subscriber.id, purpose=TokenPurpose.EMAIL_VERIFICATION
        )

        response = await client.post(
            SUBSCRIBE_URL, json={"email": subscriber.email, "consent": True, "source": "footer"}
        )

        assert response.status_code == 200
        assert response.json()["requiresVerification"] is True

        refreshed = await reload(Subscriber, subscriber.id)
        assert refreshed.is_active is True
        assert refreshed.is_verified is False
        assert refreshed.unsubscribed_at is None
        assert refreshed.source == "footer"

        fresh = await latest_token(subscriber.id, TokenPurpose.EMAIL_VERIFICATION)
        assert fresh is not None
        assert fresh != stale.token
        assert await reload(IssuedToken, stale.id) is None
        mailer.send_verification_email.assert_awaited_once_with(subscriber.email, fresh)

        (entry,) = await audit_entries(AuditAction.SUBSCRIPTION_REACTIVATED)
        assert entry.old_data["isActive"] is False

    @pytest.mark.asyncio
    async def test_earlier_verification_link_stops_working(
        self,
        client: AsyncClient,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
        reload: Callable[..., Any],
    ) -> None:
        """A link used in the previous subscription must not vouch for the new one."""
        subscriber = await subscriber_factory(is_verified=True, is_active=False)
        used = await token_factory(
            owner_id=subscriber.id,
            purpose=TokenPurpose.EMAIL_VERIFICATION,
            consumed_at=datetime.now(UTC) - timedelta(days=30),
        )
        await client.post(SUBSCRIBE_URL, json={"email": subscriber.email, "consent": True})

        response = await client.get(f"/api/v1/email/verify/{used.token}")

        assert response.status_code == 404
        assert "alreadyVerified" not in response.text
        assert (await reload(Subscriber, subscriber.id)).is_verified is False


class TestConcurrentSubscribe:
    """Two simultaneous subscribes for one address."""

    @pytest.mark.asyncio
    async def test_only_one_row_is_created(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_logger: AuditLogger,
        mailer: AsyncMock,
        ctx: AuditContext,
    ) -> None:
        """The unique email hash decides the winner; the loser gets the pending response."""
        data = SubscribeRequest(email="race@example.com", consent=True)

        async def _attempt() -> Any:
            async with session_factory() as session:
                return await SubscriptionService(session, audit_logger, mailer).subscribe(data, ctx)

        outcomes = await asyncio.gather(_attempt(), _attempt())

        assert sorted(o.created for o in outcomes) == [False, True]
        assert all(o.response.requires_verification for o in outcomes)
        assert await _count(session_factory, Subscriber) == 1
        mailer.send_verification_email.assert_awaited_once()


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


class TestVerifyEmail:
    """Tests for GET /api/v1/email/verify/{token}."""

    @pytest.mark.asyncio
    async def test_subscribe_verify_verify_again(
        self,
        client: AsyncClient,
        mailer: AsyncMock,
        session_factory: async_sessionmaker[AsyncSession],
        audit_entries: Callable[..., Any],
    ) -> None:
        """The second click on the same link is a no-op success."""
        await client.post(SUBSCRIBE_URL, json={"email": "ada@example.com", "consent": True})
        token = mailer.send_verification_email.await_args.args[1]

        first = await client.get(f"/api/v1/email/verify/{token}")
        second = await client.get(f"/api/v1/email/verify/{token}")

        assert first.status_code == 200
        assert first.json()["verified"] is True
        assert second.status_code == 200
        assert second.json()["alreadyVerified"] is True

        subscriber = await _subscriber(session_factory, "ada@example.com")
        assert subscriber is not None
        assert subscriber.is_verified is True
        assert subscriber.verified_at is not None
        mailer.send_welcome_email.assert_awaited_once()
        assert len(await audit_entries(AuditAction.EMAIL_VERIFIED)) == 1

    @pytest.mark.asyncio
    async def test_welcome_email_carries_unsubscribe_token(
        self,
        client: AsyncClient,
        mailer: AsyncMock,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
    ) -> None:
        subscriber = await subscriber_factory()
        verification = await token_factory(
            owner_id=subscriber.id, purpose=TokenPurpose.EMAIL_VERIFICATION
        )
        unsubscribe = await token_factory(owner_id=subscriber.id, purpose=TokenPurpose.UNSUBSCRIBE)

        await client.get(f"/api/v1/email/verify/{verification.token}")

        mailer.send_welcome_email.assert_awaited_once_with(subscriber.email, unsubscribe.token)

    @pytest.mark.asyncio
    async def test_unknown_token(
        self, client: AsyncClient, audit_entries: Callable[..., Any]
    ) -> None:
        response = await client.get("/api/v1/email/verify/does-not-exist")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
        assert len(await audit_entries(AuditAction.VERIFICATION_FAILED)) == 1

    @pytest.mark.asyncio
    async def test_token_just_inside_window(
        self,
        client: AsyncClient,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
    ) -> None:
        """A token a few seconds short of 24 hours old still verifies."""
        subscriber = await subscriber_factory()
        issued_at = datetime.now(UTC) - timedelta(hours=24) + timedelta(seconds=5)
        token = await token_factory(
            owner_id=subscriber.id, purpose=TokenPurpose.EMAIL_VERIFICATION, issued_at=issued_at
        )

        response = await client.get(f"/api/v1/email/verify/{token.token}")

        assert response.status_code == 200
        assert response.json()["verified"] is True

    @pytest.mark.asyncio
    async def test_token_past_window(
        self,
        client: AsyncClient,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
        reload: Callable[..., Any],
        audit_entries: Callable[..., Any],
    ) -> None:
        """A token one second past 24 hours is expired and changes nothing."""
        subscriber = await subscriber_factory()
        issued_at = datetime.now(UTC) - timedelta(hours=24, seconds=1)
        token = await token_factory(
            owner_id=subscriber.id, purpose=TokenPurpose.EMAIL_VERIFICATION, issued_at=issued_at
        )

        response = await client.get(f"/api/v1/email/verify/{token.token}")

        assert response.status_code == 400
        assert response.json()["code"] == "TOKEN_EXPIRED"
        assert (await reload(Subscriber, subscriber.id)).is_verified is False
        assert len(await audit_entries(AuditAction.VERIFICATION_EXPIRED)) == 1


class TestTokenExpiryBoundary:
    """IssuedToken.is_expired is a hard boundary at expires_at."""

    def test_boundary(self) -> None:
        expires_at = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
        token = IssuedToken(expires_at=expires_at)

        assert not token.is_expired(expires_at - timedelta(seconds=1))
        assert not token.is_expired(expires_at)
        assert token.is_expired(expires_at + timedelta(seconds=1))

    def test_no_expiry(self) -> None:
        assert not IssuedToken(expires_at=None).is_expired(datetime.now(UTC))


# ---------------------------------------------------------------------------
# Unsubscribe
# ---------------------------------------------------------------------------


class TestUnsubscribe:
    """Tests for GET /api/v1/email/unsubscribe/{token}."""

    @pytest.mark.asyncio
    async def test_unsubscribe_withdraws_consent(
        self,
        client: AsyncClient,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
        reload: Callable[..., Any],
        session_factory: async_sessionmaker[AsyncSession],
        audit_entries: Callable[..., Any],
    ) -> None:
        subscriber = await subscriber_factory(is_verified=True)
        token = await token_factory(owner_id=subscriber.id, purpose=TokenPurpose.UNSUBSCRIBE)

        first = await client.get(f"/api/v1/email/unsubscribe/{token.token}")
        second = await client.get(f"/api/v1/email/unsubscribe/{token.token}")

        assert first.status_code == 200
        assert first.json()["unsubscribed"] is True
        assert second.status_code == 200
        assert second.json()["alreadyUnsubscribed"] is True

        refreshed = await reload(Subscriber, subscriber.id)
        assert refreshed.is_active is False
        assert refreshed.unsubscribed_at is not None

        async with session_factory() as s:
            record = (await s.execute(select(ConsentRecord))).scalar_one()
        assert record.consent_given is False
        assert record.legal_basis is LegalBasis.CONSENT_WITHDRAWN

        (entry,) = await audit_entries(AuditAction.UNSUBSCRIBED)
        assert entry.legal_basis == "consent_withdrawn"
        assert entry.old_data == {"isActive": True}
        assert entry.new_data["isActive"] is False

    @pytest.mark.asyncio
    async def test_unknown_token(
        self, client: AsyncClient, audit_entries: Callable[..., Any]
    ) -> None:
        response = await client.get("/api/v1/email/unsubscribe/nope")

        assert response.status_code == 404
        assert len(await audit_entries(AuditAction.UNSUBSCRIBE_FAILED)) == 1

    @pytest.mark.asyncio
    async def test_verification_token_cannot_unsubscribe(
        self,
        client: AsyncClient,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
    ) -> None:
        """Tokens are bound to their purpose."""
        subscriber = await subscriber_factory()
        token = await token_factory(
            owner_id=subscriber.id, purpose=TokenPurpose.EMAIL_VERIFICATION
        )

        response = await client.get(f"/api/v1/email/unsubscribe/{token.token}")

        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Resend verification
# ---------------------------------------------------------------------------


class TestResendVerification:
    """Tests for POST /api/v1/email/resend-verification."""

    URL = "/api/v1/email/resend-verification"

    @pytest.mark.asyncio
    async def test_unknown_address_gets_neutral_answer(
        self, client: AsyncClient, mailer: AsyncMock
    ) -> None:
        response = await client.post(self.URL, json={"email": "ghost@example.com"})

        assert response.status_code == 200
        assert "alreadyVerified" not in response.json()
        mailer.send_verification_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_already_verified(
        self, client: AsyncClient, subscriber_factory: Callable[..., Any]
    ) -> None:
        await subscriber_factory(is_verified=True)

        response = await client.post(self.URL, json={"email": "ada@example.com"})

        assert response.status_code == 200
        assert response.json()["alreadyVerified"] is True

    @pytest.mark.asyncio
    async def test_inactive_subscription(
        self, client: AsyncClient, subscriber_factory: Callable[..., Any]
    ) -> None:
        await subscriber_factory(is_active=False)

        response = await client.post(self.URL, json={"email": "ada@example.com"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_resend_replaces_outstanding_token(
        self,
        client: AsyncClient,
        mailer: AsyncMock,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
        latest_token: Callable[..., Any],
        audit_entries: Callable[..., Any],
    ) -> None:
        subscriber = await subscriber_factory()
        old = await token_factory(owner_id=subscriber.id, purpose=TokenPurpose.EMAIL_VERIFICATION)

        response = await client.post(self.URL, json={"email": "ADA@example.com"})

        assert response.status_code == 200
        fresh = await latest_token(subscriber.id, TokenPurpose.EMAIL_VERIFICATION)
        assert fresh != old.token
        mailer.send_verification_email.assert_awaited_once_with(subscriber.email, fresh)

        stale = await client.get(f"/api/v1/email/verify/{old.token}")
        assert stale.status_code == 404
        assert len(await audit_entries(AuditAction.VERIFICATION_RESENT)) == 1


class TestConcurrentUnsubscribe:
    """Two simultaneous clicks on one unsubscribe link."""

    @pytest.mark.asyncio
    async def test_consent_is_withdrawn_once(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_logger: AuditLogger,
        mailer: AsyncMock,
        ctx: AuditContext,
        subscriber_factory: Callable[..., Any],
        token_factory: Callable[..., Any],
        audit_entries: Callable[..., Any],
    ) -> None:
        """The conditional deactivation picks one winner; the other sees the link as used."""
        subscriber = await subscriber_factory(is_verified=True)
        token = await token_factory(owner_id=subscriber.id, purpose=TokenPurpose.UNSUBSCRIBE)

        async def _attempt() -> Any:
            async with session_factory() as session:
                service = SubscriptionService(session, audit_logger, mailer)
                return await service.unsubscribe(token.token, ctx)

        results = await asyncio.gather(_attempt(), _attempt())

        assert sum(1 for r in results if r.unsubscribed) == 1
        assert sum(1 for r in results if r.already_unsubscribed) == 1
        assert await _count(session_factory, ConsentRecord) == 1
        assert len(await audit_entries(AuditAction.UNSUBSCRIBED)) == 1
