"""Tests for the AuditLogger: durable writes, Err on failure, search, stats, retention."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consent_api.core.result import Err, Ok
from consent_api.models import AuditAction, AuditLog, LegalBasis, Subscriber
from consent_api.services.audit_service import AuditContext, AuditLogger, AuditSearch


class TestRecord:
    """Tests for AuditLogger.record."""

    @pytest.mark.asyncio
    async def test_record_persists_entry(
        self,
        audit_logger: AuditLogger,
        ctx: AuditContext,
        subscriber_factory: Callable[..., Any],
        audit_entries: Callable[..., Any],
    ) -> None:
        """A recorded entry is durable with caller context and legal basis."""
        subscriber: Subscriber = await subscriber_factory()

        result = await audit_logger.record(
            AuditAction.EMAIL_VERIFIED,
            "Email address verified",
            ctx,
            subscriber_id=subscriber.id,
            legal_basis=LegalBasis.CONSENT,
            old_data={"isVerified": False},
            new_data={"isVerified": True, "verifiedAt": datetime(2026, 1, 1, tzinfo=UTC)},
        )

        assert isinstance(result, Ok)
        entries = await audit_entries(AuditAction.EMAIL_VERIFIED)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.subscriber_id == subscriber.id
        assert entry.ip_address == ctx.ip_address
        assert entry.user_agent == "pytest"
        assert entry.request_id == "test-request-id"
        assert entry.legal_basis == "consent"
        assert entry.old_data == {"isVerified": False}
        # Non-JSON values are stored as strings
        assert entry.new_data["verifiedAt"].startswith("2026-01-01")

    @pytest.mark.asyncio
    async def test_record_without_context(
        self, audit_logger: AuditLogger, audit_entries: Callable[..., Any]
    ) -> None:
        """Context is optional; fields are left empty."""
        result = await audit_logger.record(AuditAction.CONSENT_RECORDED, "Cookie consent")
        assert result.is_ok()
        (entry,) = await audit_entries()
        assert entry.ip_address is None
        assert entry.subscriber_id is None

    @pytest.mark.asyncio
    async def test_record_failure_returns_err(self, ctx: AuditContext) -> None:
        """A failing write is reported as Err, never raised."""
        broken_factory = MagicMock(side_effect=RuntimeError("database down"))
        logger = AuditLogger(broken_factory)

        result = await logger.record(AuditAction.UNSUBSCRIBED, "User unsubscribed", ctx)

        assert isinstance(result, Err)
        assert result.is_err()
        assert isinstance(result.error, RuntimeError)
        assert result.unwrap_or(None) is None

    @pytest.mark.asyncio
    async def test_record_failure_is_logged_on_audit_channel(
        self, ctx: AuditContext, caplog: pytest.LogCaptureFixture
    ) -> None:
        broken_factory = MagicMock(side_effect=RuntimeError("database down"))
        with caplog.at_level("ERROR", logger="consent_api.audit"):
            await AuditLogger(broken_factory).record(AuditAction.UNSUBSCRIBED, "x", ctx)
        assert any("Audit write failed" in r.getMessage() for r in caplog.records)


class TestSearch:
    """Tests for AuditLogger.search."""

    @pytest.mark.asyncio
    async def test_filter_by_email(
        self,
        audit_logger: AuditLogger,
        ctx: AuditContext,
        subscriber_factory: Callable[..., Any],
    ) -> None:
        """An email filter resolves to the subscriber regardless of case."""
        ada = await subscriber_factory(email="ada@example.com")
        bob = await subscriber_factory(email="bob@example.com")
        await audit_logger.record(AuditAction.SUBSCRIPTION_CREATED, "a", ctx, subscriber_id=ada.id)
        await audit_logger.record(AuditAction.SUBSCRIPTION_CREATED, "b", ctx, subscriber_id=bob.id)

        page = await audit_logger.search(AuditSearch(email="ADA@example.com"))

        assert page.total == 1
        assert page.entries[0].subscriber_id == ada.id

    @pytest.mark.asyncio
    async def test_unknown_email_gives_empty_page(
        self, audit_logger: AuditLogger, ctx: AuditContext
    ) -> None:
        await audit_logger.record(AuditAction.CONSENT_RECORDED, "x", ctx)
        page = await audit_logger.search(AuditSearch(email="nobody@example.com"))
        assert page.total == 0
        assert page.entries == []

    @pytest.mark.asyncio
    async def test_filter_by_action_ip_and_description(
        self, audit_logger: AuditLogger, ctx: AuditContext
    ) -> None:
        await audit_logger.record(AuditAction.CONSENT_RECORDED, "Cookie consent saved", ctx)
        await audit_logger.record(
            AuditAction.CONSENT_RECORDED,
            "Cookie consent saved",
            AuditContext(ip_address="198.51.100.1"),
        )
        await audit_logger.record(AuditAction.UNSUBSCRIBED, "User unsubscribed", ctx)

        by_action = await audit_logger.search(AuditSearch(action="CONSENT_RECORDED"))
        by_ip = await audit_logger.search(AuditSearch(ip_address="198.51.100.1"))
        by_text = await audit_logger.search(AuditSearch(description="unsubscribed"))

        assert by_action.total == 2
        assert by_ip.total == 1
        assert by_text.total == 1
        assert by_text.entries[0].action == "UNSUBSCRIBED"

    @pytest.mark.asyncio
    async def test_pagination(self, audit_logger: AuditLogger, ctx: AuditContext) -> None:
        for i in range(5):
            await audit_logger.record(AuditAction.CONSENT_RECORDED, f"entry {i}", ctx)

        first = await audit_logger.search(AuditSearch(page=1, limit=2))
        last = await audit_logger.search(AuditSearch(page=3, limit=2))

        assert first.total == 5
        assert len(first.entries) == 2
        assert first.has_more
        assert len(last.entries) == 1
        assert not last.has_more

    @pytest.mark.asyncio
    async def test_date_range(
        self,
        audit_logger: AuditLogger,
        ctx: AuditContext,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await audit_logger.record(AuditAction.CONSENT_RECORDED, "recent", ctx)
        async with session_factory() as s:
            s.add(
                AuditLog(
                    action=AuditAction.CONSENT_RECORDED.value,
                    description="old",
                    created_at=datetime.now(UTC) - timedelta(days=10),
                )
            )
            await s.commit()

        page = await audit_logger.search(
            AuditSearch(start=datetime.now(UTC) - timedelta(days=1))
        )
        assert [e.description for e in page.entries] == ["recent"]


class TestReporting:
    """Tests for stats and export."""

    @pytest.mark.asyncio
    async def test_stats(self, audit_logger: AuditLogger, ctx: AuditContext) -> None:
        await audit_logger.record(
            AuditAction.CONSENT_RECORDED, "a", ctx, legal_basis=LegalBasis.CONSENT
        )
        await audit_logger.record(
            AuditAction.CONSENT_RECORDED, "b", ctx, legal_basis=LegalBasis.CONSENT
        )
        await audit_logger.record(
            AuditAction.GDPR_REQUEST_CREATED, "c", ctx, legal_basis=LegalBasis.LEGAL_OBLIGATION
        )

        stats = await audit_logger.stats()

        assert stats["totalCount"] == 3
        assert stats["actionCounts"]["CONSENT_RECORDED"] == 2
        assert stats["actionCounts"]["GDPR_REQUEST_CREATED"] == 1
        assert stats["legalBasisCounts"]["consent"] == 2
        assert sum(day["count"] for day in stats["dailyActivity"]) == 3

    @pytest.mark.asyncio
    async def test_export(self, audit_logger: AuditLogger, ctx: AuditContext) -> None:
        await audit_logger.record(AuditAction.CONSENT_RECORDED, "a", ctx)
        document = await audit_logger.export()
        assert document["totalRecords"] == 1
        assert document["dateRange"] == {"start": None, "end": None}
        log = document["logs"][0]
        assert log["action"] == "CONSENT_RECORDED"
        assert log["ipAddress"] == ctx.ip_address


class TestRetention:
    """Tests for AuditLogger.cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired_entries(
        self,
        audit_logger: AuditLogger,
        ctx: AuditContext,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await audit_logger.record(AuditAction.CONSENT_RECORDED, "fresh", ctx)
        async with session_factory() as s:
            s.add(
                AuditLog(
                    action=AuditAction.CONSENT_RECORDED.value,
                    description="ancient",
                    created_at=datetime.now(UTC) - timedelta(days=2556),
                )
            )
            await s.commit()

        deleted = await audit_logger.cleanup(retention_days=2555)

        assert deleted == 1
        async with session_factory() as s:
            remaining = (await s.execute(select(AuditLog.description))).scalars().all()
        assert remaining == ["fresh"]

    @pytest.mark.asyncio
    async def test_cleanup_with_nothing_to_do(self, audit_logger: AuditLogger) -> None:
        assert await audit_logger.cleanup() == 0
