"""Append-only audit trail for every security-relevant action.

The AuditLogger writes through its own session so an entry is durable whether
or not the caller's transaction later commits, and so a failing audit write
can never roll back the action it describes. Writes never raise: the caller
gets an ``Ok``/``Err`` result and failures are reported on the
``consent_api.audit`` channel.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consent_api.core.config import settings
from consent_api.core.logging_config import get_audit_channel
from consent_api.core.result import Err, Ok, Result
from consent_api.core.security import hash_email
from consent_api.models.audit_log import AuditAction, AuditLog
from consent_api.models.consent_record import LegalBasis
from consent_api.repositories.audit_repository import AuditFilter, AuditRepository
from consent_api.repositories.subscriber_repository import SubscriberRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuditContext:
    """Who triggered an action: taken from the inbound HTTP request."""

    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


SYSTEM_CONTEXT = AuditContext(ip_address="system", user_agent="celery-beat")


@dataclass(slots=True)
class AuditSearch:
    email: str | None = None
    ip_address: str | None = None
    action: str | None = None
    description: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    page: int = 1
    limit: int = 50


@dataclass(slots=True)
class AuditPage:
    entries: list[AuditLog] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


def _jsonable(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is None:
        return None
    return json.loads(json.dumps(data, default=str))  # type: ignore[no-any-return]


def serialize_entry(entry: AuditLog) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "subscriberId": str(entry.subscriber_id) if entry.subscriber_id else None,
        "action": entry.action,
        "description": entry.description,
        "ipAddress": entry.ip_address,
        "userAgent": entry.user_agent,
        "requestId": entry.request_id,
        "legalBasis": entry.legal_basis,
        "oldData": entry.old_data,
        "newData": entry.new_data,
        "createdAt": entry.created_at.isoformat(),
    }


class AuditLogger:
    """Durable, non-blocking recorder plus the read side of the audit log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self.channel = get_audit_channel()

    async def record(
        self,
        action: AuditAction,
        description: str,
        ctx: AuditContext | None = None,
        *,
        subscriber_id: UUID | None = None,
        legal_basis: LegalBasis | None = None,
        old_data: dict[str, Any] | None = None,
        new_data: dict[str, Any] | None = None,
    ) -> Result[AuditLog]:
        """Persist one audit entry in its own transaction."""
        ctx = ctx or AuditContext()
        entry = AuditLog(
            subscriber_id=subscriber_id,
            action=action.value,
            description=description,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            request_id=ctx.request_id,
            legal_basis=legal_basis.value if legal_basis else None,
            old_data=_jsonable(old_data),
            new_data=_jsonable(new_data),
        )
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception as exc:
            self.channel.error(
                "Audit write failed: action=%s description=%r",
                action.value,
                description,
                exc_info=exc,
                extra={"audit_action": action.value, "subscriber_id": str(subscriber_id)},
            )
            return Err(exc)

        self.channel.info(
            "%s: %s",
            action.value,
            description,
            extra={
                "audit_action": action.value,
                "audit_id": str(entry.id),
                "subscriber_id": str(subscriber_id) if subscriber_id else None,
                "legal_basis": entry.legal_basis,
            },
        )
        return Ok(entry)

    async def search(self, query: AuditSearch) -> AuditPage:
        """Filter the log. An email filter only matches subjects that still exist."""
        async with self.session_factory() as session:
            filters = AuditFilter(
                ip_address=query.ip_address,
                action=query.action,
                description=query.description,
                start=query.start,
                end=query.end,
            )
            if query.email:
                subscriber = await SubscriberRepository(session).get_by_email_hash(
                    hash_email(query.email)
                )
                if subscriber is None:
                    return AuditPage(page=query.page, limit=query.limit)
                filters.subscriber_id = subscriber.id

            entries, total = await AuditRepository(session).search(
                filters, query.page, query.limit
            )
        return AuditPage(entries=entries, total=total, page=query.page, limit=query.limit)

    async def stats(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, Any]:
        async with self.session_factory() as session:
            repo = AuditRepository(session)
            return {
                "totalCount": await repo.count(start, end),
                "actionCounts": await repo.count_by("action", start, end),
                "legalBasisCounts": await repo.count_by("legal_basis", start, end),
                "dailyActivity": await repo.daily_activity(start, end),
            }

    async def export(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, Any]:
        """Compliance export of the log as a JSON document."""
        async with self.session_factory() as session:
            entries = await AuditRepository(session).list_range(start, end)
        return {
            "exportDate": datetime.now(UTC).isoformat(),
            "dateRange": {
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
            },
            "totalRecords": len(entries),
            "logs": [serialize_entry(e) for e in entries],
        }

    async def cleanup(self, retention_days: int | None = None) -> int:
        """Delete entries older than the retention window in one statement."""
        days = retention_days if retention_days is not None else settings.audit_log_retention_days
        cutoff = datetime.now(UTC) - timedelta(days=days)
        async with self.session_factory() as session:
            deleted = await AuditRepository(session).delete_older_than(cutoff)
            await session.commit()
        logger.info("Audit retention cleanup: deleted=%d cutoff=%s", deleted, cutoff.isoformat())
        return deleted
