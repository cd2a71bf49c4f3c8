"""Audit log persistence: insert, filtered search, aggregates, pruning."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.sql import Select

from consent_api.models.audit_log import AuditLog
from consent_api.repositories.base import SqlAlchemyRepository


@dataclass(slots=True)
class AuditFilter:
    subscriber_id: UUID | None = None
    ip_address: str | None = None
    action: str | None = None
    description: str | None = None
    start: datetime | None = None
    end: datetime | None = None


class AuditRepository(SqlAlchemyRepository[AuditLog]):
    model = AuditLog

    def _filtered(self, stmt: Select[Any], filters: AuditFilter) -> Select[Any]:
        if filters.subscriber_id is not None:
            stmt = stmt.where(AuditLog.subscriber_id == filters.subscriber_id)
        if filters.ip_address:
            stmt = stmt.where(AuditLog.ip_address == filters.ip_address)
        if filters.action:
            stmt = stmt.where(AuditLog.action == filters.action)
        if filters.description:
            stmt = stmt.where(AuditLog.description.ilike(f"%{filters.description}%"))
        if filters.start is not None:
            stmt = stmt.where(AuditLog.created_at >= filters.start)
        if filters.end is not None:
            stmt = stmt.where(AuditLog.created_at <= filters.end)
        return stmt

    async def search(
        self, filters: AuditFilter, page: int, limit: int
    ) -> tuple[list[AuditLog], int]:
        stmt = self._filtered(select(AuditLog), filters).order_by(AuditLog.created_at.desc())
        return await self._page(stmt, page, limit)

    async def list_range(self, start: datetime | None, end: datetime | None) -> list[AuditLog]:
        stmt = self._filtered(select(AuditLog), AuditFilter(start=start, end=end))
        stmt = stmt.order_by(AuditLog.created_at.desc())
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_for_subscriber(self, subscriber_id: UUID) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.subscriber_id == subscriber_id)
            .order_by(AuditLog.created_at)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def count(self, start: datetime | None = None, end: datetime | None = None) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(AuditLog), AuditFilter(start=start, end=end)
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def count_for_subscriber(self, subscriber_id: UUID) -> int:
        stmt = select(func.count()).where(AuditLog.subscriber_id == subscriber_id)
        return (await self.session.execute(stmt)).scalar_one()

    async def count_by(
        self, column: str, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, int]:
        """Group counts by ``action`` or ``legal_basis``."""
        col = getattr(AuditLog, column)
        stmt = self._filtered(select(col, func.count()), AuditFilter(start=start, end=end))
        rows = (await self.session.execute(stmt.group_by(col))).all()
        return {str(key): count for key, count in rows if key is not None}

    async def daily_activity(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[dict[str, Any]]:
        day = func.date(AuditLog.created_at)
        stmt = self._filtered(select(day, func.count()), AuditFilter(start=start, end=end))
        rows = (await self.session.execute(stmt.group_by(day).order_by(day))).all()
        return [{"date": str(d), "count": count} for d, count in rows]

    async def delete_for_subscriber(self, subscriber_id: UUID) -> int:
        stmt = delete(AuditLog).where(AuditLog.subscriber_id == subscriber_id)
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[attr-defined,no-any-return]

    async def delete_older_than(self, cutoff: datetime) -> int:
        stmt = delete(AuditLog).where(AuditLog.created_at < cutoff)
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[attr-defined,no-any-return]
