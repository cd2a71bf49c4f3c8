"""Generic async SQLAlchemy repository."""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from consent_api.models.base import Base

M = TypeVar("M", bound=Base)


class SqlAlchemyRepository(Generic[M]):
    """Thin persistence wrapper bound to one session and one model.

    Repositories never commit; transaction boundaries belong to the caller.
    """

    model: type[M]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, id: UUID) -> M | None:
        return await self.session.get(self.model, id)

    def add(self, instance: M) -> M:
        self.session.add(instance)
        return instance

    async def delete(self, instance: M) -> None:
        await self.session.delete(instance)

    async def _page(self, stmt: Select[Any], page: int, limit: int) -> tuple[list[M], int]:
        """Run ``stmt`` for one page and return ``(items, total)``."""
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()
        rows = await self.session.execute(stmt.offset((page - 1) * limit).limit(limit))
        return list(rows.scalars().all()), total
