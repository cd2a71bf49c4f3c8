"""Subscriber persistence."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select, update

from consent_api.models.subscriber import Subscriber
from consent_api.repositories.base import SqlAlchemyRepository


class SubscriberRepository(SqlAlchemyRepository[Subscriber]):
    model = Subscriber

    async def get_by_email_hash(self, email_hash: str) -> Subscriber | None:
        stmt = select(Subscriber).where(Subscriber.email_hash == email_hash)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def deactivate(self, subscriber_id: UUID, now: datetime) -> bool:
        """Mark an active subscriber unsubscribed. Exactly one concurrent caller gets True."""
        stmt = (
            update(Subscriber)
            .where(Subscriber.id == subscriber_id, Subscriber.is_active.is_(True))
            .values(is_active=False, unsubscribed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined,no-any-return]

    async def search(
        self,
        *,
        search: str | None = None,
        is_active: bool | None = None,
        is_verified: bool | None = None,
        source: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Subscriber], int]:
        stmt = select(Subscriber)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(Subscriber.email.ilike(pattern), Subscriber.source.ilike(pattern))
            )
        if is_active is not None:
            stmt = stmt.where(Subscriber.is_active == is_active)
        if is_verified is not None:
            stmt = stmt.where(Subscriber.is_verified == is_verified)
        if source:
            stmt = stmt.where(Subscriber.source == source)
        stmt = stmt.order_by(Subscriber.created_at.desc())
        return await self._page(stmt, page, limit)

    async def counts(self, since: datetime) -> dict[str, int]:
        """Headline subscriber numbers for the admin dashboard."""
        stmt = select(
            func.count(),
            func.count().filter(Subscriber.is_active.is_(True)),
            func.count().filter(Subscriber.is_verified.is_(True)),
            func.count().filter(Subscriber.created_at >= since),
        ).select_from(Subscriber)
        total, active, verified, recent = (await self.session.execute(stmt)).one()
        return {
            "total": total,
            "active": active,
            "verified": verified,
            "recent": recent,
        }

    async def list_all(self) -> list[Subscriber]:
        stmt = select(Subscriber).order_by(Subscriber.created_at.desc())
        return list((await self.session.execute(stmt)).scalars().all())
