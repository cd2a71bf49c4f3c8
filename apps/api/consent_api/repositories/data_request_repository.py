"""Data-subject request persistence, including guarded state transitions."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, delete, func, or_, select, update

from consent_api.models.data_request import DataRequest, DataRequestStatus, DataRequestType
from consent_api.repositories.base import SqlAlchemyRepository


class DataRequestRepository(SqlAlchemyRepository[DataRequest]):
    model = DataRequest

    async def get_by_export_id(self, export_id: UUID) -> DataRequest | None:
        stmt = select(DataRequest).where(DataRequest.export_id == export_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def transition(
        self,
        request_id: UUID,
        from_status: DataRequestStatus,
        to_status: DataRequestStatus,
        **values: Any,
    ) -> bool:
        """Move a request between states only if it is still in ``from_status``.

        Returns True for the single caller whose update applied.
        """
        stmt = (
            update(DataRequest)
            .where(DataRequest.id == request_id, DataRequest.status == from_status)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined,no-any-return]

    async def list_stale_pending(self, sent_before: datetime) -> list[DataRequest]:
        stmt = select(DataRequest).where(
            DataRequest.status == DataRequestStatus.PENDING,
            DataRequest.verification_sent_at < sent_before,
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_related(
        self, email_hash: str, subscriber_id: UUID | None, *, exclude: UUID
    ) -> list[tuple[UUID, UUID | None]]:
        """Other requests by the same subject as ``(id, export_id)`` pairs.

        A request belongs to the subject when it carries their email hash or
        points at their subscriber row.
        """
        match: ColumnElement[bool] = DataRequest.request_email_hash == email_hash
        if subscriber_id is not None:
            match = or_(match, DataRequest.subscriber_id == subscriber_id)
        stmt = select(DataRequest.id, DataRequest.export_id).where(match, DataRequest.id != exclude)
        return [(rid, export_id) for rid, export_id in (await self.session.execute(stmt)).all()]

    async def delete_many(self, request_ids: list[UUID]) -> int:
        if not request_ids:
            return 0
        stmt = delete(DataRequest).where(DataRequest.id.in_(request_ids))
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[attr-defined,no-any-return]

    async def list_expired_exports(self, now: datetime) -> list[DataRequest]:
        stmt = select(DataRequest).where(
            DataRequest.export_id.is_not(None),
            DataRequest.export_expires_at <= now,
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def search(
        self,
        *,
        status: DataRequestStatus | None = None,
        type: DataRequestType | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[DataRequest], int]:
        stmt = select(DataRequest)
        if status is not None:
            stmt = stmt.where(DataRequest.status == status)
        if type is not None:
            stmt = stmt.where(DataRequest.type == type)
        stmt = stmt.order_by(DataRequest.created_at.desc())
        return await self._page(stmt, page, limit)

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(DataRequest.status, func.count()).group_by(DataRequest.status)
        rows = (await self.session.execute(stmt)).all()
        return {status.value: count for status, count in rows}

    async def list_all(self) -> list[DataRequest]:
        stmt = select(DataRequest).order_by(DataRequest.created_at.desc())
        return list((await self.session.execute(stmt)).scalars().all())
