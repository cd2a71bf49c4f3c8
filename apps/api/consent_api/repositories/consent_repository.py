"""Consent ledger persistence. Insert-only outside of erasure."""

from sqlalchemy import delete, func, select

from consent_api.models.consent_record import ConsentRecord
from consent_api.repositories.base import SqlAlchemyRepository


class ConsentRepository(SqlAlchemyRepository[ConsentRecord]):
    model = ConsentRecord

    async def list_for_email(self, email: str) -> list[ConsentRecord]:
        stmt = (
            select(ConsentRecord)
            .where(ConsentRecord.email == email)
            .order_by(ConsentRecord.timestamp)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def count_for_email(self, email: str) -> int:
        stmt = select(func.count()).where(ConsentRecord.email == email)
        return (await self.session.execute(stmt)).scalar_one()

    async def delete_for_email(self, email: str) -> int:
        stmt = delete(ConsentRecord).where(ConsentRecord.email == email)
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[attr-defined,no-any-return]
