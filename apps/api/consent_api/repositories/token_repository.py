"""Issued token persistence."""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update

from consent_api.models.issued_token import IssuedToken, TokenPurpose
from consent_api.repositories.base import SqlAlchemyRepository


class TokenRepository(SqlAlchemyRepository[IssuedToken]):
    model = IssuedToken

    async def find(self, token: str, purpose: TokenPurpose) -> IssuedToken | None:
        stmt = select(IssuedToken).where(
            IssuedToken.token == token,
            IssuedToken.purpose == purpose,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def find_for_owner(self, owner_id: UUID, purpose: TokenPurpose) -> IssuedToken | None:
        """Most recently issued token of ``purpose`` for ``owner_id``."""
        stmt = (
            select(IssuedToken)
            .where(IssuedToken.owner_id == owner_id, IssuedToken.purpose == purpose)
            .order_by(IssuedToken.issued_at.desc())
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def mark_consumed(self, token: str, purpose: TokenPurpose, now: datetime) -> bool:
        """Consume ``token`` if nobody has yet. Exactly one concurrent caller gets True."""
        stmt = (
            update(IssuedToken)
            .where(
                IssuedToken.token == token,
                IssuedToken.purpose == purpose,
                IssuedToken.consumed_at.is_(None),
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined,no-any-return]

    async def revoke_unconsumed(self, owner_id: UUID, purpose: TokenPurpose) -> int:
        stmt = delete(IssuedToken).where(
            IssuedToken.owner_id == owner_id,
            IssuedToken.purpose == purpose,
            IssuedToken.consumed_at.is_(None),
        )
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[attr-defined,no-any-return]

    async def delete_for_owner(self, owner_id: UUID, purpose: TokenPurpose) -> int:
        """Drop every token of ``purpose`` for the owner, consumed or not."""
        stmt = delete(IssuedToken).where(
            IssuedToken.owner_id == owner_id,
            IssuedToken.purpose == purpose,
        )
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[attr-defined,no-any-return]

    async def delete_for_owners(self, owner_ids: Iterable[UUID]) -> int:
        ids = list(owner_ids)
        if not ids:
            return 0
        stmt = delete(IssuedToken).where(IssuedToken.owner_id.in_(ids))
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[attr-defined,no-any-return]
