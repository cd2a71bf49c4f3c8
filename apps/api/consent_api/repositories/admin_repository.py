"""Admin account persistence."""

from sqlalchemy import select

from consent_api.models.admin_user import AdminUser
from consent_api.repositories.base import SqlAlchemyRepository


class AdminRepository(SqlAlchemyRepository[AdminUser]):
    model = AdminUser

    async def get_by_email(self, email: str) -> AdminUser | None:
        stmt = select(AdminUser).where(AdminUser.email == email)
        return (await self.session.execute(stmt)).scalar_one_or_none()
