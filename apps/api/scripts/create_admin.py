"""Create or update an admin account for the consent dashboard.

Reads the password from ADMIN_PASSWORD (or prompts for it) and stores a bcrypt
hash. Re-running for an existing email updates its password and role and clears
any lockout.

Usage:
    cd apps/api && ADMIN_PASSWORD=... uv run python -m scripts.create_admin admin@example.com ADMIN
"""

import asyncio
import getpass
import os
import sys

from sqlalchemy.ext.asyncio import AsyncSession

from consent_api.core.database import async_session_maker
from consent_api.core.security import hash_password, normalize_email
from consent_api.models.admin_user import AdminRole, AdminUser
from consent_api.repositories.admin_repository import AdminRepository

MIN_PASSWORD_LENGTH = 12


async def upsert_admin(
    session: AsyncSession, email: str, password: str, role: AdminRole
) -> tuple[AdminUser, bool]:
    """Create the admin or reset an existing one. Returns ``(admin, created)``."""
    admins = AdminRepository(session)
    email = normalize_email(email)
    admin = await admins.get_by_email(email)
    created = admin is None
    if admin is None:
        admin = admins.add(AdminUser(email=email, password_hash="", role=role))
    admin.password_hash = hash_password(password)
    admin.role = role
    admin.is_active = True
    admin.failed_login_attempts = 0
    admin.locked_until = None
    await session.commit()
    return admin, created


async def main(argv: list[str]) -> int:
    if len(argv) not in (1, 2):
        print("Usage: python -m scripts.create_admin EMAIL [SUPER_ADMIN|ADMIN|MODERATOR]")
        return 2

    email = argv[0]
    try:
        role = AdminRole(argv[1]) if len(argv) == 2 else AdminRole.ADMIN
    except ValueError:
        print(f"ERROR: unknown role {argv[1]!r}", file=sys.stderr)
        return 2

    password = os.environ.get("ADMIN_PASSWORD") or getpass.getpass("Password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"ERROR: password must be at least {MIN_PASSWORD_LENGTH} characters", file=sys.stderr)
        return 1

    async with async_session_maker() as session:
        admin, created = await upsert_admin(session, email, password, role)

    print(f"{'Created' if created else 'Updated'} admin {admin.email} ({admin.role.value})")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
