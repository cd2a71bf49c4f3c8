"""Bearer-token authentication for the admin API."""

from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from consent_api.core.deps import Audit, DBSession, RequestContext
from consent_api.core.errors import Forbidden, Unauthorized
from consent_api.core.security import decode_admin_token
from consent_api.models.admin_user import PRIVILEGED_ROLES, AdminUser
from consent_api.models.audit_log import AuditAction
from consent_api.repositories.admin_repository import AdminRepository

# HTTP Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_admin(
    db: DBSession,
    audit: Audit,
    ctx: RequestContext,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AdminUser:
    """Resolve the admin behind the bearer token.

    Raises:
        Unauthorized: No token, a bad or expired token, or an inactive account.
    """
    if credentials is None:
        raise Unauthorized("Access token required")

    try:
        payload = decode_admin_token(credentials.credentials)
        admin = await AdminRepository(db).get(UUID(payload["sub"]))
    except (jwt.InvalidTokenError, ValueError) as e:
        await audit.record(
            AuditAction.ADMIN_AUTH_FAILED,
            "Admin authentication failed",
            ctx,
            new_data={"error": type(e).__name__},
        )
        raise Unauthorized("Invalid access token") from e

    if admin is None or not admin.is_active:
        raise Unauthorized("Invalid or inactive admin account")
    return admin


async def require_privileged_admin(
    audit: Audit,
    ctx: RequestContext,
    admin: AdminUser = Depends(get_current_admin),
) -> AdminUser:
    """Only SUPER_ADMIN and ADMIN may read subscriber and audit data."""
    if admin.role not in PRIVILEGED_ROLES:
        await audit.record(
            AuditAction.ADMIN_ACCESS_DENIED,
            "Admin access denied - insufficient role",
            ctx,
            new_data={"adminId": admin.id, "role": admin.role.value},
        )
        raise Forbidden("Insufficient permissions")
    return admin


# Type aliases for dependency injection
CurrentAdmin = Annotated[AdminUser, Depends(get_current_admin)]
PrivilegedAdmin = Annotated[AdminUser, Depends(require_privileged_admin)]
