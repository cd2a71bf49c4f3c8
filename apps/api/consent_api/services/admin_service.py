"""Admin dashboard: login with lockout, statistics, listings and bulk exports."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from sqlalchemy.ext.asyncio import AsyncSession

from consent_api.core.config import settings
from consent_api.core.errors import AccountLocked, Unauthorized
from consent_api.core.security import create_admin_token, normalize_email, verify_password
from consent_api.models.admin_user import AdminUser
from consent_api.models.audit_log import AuditAction
from consent_api.models.consent_record import LegalBasis
from consent_api.models.data_request import DataRequestStatus, DataRequestType
from consent_api.repositories.admin_repository import AdminRepository
from consent_api.repositories.audit_repository import AuditFilter, AuditRepository
from consent_api.repositories.data_request_repository import DataRequestRepository
from consent_api.repositories.subscriber_repository import SubscriberRepository
from consent_api.schemas.admin import (
    AdminLoginResponse,
    AdminProfile,
    AuditLogView,
    DashboardStats,
    DataRequestSummary,
    SubscriberSummary,
)
from consent_api.schemas.common import PaginatedResponse
from consent_api.services.audit_service import AuditContext, AuditLogger, AuditSearch

logger = logging.getLogger(__name__)

ExportKind = Literal["subscribers", "audit-logs", "gdpr-requests"]

# Cap on rows in one audit-log export
AUDIT_EXPORT_LIMIT = 10_000


class AdminService:
    def __init__(self, db: AsyncSession, audit: AuditLogger) -> None:
        self.db = db
        self.audit = audit
        self.admins = AdminRepository(db)
        self.subscribers = SubscriberRepository(db)
        self.requests = DataRequestRepository(db)

    async def login(self, email: str, password: str, ctx: AuditContext) -> AdminLoginResponse:
        """Exchange credentials for a bearer token.

        Five consecutive failures lock the account for thirty minutes.
        """
        email = normalize_email(email)
        admin = await self.admins.get_by_email(email)
        if admin is None or not admin.is_active:
            await self.audit.record(
                AuditAction.ADMIN_LOGIN_FAILED,
                "Admin login failed - user not found or inactive",
                ctx,
                new_data={"reason": "user_not_found"},
            )
            raise Unauthorized("Invalid credentials")

        now = datetime.now(UTC)
        if admin.locked_until is not None:
            if now < admin.locked_until:
                await self.audit.record(
                    AuditAction.ADMIN_LOGIN_BLOCKED,
                    "Admin login blocked - account locked",
                    ctx,
                    new_data={"adminId": admin.id, "lockedUntil": admin.locked_until},
                )
                raise AccountLocked()
            admin.locked_until = None
            admin.failed_login_attempts = 0

        if not verify_password(password, admin.password_hash):
            admin.failed_login_attempts += 1
            locked = admin.failed_login_attempts >= settings.admin_max_failed_logins
            if locked:
                admin.locked_until = now + timedelta(minutes=settings.admin_lockout_minutes)
            await self.db.commit()
            await self.audit.record(
                AuditAction.ADMIN_LOGIN_FAILED,
                "Admin login failed - invalid password",
                ctx,
                new_data={
                    "adminId": admin.id,
                    "failedAttempts": admin.failed_login_attempts,
                    "accountLocked": locked,
                },
            )
            raise Unauthorized("Invalid credentials")

        admin.failed_login_attempts = 0
        admin.locked_until = None
        admin.last_login_at = now
        admin.last_login_ip = ctx.ip_address
        await self.db.commit()

        token = create_admin_token(str(admin.id), admin.email, admin.role.value)
        await self.audit.record(
            AuditAction.ADMIN_LOGIN_SUCCESS,
            "Admin login successful",
            ctx,
            legal_basis=LegalBasis.LEGITIMATE_INTERESTS,
            new_data={"adminId": admin.id, "role": admin.role.value},
        )
        return AdminLoginResponse(
            token=token,
            expires_in=settings.admin_token_expire_hours * 3600,
            admin=AdminProfile.model_validate(admin),
        )

    async def dashboard(self) -> DashboardStats:
        now = datetime.now(UTC)
        since = now - timedelta(days=30)
        subscriber_counts = await self.subscribers.counts(since)
        by_status = await self.requests.count_by_status()

        audit_stats = await self.audit.stats(since, now)
        recent, _ = await AuditRepository(self.db).search(AuditFilter(), page=1, limit=10)
        audit_stats["recentActivity"] = [
            {
                "id": str(entry.id),
                "action": entry.action,
                "description": entry.description,
                "createdAt": entry.created_at.isoformat(),
            }
            for entry in recent
        ]

        return DashboardStats(
            subscribers={
                "total": subscriber_counts["total"],
                "active": subscriber_counts["active"],
                "verified": subscriber_counts["verified"],
                "unverified": subscriber_counts["total"] - subscriber_counts["verified"],
                "recentSignups": subscriber_counts["recent"],
            },
            data_requests={
                "pending": by_status.get(DataRequestStatus.PENDING.value, 0)
                + by_status.get(DataRequestStatus.VERIFIED.value, 0),
                **{status.value: by_status.get(status.value, 0) for status in DataRequestStatus},
            },
            audit=audit_stats,
            generated_at=now,
        )

    async def list_subscribers(
        self,
        *,
        search: str | None,
        is_active: bool | None,
        is_verified: bool | None,
        source: str | None,
        page: int,
        limit: int,
    ) -> PaginatedResponse[SubscriberSummary]:
        items, total = await self.subscribers.search(
            search=search,
            is_active=is_active,
            is_verified=is_verified,
            source=source,
            page=page,
            limit=limit,
        )
        return PaginatedResponse[SubscriberSummary].build(
            [SubscriberSummary.model_validate(s) for s in items], total, page, limit
        )

    async def list_data_requests(
        self,
        *,
        status: DataRequestStatus | None,
        type: DataRequestType | None,
        page: int,
        limit: int,
    ) -> PaginatedResponse[DataRequestSummary]:
        items, total = await self.requests.search(status=status, type=type, page=page, limit=limit)
        return PaginatedResponse[DataRequestSummary].build(
            [DataRequestSummary.model_validate(r) for r in items], total, page, limit
        )

    async def search_audit_logs(self, query: AuditSearch) -> PaginatedResponse[AuditLogView]:
        result = await self.audit.search(query)
        return PaginatedResponse[AuditLogView].build(
            [AuditLogView.model_validate(e) for e in result.entries],
            result.total,
            result.page,
            result.limit,
        )

    async def export(
        self, kind: ExportKind, admin: AdminUser, ctx: AuditContext
    ) -> tuple[dict[str, Any], str]:
        """Bulk export for compliance reporting. Returns ``(document, filename)``."""
        now = datetime.now(UTC)
        records: list[dict[str, Any]]
        if kind == "subscribers":
            records = [
                {
                    "email": s.email,
                    "isActive": s.is_active,
                    "isVerified": s.is_verified,
                    "consentGiven": s.consent_given,
                    "consentTimestamp": s.consent_timestamp,
                    "source": s.source,
                    "createdAt": s.created_at,
                }
                for s in await self.subscribers.list_all()
            ]
        elif kind == "audit-logs":
            entries = (await self.audit.export())["logs"][:AUDIT_EXPORT_LIMIT]
            records = [
                {
                    "action": e["action"],
                    "description": e["description"],
                    "legalBasis": e["legalBasis"],
                    "ipAddress": e["ipAddress"],
                    "createdAt": e["createdAt"],
                }
                for e in entries
            ]
        else:
            records = [
                {
                    "type": r.type.value,
                    "status": r.status.value,
                    "requestEmail": r.request_email,
                    "createdAt": r.created_at,
                    "processedAt": r.processed_at,
                }
                for r in await self.requests.list_all()
            ]

        await self.audit.record(
            AuditAction.ADMIN_DATA_EXPORT,
            f"Admin exported {kind} data",
            ctx,
            legal_basis=LegalBasis.LEGITIMATE_INTERESTS,
            new_data={"exportType": kind, "recordCount": len(records), "adminId": admin.id},
        )
        document = {
            "exportMetadata": {
                "type": kind,
                "exportedAt": now.isoformat(),
                "recordCount": len(records),
                "exportedBy": admin.email,
            },
            "data": records,
        }
        return document, f"{kind}-export-{now.date().isoformat()}.json"
