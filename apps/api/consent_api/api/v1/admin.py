"""Admin dashboard API endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Path, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from consent_api.core.auth import PrivilegedAdmin
from consent_api.core.deps import Admins, RequestContext
from consent_api.core.rate_limit import ADMIN_LIMIT, limiter
from consent_api.models.data_request import DataRequestStatus, DataRequestType
from consent_api.schemas.admin import (
    AdminLoginRequest,
    AdminLoginResponse,
    AuditLogView,
    DashboardStats,
    DataRequestSummary,
    SubscriberSummary,
)
from consent_api.schemas.common import PaginatedResponse
from consent_api.services.admin_service import ExportKind
from consent_api.services.audit_service import AuditSearch

router = APIRouter()


@router.post("/login", response_model=AdminLoginResponse)
@limiter.limit(ADMIN_LIMIT)
async def login(
    request: Request,  # noqa: ARG001  # required by slowapi
    data: AdminLoginRequest,
    service: Admins,
    ctx: RequestContext,
) -> AdminLoginResponse:
    return await service.login(data.email, data.password, ctx)


@router.get("/dashboard", response_model=DashboardStats)
@limiter.limit(ADMIN_LIMIT)
async def dashboard(
    request: Request,  # noqa: ARG001  # required by slowapi
    admin: PrivilegedAdmin,  # noqa: ARG001
    service: Admins,
) -> DashboardStats:
    return await service.dashboard()


@router.get("/subscribers", response_model=PaginatedResponse[SubscriberSummary])
@limiter.limit(ADMIN_LIMIT)
async def list_subscribers(
    request: Request,  # noqa: ARG001  # required by slowapi
    admin: PrivilegedAdmin,  # noqa: ARG001
    service: Admins,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    search: str | None = Query(None, max_length=100),
    is_active: bool | None = Query(None, alias="isActive"),
    is_verified: bool | None = Query(None, alias="isVerified"),
    source: str | None = Query(None, max_length=100),
) -> PaginatedResponse[SubscriberSummary]:
    return await service.list_subscribers(
        search=search,
        is_active=is_active,
        is_verified=is_verified,
        source=source,
        page=page,
        limit=limit,
    )


@router.get("/gdpr-requests", response_model=PaginatedResponse[DataRequestSummary])
@limiter.limit(ADMIN_LIMIT)
async def list_gdpr_requests(
    request: Request,  # noqa: ARG001  # required by slowapi
    admin: PrivilegedAdmin,  # noqa: ARG001
    service: Admins,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    status: DataRequestStatus | None = Query(None),
    type: DataRequestType | None = Query(None),
) -> PaginatedResponse[DataRequestSummary]:
    return await service.list_data_requests(status=status, type=type, page=page, limit=limit)


@router.get("/audit-logs", response_model=PaginatedResponse[AuditLogView])
@limiter.limit(ADMIN_LIMIT)
async def list_audit_logs(
    request: Request,  # noqa: ARG001  # required by slowapi
    admin: PrivilegedAdmin,  # noqa: ARG001
    service: Admins,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    email: str | None = Query(None, max_length=255),
    ip_address: str | None = Query(None, alias="ipAddress", max_length=64),
    action: str | None = Query(None, max_length=64),
    description: str | None = Query(None, max_length=200),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
) -> PaginatedResponse[AuditLogView]:
    return await service.search_audit_logs(
        AuditSearch(
            email=email,
            ip_address=ip_address,
            action=action,
            description=description,
            start=start_date,
            end=end_date,
            page=page,
            limit=limit,
        )
    )


@router.get("/export/{kind}")
@limiter.limit(ADMIN_LIMIT)
async def export_data(
    request: Request,  # noqa: ARG001  # required by slowapi
    kind: Annotated[ExportKind, Path()],
    admin: PrivilegedAdmin,
    service: Admins,
    ctx: RequestContext,
) -> JSONResponse:
    """Download subscribers, audit logs or GDPR requests as a JSON attachment."""
    document, filename = await service.export(kind, admin, ctx)
    return JSONResponse(
        content=jsonable_encoder(document),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
