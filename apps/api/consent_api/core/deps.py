"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from consent_api.core.database import get_async_session, get_session_factory
from consent_api.core.logging_config import request_id_var
from consent_api.core.rate_limit import get_client_ip
from consent_api.services.admin_service import AdminService
from consent_api.services.audit_service import AuditContext, AuditLogger
from consent_api.services.consent_service import ConsentService
from consent_api.services.data_request_service import RequestStateMachine
from consent_api.services.email_service import EmailService
from consent_api.services.export_storage import ExportStorage
from consent_api.services.subscription_service import SubscriptionService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session."""
    async for session in get_async_session():
        yield session


def get_audit_logger() -> AuditLogger:
    return AuditLogger(get_session_factory())


def get_email_service() -> EmailService:
    return EmailService()


def get_export_storage() -> ExportStorage:
    return ExportStorage()


def get_audit_context(request: Request) -> AuditContext:
    """Caller details recorded on every audit entry written during the request."""
    return AuditContext(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        request_id=request_id_var.get("") or None,
    )


# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
Audit = Annotated[AuditLogger, Depends(get_audit_logger)]
Mailer = Annotated[EmailService, Depends(get_email_service)]
Storage = Annotated[ExportStorage, Depends(get_export_storage)]
RequestContext = Annotated[AuditContext, Depends(get_audit_context)]


def get_subscription_service(db: DBSession, audit: Audit, email: Mailer) -> SubscriptionService:
    return SubscriptionService(db, audit, email)


def get_consent_service(db: DBSession, audit: Audit) -> ConsentService:
    return ConsentService(db, audit)


def get_request_state_machine(
    db: DBSession, audit: Audit, email: Mailer, storage: Storage
) -> RequestStateMachine:
    return RequestStateMachine(db, audit, email, storage)


def get_admin_service(db: DBSession, audit: Audit) -> AdminService:
    return AdminService(db, audit)


Subscriptions = Annotated[SubscriptionService, Depends(get_subscription_service)]
Consents = Annotated[ConsentService, Depends(get_consent_service)]
DataRequests = Annotated[RequestStateMachine, Depends(get_request_state_machine)]
Admins = Annotated[AdminService, Depends(get_admin_service)]


__all__ = [
    "Admins",
    "Audit",
    "Consents",
    "DBSession",
    "DataRequests",
    "Mailer",
    "RequestContext",
    "Storage",
    "Subscriptions",
    "get_audit_context",
    "get_audit_logger",
    "get_db",
    "get_email_service",
    "get_export_storage",
]
