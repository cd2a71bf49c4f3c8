"""Scheduled retention tasks: audit cleanup, stale request expiry, export purge."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from consent_api.core.database import async_session_maker, engine
from consent_api.services.audit_service import AuditLogger
from consent_api.services.data_request_service import RequestStateMachine
from consent_api.services.email_service import EmailService
from consent_api.services.export_storage import ExportStorage
from consent_api.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    Pooled asyncpg connections are bound to the loop that opened them, so the
    engine is disposed before the loop closes.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.retention.cleanup_audit_logs",
    base=BaseTask,
    bind=True,
)
def cleanup_audit_logs(self: BaseTask, retention_days: int | None = None) -> dict[str, Any]:  # noqa: ARG001
    """Delete audit entries older than the retention window."""
    deleted = _run_async(AuditLogger(async_session_maker).cleanup(retention_days))
    return {"status": "completed", "deleted": deleted}


async def _expire_stale_requests_async() -> int:
    async with async_session_maker() as session:
        machine = RequestStateMachine(session, AuditLogger(async_session_maker), EmailService())
        return await machine.expire_stale()


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.retention.expire_stale_requests",
    base=BaseTask,
    bind=True,
)
def expire_stale_requests(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Expire data requests that were never verified."""
    expired = _run_async(_expire_stale_requests_async())
    return {"status": "completed", "expired": expired}


async def _purge_expired_exports_async(storage: ExportStorage | None = None) -> int:
    async with async_session_maker() as session:
        machine = RequestStateMachine(
            session, AuditLogger(async_session_maker), EmailService(), storage
        )
        return await machine.purge_expired_exports()


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.retention.purge_expired_exports",
    base=BaseTask,
    bind=True,
)
def purge_expired_exports(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Remove export files past their download window."""
    removed = _run_async(_purge_expired_exports_async())
    logger.info("Export purge finished: removed=%d", removed)
    return {"status": "completed", "removed": removed}
