"""Celery application for scheduled retention work.

Only Celery beat enqueues tasks here; the HTTP API never does. All three jobs
are idempotent, so a retried or doubled run is harmless.
"""

import logging
from typing import Any

from celery import Celery
from celery.schedules import crontab

from consent_api.core.config import settings

logger = logging.getLogger(__name__)

MAINTENANCE_QUEUE = "maintenance"

celery_app = Celery(
    "grid_consent",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=["consent_api.workers.tasks.retention"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A sweep over a large audit table may take a while
    task_time_limit=600,
    task_soft_time_limit=540,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=24 * 3600,
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    task_default_queue=MAINTENANCE_QUEUE,
    task_routes={"tasks.retention.*": {"queue": MAINTENANCE_QUEUE}},
    beat_schedule={
        "cleanup-audit-logs": {
            "task": "tasks.retention.cleanup_audit_logs",
            "schedule": crontab(hour=3, minute=0),
        },
        "expire-stale-data-requests": {
            "task": "tasks.retention.expire_stale_requests",
            "schedule": crontab(minute=15),
        },
        "purge-expired-exports": {
            "task": "tasks.retention.purge_expired_exports",
            "schedule": crontab(minute=45),
        },
    },
)


class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Retries transient failures (database or broker hiccups) with backoff."""

    abstract = True
    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = 3

    def on_failure(
        self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any
    ) -> None:
        logger.error("Task %s [%s] failed permanently: %r", self.name, task_id, exc)
        super().on_failure(exc, task_id, args, kwargs, einfo)
