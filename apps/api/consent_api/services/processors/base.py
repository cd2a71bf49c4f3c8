"""Common shape of a data-subject request processor."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeAlias

from sqlalchemy.ext.asyncio import AsyncSession

from consent_api.models.data_request import DataRequest
from consent_api.models.subscriber import Subscriber
from consent_api.repositories.subscriber_repository import SubscriberRepository
from consent_api.services.audit_service import AuditContext, AuditLogger
from consent_api.services.email_service import EmailService
from consent_api.services.export_storage import ExportStorage

Effect: TypeAlias = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class ProcessorResult:
    """What a processor produced, plus work deferred around the commit.

    ``after_commit`` runs once the request is durably COMPLETED.
    ``on_rollback`` undoes side effects outside the database if the commit
    never happens.
    """

    data: dict[str, Any]
    after_commit: list[Effect] = field(default_factory=list)
    on_rollback: list[Effect] = field(default_factory=list)


class RequestProcessor(ABC):
    """Handles one verified request inside the caller's open transaction.

    Processors stage writes on ``db`` but never commit or roll back.
    """

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditLogger,
        email: EmailService,
        storage: ExportStorage,
    ) -> None:
        self.db = db
        self.audit = audit
        self.email = email
        self.storage = storage
        self.subscribers = SubscriberRepository(db)

    async def load_subject(self, request: DataRequest) -> Subscriber | None:
        if request.subscriber_id is None:
            return None
        return await self.subscribers.get(request.subscriber_id)

    @abstractmethod
    async def process(
        self, request: DataRequest, ctx: AuditContext, now: datetime
    ) -> ProcessorResult: ...
