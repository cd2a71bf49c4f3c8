"""Schemas for data-subject request endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import EmailStr

from consent_api.models.data_request import DataRequestStatus, DataRequestType
from consent_api.schemas.common import BaseSchema


class DataRequestCreate(BaseSchema):
    email: EmailStr
    request_type: DataRequestType


class DataRequestCreated(BaseSchema):
    message: str
    data_request_id: UUID
    estimated_processing_time: str


class VerifyRequestResponse(BaseSchema):
    message: str
    status: str
    already_processed: bool | None = None
    data: dict[str, Any] | None = None


class DataRequestView(BaseSchema):
    id: UUID
    type: DataRequestType
    status: DataRequestStatus
    created_at: datetime
    processed_at: datetime | None = None
    export_expires_at: datetime | None = None
    notes: str | None = None


class DataRequestStatusResponse(BaseSchema):
    request: DataRequestView
