"""Schemas for the admin dashboard API."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import EmailStr, Field

from consent_api.models.admin_user import AdminRole
from consent_api.models.data_request import DataRequestStatus, DataRequestType
from consent_api.schemas.common import BaseSchema


class AdminLoginRequest(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class AdminProfile(BaseSchema):
    id: UUID
    email: str
    role: AdminRole


class AdminLoginResponse(BaseSchema):
    token: str
    token_type: str = "bearer"
    expires_in: int
    admin: AdminProfile


class SubscriberSummary(BaseSchema):
    id: UUID
    email: str
    is_verified: bool
    is_active: bool
    consent_given: bool
    consent_version: str
    source: str
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    created_at: datetime
    verified_at: datetime | None = None
    unsubscribed_at: datetime | None = None


class DataRequestSummary(BaseSchema):
    id: UUID
    subscriber_id: UUID | None = None
    type: DataRequestType
    status: DataRequestStatus
    request_email: str | None = None
    created_at: datetime
    verified_at: datetime | None = None
    processed_at: datetime | None = None
    notes: str | None = None


class AuditLogView(BaseSchema):
    id: UUID
    subscriber_id: UUID | None = None
    action: str
    description: str
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    legal_basis: str | None = None
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    created_at: datetime


class DashboardStats(BaseSchema):
    subscribers: dict[str, int]
    data_requests: dict[str, int]
    audit: dict[str, Any]
    generated_at: datetime
