"""Schemas for newsletter subscription endpoints."""

from typing import Any

from pydantic import EmailStr, Field

from consent_api.schemas.common import BaseSchema


class SubscribeRequest(BaseSchema):
    email: EmailStr
    # Untyped: anything other than literal ``true`` is a missing consent
    consent: Any = None
    source: str = Field("website", max_length=100)
    utm_source: str | None = Field(None, max_length=100)
    utm_medium: str | None = Field(None, max_length=100)
    utm_campaign: str | None = Field(None, max_length=100)


class ResendVerificationRequest(BaseSchema):
    email: EmailStr


class SubscribeResponse(BaseSchema):
    message: str
    requires_verification: bool | None = None
    already_subscribed: bool | None = None


class VerifyEmailResponse(BaseSchema):
    message: str
    verified: bool | None = None
    already_verified: bool | None = None


class UnsubscribeResponse(BaseSchema):
    message: str
    unsubscribed: bool | None = None
    already_unsubscribed: bool | None = None


class ResendVerificationResponse(BaseSchema):
    message: str
    already_verified: bool | None = None
