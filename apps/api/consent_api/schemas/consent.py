"""Schemas for cookie-banner consent."""

from uuid import UUID

from pydantic import Field

from consent_api.schemas.common import BaseSchema


class CookieChoices(BaseSchema):
    essential: bool = True
    analytics: bool = False
    marketing: bool = False


class CookieConsentRequest(BaseSchema):
    consent: CookieChoices
    source: str = Field("cookie_banner", max_length=100)


class CookieConsentResponse(BaseSchema):
    message: str
    consent_id: UUID
