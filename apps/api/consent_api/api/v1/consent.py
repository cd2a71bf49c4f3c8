"""Cookie-banner consent endpoint."""

from fastapi import APIRouter, Request

from consent_api.core.deps import Consents, RequestContext
from consent_api.core.rate_limit import SUBSCRIBE_LIMIT, limiter
from consent_api.schemas.consent import CookieConsentRequest, CookieConsentResponse

router = APIRouter()


@router.post("", response_model=CookieConsentResponse)
@limiter.limit(SUBSCRIBE_LIMIT)
async def record_consent(
    request: Request,  # noqa: ARG001  # required by slowapi
    data: CookieConsentRequest,
    service: Consents,
    ctx: RequestContext,
) -> CookieConsentResponse:
    """Record the visitor's cookie choices."""
    record = await service.record_cookie_consent(data, ctx)
    return CookieConsentResponse(message="Consent preferences saved", consent_id=record.id)
