"""Newsletter subscription endpoints."""

from fastapi import APIRouter, Request, Response, status

from consent_api.core.deps import RequestContext, Subscriptions
from consent_api.core.rate_limit import SUBSCRIBE_LIMIT, limiter
from consent_api.schemas.email import (
    ResendVerificationRequest,
    ResendVerificationResponse,
    SubscribeRequest,
    SubscribeResponse,
    UnsubscribeResponse,
    VerifyEmailResponse,
)

router = APIRouter()


@router.post(
    "/subscribe",
    response_model=SubscribeResponse,
    response_model_exclude_none=True,
    responses={status.HTTP_201_CREATED: {"model": SubscribeResponse}},
)
@limiter.limit(SUBSCRIBE_LIMIT)
async def subscribe(
    request: Request,  # noqa: ARG001  # required by slowapi
    response: Response,
    data: SubscribeRequest,
    service: Subscriptions,
    ctx: RequestContext,
) -> SubscribeResponse:
    """Subscribe with explicit consent. 201 for a new subscriber, 200 otherwise."""
    outcome = await service.subscribe(data, ctx)
    if outcome.created:
        response.status_code = status.HTTP_201_CREATED
    return outcome.response


@router.post(
    "/resend-verification",
    response_model=ResendVerificationResponse,
    response_model_exclude_none=True,
)
@limiter.limit(SUBSCRIBE_LIMIT)
async def resend_verification(
    request: Request,  # noqa: ARG001  # required by slowapi
    data: ResendVerificationRequest,
    service: Subscriptions,
    ctx: RequestContext,
) -> ResendVerificationResponse:
    return await service.resend_verification(data.email, ctx)


@router.get(
    "/verify/{token}",
    response_model=VerifyEmailResponse,
    response_model_exclude_none=True,
)
async def verify_email(token: str, service: Subscriptions, ctx: RequestContext) -> VerifyEmailResponse:
    return await service.verify_email(token, ctx)


@router.get(
    "/unsubscribe/{token}",
    response_model=UnsubscribeResponse,
    response_model_exclude_none=True,
)
async def unsubscribe(token: str, service: Subscriptions, ctx: RequestContext) -> UnsubscribeResponse:
    return await service.unsubscribe(token, ctx)
