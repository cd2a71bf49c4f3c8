"""GDPR data-subject request endpoints."""

from uuid import UUID

from fastapi import APIRouter, Request, Response

from consent_api.core.deps import DataRequests, RequestContext
from consent_api.core.rate_limit import DATA_REQUEST_LIMIT, limiter
from consent_api.schemas.gdpr import (
    DataRequestCreate,
    DataRequestCreated,
    DataRequestStatusResponse,
    VerifyRequestResponse,
)

router = APIRouter()


@router.post("/request-data", response_model=DataRequestCreated)
@limiter.limit(DATA_REQUEST_LIMIT)
async def request_data(
    request: Request,  # noqa: ARG001  # required by slowapi
    data: DataRequestCreate,
    service: DataRequests,
    ctx: RequestContext,
) -> DataRequestCreated:
    """Open a data-subject request; the subject confirms it via an emailed link."""
    return await service.submit(data, ctx)


@router.get(
    "/verify-request/{token}",
    response_model=VerifyRequestResponse,
    response_model_exclude_none=True,
)
async def verify_request(
    token: str, service: DataRequests, ctx: RequestContext
) -> VerifyRequestResponse:
    """Confirm a request and process it."""
    return await service.verify(token, ctx)


@router.get("/download-export/{export_id}")
async def download_export(
    export_id: UUID, service: DataRequests, ctx: RequestContext
) -> Response:
    body = await service.download(export_id, ctx)
    return Response(
        content=body,
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="my-data-export-{export_id}.json"'
        },
    )


@router.get("/request-status/{request_id}", response_model=DataRequestStatusResponse)
async def request_status(request_id: UUID, service: DataRequests) -> DataRequestStatusResponse:
    return DataRequestStatusResponse(request=await service.status(request_id))
