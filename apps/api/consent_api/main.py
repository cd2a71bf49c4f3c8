"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from consent_api.api.v1.router import api_router
from consent_api.core.config import settings
from consent_api.core.errors import register_exception_handlers
from consent_api.core.logging_config import generate_request_id, request_id_var, setup_logging
from consent_api.core.rate_limit import limiter

logger = logging.getLogger(__name__)

# Sent on every response; the API never renders HTML or embeds in frames
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}

# Incoming request ids longer than this are replaced
MAX_REQUEST_ID_LENGTH = 64


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(debug=settings.debug)
    settings.export_dir.mkdir(parents=True, exist_ok=True)
    logger.info(
        "Starting %s v%s (%s), exports in %s",
        settings.project_name,
        settings.version,
        settings.environment,
        settings.export_dir,
    )
    yield
    logger.info("Shutting down...")


def _init_sentry() -> None:
    """Error reporting, without request bodies or client addresses."""
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=settings.version,
        traces_sample_rate=0.1,
        send_default_pii=False,
    )


def _install_middleware(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next: Any) -> Response:
        """Tag the request with an id for logs and error bodies, and harden the response."""
        rid = request.headers.get("X-Request-ID", "")
        if not rid or len(rid) > MAX_REQUEST_ID_LENGTH:
            rid = generate_request_id()
        request_id_var.set(rid)

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings.sentry_dsn:
        _init_sentry()

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        description="Consent records, newsletter subscriptions and GDPR data-subject requests.",
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    _install_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url=f"{settings.api_v1_prefix}/docs")

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {
            "name": settings.project_name,
            "version": settings.version,
            "docs": f"{settings.api_v1_prefix}/docs",
            "health": f"{settings.api_v1_prefix}/health",
        }

    return app


app = create_app()
