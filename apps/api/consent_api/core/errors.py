"""Application error taxonomy and FastAPI exception handlers.

Services raise these exceptions; the handlers registered in ``register_exception_handlers``
turn them into JSON bodies of the shape ``{"error", "code", "details", "requestId"}``.
Idempotent re-submissions are never errors and do not appear here.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from consent_api.core.logging_config import request_id_var

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors reported directly to the caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str | None = None
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, details: Any = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.details = details


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_FAILED"
    message = "Validation failed"


class ConsentRequired(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "CONSENT_REQUIRED"
    message = "Consent is required for email subscription"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "Not found"


class TokenExpired(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "TOKEN_EXPIRED"
    message = "Verification token has expired"


class ExportExpired(AppError):
    status_code = status.HTTP_410_GONE
    code = "EXPORT_EXPIRED"
    message = "Export download link has expired"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    message = "Not authenticated"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "Insufficient permissions"


class AccountLocked(AppError):
    status_code = status.HTTP_423_LOCKED
    code = "ACCOUNT_LOCKED"
    message = "Account temporarily locked due to failed login attempts"


class ProcessingFailed(AppError):
    """A data request could not be processed; the request stays retryable."""

    code = "PROCESSING_FAILED"
    message = "Your request could not be processed. Please try the link again later."


def _error_body(message: str, code: str | None, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message, "requestId": request_id_var.get("")}
    if code:
        body["code"] = code
    if details is not None:
        body["details"] = details
    return body


async def app_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, AppError):
        raise exc
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc, exc_info=exc.__cause__ or exc)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.code, exc.details),
        headers=headers,
    )


async def validation_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        raise exc
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or None,
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("Validation failed", ValidationFailed.code, details),
    )


async def unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Generic 500: detail goes to the log, the caller only gets the request id."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
