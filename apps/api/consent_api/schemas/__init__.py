"""Pydantic schemas for request/response validation."""

from consent_api.schemas.common import (
    BaseSchema,
    ErrorResponse,
    HealthResponse,
    MessageResponse,
    PaginatedResponse,
)

__all__ = [
    "BaseSchema",
    "HealthResponse",
    "ErrorResponse",
    "MessageResponse",
    "PaginatedResponse",
]
