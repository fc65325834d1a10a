"""Public API response contracts."""

from artisanhub.api.contracts.models import (
    ERROR_RESPONSES,
    ApiErrorResponse,
    ApiResponse,
    HealthResponse,
    ok,
)

__all__ = [
    "ERROR_RESPONSES",
    "ApiErrorResponse",
    "ApiResponse",
    "HealthResponse",
    "ok",
]
