"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """Success envelope shared by every endpoint."""

    success: bool = True
    message: str = ""
    data: Any = None


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    success: bool = False
    code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    data: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Health check response payload."""

    success: bool = True
    message: str
    version: str


def ok(message: str = "", data: Any = None) -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data)


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status: {"model": ApiErrorResponse} for status in (400, 401, 403, 404, 409, 429)
}
