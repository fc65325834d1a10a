"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_OR_EXPIRED = "INVALID_OR_EXPIRED"
    FORBIDDEN_ROLE = "FORBIDDEN_ROLE"
    RESOURCE_ACCESS_DENIED = "RESOURCE_ACCESS_DENIED"
    CROSS_USER_ACCESS_DENIED = "CROSS_USER_ACCESS_DENIED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    IDENTITY_VERIFICATION_REQUIRED = "IDENTITY_VERIFICATION_REQUIRED"
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    NO_VERIFICATION_IN_PROGRESS = "NO_VERIFICATION_IN_PROGRESS"
    EXPIRED = "EXPIRED"
    INVALID_CODE = "INVALID_CODE"
    LOCKED = "LOCKED"
    RATE_LIMITED = "RATE_LIMITED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    GONE = "GONE"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


STATUS_BY_CODE: dict[ApiErrorCode, int] = {
    ApiErrorCode.VALIDATION_FAILED: 400,
    ApiErrorCode.SECURITY_VIOLATION: 400,
    ApiErrorCode.NO_VERIFICATION_IN_PROGRESS: 400,
    ApiErrorCode.EXPIRED: 400,
    ApiErrorCode.INVALID_CODE: 400,
    ApiErrorCode.UNAUTHENTICATED: 401,
    ApiErrorCode.INVALID_CREDENTIALS: 401,
    ApiErrorCode.INVALID_OR_EXPIRED: 401,
    ApiErrorCode.FORBIDDEN_ROLE: 403,
    ApiErrorCode.RESOURCE_ACCESS_DENIED: 403,
    ApiErrorCode.CROSS_USER_ACCESS_DENIED: 403,
    ApiErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ApiErrorCode.IDENTITY_VERIFICATION_REQUIRED: 403,
    ApiErrorCode.NOT_FOUND: 404,
    ApiErrorCode.CONFLICT: 409,
    ApiErrorCode.GONE: 410,
    ApiErrorCode.REQUEST_TOO_LARGE: 413,
    ApiErrorCode.LOCKED: 429,
    ApiErrorCode.RATE_LIMITED: 429,
    ApiErrorCode.REQUEST_CANCELLED: 499,
    ApiErrorCode.INTERNAL_SERVER_ERROR: 500,
    ApiErrorCode.PROVIDER_UNAVAILABLE: 502,
}


def status_for(code: ApiErrorCode) -> int:
    """Return the HTTP status mirrored by an error code."""
    return STATUS_BY_CODE[code]


class ApiError(HTTPException):
    """HTTP exception carrying the stable API error envelope."""

    def __init__(
        self,
        error_code: ApiErrorCode,
        message: str,
        *,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Build an HTTP exception whose status is derived from the code."""
        detail: dict[str, Any] = {"code": str(error_code), "message": message}
        if data:
            detail["data"] = data
        super().__init__(status_code=status_for(error_code), detail=detail, headers=headers)
        self.error_code = error_code
        self.message = message


def to_error_payload(detail: Any, status_code: int) -> dict[str, Any]:
    """Normalize HTTP exception detail into the response envelope."""
    if isinstance(detail, dict):
        payload: dict[str, Any] = {
            "success": False,
            "code": str(detail.get("code") or f"HTTP_{status_code}"),
            "message": str(detail.get("message") or detail.get("detail") or "HTTP error"),
        }
        if detail.get("data"):
            payload["data"] = detail["data"]
        return payload
    return {
        "success": False,
        "code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }
