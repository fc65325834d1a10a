"""HTTP middleware and exception handler wiring for FastAPI apps."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from artisanhub.api.contracts import ApiErrorResponse
from artisanhub.api.errors import ApiErrorCode, status_for, to_error_payload
from artisanhub.core.config import AppConfig
from artisanhub.core.logging import set_correlation_id


def _validation_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    errors = []
    for error in exc.errors():
        location = [
            str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")
        ]
        errors.append({"field": ".".join(location), "message": str(error.get("msg", ""))})
    return errors


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach common security and observability middleware to an app."""

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                parsed_length = int(content_length)
            except ValueError:
                parsed_length = 0
            if parsed_length > config.security.request_max_bytes:
                return JSONResponse(
                    status_code=status_for(ApiErrorCode.REQUEST_TOO_LARGE),
                    content=ApiErrorResponse(
                        code=str(ApiErrorCode.REQUEST_TOO_LARGE),
                        message=(
                            "Request size exceeds configured limit "
                            f"({config.security.request_max_bytes} bytes)."
                        ),
                    ).model_dump(exclude_none=True),
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        logger.info(
            "request_completed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
            },
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Attach API exception handlers that return stable error contracts."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        logger.warning(
            "http_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": exc.status_code,
                "code": payload["code"],
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ApiErrorResponse(**payload).model_dump(exclude_none=True),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(
            "validation_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": status_for(ApiErrorCode.VALIDATION_FAILED),
            },
        )
        return JSONResponse(
            status_code=status_for(ApiErrorCode.VALIDATION_FAILED),
            content=ApiErrorResponse(
                code=str(ApiErrorCode.VALIDATION_FAILED),
                message="Validation failed",
                data={"errors": _validation_errors(exc)},
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "unexpected_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": 500,
            },
        )
        return JSONResponse(
            status_code=status_for(ApiErrorCode.INTERNAL_SERVER_ERROR),
            content=ApiErrorResponse(
                code=str(ApiErrorCode.INTERNAL_SERVER_ERROR),
                message="Internal server error",
            ).model_dump(exclude_none=True),
        )
