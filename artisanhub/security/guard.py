"""FastAPI dependency that runs the security pipeline in front of a route."""

from __future__ import annotations

import json
from typing import Any, Callable
from urllib.parse import unquote

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.security.pipeline import (
    PipelineDeps,
    RequestContext,
    build_trace_id,
    run_pipeline,
)
from artisanhub.security.policy import OperationPolicy

AUDIT_TRAIL_HEADER = "X-Audit-Trail"


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from Authorization header."""
    if not authorization:
        return ""
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


async def build_request_context(request: Request, policy: OperationPolicy) -> RequestContext:
    """Snapshot the parts of ``request`` the gates inspect."""
    query = {key: request.query_params.getlist(key) for key in request.query_params.keys()}
    return RequestContext(
        method=request.method,
        path=unquote(request.url.path),
        trace_id=build_trace_id(policy),
        query=query,
        body=_decode_body(await request.body()),
        path_params=dict(request.path_params),
        bearer_token=extract_bearer_token(request.headers.get("authorization")),
        client_ip=(request.client.host if request.client else "") or "unknown",
        device_info=request.headers.get("user-agent", ""),
    )


class SecurityGuard:
    """Build per-route dependencies from an ``OperationPolicy``."""

    def __init__(self, deps: PipelineDeps) -> None:
        self._deps = deps

    def require(self, policy: OperationPolicy) -> Callable[..., Any]:
        """Return a dependency yielding the authorized ``RequestContext``."""

        async def guard(request: Request, response: Response) -> RequestContext:
            ctx = await build_request_context(request, policy)
            result = await run_in_threadpool(run_pipeline, ctx, policy, self._deps)
            trail = {AUDIT_TRAIL_HEADER: ctx.trace_id}
            if result.denial is not None:
                raise ApiError(result.denial.code, result.denial.message, headers=trail)
            if await request.is_disconnected():
                raise ApiError(
                    ApiErrorCode.REQUEST_CANCELLED,
                    "Request cancelled by client",
                    headers=trail,
                )
            response.headers[AUDIT_TRAIL_HEADER] = ctx.trace_id
            return result.context

        return guard
