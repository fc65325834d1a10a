"""Ordered authorization gates over an immutable request context.

Each gate is a pure decision ``(context, policy, deps) -> context | Denial``.
``run_pipeline`` applies them left to right, stops at the first denial and
always emits one audit record for the outcome.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Union

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import Principal
from artisanhub.security.policy import OperationPolicy, ResourceType, is_permitted
from artisanhub.security.threats import MaliciousInputDetector

AUDIT_LOGGER = logging.getLogger("artisanhub.audit")

BODY_USER_KEYS = ("userId", "user_id")


@dataclass(frozen=True)
class RequestContext:
    """Snapshot of one request as seen by the gates."""

    method: str
    path: str
    trace_id: str
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    path_params: Mapping[str, str] = field(default_factory=dict)
    bearer_token: str = ""
    client_ip: str = ""
    device_info: str = ""
    principal: Principal | None = None

    def require_principal(self) -> Principal:
        if self.principal is None:
            raise ApiError(ApiErrorCode.UNAUTHENTICATED, "Access token required")
        return self.principal


@dataclass(frozen=True)
class Denial:
    """Typed failure produced by a gate."""

    code: ApiErrorCode
    message: str
    stage: str


@dataclass(frozen=True)
class PipelineDeps:
    """Lookups the gates consult; all are read-only."""

    authenticate: Callable[[str], Principal]
    detector: MaliciousInputDetector
    owner_lookups: Mapping[ResourceType, Callable[[str], str | None]]
    identity_verified: Callable[[str], bool]


GateResult = Union[RequestContext, Denial]
Gate = Callable[[RequestContext, OperationPolicy, PipelineDeps], GateResult]


def authenticate_gate(
    ctx: RequestContext, policy: OperationPolicy, deps: PipelineDeps
) -> GateResult:
    if policy.public:
        return ctx
    if not ctx.bearer_token:
        return Denial(ApiErrorCode.UNAUTHENTICATED, "Access token required", "authenticate")
    try:
        principal = deps.authenticate(ctx.bearer_token)
    except ApiError as exc:
        return Denial(ApiErrorCode.UNAUTHENTICATED, exc.message, "authenticate")
    return replace(ctx, principal=principal)


def malicious_input_gate(
    ctx: RequestContext, policy: OperationPolicy, deps: PipelineDeps
) -> GateResult:
    signature = deps.detector.scan(path=ctx.path, query=ctx.query, body=ctx.body)
    if signature:
        return Denial(
            ApiErrorCode.SECURITY_VIOLATION,
            "Request blocked due to security concerns",
            f"malicious_input:{signature}",
        )
    return ctx


def role_gate(ctx: RequestContext, policy: OperationPolicy, deps: PipelineDeps) -> GateResult:
    if policy.public or ctx.principal is None:
        return ctx
    if not policy.admits(ctx.principal.role):
        required = ", ".join(sorted(str(r) for r in policy.allowed_roles or ()))
        return Denial(
            ApiErrorCode.FORBIDDEN_ROLE,
            f"Access denied. Required roles: {required}",
            "authorize_role",
        )
    return ctx


def ownership_gate(
    ctx: RequestContext, policy: OperationPolicy, deps: PipelineDeps
) -> GateResult:
    if policy.public or ctx.principal is None or not policy.owner_param:
        return ctx
    resource_id = str(ctx.path_params.get(policy.owner_param) or "")
    lookup = deps.owner_lookups.get(policy.resource_type)
    if lookup is None:
        return Denial(
            ApiErrorCode.RESOURCE_ACCESS_DENIED,
            f"No ownership rule for {policy.resource_type}",
            "ownership",
        )
    owner_id = lookup(resource_id)
    if owner_id is None and ctx.principal.is_admin:
        return Denial(ApiErrorCode.NOT_FOUND, f"{policy.resource_type} not found", "ownership")
    # Missing and foreign resources look the same to non-admins.
    if owner_id != ctx.principal.user_id and not ctx.principal.is_admin:
        return Denial(
            ApiErrorCode.RESOURCE_ACCESS_DENIED,
            f"Access denied. You can only access your own {policy.resource_type}",
            "ownership",
        )
    return ctx


def cross_user_gate(
    ctx: RequestContext, policy: OperationPolicy, deps: PipelineDeps
) -> GateResult:
    if policy.public or ctx.principal is None or ctx.principal.is_admin:
        return ctx
    if not isinstance(ctx.body, Mapping):
        return ctx
    for key in BODY_USER_KEYS:
        referenced = ctx.body.get(key)
        if referenced not in (None, "") and str(referenced) != ctx.principal.user_id:
            return Denial(
                ApiErrorCode.CROSS_USER_ACCESS_DENIED,
                "Access denied. You cannot act on behalf of another user",
                "cross_user",
            )
    return ctx


def permission_gate(
    ctx: RequestContext, policy: OperationPolicy, deps: PipelineDeps
) -> GateResult:
    if policy.public or ctx.principal is None:
        return ctx
    if not is_permitted(ctx.principal.role, policy.action, policy.resource_type):
        return Denial(
            ApiErrorCode.INSUFFICIENT_PERMISSIONS,
            f"Insufficient permissions to {policy.action} {policy.resource_type}",
            "permission",
        )
    return ctx


def identity_gate(
    ctx: RequestContext, policy: OperationPolicy, deps: PipelineDeps
) -> GateResult:
    if not policy.require_identity or ctx.principal is None:
        return ctx
    if ctx.principal.is_admin and not policy.exclude_admin:
        return ctx
    if not deps.identity_verified(ctx.principal.user_id):
        return Denial(
            ApiErrorCode.IDENTITY_VERIFICATION_REQUIRED,
            "Identity verification required. Complete Aadhaar verification first.",
            "identity",
        )
    return ctx


DEFAULT_GATES: tuple[Gate, ...] = (
    authenticate_gate,
    malicious_input_gate,
    role_gate,
    ownership_gate,
    cross_user_gate,
    permission_gate,
    identity_gate,
)


@dataclass(frozen=True)
class PipelineResult:
    """Final context plus the denial that stopped the run, if any."""

    context: RequestContext
    denial: Denial | None = None

    @property
    def allowed(self) -> bool:
        return self.denial is None


def build_trace_id(policy: OperationPolicy) -> str:
    """Trace id shaped ``<action>-<resource>-<epoch ms>``."""
    return f"{policy.action}-{policy.resource_type}-{int(time.time() * 1000)}"


def audit(ctx: RequestContext, policy: OperationPolicy, denial: Denial | None) -> None:
    """Emit the structured audit record for a pipeline outcome."""
    principal = ctx.principal
    resource_id = str(ctx.path_params.get(policy.owner_param) or "") if policy.owner_param else ""
    extra = {
        "actor": principal.user_id if principal else "anonymous",
        "role": str(principal.role) if principal else "",
        "action": str(policy.action),
        "resource_type": str(policy.resource_type),
        "resource_id": resource_id,
        "outcome": "allowed" if denial is None else "denied",
        "code": str(denial.code) if denial else "",
        "trace_id": ctx.trace_id,
        "path": ctx.path,
        "method": ctx.method,
    }
    if denial is None:
        AUDIT_LOGGER.info("security_audit", extra=extra)
    else:
        AUDIT_LOGGER.warning("security_audit denied at %s", denial.stage, extra=extra)


def run_pipeline(
    ctx: RequestContext,
    policy: OperationPolicy,
    deps: PipelineDeps,
    gates: tuple[Gate, ...] = DEFAULT_GATES,
) -> PipelineResult:
    """Run ``gates`` in order; the first denial wins and later gates never run."""
    current = ctx
    denial: Denial | None = None
    for gate in gates:
        outcome = gate(current, policy, deps)
        if isinstance(outcome, Denial):
            denial = outcome
            break
        current = outcome
    audit(current, policy, denial)
    return PipelineResult(context=current, denial=denial)
