from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pytest

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import Principal, Role
from artisanhub.security.pipeline import (
    DEFAULT_GATES,
    PipelineDeps,
    RequestContext,
    run_pipeline,
)
from artisanhub.security.policy import Action, OperationPolicy, ResourceType
from artisanhub.security.threats import MaliciousInputDetector

TOKENS = {
    "customer-token": Principal(user_id="cust-1", role=Role.CUSTOMER, session_id="s1"),
    "artisan-token": Principal(user_id="art-1", role=Role.ARTISAN, session_id="s2"),
    "admin-token": Principal(user_id="admin-1", role=Role.ADMIN, session_id="s3"),
}

UPDATE_PROFILE = OperationPolicy(
    action=Action.UPDATE,
    resource_type=ResourceType.ARTISAN_PROFILE,
    allowed_roles=frozenset({Role.ARTISAN}),
    owner_param="profileId",
    require_identity=True,
)


@dataclass
class _Recorder:
    """Tracks which lookups the gates consulted."""

    owner_calls: list[str] = field(default_factory=list)
    identity_calls: list[str] = field(default_factory=list)
    verified: set[str] = field(default_factory=set)

    def authenticate(self, token: str) -> Principal:
        principal = TOKENS.get(token)
        if principal is None:
            raise ApiError(ApiErrorCode.INVALID_OR_EXPIRED, "Invalid token signature")
        return principal

    def profile_owner(self, profile_id: str) -> str | None:
        self.owner_calls.append(profile_id)
        return {"p-art-1": "art-1", "p-art-2": "art-2"}.get(profile_id)

    def identity_verified(self, user_id: str) -> bool:
        self.identity_calls.append(user_id)
        return user_id in self.verified

    def deps(self) -> PipelineDeps:
        return PipelineDeps(
            authenticate=self.authenticate,
            detector=MaliciousInputDetector(),
            owner_lookups={ResourceType.ARTISAN_PROFILE: self.profile_owner},
            identity_verified=self.identity_verified,
        )


def _ctx(token: str = "", **overrides) -> RequestContext:
    values = {
        "method": "PUT",
        "path": "/api/artisans/p-art-1",
        "trace_id": "update-artisanProfile-1",
        "path_params": {"profileId": "p-art-1"},
        "bearer_token": token,
    }
    values.update(overrides)
    return RequestContext(**values)


def test_missing_token_is_unauthenticated() -> None:
    result = run_pipeline(_ctx(), UPDATE_PROFILE, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.UNAUTHENTICATED
    assert result.denial.message == "Access token required"


def test_bad_token_is_unauthenticated() -> None:
    result = run_pipeline(_ctx("forged"), UPDATE_PROFILE, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.UNAUTHENTICATED


def test_role_denial_stops_later_gates() -> None:
    recorder = _Recorder()

    result = run_pipeline(_ctx("customer-token"), UPDATE_PROFILE, recorder.deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.FORBIDDEN_ROLE
    assert "artisan" in result.denial.message
    assert recorder.owner_calls == []
    assert recorder.identity_calls == []


def test_malicious_input_checked_before_role() -> None:
    ctx = _ctx("customer-token", body={"bio": "<script>alert(1)</script>"})

    result = run_pipeline(ctx, UPDATE_PROFILE, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.SECURITY_VIOLATION
    assert result.denial.stage == "malicious_input:script_injection"


def test_public_policy_is_still_scanned() -> None:
    policy = OperationPolicy(
        action=Action.READ, resource_type=ResourceType.ARTISAN_PROFILE, public=True
    )
    clean = run_pipeline(_ctx(method="GET"), policy, _Recorder().deps())
    dirty = run_pipeline(
        _ctx(method="GET", query={"q": ["1 UNION SELECT *"]}), policy, _Recorder().deps()
    )

    assert clean.allowed
    assert clean.context.principal is None
    assert dirty.denial is not None
    assert dirty.denial.code is ApiErrorCode.SECURITY_VIOLATION


def test_ownership_denies_other_users_resource() -> None:
    ctx = _ctx("artisan-token", path_params={"profileId": "p-art-2"})

    result = run_pipeline(ctx, UPDATE_PROFILE, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.RESOURCE_ACCESS_DENIED


def test_ownership_hides_missing_resource_from_non_admin() -> None:
    ctx = _ctx("artisan-token", path_params={"profileId": "p-missing"})

    result = run_pipeline(ctx, UPDATE_PROFILE, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.RESOURCE_ACCESS_DENIED
    assert result.denial.message == run_pipeline(
        _ctx("artisan-token", path_params={"profileId": "p-art-2"}),
        UPDATE_PROFILE,
        _Recorder().deps(),
    ).denial.message


def test_ownership_reports_missing_resource_to_admin() -> None:
    ctx = _ctx("admin-token", path_params={"profileId": "p-missing"})

    result = run_pipeline(ctx, UPDATE_PROFILE, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.NOT_FOUND


def test_ownership_without_lookup_denies() -> None:
    policy = OperationPolicy(
        action=Action.READ, resource_type=ResourceType.ORDER, owner_param="orderId"
    )
    ctx = _ctx("customer-token", path_params={"orderId": "o1"})

    result = run_pipeline(ctx, policy, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.RESOURCE_ACCESS_DENIED


def test_cross_user_body_reference_denied_for_non_admin() -> None:
    policy = OperationPolicy(action=Action.CREATE, resource_type=ResourceType.ADDRESS)
    foreign = _ctx("customer-token", body={"userId": "someone-else"}, path_params={})
    own = _ctx("customer-token", body={"userId": "cust-1"}, path_params={})
    admin = _ctx("admin-token", body={"user_id": "someone-else"}, path_params={})

    denied = run_pipeline(foreign, policy, _Recorder().deps())

    assert denied.denial is not None
    assert denied.denial.code is ApiErrorCode.CROSS_USER_ACCESS_DENIED
    assert run_pipeline(own, policy, _Recorder().deps()).allowed
    assert run_pipeline(admin, policy, _Recorder().deps()).allowed


def test_permission_table_applies_after_role_gate() -> None:
    policy = OperationPolicy(action=Action.CREATE, resource_type=ResourceType.PRODUCT)

    result = run_pipeline(_ctx("customer-token", path_params={}), policy, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.INSUFFICIENT_PERMISSIONS


def test_identity_gate_requires_verified_owner() -> None:
    recorder = _Recorder()

    denied = run_pipeline(_ctx("artisan-token"), UPDATE_PROFILE, recorder.deps())
    recorder.verified.add("art-1")
    allowed = run_pipeline(_ctx("artisan-token"), UPDATE_PROFILE, recorder.deps())

    assert denied.denial is not None
    assert denied.denial.code is ApiErrorCode.IDENTITY_VERIFICATION_REQUIRED
    assert allowed.allowed
    assert allowed.context.principal == TOKENS["artisan-token"]


def test_identity_gate_skips_unverified_admin() -> None:
    recorder = _Recorder()

    result = run_pipeline(_ctx("admin-token"), UPDATE_PROFILE, recorder.deps())

    assert result.allowed
    assert recorder.identity_calls == []


def test_identity_gate_applies_to_admin_when_excluded() -> None:
    policy = OperationPolicy(
        action=Action.UPDATE,
        resource_type=ResourceType.ARTISAN_PROFILE,
        allowed_roles=frozenset({Role.ADMIN}),
        exclude_admin=True,
        require_identity=True,
    )

    result = run_pipeline(_ctx("admin-token", path_params={}), policy, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.IDENTITY_VERIFICATION_REQUIRED


def test_admin_passes_role_and_ownership_gates() -> None:
    recorder = _Recorder()
    recorder.verified.add("admin-1")

    result = run_pipeline(_ctx("admin-token"), UPDATE_PROFILE, recorder.deps())

    assert result.allowed


def test_exclude_admin_blocks_admin() -> None:
    policy = OperationPolicy(
        action=Action.CREATE,
        resource_type=ResourceType.ORDER,
        allowed_roles=frozenset({Role.CUSTOMER}),
        exclude_admin=True,
    )

    result = run_pipeline(_ctx("admin-token", path_params={}), policy, _Recorder().deps())

    assert result.denial is not None
    assert result.denial.code is ApiErrorCode.FORBIDDEN_ROLE


def test_custom_gate_sequence_is_honoured() -> None:
    calls: list[str] = []

    def first(ctx, policy, deps):
        calls.append("first")
        return ctx

    gates = (first, *DEFAULT_GATES)
    result = run_pipeline(_ctx(), UPDATE_PROFILE, _Recorder().deps(), gates=gates)

    assert calls == ["first"]
    assert result.denial is not None


@pytest.mark.parametrize(
    ("token", "outcome", "level"),
    [("customer-token", "denied", logging.WARNING), ("admin-token", "allowed", logging.INFO)],
)
def test_every_outcome_is_audited_once(
    caplog: pytest.LogCaptureFixture, token: str, outcome: str, level: int
) -> None:
    recorder = _Recorder()
    recorder.verified.add("admin-1")

    with caplog.at_level(logging.INFO, logger="artisanhub.audit"):
        run_pipeline(_ctx(token), UPDATE_PROFILE, recorder.deps())

    records = [r for r in caplog.records if r.name == "artisanhub.audit"]
    assert len(records) == 1
    assert records[0].outcome == outcome
    assert records[0].levelno == level
    assert records[0].trace_id == "update-artisanProfile-1"
    assert records[0].resource_id == "p-art-1"
