from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import Role, SessionRecord
from artisanhub.auth.tokens import TokenService
from tests.mock_config import auth_config


@dataclass
class _Clock:
    now: float = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


@dataclass
class _MemorySessions:
    records: dict[str, SessionRecord] = field(default_factory=dict)
    lose_next_revoke: bool = False

    def save(self, record: SessionRecord) -> None:
        self.records[record.session_id] = record

    def get(self, session_id: str) -> SessionRecord | None:
        return self.records.get(session_id)

    def revoke_if_active(self, session_id: str) -> bool:
        record = self.records.get(session_id)
        if self.lose_next_revoke:
            self.lose_next_revoke = False
            return False
        if record is None or record.revoked:
            return False
        self.records[session_id] = record.model_copy(update={"revoked": True})
        return True

    def delete(self, session_id: str) -> None:
        self.records.pop(session_id, None)

    def revoke_all(self, user_id: str) -> int:
        count = 0
        for key, record in list(self.records.items()):
            if record.user_id == user_id and not record.revoked:
                self.records[key] = record.model_copy(update={"revoked": True})
                count += 1
        return count

    def list_active(self, user_id: str, now: int) -> list[SessionRecord]:
        return [
            r
            for r in self.records.values()
            if r.user_id == user_id and not r.revoked and r.expires_at > now
        ]

    def delete_expired(self, now: int) -> int:
        stale = [k for k, r in self.records.items() if r.revoked or r.expires_at <= now]
        for key in stale:
            del self.records[key]
        return len(stale)


def _service(**overrides) -> tuple[TokenService, _MemorySessions, _Clock]:
    sessions = _MemorySessions()
    clock = _Clock()
    return TokenService(sessions, auth_config(**overrides), clock=clock), sessions, clock


def test_issue_stores_hashed_refresh_token() -> None:
    service, sessions, _ = _service()

    pair = service.issue("u1", Role.ARTISAN, "pytest-agent")

    record = sessions.records[pair.session_id]
    assert record.token_hash != pair.refresh_token
    assert record.device_info == "pytest-agent"
    principal = service.verify_access_token(pair.access_token)
    assert principal.user_id == "u1"
    assert principal.role is Role.ARTISAN
    assert principal.session_id == pair.session_id


def test_refresh_rotates_and_rejects_reuse() -> None:
    service, sessions, _ = _service()
    first = service.issue("u1", Role.CUSTOMER)

    second = service.refresh(first.refresh_token)

    assert second.session_id != first.session_id
    assert sessions.records[first.session_id].revoked is True
    with pytest.raises(ApiError) as exc_info:
        service.refresh(first.refresh_token)
    assert exc_info.value.error_code is ApiErrorCode.INVALID_OR_EXPIRED


def test_refresh_keeps_device_info_unless_overridden() -> None:
    service, sessions, _ = _service()
    first = service.issue("u1", Role.CUSTOMER, "phone-app")

    second = service.refresh(first.refresh_token)
    third = service.refresh(second.refresh_token, "laptop")

    assert sessions.records[second.session_id].device_info == "phone-app"
    assert sessions.records[third.session_id].device_info == "laptop"


def test_lost_rotation_race_discards_new_session() -> None:
    service, sessions, _ = _service()
    first = service.issue("u1", Role.CUSTOMER)
    sessions.lose_next_revoke = True

    with pytest.raises(ApiError) as exc_info:
        service.refresh(first.refresh_token)

    assert exc_info.value.error_code is ApiErrorCode.INVALID_OR_EXPIRED
    assert list(sessions.records) == [first.session_id]


def test_access_token_cannot_refresh_and_refresh_cannot_authenticate() -> None:
    service, _, _ = _service()
    pair = service.issue("u1", Role.CUSTOMER)

    with pytest.raises(ApiError) as refresh_with_access:
        service.refresh(pair.access_token)
    with pytest.raises(ApiError) as access_with_refresh:
        service.verify_access_token(pair.refresh_token)

    assert refresh_with_access.value.error_code is ApiErrorCode.INVALID_OR_EXPIRED
    assert access_with_refresh.value.error_code is ApiErrorCode.UNAUTHENTICATED


def test_tokens_expire_by_clock() -> None:
    service, sessions, clock = _service(access_token_ttl_seconds=60)
    pair = service.issue("u1", Role.CUSTOMER)

    clock.now += 61
    with pytest.raises(ApiError) as exc_info:
        service.verify_access_token(pair.access_token)
    assert exc_info.value.error_code is ApiErrorCode.UNAUTHENTICATED

    clock.now += 8 * 24 * 3600
    with pytest.raises(ApiError):
        service.refresh(pair.refresh_token)
    assert service.purge_expired() == 1
    assert sessions.records == {}


def test_token_from_other_issuer_is_rejected() -> None:
    service, _, _ = _service()
    other, _, _ = _service(issuer="someone-else")
    pair = other.issue("u1", Role.CUSTOMER)

    with pytest.raises(ApiError) as exc_info:
        service.verify_access_token(pair.access_token)

    assert exc_info.value.message == "Invalid token issuer"


def test_revoke_only_touches_own_session() -> None:
    service, _, _ = _service()
    mine = service.issue("u1", Role.CUSTOMER)
    theirs = service.issue("u2", Role.CUSTOMER)
    service.issue("u1", Role.CUSTOMER)

    assert service.revoke("u1", theirs.session_id) is False
    assert service.revoke("u1", mine.session_id) is True
    assert len(service.list_sessions("u1")) == 1
    assert service.revoke_all("u1") == 1
    assert service.list_sessions("u1") == []
    assert len(service.list_sessions("u2")) == 1
