from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import (
    AddressRequest,
    ChangePasswordRequest,
    LoginRequest,
    Principal,
    RegisterRequest,
    Role,
    User,
)
from artisanhub.auth.rate_limiter import LoginRateLimiter
from artisanhub.auth.repository import SessionRepository, UserRepository
from artisanhub.auth.service import MAX_UPDATE_ATTEMPTS, AuthService, mutate_user
from artisanhub.auth.tokens import TokenService
from tests.mock_config import ADMIN_PHONE, STRONG_PASSWORD, auth_config

PHONE = "+919876543210"


def _service(tmp_path: Path) -> AuthService:
    config = auth_config()
    limiter = LoginRateLimiter(
        database_path=tmp_path / "state.db",
        max_attempts=5,
        window_seconds=300,
        lock_seconds=600,
    )
    return AuthService(
        UserRepository(tmp_path),
        TokenService(SessionRepository(tmp_path), config),
        limiter,
        config,
    )


def _register(service: AuthService, role: Role = Role.CUSTOMER) -> dict:
    return service.register(
        RegisterRequest(name="Asha Weaver", phone=PHONE, password=STRONG_PASSWORD, role=role)
    )


def _principal(tmp_path: Path, payload: dict) -> Principal:
    tokens = TokenService(SessionRepository(tmp_path), auth_config())
    return tokens.verify_access_token(payload["accessToken"])


def _address(city: str = "Jaipur", **overrides) -> AddressRequest:
    values = {
        "house_no": "12",
        "street": "Johari Bazaar",
        "city": city,
        "district": "Jaipur",
        "pin_code": "302003",
    }
    values.update(overrides)
    return AddressRequest(**values)


def test_register_returns_tokens_and_unverified_profile(tmp_path: Path) -> None:
    payload = _register(_service(tmp_path))

    assert payload["accessToken"]
    assert payload["refreshToken"]
    assert payload["user"]["phone"] == PHONE
    assert payload["user"]["isPhoneVerified"] is False
    assert "passwordHash" not in payload["user"]


def test_register_rejects_duplicate_phone(tmp_path: Path) -> None:
    service = _service(tmp_path)
    _register(service)

    with pytest.raises(ApiError) as exc_info:
        _register(service)

    assert exc_info.value.error_code is ApiErrorCode.CONFLICT


def test_login_failures_share_one_message(tmp_path: Path) -> None:
    service = _service(tmp_path)
    _register(service)

    with pytest.raises(ApiError) as wrong_password:
        service.login(LoginRequest(phone=PHONE, password="Wrong123!"), client_ip="1.1.1.1")
    with pytest.raises(ApiError) as unknown_phone:
        service.login(
            LoginRequest(phone="+919811111111", password=STRONG_PASSWORD), client_ip="1.1.1.1"
        )

    assert wrong_password.value.error_code is ApiErrorCode.INVALID_CREDENTIALS
    assert unknown_phone.value.error_code is ApiErrorCode.INVALID_CREDENTIALS
    assert wrong_password.value.message == unknown_phone.value.message


def test_login_locks_after_repeated_failures(tmp_path: Path) -> None:
    service = _service(tmp_path)
    _register(service)
    bad = LoginRequest(phone=PHONE, password="Wrong123!")

    for _ in range(5):
        with pytest.raises(ApiError):
            service.login(bad, client_ip="1.1.1.1")

    with pytest.raises(ApiError) as exc_info:
        service.login(LoginRequest(phone=PHONE, password=STRONG_PASSWORD), client_ip="1.1.1.1")

    assert exc_info.value.error_code is ApiErrorCode.RATE_LIMITED


def test_change_password_revokes_every_session(tmp_path: Path) -> None:
    service = _service(tmp_path)
    first = _register(service)
    service.login(LoginRequest(phone=PHONE, password=STRONG_PASSWORD), client_ip="1.1.1.1")

    revoked = service.change_password(
        _principal(tmp_path, first),
        ChangePasswordRequest(current_password=STRONG_PASSWORD, new_password="NewPass456!"),
    )

    assert revoked == 2
    with pytest.raises(ApiError) as exc_info:
        service.refresh(first["refreshToken"])
    assert exc_info.value.error_code is ApiErrorCode.INVALID_OR_EXPIRED
    assert service.login(
        LoginRequest(phone=PHONE, password="NewPass456!"), client_ip="1.1.1.1"
    )["accessToken"]


def test_change_password_requires_current_password(tmp_path: Path) -> None:
    service = _service(tmp_path)
    payload = _register(service)

    with pytest.raises(ApiError) as exc_info:
        service.change_password(
            _principal(tmp_path, payload),
            ChangePasswordRequest(current_password="Nope123!", new_password="NewPass456!"),
        )

    assert exc_info.value.error_code is ApiErrorCode.INVALID_CREDENTIALS


def test_profile_lists_sessions_and_marks_current(tmp_path: Path) -> None:
    service = _service(tmp_path)
    payload = _register(service)
    service.login(LoginRequest(phone=PHONE, password=STRONG_PASSWORD), client_ip="1.1.1.1")

    principal = _principal(tmp_path, payload)
    profile = service.profile(principal)

    assert len(profile["sessions"]) == 2
    current = [s for s in profile["sessions"] if s["current"]]
    assert [s["sessionId"] for s in current] == [principal.session_id]


def test_address_book_keeps_exactly_one_default(tmp_path: Path) -> None:
    service = _service(tmp_path)
    user_id = _register(service)["user"]["userId"]

    first = service.add_address(user_id, _address("Jaipur"))
    second = service.add_address(user_id, _address("Udaipur"))
    assert first["isDefault"] is True
    assert second["isDefault"] is False

    service.set_default_address(user_id, second["addressId"])
    assert service.default_address(user_id)["addressId"] == second["addressId"]

    service.delete_address(user_id, second["addressId"])
    remaining = service.list_addresses(user_id)
    assert [a["addressId"] for a in remaining] == [first["addressId"]]
    assert remaining[0]["isDefault"] is True

    service.delete_address(user_id, first["addressId"])
    with pytest.raises(ApiError) as exc_info:
        service.default_address(user_id)
    assert exc_info.value.error_code is ApiErrorCode.NOT_FOUND


def test_upsert_default_address_creates_then_overwrites(tmp_path: Path) -> None:
    service = _service(tmp_path)
    user_id = _register(service)["user"]["userId"]

    created = service.upsert_default_address(user_id, _address("Jaipur"))
    updated = service.upsert_default_address(user_id, _address("Kota"))

    assert created["addressId"] == updated["addressId"]
    assert updated["city"] == "Kota"
    assert updated["isDefault"] is True
    assert len(service.list_addresses(user_id)) == 1


def test_unknown_address_is_not_found(tmp_path: Path) -> None:
    service = _service(tmp_path)
    user_id = _register(service)["user"]["userId"]

    with pytest.raises(ApiError) as exc_info:
        service.update_address(user_id, "missing", _address())

    assert exc_info.value.error_code is ApiErrorCode.NOT_FOUND


def test_bootstrap_admin_is_idempotent(tmp_path: Path) -> None:
    service = _service(tmp_path)

    first = service.bootstrap_admin_user()
    second = service.bootstrap_admin_user()

    assert first is not None and second is not None
    assert first.user_id == second.user_id
    assert first.role is Role.ADMIN
    assert service.users.get_by_phone(ADMIN_PHONE) is not None


def test_delete_user_revokes_sessions(tmp_path: Path) -> None:
    service = _service(tmp_path)
    payload = _register(service)

    service.delete_user(payload["user"]["userId"])

    with pytest.raises(ApiError):
        service.refresh(payload["refreshToken"])
    with pytest.raises(ApiError) as exc_info:
        service.delete_user(payload["user"]["userId"])
    assert exc_info.value.error_code is ApiErrorCode.NOT_FOUND


@dataclass
class _AlwaysStaleUsers:
    user: User
    attempts: int = 0
    saved: list[User] = field(default_factory=list)

    def get_by_id(self, user_id: str) -> User | None:
        return self.user if user_id == self.user.user_id else None

    def compare_and_set(self, user: User, expected_version: int) -> User | None:
        self.attempts += 1
        return None


def test_mutate_user_gives_up_with_conflict() -> None:
    users = _AlwaysStaleUsers(
        User(user_id="u1", name="Asha", phone=PHONE, password_hash="x", role=Role.CUSTOMER)
    )

    with pytest.raises(ApiError) as exc_info:
        mutate_user(users, "u1", lambda user: user.model_copy(update={"name": "Other"}))

    assert exc_info.value.error_code is ApiErrorCode.CONFLICT
    assert users.attempts == MAX_UPDATE_ATTEMPTS


def test_mutate_user_skips_write_when_nothing_changes() -> None:
    users = _AlwaysStaleUsers(
        User(user_id="u1", name="Asha", phone=PHONE, password_hash="x", role=Role.CUSTOMER)
    )

    result = mutate_user(users, "u1", lambda user: None)

    assert result.name == "Asha"
    assert users.attempts == 0
