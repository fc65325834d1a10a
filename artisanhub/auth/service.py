"""Authentication service for registration, login, sessions and address book."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import (
    Address,
    AddressRequest,
    ChangePasswordRequest,
    LoginRequest,
    Principal,
    RegisterRequest,
    Role,
    User,
)
from artisanhub.auth.rate_limiter import LoginRateLimiter
from artisanhub.auth.repository import DuplicateUserError, UserRepository
from artisanhub.auth.tokens import TokenService
from artisanhub.core.config import AuthConfig
from artisanhub.core.security import hash_password, verify_password

LOGGER = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5

# Hash checked when the phone is unknown so both login failures cost the same.
_DUMMY_PASSWORD_HASH = hash_password(uuid.uuid4().hex)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def mutate_user(
    users: UserRepository,
    user_id: str,
    mutate: Callable[[User], User | None],
) -> User:
    """Apply ``mutate`` under optimistic concurrency and return the stored user.

    ``mutate`` receives the freshly read user and returns the changed copy,
    or ``None`` when nothing needs to change. A lost race re-reads and retries.
    """
    for _ in range(MAX_UPDATE_ATTEMPTS):
        current = users.get_by_id(user_id)
        if current is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "User not found")
        changed = mutate(current)
        if changed is None:
            return current
        changed = changed.model_copy(update={"updated_at": utc_now_iso()})
        saved = users.compare_and_set(changed, current.version)
        if saved is not None:
            return saved
        LOGGER.info("user_update_retry", extra={"user_id": user_id})
    raise ApiError(
        ApiErrorCode.CONFLICT,
        "User was modified concurrently. Please retry.",
    )


class AuthService:
    """Credential, session and address-book operations."""

    def __init__(
        self,
        users: UserRepository,
        tokens: TokenService,
        rate_limiter: LoginRateLimiter,
        config: AuthConfig,
    ) -> None:
        """Initialize service dependencies."""
        self._users = users
        self._tokens = tokens
        self._rate_limiter = rate_limiter
        self._config = config

    @property
    def users(self) -> UserRepository:
        return self._users

    def bootstrap_admin_user(self) -> User | None:
        """Ensure the bootstrap admin from environment values exists."""
        if not self._config.admin_phone or not self._config.admin_password:
            return None
        existing = self._users.get_by_phone(self._config.admin_phone)
        if existing is not None:
            return existing

        now = utc_now_iso()
        admin = User(
            user_id=uuid.uuid4().hex,
            name=self._config.admin_name,
            phone=self._config.admin_phone,
            password_hash=hash_password(self._config.admin_password),
            role=Role.ADMIN,
            is_phone_verified=True,
            created_at=now,
            updated_at=now,
        )
        try:
            self._users.insert(admin)
        except DuplicateUserError:
            return self._users.get_by_phone(self._config.admin_phone)
        LOGGER.info("admin_bootstrapped", extra={"user_id": admin.user_id})
        return admin

    def register(self, req: RegisterRequest, device_info: str = "") -> dict[str, Any]:
        """Create a user and open the first session."""
        now = utc_now_iso()
        user = User(
            user_id=uuid.uuid4().hex,
            name=req.name.strip(),
            phone=req.phone,
            password_hash=hash_password(req.password),
            role=req.role,
            created_at=now,
            updated_at=now,
        )
        try:
            self._users.insert(user)
        except DuplicateUserError as exc:
            raise ApiError(
                ApiErrorCode.CONFLICT,
                "User with this phone number already exists",
            ) from exc

        LOGGER.info("user_registered", extra={"user_id": user.user_id, "role": str(user.role)})
        pair = self._tokens.issue(user.user_id, user.role, device_info)
        return {**pair.as_payload(), "user": user.profile()}

    def login(self, req: LoginRequest, *, client_ip: str, device_info: str = "") -> dict[str, Any]:
        """Authenticate credentials and issue a token pair."""
        self._rate_limiter.assert_allowed(phone=req.phone, client_ip=client_ip)
        user = self._users.get_by_phone(req.phone)
        stored_hash = user.password_hash if user is not None else _DUMMY_PASSWORD_HASH
        if not verify_password(req.password, stored_hash) or user is None:
            self._rate_limiter.record_failure(phone=req.phone, client_ip=client_ip)
            LOGGER.warning("login_failed", extra={"outcome": "denied"})
            raise ApiError(ApiErrorCode.INVALID_CREDENTIALS, "Invalid phone number or password")

        self._rate_limiter.record_success(phone=req.phone, client_ip=client_ip)
        pair = self._tokens.issue(user.user_id, user.role, device_info)
        LOGGER.info("login_succeeded", extra={"user_id": user.user_id})
        return {**pair.as_payload(), "user": user.profile()}

    def refresh(self, refresh_token: str, device_info: str | None = None) -> dict[str, Any]:
        pair = self._tokens.refresh(refresh_token, device_info)
        return pair.as_payload()

    def logout(self, principal: Principal) -> bool:
        """Revoke the session the access token was issued for."""
        return self._tokens.revoke(principal.user_id, principal.session_id)

    def logout_all(self, principal: Principal) -> int:
        return self._tokens.revoke_all(principal.user_id)

    def get_user(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "User not found")
        return user

    def profile(self, principal: Principal) -> dict[str, Any]:
        """Return the caller's profile with its active sessions."""
        user = self.get_user(principal.user_id)
        sessions = [
            {
                "sessionId": record.session_id,
                "deviceInfo": record.device_info,
                "issuedAt": record.issued_at,
                "expiresAt": record.expires_at,
                "current": record.session_id == principal.session_id,
            }
            for record in self._tokens.list_sessions(principal.user_id)
        ]
        return {"user": user.profile(), "sessions": sessions}

    def change_password(self, principal: Principal, req: ChangePasswordRequest) -> int:
        """Replace the password hash and revoke every session of the user."""

        def apply(user: User) -> User:
            if not verify_password(req.current_password, user.password_hash):
                raise ApiError(ApiErrorCode.INVALID_CREDENTIALS, "Current password is incorrect")
            return user.model_copy(update={"password_hash": hash_password(req.new_password)})

        mutate_user(self._users, principal.user_id, apply)
        revoked = self._tokens.revoke_all(principal.user_id)
        LOGGER.info("password_changed", extra={"user_id": principal.user_id})
        return revoked

    def update_name(self, user_id: str, name: str) -> User:
        return mutate_user(
            self._users,
            user_id,
            lambda user: user.model_copy(update={"name": name.strip()}),
        )

    def delete_user(self, user_id: str) -> None:
        """Remove a user and revoke all of its sessions."""
        if not self._users.delete(user_id):
            raise ApiError(ApiErrorCode.NOT_FOUND, "User not found")
        self._tokens.revoke_all(user_id)
        LOGGER.info("user_deleted", extra={"user_id": user_id})

    def search_users(self, query: str, limit: int = 20) -> list[dict[str, Any]]:
        return [user.summary() for user in self._users.search(query, limit)]

    # Address book. Exactly one address is default whenever the list is non-empty.

    def list_addresses(self, user_id: str) -> list[dict[str, Any]]:
        return [addr.model_dump(by_alias=True) for addr in self.get_user(user_id).addresses]

    def default_address(self, user_id: str) -> dict[str, Any]:
        address = self.get_user(user_id).default_address()
        if address is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "No default address set")
        return address.model_dump(by_alias=True)

    def add_address(self, user_id: str, req: AddressRequest) -> dict[str, Any]:
        address_id = uuid.uuid4().hex

        def apply(user: User) -> User:
            address = Address(address_id=address_id, **req.model_dump(exclude={"is_default"}))
            addresses = user.addresses + [address]
            if req.is_default or not user.addresses:
                addresses = _with_default(addresses, address_id)
            return user.model_copy(update={"addresses": addresses})

        user = mutate_user(self._users, user_id, apply)
        return _find_address(user, address_id).model_dump(by_alias=True)

    def update_address(self, user_id: str, address_id: str, req: AddressRequest) -> dict[str, Any]:
        def apply(user: User) -> User:
            current = _find_address(user, address_id)
            updated = current.model_copy(update=req.model_dump(exclude={"is_default"}))
            addresses = [updated if a.address_id == address_id else a for a in user.addresses]
            if req.is_default:
                addresses = _with_default(addresses, address_id)
            return user.model_copy(update={"addresses": addresses})

        user = mutate_user(self._users, user_id, apply)
        return _find_address(user, address_id).model_dump(by_alias=True)

    def upsert_default_address(self, user_id: str, req: AddressRequest) -> dict[str, Any]:
        """Overwrite the default address, creating it when the book is empty."""
        current = self.get_user(user_id).default_address()
        if current is None:
            return self.add_address(user_id, req.model_copy(update={"is_default": True}))
        return self.update_address(user_id, current.address_id, req)

    def delete_address(self, user_id: str, address_id: str) -> None:
        def apply(user: User) -> User:
            removed = _find_address(user, address_id)
            remaining = [a for a in user.addresses if a.address_id != address_id]
            if removed.is_default and remaining:
                remaining = _with_default(remaining, remaining[0].address_id)
            return user.model_copy(update={"addresses": remaining})

        mutate_user(self._users, user_id, apply)

    def set_default_address(self, user_id: str, address_id: str) -> dict[str, Any]:
        def apply(user: User) -> User | None:
            target = _find_address(user, address_id)
            if target.is_default:
                return None
            return user.model_copy(
                update={"addresses": _with_default(user.addresses, address_id)}
            )

        user = mutate_user(self._users, user_id, apply)
        return _find_address(user, address_id).model_dump(by_alias=True)


def _find_address(user: User, address_id: str) -> Address:
    for address in user.addresses:
        if address.address_id == address_id:
            return address
    raise ApiError(ApiErrorCode.NOT_FOUND, "Address not found")


def _with_default(addresses: list[Address], address_id: str) -> list[Address]:
    return [
        addr.model_copy(update={"is_default": addr.address_id == address_id})
        for addr in addresses
    ]
