"""Session token issuance, rotation and revocation."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Protocol

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import Principal, Role, SessionRecord, TokenPair
from artisanhub.core.config import AuthConfig
from artisanhub.core.security import (
    TokenError,
    TokenExpiredError,
    build_signed_token,
    decode_signed_token,
    digest_secret,
    digests_match,
)

LOGGER = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Session persistence used by the token service."""

    def save(self, record: SessionRecord) -> None: ...

    def get(self, session_id: str) -> SessionRecord | None: ...

    def revoke_if_active(self, session_id: str) -> bool: ...

    def delete(self, session_id: str) -> None: ...

    def revoke_all(self, user_id: str) -> int: ...

    def list_active(self, user_id: str, now: int) -> list[SessionRecord]: ...

    def delete_expired(self, now: int) -> int: ...


def _invalid_refresh() -> ApiError:
    return ApiError(ApiErrorCode.INVALID_OR_EXPIRED, "Invalid or expired refresh token")


class TokenService:
    """Issue access/refresh pairs; access is stateless, refresh is session-backed."""

    def __init__(
        self,
        sessions: SessionStore,
        config: AuthConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize service dependencies."""
        self._sessions = sessions
        self._config = config
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def issue(self, user_id: str, role: Role, device_info: str = "") -> TokenPair:
        """Create a new session and return its token pair."""
        pair, record = self._build_pair(user_id, role, device_info)
        self._sessions.save(record)
        LOGGER.info("session_issued", extra={"user_id": user_id})
        return pair

    def refresh(self, refresh_token: str, device_info: str | None = None) -> TokenPair:
        """Rotate a refresh token: the presented one is consumed, a new pair is issued."""
        payload = self._decode(refresh_token, expected_type="refresh")
        session_id = str(payload.get("jti") or "")
        user_id = str(payload.get("sub") or "")
        try:
            role = Role(str(payload.get("role") or ""))
        except ValueError as exc:
            raise _invalid_refresh() from exc

        record = self._sessions.get(session_id)
        if record is None or record.user_id != user_id:
            raise _invalid_refresh()
        if record.revoked:
            LOGGER.warning("refresh_token_reuse", extra={"user_id": user_id})
            raise _invalid_refresh()
        if record.expires_at <= self._now():
            self._sessions.revoke_if_active(session_id)
            raise _invalid_refresh()
        if not digests_match(refresh_token, record.token_hash):
            raise _invalid_refresh()

        device = record.device_info if device_info is None else device_info
        pair, new_record = self._build_pair(user_id, role, device)
        self._sessions.save(new_record)
        if not self._sessions.revoke_if_active(session_id):
            # Lost a concurrent rotation of the same token.
            self._sessions.delete(new_record.session_id)
            raise _invalid_refresh()
        LOGGER.info("session_rotated", extra={"user_id": user_id})
        return pair

    def revoke(self, user_id: str, session_id: str) -> bool:
        """Revoke one session owned by ``user_id``."""
        record = self._sessions.get(session_id)
        if record is None or record.user_id != user_id:
            return False
        revoked = self._sessions.revoke_if_active(session_id)
        if revoked:
            LOGGER.info("session_revoked", extra={"user_id": user_id})
        return revoked

    def revoke_all(self, user_id: str) -> int:
        """Revoke every session of ``user_id`` and return how many were active."""
        count = self._sessions.revoke_all(user_id)
        LOGGER.info("sessions_revoked_all", extra={"user_id": user_id})
        return count

    def list_sessions(self, user_id: str) -> list[SessionRecord]:
        return self._sessions.list_active(user_id, self._now())

    def purge_expired(self) -> int:
        """Drop revoked and expired sessions."""
        return self._sessions.delete_expired(self._now())

    def verify_access_token(self, token: str) -> Principal:
        """Validate an access token by signature and expiry only."""
        try:
            payload = self._decode(token, expected_type="access")
            return Principal(
                user_id=str(payload.get("sub") or ""),
                role=Role(str(payload.get("role") or "")),
                session_id=str(payload.get("sid") or ""),
            )
        except ApiError as exc:
            raise ApiError(ApiErrorCode.UNAUTHENTICATED, exc.message) from exc
        except ValueError as exc:
            raise ApiError(ApiErrorCode.UNAUTHENTICATED, "Invalid access token") from exc

    def _build_pair(
        self, user_id: str, role: Role, device_info: str
    ) -> tuple[TokenPair, SessionRecord]:
        now = self._now()
        session_id = uuid.uuid4().hex
        base: dict[str, Any] = {"iss": self._config.issuer, "sub": user_id, "role": str(role)}

        access_token = build_signed_token(
            {
                **base,
                "type": "access",
                "sid": session_id,
                "iat": now,
                "exp": now + self._config.access_token_ttl_seconds,
                "jti": uuid.uuid4().hex,
            },
            self._config.secret_key,
        )
        refresh_exp = now + self._config.refresh_token_ttl_seconds
        refresh_token = build_signed_token(
            {**base, "type": "refresh", "iat": now, "exp": refresh_exp, "jti": session_id},
            self._config.secret_key,
        )
        record = SessionRecord(
            session_id=session_id,
            user_id=user_id,
            token_hash=digest_secret(refresh_token),
            issued_at=now,
            expires_at=refresh_exp,
            device_info=device_info[:200],
        )
        pair = TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            session_id=session_id,
            expires_in=self._config.access_token_ttl_seconds,
        )
        return pair, record

    def _decode(self, token: str, *, expected_type: str) -> dict[str, Any]:
        """Decode signed token and validate issuer/type claims."""
        try:
            payload = decode_signed_token(token, self._config.secret_key, now=self._now())
        except TokenExpiredError as exc:
            raise ApiError(ApiErrorCode.INVALID_OR_EXPIRED, "Token expired") from exc
        except TokenError as exc:
            raise ApiError(ApiErrorCode.INVALID_OR_EXPIRED, str(exc)) from exc

        if str(payload.get("iss") or "") != self._config.issuer:
            raise ApiError(ApiErrorCode.INVALID_OR_EXPIRED, "Invalid token issuer")
        if str(payload.get("type") or "") != expected_type:
            raise ApiError(ApiErrorCode.INVALID_OR_EXPIRED, "Invalid token type")
        return payload
