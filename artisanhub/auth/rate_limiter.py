"""Login brute-force protection backed by SQLite runtime state."""

from __future__ import annotations

import time
from pathlib import Path
from threading import Lock

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.core.migrations import apply_migrations, connect_state_db


class LoginRateLimiter:
    """Rate limiter for login attempts by (phone, client ip) tuple."""

    def __init__(
        self,
        *,
        database_path: Path,
        max_attempts: int,
        window_seconds: int,
        lock_seconds: int,
    ) -> None:
        """Initialize limiter storage and policy parameters."""
        apply_migrations(database_path)
        self._connection = connect_state_db(database_path)
        self._lock = Lock()
        self._max_attempts = max(1, int(max_attempts))
        self._window_seconds = max(1, int(window_seconds))
        self._lock_seconds = max(1, int(lock_seconds))

    @staticmethod
    def _key(phone: str, client_ip: str) -> tuple[str, str]:
        return phone.strip(), client_ip.strip() or "unknown"

    def assert_allowed(self, *, phone: str, client_ip: str) -> None:
        """Raise ``RATE_LIMITED`` while login attempts are locked for the principal."""
        now = int(time.time())
        key = self._key(phone, client_ip)
        with self._lock:
            row = self._connection.execute(
                """
                SELECT first_failed_at, locked_until
                FROM auth_login_attempts
                WHERE phone = ? AND client_ip = ?
                """,
                key,
            ).fetchone()
            if row is None:
                return

            locked_until = int(row["locked_until"] or 0)
            if locked_until > now:
                raise ApiError(
                    ApiErrorCode.RATE_LIMITED,
                    f"Too many login attempts. Retry after {locked_until - now} seconds.",
                    headers={"Retry-After": str(locked_until - now)},
                )

            first_failed_at = int(row["first_failed_at"] or 0)
            if first_failed_at and (now - first_failed_at) > self._window_seconds:
                self._connection.execute(
                    "DELETE FROM auth_login_attempts WHERE phone = ? AND client_ip = ?",
                    key,
                )
                self._connection.commit()

    def record_success(self, *, phone: str, client_ip: str) -> None:
        """Reset limiter state after successful login."""
        with self._lock:
            self._connection.execute(
                "DELETE FROM auth_login_attempts WHERE phone = ? AND client_ip = ?",
                self._key(phone, client_ip),
            )
            self._connection.commit()

    def record_failure(self, *, phone: str, client_ip: str) -> None:
        """Record failed login and apply lock when threshold is reached."""
        now = int(time.time())
        key_phone, key_ip = self._key(phone, client_ip)
        with self._lock:
            row = self._connection.execute(
                """
                SELECT failed_attempts, first_failed_at
                FROM auth_login_attempts
                WHERE phone = ? AND client_ip = ?
                """,
                (key_phone, key_ip),
            ).fetchone()

            previous_first = int(row["first_failed_at"] or 0) if row else 0
            if row is None or (previous_first and now - previous_first > self._window_seconds):
                failed_attempts = 1
                first_failed_at = now
            else:
                failed_attempts = int(row["failed_attempts"] or 0) + 1
                first_failed_at = previous_first or now

            locked_until = (
                now + self._lock_seconds if failed_attempts >= self._max_attempts else 0
            )

            self._connection.execute(
                """
                INSERT INTO auth_login_attempts(
                  phone, client_ip, failed_attempts, first_failed_at, last_failed_at, locked_until
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(phone, client_ip) DO UPDATE SET
                  failed_attempts = excluded.failed_attempts,
                  first_failed_at = excluded.first_failed_at,
                  last_failed_at = excluded.last_failed_at,
                  locked_until = excluded.locked_until
                """,
                (key_phone, key_ip, failed_attempts, first_failed_at, now, locked_until),
            )
            self._connection.commit()

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()
