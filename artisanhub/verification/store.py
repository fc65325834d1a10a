"""SQLite-backed pending verification transactions and initiation counters."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from threading import Lock

from artisanhub.core.migrations import apply_migrations, connect_state_db


@dataclass(frozen=True)
class VerificationTransaction:
    """One pending OTP challenge for a (user, kind) pair."""

    transaction_id: str
    user_id: str
    kind: str
    destination: str
    identifier: str
    identifier_masked: str
    code_hash: str
    attempts: int
    created_at: int
    expires_at: int


class VerificationStore:
    """Runtime state for OTP challenges; one lock serializes all updates."""

    def __init__(self, database_path: Path) -> None:
        apply_migrations(database_path)
        self._connection = connect_state_db(database_path)
        self._lock = Lock()

    def reserve_initiation(
        self, *, user_id: str, kind: str, now: int, window_seconds: int, limit: int
    ) -> bool:
        """Record an initiation if fewer than ``limit`` happened inside the window."""
        with self._lock:
            self._connection.execute(
                "DELETE FROM otp_initiations WHERE created_at <= ?",
                (now - window_seconds,),
            )
            row = self._connection.execute(
                """
                SELECT COUNT(*) AS total FROM otp_initiations
                WHERE user_id = ? AND kind = ? AND created_at > ?
                """,
                (user_id, kind, now - window_seconds),
            ).fetchone()
            if int(row["total"]) >= limit:
                self._connection.commit()
                return False
            self._connection.execute(
                "INSERT INTO otp_initiations(user_id, kind, created_at) VALUES (?, ?, ?)",
                (user_id, kind, now),
            )
            self._connection.commit()
            return True

    def replace(self, tx: VerificationTransaction) -> None:
        """Store ``tx``, discarding any earlier challenge for the same pair."""
        with self._lock:
            self._connection.execute(
                """
                INSERT OR REPLACE INTO verification_transactions(
                  user_id, kind, transaction_id, destination, identifier,
                  identifier_masked, code_hash, attempts, created_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tx.user_id,
                    tx.kind,
                    tx.transaction_id,
                    tx.destination,
                    tx.identifier,
                    tx.identifier_masked,
                    tx.code_hash,
                    tx.attempts,
                    tx.created_at,
                    tx.expires_at,
                ),
            )
            self._connection.commit()

    def get(self, user_id: str, kind: str) -> VerificationTransaction | None:
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM verification_transactions WHERE user_id = ? AND kind = ?",
                (user_id, kind),
            ).fetchone()
        if row is None:
            return None
        return VerificationTransaction(**{key: row[key] for key in row.keys()})

    def reserve_attempt(self, transaction_id: str, max_attempts: int) -> int | None:
        """Take one attempt slot before the code is compared.

        Returns the attempt count including this one, or ``None`` when the cap
        is already reached or the transaction is gone.
        """
        with self._lock:
            cursor = self._connection.execute(
                """
                UPDATE verification_transactions SET attempts = attempts + 1
                WHERE transaction_id = ? AND attempts < ?
                """,
                (transaction_id, max_attempts),
            )
            if cursor.rowcount != 1:
                self._connection.commit()
                return None
            row = self._connection.execute(
                "SELECT attempts FROM verification_transactions WHERE transaction_id = ?",
                (transaction_id,),
            ).fetchone()
            self._connection.commit()
        return int(row["attempts"])

    def consume(self, transaction_id: str) -> bool:
        """Delete a transaction; ``False`` if another request consumed it first."""
        with self._lock:
            cursor = self._connection.execute(
                "DELETE FROM verification_transactions WHERE transaction_id = ?",
                (transaction_id,),
            )
            self._connection.commit()
        return cursor.rowcount == 1

    def close(self) -> None:
        with self._lock:
            self._connection.close()
