from __future__ import annotations

import sqlite3
from pathlib import Path

from artisanhub.core.migrations import apply_migrations


def test_apply_migrations_creates_state_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    first = apply_migrations(db_path)
    second = apply_migrations(db_path)

    connection = sqlite3.connect(str(db_path))
    try:
        cursor = connection.cursor()
        tables = {
            row[0]
            for row in cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }

        assert "schema_migrations" in tables
        assert "auth_login_attempts" in tables
        assert "verification_transactions" in tables
        assert "otp_initiations" in tables

        migration_ids = {
            row[0]
            for row in cursor.execute(
                "SELECT migration_id FROM schema_migrations"
            ).fetchall()
        }
        assert "0001_auth_login_rate_limit.sql" in migration_ids
        assert "0002_verification_transactions.sql" in migration_ids
        assert "0003_otp_initiations.sql" in migration_ids
    finally:
        connection.close()

    assert len(first) == 3
    assert second == []
