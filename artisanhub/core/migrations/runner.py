"""SQLite migration runner for runtime state tables."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from threading import Lock

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"

_APPLY_LOCK = Lock()


def connect_state_db(database_path: Path) -> sqlite3.Connection:
    """Open a shared connection to the runtime state database."""
    connection = sqlite3.connect(str(database_path), check_same_thread=False, timeout=5.0)
    connection.row_factory = sqlite3.Row
    return connection


def apply_migrations(database_path: Path) -> list[str]:
    """Apply pending SQL migrations in file-name order and return their ids."""
    database_path.parent.mkdir(parents=True, exist_ok=True)
    applied: list[str] = []
    with _APPLY_LOCK:
        connection = sqlite3.connect(str(database_path), timeout=5.0)
        try:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                  migration_id TEXT PRIMARY KEY,
                  applied_at INTEGER NOT NULL
                )
                """
            )
            done = {
                row[0]
                for row in cursor.execute("SELECT migration_id FROM schema_migrations")
            }
            for migration_file in sorted(MIGRATIONS_DIR.glob("*.sql")):
                migration_id = migration_file.name
                if migration_id in done:
                    continue
                cursor.executescript(migration_file.read_text(encoding="utf-8"))
                cursor.execute(
                    "INSERT INTO schema_migrations(migration_id, applied_at) VALUES (?, ?)",
                    (migration_id, int(time.time())),
                )
                applied.append(migration_id)
            connection.commit()
        finally:
            connection.close()
    return applied
