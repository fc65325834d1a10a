"""Versioned MongoDB schema migrations for marketplace collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from pymongo.errors import PyMongoError

from artisanhub.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_20260301_01_identity_indexes(db: Any) -> None:
    db["users"].create_index("user_id", unique=True)
    db["users"].create_index("phone", unique=True)
    db["users"].create_index("identity_verification.status")
    db["sessions"].create_index("session_id", unique=True)
    db["sessions"].create_index("user_id")


def _migration_20260301_02_session_ttl(db: Any) -> None:
    db["sessions"].create_index(
        "expires_at_dt",
        expireAfterSeconds=0,
        name="idx_sessions_expires_at_ttl",
    )


def _migration_20260315_01_artisan_profiles(db: Any) -> None:
    db["artisan_profiles"].create_index("profile_id", unique=True)
    db["artisan_profiles"].create_index("user_id", unique=True)


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20260301_01_identity_indexes", _migration_20260301_01_identity_indexes),
    ("20260301_02_session_ttl", _migration_20260301_02_session_ttl),
    ("20260315_01_artisan_profiles", _migration_20260315_01_artisan_profiles),
]


def apply_mongo_migrations(db: Any | None) -> list[str]:
    """Apply pending migrations to the given database handle."""
    if db is None:
        return []

    applied: list[str] = []
    try:
        migration_collection = db["schema_migrations"]
        migration_collection.create_index("migration_id", unique=True)

        for migration_id, migration_fn in MIGRATIONS:
            if migration_collection.find_one({"migration_id": migration_id}):
                continue
            migration_fn(db)
            migration_collection.insert_one(
                {
                    "migration_id": migration_id,
                    "applied_at": datetime.now(timezone.utc),
                    "correlation_id": CORRELATION_ID_CTX.get(),
                }
            )
            applied.append(migration_id)
    except PyMongoError:
        LOGGER.exception("mongo_migrations_failed")
        raise
    return applied
