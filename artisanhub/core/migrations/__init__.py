"""SQLite schema migrations for runtime state tables."""

from artisanhub.core.migrations.runner import (
    MIGRATIONS_DIR,
    apply_migrations,
    connect_state_db,
)

__all__ = ["MIGRATIONS_DIR", "apply_migrations", "connect_state_db"]
