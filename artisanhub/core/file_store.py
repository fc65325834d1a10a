"""JSON-file document collections used when MongoDB is not configured."""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import Any, Iterator

_LOCKS: dict[Path, RLock] = {}
_LOCKS_GUARD = RLock()


def _lock_for(path: Path) -> RLock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(path)
        if lock is None:
            lock = RLock()
            _LOCKS[path] = lock
        return lock


class JsonCollection:
    """List-of-documents JSON file guarded by a process-wide lock per path."""

    def __init__(self, path: Path) -> None:
        self.path = path.resolve()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = _lock_for(self.path)

    @contextmanager
    def locked(self) -> Iterator[list[dict[str, Any]]]:
        """Yield the current rows and persist them when the block exits cleanly."""
        with self._lock:
            rows = self.read()
            yield rows
            self._write(rows)

    def read(self) -> list[dict[str, Any]]:
        """Read list payload from JSON file with empty fallback."""
        with self._lock:
            if not self.path.exists():
                return []
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                return []
            return payload if isinstance(payload, list) else []

    def _write(self, rows: list[dict[str, Any]]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(rows, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
