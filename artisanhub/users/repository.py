"""Artisan profile repository with MongoDB primary and file-store fallback."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pymongo.errors import DuplicateKeyError

from artisanhub.core.file_store import JsonCollection
from artisanhub.users.models import ArtisanProfile


class DuplicateProfileError(Exception):
    """Raised when the user already owns an artisan profile."""


class ArtisanProfileRepository:
    """One profile per user, enforced by a unique index or the file lock."""

    def __init__(self, app_root: Path, db: Any | None = None) -> None:
        """Initialize repository storage backends."""
        self._mongo_profiles = db["artisan_profiles"] if db is not None else None
        self._file = JsonCollection(app_root / "runtime" / "store" / "artisan_profiles.json")

    def get(self, profile_id: str) -> ArtisanProfile | None:
        if self._mongo_profiles is not None:
            doc = self._mongo_profiles.find_one({"profile_id": profile_id}, {"_id": 0})
            return ArtisanProfile.model_validate(doc) if doc else None

        for row in self._file.read():
            if row.get("profile_id") == profile_id:
                return ArtisanProfile.model_validate(row)
        return None

    def get_by_user(self, user_id: str) -> ArtisanProfile | None:
        if self._mongo_profiles is not None:
            doc = self._mongo_profiles.find_one({"user_id": user_id}, {"_id": 0})
            return ArtisanProfile.model_validate(doc) if doc else None

        for row in self._file.read():
            if row.get("user_id") == user_id:
                return ArtisanProfile.model_validate(row)
        return None

    def insert(self, profile: ArtisanProfile) -> None:
        doc = profile.model_dump()
        if self._mongo_profiles is not None:
            try:
                self._mongo_profiles.insert_one(dict(doc))
            except DuplicateKeyError as exc:
                raise DuplicateProfileError(profile.user_id) from exc
            return

        with self._file.locked() as rows:
            if any(row.get("user_id") == profile.user_id for row in rows):
                raise DuplicateProfileError(profile.user_id)
            rows.append(doc)

    def replace(self, profile: ArtisanProfile) -> bool:
        doc = profile.model_dump()
        if self._mongo_profiles is not None:
            result = self._mongo_profiles.replace_one({"profile_id": profile.profile_id}, doc)
            return result.matched_count == 1

        with self._file.locked() as rows:
            for index, row in enumerate(rows):
                if row.get("profile_id") == profile.profile_id:
                    rows[index] = doc
                    return True
        return False
