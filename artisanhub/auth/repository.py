"""Repositories for users (credential store) and refresh-token sessions."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from artisanhub.auth.models import Role, SessionRecord, User, VerificationStatus
from artisanhub.core.file_store import JsonCollection


class DuplicateUserError(Exception):
    """Raised when a user with the same phone or id already exists."""


def _store_dir(app_root: Path) -> Path:
    return app_root / "runtime" / "store"


class UserRepository:
    """User repository with MongoDB primary and file-store fallback.

    Updates use optimistic versioning: ``compare_and_set`` only writes when the
    stored ``version`` still equals the version the caller read.
    """

    def __init__(self, app_root: Path, db: Any | None = None) -> None:
        """Initialize repository storage backends."""
        self._mongo_users = db["users"] if db is not None else None
        self._file = JsonCollection(_store_dir(app_root) / "users.json")

    def get_by_id(self, user_id: str) -> User | None:
        if self._mongo_users is not None:
            doc = self._mongo_users.find_one({"user_id": user_id}, {"_id": 0})
            return User.model_validate(doc) if doc else None

        for row in self._file.read():
            if row.get("user_id") == user_id:
                return User.model_validate(row)
        return None

    def get_by_phone(self, phone: str) -> User | None:
        key = phone.strip()
        if self._mongo_users is not None:
            doc = self._mongo_users.find_one({"phone": key}, {"_id": 0})
            return User.model_validate(doc) if doc else None

        for row in self._file.read():
            if row.get("phone") == key:
                return User.model_validate(row)
        return None

    def insert(self, user: User) -> None:
        """Insert a new user, enforcing unique id and phone."""
        doc = user.model_dump(mode="json")
        if self._mongo_users is not None:
            try:
                self._mongo_users.insert_one(dict(doc))
            except DuplicateKeyError as exc:
                raise DuplicateUserError(user.phone) from exc
            return

        with self._file.locked() as rows:
            if any(r.get("phone") == user.phone or r.get("user_id") == user.user_id for r in rows):
                raise DuplicateUserError(user.phone)
            rows.append(doc)

    def compare_and_set(self, user: User, expected_version: int) -> User | None:
        """Persist ``user`` if the stored version matches; return the saved copy."""
        saved = user.model_copy(update={"version": expected_version + 1})
        doc = saved.model_dump(mode="json")
        if self._mongo_users is not None:
            result = self._mongo_users.find_one_and_replace(
                {"user_id": user.user_id, "version": expected_version},
                doc,
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
            return User.model_validate(result) if result else None

        with self._file.locked() as rows:
            for index, row in enumerate(rows):
                if row.get("user_id") != user.user_id:
                    continue
                if int(row.get("version", 0)) != expected_version:
                    return None
                rows[index] = doc
                return saved
        return None

    def delete(self, user_id: str) -> bool:
        if self._mongo_users is not None:
            return self._mongo_users.delete_one({"user_id": user_id}).deleted_count > 0

        with self._file.locked() as rows:
            before = len(rows)
            rows[:] = [row for row in rows if row.get("user_id") != user_id]
            return len(rows) < before

    def search(self, query: str, limit: int = 20) -> list[User]:
        """Case-insensitive substring search over name and phone."""
        needle = query.strip()
        if self._mongo_users is not None:
            pattern = re.escape(needle)
            cursor = self._mongo_users.find(
                {
                    "$or": [
                        {"name": {"$regex": pattern, "$options": "i"}},
                        {"phone": {"$regex": pattern}},
                    ]
                },
                {"_id": 0},
            ).limit(limit)
            return [User.model_validate(doc) for doc in cursor]

        lowered = needle.lower()
        found = [
            User.model_validate(row)
            for row in self._file.read()
            if lowered in str(row.get("name", "")).lower() or needle in str(row.get("phone", ""))
        ]
        return found[:limit]

    def list_for_review(
        self, statuses: Iterable[VerificationStatus], roles: Iterable[Role]
    ) -> list[User]:
        """List unverified users of ``roles`` whose verification is in ``statuses``."""
        status_values = [str(s) for s in statuses]
        role_values = [str(r) for r in roles]
        if self._mongo_users is not None:
            cursor = self._mongo_users.find(
                {
                    "identity_verification.status": {"$in": status_values},
                    "role": {"$in": role_values},
                    "is_identity_verified": False,
                },
                {"_id": 0},
            )
            return [User.model_validate(doc) for doc in cursor]

        return [
            User.model_validate(row)
            for row in self._file.read()
            if row.get("role") in role_values
            and not row.get("is_identity_verified")
            and (row.get("identity_verification") or {}).get("status") in status_values
        ]


class SessionRepository:
    """Refresh-token sessions keyed by session id, separate from users."""

    def __init__(self, app_root: Path, db: Any | None = None) -> None:
        """Initialize repository storage backends."""
        self._mongo_sessions = db["sessions"] if db is not None else None
        self._file = JsonCollection(_store_dir(app_root) / "sessions.json")

    def save(self, record: SessionRecord) -> None:
        doc = record.model_dump()
        if self._mongo_sessions is not None:
            mongo_doc = dict(doc)
            mongo_doc["expires_at_dt"] = datetime.fromtimestamp(record.expires_at, timezone.utc)
            self._mongo_sessions.update_one(
                {"session_id": record.session_id}, {"$set": mongo_doc}, upsert=True
            )
            return

        with self._file.locked() as rows:
            rows[:] = [row for row in rows if row.get("session_id") != record.session_id]
            rows.append(doc)

    def get(self, session_id: str) -> SessionRecord | None:
        if self._mongo_sessions is not None:
            doc = self._mongo_sessions.find_one(
                {"session_id": session_id}, {"_id": 0, "expires_at_dt": 0}
            )
            return SessionRecord.model_validate(doc) if doc else None

        for row in self._file.read():
            if row.get("session_id") == session_id:
                return SessionRecord.model_validate(row)
        return None

    def revoke_if_active(self, session_id: str) -> bool:
        """Atomically flip ``revoked`` from false to true; report whether it flipped."""
        if self._mongo_sessions is not None:
            result = self._mongo_sessions.update_one(
                {"session_id": session_id, "revoked": False}, {"$set": {"revoked": True}}
            )
            return result.modified_count == 1

        with self._file.locked() as rows:
            for row in rows:
                if row.get("session_id") == session_id and not row.get("revoked"):
                    row["revoked"] = True
                    return True
        return False

    def delete(self, session_id: str) -> None:
        if self._mongo_sessions is not None:
            self._mongo_sessions.delete_one({"session_id": session_id})
            return

        with self._file.locked() as rows:
            rows[:] = [row for row in rows if row.get("session_id") != session_id]

    def revoke_all(self, user_id: str) -> int:
        if self._mongo_sessions is not None:
            result = self._mongo_sessions.update_many(
                {"user_id": user_id, "revoked": False}, {"$set": {"revoked": True}}
            )
            return int(result.modified_count)

        count = 0
        with self._file.locked() as rows:
            for row in rows:
                if row.get("user_id") == user_id and not row.get("revoked"):
                    row["revoked"] = True
                    count += 1
        return count

    def list_active(self, user_id: str, now: int) -> list[SessionRecord]:
        if self._mongo_sessions is not None:
            cursor = self._mongo_sessions.find(
                {"user_id": user_id, "revoked": False, "expires_at": {"$gt": now}},
                {"_id": 0, "expires_at_dt": 0},
            )
            return [SessionRecord.model_validate(doc) for doc in cursor]

        return [
            SessionRecord.model_validate(row)
            for row in self._file.read()
            if row.get("user_id") == user_id
            and not row.get("revoked")
            and int(row.get("expires_at", 0)) > now
        ]

    def delete_expired(self, now: int) -> int:
        """Remove revoked or expired sessions."""
        if self._mongo_sessions is not None:
            result = self._mongo_sessions.delete_many(
                {"$or": [{"revoked": True}, {"expires_at": {"$lte": now}}]}
            )
            return int(result.deleted_count)

        with self._file.locked() as rows:
            before = len(rows)
            rows[:] = [
                row
                for row in rows
                if not row.get("revoked") and int(row.get("expires_at", 0)) > now
            ]
            return before - len(rows)
