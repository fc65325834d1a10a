#!/usr/bin/env python3
"""One-shot migration of the JSON fallback store into MongoDB."""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pymongo
from pymongo.errors import PyMongoError
from pydantic import BaseModel, ValidationError

from artisanhub.auth.models import SessionRecord, User
from artisanhub.core.mongo_migrations import apply_mongo_migrations
from artisanhub.users.models import ArtisanProfile

DEFAULT_STORE_DIR = Path("runtime") / "store"
DEFAULT_DB_NAME = "artisanhub"
MAX_PREVIEW_ITEMS = 10

# file name -> (collection, key field, model)
COLLECTIONS: dict[str, tuple[str, str, type[BaseModel]]] = {
    "users.json": ("users", "user_id", User),
    "sessions.json": ("sessions", "session_id", SessionRecord),
    "artisan_profiles.json": ("artisan_profiles", "profile_id", ArtisanProfile),
}


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Check and migrate fallback JSON collections to MongoDB."
    )
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=DEFAULT_STORE_DIR,
        help="Directory holding users.json, sessions.json and artisan_profiles.json.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only print missing/extra keys and do not write into MongoDB.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print migration plan without writing into MongoDB.",
    )
    return parser.parse_args()


def _load_rows(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"Expected list in {path}, got {type(payload).__name__}")
    return [item for item in payload if isinstance(item, dict)]


def _validate_rows(
    rows: list[dict[str, Any]], key: str, model: type[BaseModel]
) -> tuple[dict[str, dict[str, Any]], int]:
    """Validate rows against the persisted model; later duplicates win."""
    valid: dict[str, dict[str, Any]] = {}
    invalid_count = 0
    for row in rows:
        try:
            doc = model.model_validate(row).model_dump(mode="json")
        except ValidationError:
            invalid_count += 1
            continue
        valid[str(doc[key])] = doc
    return valid, invalid_count


def _print_preview(label: str, keys: list[str]) -> None:
    print(f"{label}: {len(keys)}")
    if keys:
        print(f"{label} preview: {', '.join(keys[:MAX_PREVIEW_ITEMS])}")


def _migrate_collection(
    db: Any, store_dir: Path, file_name: str, *, check: bool, dry_run: bool
) -> None:
    collection_name, key, model = COLLECTIONS[file_name]
    source_rows = _load_rows(store_dir / file_name)
    source, invalid_count = _validate_rows(source_rows, key, model)
    collection = db[collection_name]
    target_keys = {str(row.get(key, "")) for row in collection.find({}, {"_id": 0, key: 1})}

    print(f"[{collection_name}] source rows: {len(source_rows)}, valid: {len(source)}")
    print(f"[{collection_name}] invalid rows skipped: {invalid_count}")
    missing = sorted(set(source) - target_keys)
    if check:
        _print_preview(f"[{collection_name}] missing in target", missing)
        _print_preview(f"[{collection_name}] extra in target", sorted(target_keys - set(source)))
        return

    if not dry_run:
        for doc_key, doc in source.items():
            if collection_name == "sessions":
                doc["expires_at_dt"] = datetime.fromtimestamp(doc["expires_at"], timezone.utc)
            collection.update_one({key: doc_key}, {"$set": doc}, upsert=True)
    print(f"[{collection_name}] potentially inserted: {len(missing)}")


def main() -> int:
    """Execute check or migration flow."""
    args = _parse_args()
    mongo_uri = os.getenv("MONGODB_URI", "").strip()
    mongo_db = os.getenv("MONGODB_DB", DEFAULT_DB_NAME).strip() or DEFAULT_DB_NAME
    if not mongo_uri:
        print("ERROR: MONGODB_URI is empty. Set env var before running script.", file=sys.stderr)
        return 1

    client = None
    try:
        client = pymongo.MongoClient(mongo_uri, serverSelectionTimeoutMS=5000)
        client.admin.command("ping")
        db = client[mongo_db]
        if not args.check and not args.dry_run:
            apply_mongo_migrations(db)
        for file_name in COLLECTIONS:
            _migrate_collection(
                db, args.store_dir, file_name, check=args.check, dry_run=args.dry_run
            )
        print(f"Mode: {'check' if args.check else 'dry-run' if args.dry_run else 'write'}")
        return 0
    except (PyMongoError, OSError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if client is not None:
            client.close()


if __name__ == "__main__":
    raise SystemExit(main())
