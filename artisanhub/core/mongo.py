"""MongoDB connection helper shared by document repositories."""

from __future__ import annotations

import logging
from typing import Any

import pymongo
from pymongo.errors import PyMongoError

LOGGER = logging.getLogger(__name__)

_CLIENTS: dict[str, Any] = {}


def open_database(mongo_uri: str, mongo_db: str) -> Any | None:
    """Return a pinged database handle, or ``None`` to use the file store."""
    if not mongo_uri:
        return None
    client = _CLIENTS.get(mongo_uri)
    try:
        if client is None:
            client = pymongo.MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
            client.admin.command("ping")
            _CLIENTS[mongo_uri] = client
    except PyMongoError:
        LOGGER.warning("mongo_unavailable_using_file_store")
        return None
    return client[mongo_db]
