"""
MongoDB connection management.

One client per process, reused across requests to avoid paying the
connection setup on every query.
"""

from __future__ import annotations

from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from zhquiz.config import Settings, get_settings

# Global connection pool (reused across requests)
_client: Optional[MongoClient] = None


def get_client(settings: Optional[Settings] = None) -> MongoClient:
    """
    Get the shared MongoDB client, creating it on first use.

    Raises:
        ValueError: if MONGO_URI is not configured
    """
    global _client

    if _client is not None:
        return _client

    settings = settings or get_settings()
    _client = MongoClient(
        settings.require_mongo_uri(),
        maxPoolSize=10,  # Connection pool size
        minPoolSize=1,   # Keep at least 1 connection alive
        maxIdleTimeMS=60000,  # Keep connections alive for 60 seconds
        serverSelectionTimeoutMS=5000,
    )
    return _client


def get_database(name: str, settings: Optional[Settings] = None) -> Database:
    """Get a database handle on the shared client."""
    return get_client(settings)[name]


def close_client() -> None:
    """Close the shared client (used by scripts on exit)."""
    global _client
    if _client is not None:
        _client.close()
        _client = None
