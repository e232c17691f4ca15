"""
Remote lexical source.

The reconciler only needs `fetch` (batch lookup by key) and `search`
(substring lookup). MongoRemoteSource answers both from the shared
dictionary database: lexical items live in the `item` collection tagged
with their category, character decompositions in the `token` collection.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol, Sequence

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from zhquiz.cache.predicates import by_key_set_excluding, contains_substring
from zhquiz.config import get_settings
from zhquiz.errors import RemoteFetchError
from zhquiz.mongo import get_database
from zhquiz.schemas import Category

logger = logging.getLogger(__name__)

ITEM_COLLECTION = "item"
TOKEN_COLLECTION = "token"


class RemoteSource(Protocol):
    """What the reconciler needs from a remote lexical source."""

    def fetch(
        self,
        category: Category,
        keys: Sequence[str],
        fields: Sequence[str],
        exclude: Sequence[str] = (),
        include_alt: bool = False
    ) -> list[dict]:
        """
        Records for the given keys.

        `exclude` lists entries the caller already holds; a source may use it
        to skip work, but does not have to.
        """
        ...

    def search(
        self,
        category: Category,
        q: str,
        fields: Sequence[str],
        exclude: Sequence[str] = (),
        limit: Optional[int] = None
    ) -> list[dict]:
        """Records whose entry or alternate forms contain q."""
        ...


def _projection(fields: Iterable[str]) -> dict:
    projection = {"_id": 0, "entry": 1, "frequency": 1}
    for f in fields:
        projection[f] = 1
    return projection


class MongoRemoteSource:
    """Remote source reading the shared dictionary database."""

    def __init__(self, db: Optional[Database] = None):
        if db is None:
            db = get_database(get_settings().db_name)
        self._db = db

    def _collection_and_scope(self, category: Category):
        category = Category(category)
        if category is Category.TOKEN:
            return self._db[TOKEN_COLLECTION], None
        return self._db[ITEM_COLLECTION], {"type": category.value}

    def fetch(self, category, keys, fields, exclude=(), include_alt=False):
        if not keys:
            return []

        collection, scope = self._collection_and_scope(category)
        cond = by_key_set_excluding(keys, exclude, include_alt=include_alt).to_mongo()
        if scope:
            cond = {"$and": [scope, cond]}

        logger.debug("Fetching %d %s keys from remote", len(keys), Category(category).value)
        try:
            return list(collection.find(cond, _projection(fields)))
        except PyMongoError as e:
            raise RemoteFetchError(f"remote fetch for {Category(category).value} failed: {e}") from e

    def search(self, category, q, fields, exclude=(), limit=None):
        # pymongo reads limit(0) as "no limit"
        if limit == 0:
            return []

        collection, scope = self._collection_and_scope(category)
        cond = contains_substring(q).to_mongo()
        if exclude:
            cond = {"$and": [cond, {"entry": {"$nin": sorted(exclude)}}]}
        if scope:
            cond = {"$and": [scope, cond]}

        try:
            cursor = collection.find(cond, _projection(fields)).sort(
                [("frequency", DESCENDING), ("entry", ASCENDING)]
            )
            if limit is not None:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            raise RemoteFetchError(f"remote search for {Category(category).value} failed: {e}") from e
