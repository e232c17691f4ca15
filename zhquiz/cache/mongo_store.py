"""
MongoDB-backed lexical cache store.

One collection per category, unique on entry. Upserts only ever `$set` the
fields a record supplies, which makes the field-wise merge a single atomic
document update per key: concurrent upserts of the same key serialize in
the server, upserts of different keys run independently.
"""

from __future__ import annotations

import logging
from typing import Optional

from pymongo import ASCENDING, UpdateOne
from pymongo.database import Database
from pymongo.errors import BulkWriteError

from zhquiz.cache.predicates import Predicate
from zhquiz.cache.store import LexicalStore, UpsertResult, validate_batch
from zhquiz.config import get_settings
from zhquiz.mongo import get_database
from zhquiz.schemas import Category, supplied_fields

logger = logging.getLogger(__name__)


class MongoLexicalStore(LexicalStore):
    """Lexical cache kept in a MongoDB database."""

    def __init__(self, db: Optional[Database] = None):
        if db is None:
            db = get_database(get_settings().cache_db_name)
        self._db = db
        self._indexed: set[Category] = set()

    def _collection(self, category: Category):
        category = Category(category)
        collection = self._db[category.value]
        if category not in self._indexed:
            collection.create_index([("entry", ASCENDING)], unique=True)
            collection.create_index([("alt", ASCENDING)])
            collection.create_index([("level", ASCENDING)])
            self._indexed.add(category)
        return collection

    def upsert_many(self, category, records):
        category = Category(category)
        result = UpsertResult()
        valid = validate_batch(category, records, result)
        if not valid:
            return result

        # Unordered bulk writes may apply in any order, so records for the
        # same entry are folded into a single $set first.
        updates: dict[str, dict] = {}
        for record in valid:
            updates.setdefault(record.entry, {}).update(supplied_fields(record))

        ops = [
            UpdateOne({"entry": entry}, {"$set": fields}, upsert=True)
            for entry, fields in updates.items()
        ]

        try:
            bulk = self._collection(category).bulk_write(ops, ordered=False)
        except BulkWriteError as e:
            # Two inserts of the same unseen key may race on the unique
            # index; the loser is retried as a plain update.
            details = e.details or {}
            retry = [ops[err["index"]] for err in details.get("writeErrors", []) if err.get("code") == 11000]
            if len(retry) != len(details.get("writeErrors", [])):
                raise
            result.inserted += details.get("nUpserted", 0)
            result.updated += details.get("nModified", 0)
            bulk = self._collection(category).bulk_write(retry, ordered=False)

        result.inserted += bulk.upserted_count
        result.updated += bulk.modified_count
        logger.debug(
            "Upserted %s records: %d inserted, %d updated, %d rejected",
            category.value, result.inserted, result.updated, len(result.rejected)
        )
        return result

    def find(self, category, predicate: Predicate):
        return list(self._collection(category).find(predicate.to_mongo(), {"_id": 0}))

    def count(self, category):
        return self._collection(category).count_documents({})

    def reset(self, category=None):
        categories = [Category(category)] if category else list(Category)
        for c in categories:
            self._db.drop_collection(c.value)
            self._indexed.discard(c)
