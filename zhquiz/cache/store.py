"""
Lexical cache store.

Holds one collection of cached records per category. Records are unique by
entry within a category; upserts merge field-wise (see merge.py). Ordering of
find() results is not defined here, callers sort (see query.py).
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel

from zhquiz.cache.merge import changed_fields, merge_record
from zhquiz.cache.predicates import And, ByKeySet, ByKeySetExcluding, ByLevelRange, Predicate
from zhquiz.errors import RecordValidationError
from zhquiz.schemas import Category, CachedRecord, validate_record

logger = logging.getLogger(__name__)

RecordInput = Union[Mapping[str, Any], BaseModel]


@dataclass
class UpsertResult:
    """Outcome of an upsert batch."""
    inserted: int = 0
    updated: int = 0
    rejected: list[RecordValidationError] = field(default_factory=list)


def validate_batch(
    category: Category,
    records: Iterable[RecordInput],
    result: UpsertResult
) -> list[CachedRecord]:
    """
    Validate a batch, dropping (and logging) records that fail.

    Later records for the same entry win over earlier ones field-wise, the
    same as if they had been upserted one after another.
    """
    valid: list[CachedRecord] = []
    for raw in records:
        try:
            valid.append(validate_record(category, raw))
        except RecordValidationError as e:
            logger.warning("Dropping %s record %r: %s", category.value, e.entry, e.reason)
            result.rejected.append(e)
    return valid


class LexicalStore(ABC):
    """Interface of a lexical cache store."""

    @abstractmethod
    def upsert_many(self, category: Category, records: Iterable[RecordInput]) -> UpsertResult:
        """Insert unseen keys and merge supplied fields into seen ones."""

    @abstractmethod
    def find(self, category: Category, predicate: Predicate) -> list[dict]:
        """All cached records of a category matching the predicate, unordered."""

    @abstractmethod
    def count(self, category: Category) -> int:
        """Number of cached records in a category."""

    @abstractmethod
    def reset(self, category: Optional[Category] = None) -> None:
        """Drop every cached record of one category, or of all of them."""


class MemoryLexicalStore(LexicalStore):
    """
    In-process cache store.

    Keeps a unique entry index per category plus secondary indices on alt
    forms and levels, which narrow key-set and level-range lookups before the
    predicate is evaluated.
    """

    def __init__(self):
        self._records: dict[Category, dict[str, dict]] = defaultdict(dict)
        self._alt_index: dict[Category, dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
        self._level_index: dict[Category, dict[int, set[str]]] = defaultdict(lambda: defaultdict(set))
        self._lock = threading.RLock()

    # ---- Writes ----

    def upsert_many(self, category, records):
        category = Category(category)
        result = UpsertResult()
        valid = validate_batch(category, records, result)

        with self._lock:
            collection = self._records[category]
            for record in valid:
                cached = collection.get(record.entry)
                merged = merge_record(cached, record)
                if cached is None:
                    result.inserted += 1
                elif changed_fields(cached, merged):
                    result.updated += 1
                else:
                    continue
                self._unindex(category, cached)
                collection[record.entry] = merged
                self._index(category, merged)

        return result

    def reset(self, category=None):
        with self._lock:
            categories = [Category(category)] if category else list(self._records)
            for c in categories:
                self._records.pop(c, None)
                self._alt_index.pop(c, None)
                self._level_index.pop(c, None)

    # ---- Reads ----

    def find(self, category, predicate):
        category = Category(category)
        with self._lock:
            collection = self._records.get(category, {})
            candidates = self._candidates(category, predicate)
            if candidates is None:
                records = collection.values()
            else:
                records = (collection[e] for e in candidates if e in collection)
            return [copy.deepcopy(r) for r in records if predicate.matches(r)]

    def count(self, category):
        with self._lock:
            return len(self._records.get(Category(category), {}))

    # ---- Indices ----

    def _index(self, category: Category, record: Mapping[str, Any]) -> None:
        entry = record["entry"]
        for alt in record.get("alt") or []:
            self._alt_index[category][alt].add(entry)
        if record.get("level") is not None:
            self._level_index[category][record["level"]].add(entry)

    def _unindex(self, category: Category, record: Optional[Mapping[str, Any]]) -> None:
        if not record:
            return
        entry = record["entry"]
        for alt in record.get("alt") or []:
            self._alt_index[category][alt].discard(entry)
        if record.get("level") is not None:
            self._level_index[category][record["level"]].discard(entry)

    def _candidates(self, category: Category, predicate: Predicate) -> Optional[set[str]]:
        """
        Entries that can possibly match, or None when no index applies.

        For a conjunction the narrowest indexed clause is used.
        """
        if isinstance(predicate, And):
            narrowed = [self._candidates(category, c) for c in predicate.clauses]
            narrowed = [n for n in narrowed if n is not None]
            return min(narrowed, key=len) if narrowed else None

        if isinstance(predicate, (ByKeySet, ByKeySetExcluding)):
            entries = set(predicate.keys)
            if predicate.include_alt:
                alt_index = self._alt_index.get(category, {})
                for key in predicate.keys:
                    entries |= alt_index.get(key, set())
            return entries

        if isinstance(predicate, ByLevelRange):
            level_index = self._level_index.get(category, {})
            entries: set[str] = set()
            for level, members in level_index.items():
                if predicate.level_min <= level <= predicate.level_max:
                    entries |= members
            return entries

        return None
