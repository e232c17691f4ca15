"""
Predicate shapes understood by the lexical cache.

The cache store only has to answer these few conditions, each of which can
be evaluated against an in-memory record or rendered as a MongoDB filter:

- by_key_set: entry (optionally, or any alt) is one of the keys
- by_key_set_excluding: same, minus an exclusion set
- contains_substring: entry or any alt contains the query
- by_level_range: level within an inclusive range
- has_fields: every listed field is present (fetched)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping


class Predicate:
    """Base class; subclasses are frozen dataclasses."""

    def matches(self, record: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def to_mongo(self) -> dict:
        raise NotImplementedError


def _alts(record: Mapping[str, Any]) -> list[str]:
    return record.get("alt") or []


@dataclass(frozen=True)
class ByKeySet(Predicate):
    keys: frozenset[str]
    include_alt: bool = False

    def matches(self, record):
        if record.get("entry") in self.keys:
            return True
        return self.include_alt and any(a in self.keys for a in _alts(record))

    def to_mongo(self):
        keys = sorted(self.keys)
        if self.include_alt:
            return {"$or": [{"entry": {"$in": keys}}, {"alt": {"$in": keys}}]}
        return {"entry": {"$in": keys}}


@dataclass(frozen=True)
class ByKeySetExcluding(Predicate):
    keys: frozenset[str]
    exclude: frozenset[str]
    include_alt: bool = False

    def matches(self, record):
        if record.get("entry") in self.exclude:
            return False
        return ByKeySet(self.keys, self.include_alt).matches(record)

    def to_mongo(self):
        base = ByKeySet(self.keys, self.include_alt).to_mongo()
        if not self.exclude:
            return base
        return {"$and": [base, {"entry": {"$nin": sorted(self.exclude)}}]}


@dataclass(frozen=True)
class ContainsSubstring(Predicate):
    q: str

    def matches(self, record):
        if self.q in (record.get("entry") or ""):
            return True
        return any(self.q in a for a in _alts(record))

    def to_mongo(self):
        pattern = re.escape(self.q)
        return {"$or": [{"entry": {"$regex": pattern}}, {"alt": {"$regex": pattern}}]}


@dataclass(frozen=True)
class ByLevelRange(Predicate):
    level_min: int
    level_max: int

    def matches(self, record):
        level = record.get("level")
        if level is None:
            return False
        return self.level_min <= level <= self.level_max

    def to_mongo(self):
        return {"level": {"$gte": self.level_min, "$lte": self.level_max}}


@dataclass(frozen=True)
class HasFields(Predicate):
    fields: tuple[str, ...]

    def matches(self, record):
        return all(record.get(f) is not None for f in self.fields)

    def to_mongo(self):
        return {f: {"$exists": True, "$ne": None} for f in self.fields}


@dataclass(frozen=True)
class And(Predicate):
    clauses: tuple[Predicate, ...]

    def matches(self, record):
        return all(c.matches(record) for c in self.clauses)

    def to_mongo(self):
        rendered = [c.to_mongo() for c in self.clauses]
        rendered = [r for r in rendered if r]
        if not rendered:
            return {}
        if len(rendered) == 1:
            return rendered[0]
        return {"$and": rendered}


# ---- Constructors ----

def by_key_set(keys: Iterable[str], include_alt: bool = False) -> ByKeySet:
    return ByKeySet(frozenset(keys), include_alt)


def by_key_set_excluding(
    keys: Iterable[str],
    exclude: Iterable[str],
    include_alt: bool = False
) -> ByKeySetExcluding:
    return ByKeySetExcluding(frozenset(keys), frozenset(exclude), include_alt)


def contains_substring(q: str) -> ContainsSubstring:
    return ContainsSubstring(q)


def by_level_range(level_min: int, level_max: int) -> ByLevelRange:
    if level_min > level_max:
        raise ValueError(f"empty level range [{level_min}, {level_max}]")
    return ByLevelRange(level_min, level_max)


def has_fields(*fields: str) -> HasFields:
    return HasFields(tuple(fields))


def all_of(*clauses: Predicate) -> Predicate:
    """Conjunction, flattening nested And and dropping empty field checks."""
    flat: list[Predicate] = []
    for c in clauses:
        if isinstance(c, And):
            flat.extend(c.clauses)
        elif isinstance(c, HasFields) and not c.fields:
            continue
        else:
            flat.append(c)
    if len(flat) == 1:
        return flat[0]
    return And(tuple(flat))
