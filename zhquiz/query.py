"""
Query strategies for lexical lookups.

The same predicate is used to check the local cache, to describe the gap to
the remote source, and to answer from the cache after merging, so local and
remote answers always share filtering and ordering.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from zhquiz.cache.predicates import (
    Predicate,
    all_of,
    by_key_set,
    contains_substring,
    has_fields,
)


# Configuration
DEFAULT_LIMIT = 10   # Page size when the caller gives no limit
UNLIMITED = -1       # Explicit "return everything"


class Strategy(str, Enum):
    """How requested keys are matched against cached records."""
    MATCH = "match"         # entry is one of the keys
    ALT = "alt"             # entry or any alternate form is one of the keys
    CONTAINS = "contains"   # entry or any alternate form contains the query


def split_query(q: Union[str, Iterable[str], None]) -> list[str]:
    """
    Normalize requested keys: split a space-separated string, drop blanks
    and repeats.
    """
    if q is None:
        return []
    parts = q.split(" ") if isinstance(q, str) else list(q)
    keys: list[str] = []
    for part in parts:
        part = part.strip()
        if part and part not in keys:
            keys.append(part)
    return keys


def build_predicate(
    strategy: Strategy,
    q: Union[str, Iterable[str]],
    required_fields: Sequence[str] = ()
) -> Predicate:
    """
    Build the filter for a strategy.

    Args:
        strategy: Matching strategy
        q: Keys for MATCH/ALT; the substring for CONTAINS
        required_fields: Only records with all of these fields fetched

    Returns:
        Predicate usable both on the cache store and (rendered) remotely
    """
    strategy = Strategy(strategy)
    if strategy is Strategy.CONTAINS:
        if not isinstance(q, str):
            raise TypeError("contains strategy takes a single query string")
        base = contains_substring(q)
    else:
        base = by_key_set(split_query(q), include_alt=strategy is Strategy.ALT)

    return all_of(base, has_fields(*required_fields))


def covered_keys(
    strategy: Strategy,
    records: Iterable[Mapping[str, Any]],
    requested: Iterable[str]
) -> set[str]:
    """Requested keys that the given records answer under the strategy."""
    requested = set(requested)
    covered: set[str] = set()
    for r in records:
        if r.get("entry") in requested:
            covered.add(r["entry"])
        if Strategy(strategy) is Strategy.ALT:
            covered.update(a for a in r.get("alt") or [] if a in requested)
    return covered


def sort_key(record: Mapping[str, Any]) -> tuple:
    """Descending frequency (missing last), then entry."""
    frequency = record.get("frequency")
    return (frequency is None, -(frequency or 0.0), record.get("entry") or "")


def resolve_limit(limit: Optional[int]) -> Optional[int]:
    """
    None means the default page size; UNLIMITED means no truncation.

    Returns:
        Number of records to keep, or None for all of them
    """
    if limit is None:
        return DEFAULT_LIMIT
    if limit == UNLIMITED:
        return None
    if limit < 0:
        raise ValueError(f"limit must be non-negative or {UNLIMITED}, got {limit}")
    return limit


def order_and_limit(
    records: Iterable[Mapping[str, Any]],
    limit: Optional[int] = None
) -> list[Mapping[str, Any]]:
    ordered = sorted(records, key=sort_key)
    keep = resolve_limit(limit)
    return ordered if keep is None else ordered[:keep]


def project(record: Mapping[str, Any], fields: Optional[Sequence[str]]) -> dict[str, Any]:
    """Pick the selected fields; entry is always included."""
    if not fields:
        return dict(record)
    selected = {"entry": record.get("entry")}
    for f in fields:
        selected[f] = record.get(f)
    return selected
