"""
Field-wise record merging.

A merge never replaces a whole record: only the fields the incoming record
explicitly supplies are written, so anything cached earlier (readings from
one request, translations from another) survives later fetches.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from zhquiz.schemas import CachedRecord, supplied_fields


def merge_record(
    cached: Optional[Mapping[str, Any]],
    incoming: CachedRecord
) -> dict[str, Any]:
    """
    Merge a validated incoming record into a cached one.

    Args:
        cached: Current cached record, or None if the key is unseen
        incoming: Validated record from the remote source

    Returns:
        New record dict; the cached mapping is not modified
    """
    merged = dict(cached) if cached else {}
    merged.update(supplied_fields(incoming))
    return merged


def changed_fields(cached: Optional[Mapping[str, Any]], merged: Mapping[str, Any]) -> set[str]:
    """Names of the fields whose value differs after a merge."""
    if not cached:
        return set(merged)
    return {k for k, v in merged.items() if cached.get(k) != v}


def make_placeholder(
    entry: str,
    list_fields: Iterable[str],
    cached: Optional[Mapping[str, Any]] = None
) -> dict[str, Any]:
    """
    Build a placeholder for a key the remote source had nothing for.

    Requested list fields become empty lists so the next identical request
    sees them as fetched. Fields the cache already holds are left out, so a
    placeholder can never erase cached data.
    """
    placeholder: dict[str, Any] = {"entry": entry}
    for field in list_fields:
        if cached is None or cached.get(field) is None:
            placeholder[field] = []
    return placeholder
