"""
Reconciliation of lexical lookups against the local cache.

Every lexical category follows the same flow:

1. Look the requested keys up in the cache
2. Work out which keys are missing (or lack a requested field)
3. Fetch exactly those keys from the remote source
4. Merge the results (plus placeholders for keys the remote had nothing
   for) into the cache, field-wise
5. Answer from the cache with the same predicate used in step 1

Step 5 always runs against the post-merge cache, so callers never see a mix
of old and new data. If the remote fetch fails nothing is written.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from zhquiz.cache.merge import make_placeholder
from zhquiz.cache.predicates import Predicate, by_key_set
from zhquiz.cache.store import LexicalStore
from zhquiz.errors import RemoteFetchError
from zhquiz.query import (
    UNLIMITED,
    Strategy,
    build_predicate,
    covered_keys,
    order_and_limit,
    project,
    resolve_limit,
    split_query,
)
from zhquiz.remote import RemoteSource
from zhquiz.schemas import HAN_RE, Category

logger = logging.getLogger(__name__)

LEXICAL_LIST_FIELDS = ("alt", "reading", "translation")
TOKEN_LIST_FIELDS = ("sub", "sup", "variants")


@dataclass(frozen=True)
class CategorySpec:
    """
    How one category is reconciled.

    list_fields are the fields a placeholder fills with empty lists;
    default_fields are selected when the caller does not say.
    """
    category: Category
    list_fields: tuple[str, ...]
    default_fields: tuple[str, ...]

    def required_fields(self, fields: Sequence[str]) -> tuple[str, ...]:
        """
        Selected fields a cached record must hold to count as known.

        Only list fields qualify: they are the ones a placeholder can mark
        as fetched-but-empty.
        """
        return tuple(f for f in fields if f in self.list_fields)


CATEGORY_SPECS: dict[Category, CategorySpec] = {
    c: CategorySpec(c, LEXICAL_LIST_FIELDS, ("entry",) + LEXICAL_LIST_FIELDS)
    for c in (Category.HANZI, Category.VOCAB, Category.SENTENCE, Category.EXTRA)
}
CATEGORY_SPECS[Category.TOKEN] = CategorySpec(
    Category.TOKEN, TOKEN_LIST_FIELDS, ("entry",) + TOKEN_LIST_FIELDS
)


def extract_han(text: str) -> list[str]:
    """Distinct Han characters of a text, in order of appearance."""
    chars: list[str] = []
    for c in HAN_RE.findall(text or ""):
        if c not in chars:
            chars.append(c)
    return chars


class Reconciler:
    """
    Answers lexical queries local-first.

    The lock is held from the moment remote results are in hand until the
    post-merge answer has been read, so no other call can observe (or
    interleave with) a half-merged cache.
    """

    def __init__(
        self,
        store: LexicalStore,
        remote: RemoteSource,
        specs: Optional[Mapping[Category, CategorySpec]] = None
    ):
        self._store = store
        self._remote = remote
        self._specs = dict(specs or CATEGORY_SPECS)
        self._lock = threading.RLock()

    def _spec(self, category: Category) -> CategorySpec:
        try:
            return self._specs[Category(category)]
        except KeyError:
            raise ValueError(f"no reconciliation configured for category {category!r}")

    # ---- Batch lookup ----

    def lookup(
        self,
        category: Category,
        keys: Union[str, Iterable[str]],
        fields: Optional[Sequence[str]] = None,
        strategy: Strategy = Strategy.MATCH,
        limit: Optional[int] = None
    ) -> list[dict]:
        """
        Look up a batch of entry keys.

        Args:
            category: Lexical category
            keys: Entry keys (list, or one space-separated string)
            fields: Fields to select (defaults to the category's defaults)
            strategy: MATCH or ALT
            limit: None for the default page size, UNLIMITED for all

        Returns:
            Selected fields of the matching records, most frequent first

        Raises:
            RemoteFetchError: if the remote source failed (cache untouched)
        """
        category = Category(category)
        strategy = Strategy(strategy)
        if strategy is Strategy.CONTAINS:
            raise ValueError("contains is a free-text search; use search()")

        spec = self._spec(category)
        requested = split_query(keys)
        if not requested:
            return []

        fields = tuple(fields or spec.default_fields)
        predicate = build_predicate(strategy, requested, spec.required_fields(fields))

        local = self._store.find(category, predicate)
        known = covered_keys(strategy, local, requested)
        missing = [k for k in requested if k not in known]

        if not missing:
            logger.debug("Cache hit for %d %s keys", len(requested), category.value)
            return self._answer(category, predicate, fields, limit)

        fetched = self._fetch(
            category,
            sorted(missing),
            fields,
            exclude=sorted(known),
            include_alt=strategy is Strategy.ALT
        )

        with self._lock:
            answered = covered_keys(strategy, fetched, missing)
            unanswered = [k for k in missing if k not in answered]
            if unanswered:
                logger.debug(
                    "Remote had nothing for %d %s keys; caching placeholders",
                    len(unanswered), category.value
                )
            self._merge(category, spec, fields, fetched, unanswered)
            return self._answer(category, predicate, fields, limit)

    def lookup_tokens(self, text: str, fields: Optional[Sequence[str]] = None) -> list[dict]:
        """Token data for every distinct Han character of a text."""
        chars = extract_han(text)
        if not chars:
            return []
        return self.lookup(Category.TOKEN, chars, fields=fields, limit=UNLIMITED)

    # ---- Free-text search ----

    def search(
        self,
        category: Category,
        q: str,
        fields: Optional[Sequence[str]] = None,
        limit: Optional[int] = None
    ) -> list[dict]:
        """
        Records whose entry or alternate forms contain q.

        The remote is always asked (the cache cannot know it holds every
        match), but only for entries the cache does not already have.
        """
        category = Category(category)
        spec = self._spec(category)
        q = (q or "").strip()
        if not q:
            return []

        fields = tuple(fields or spec.default_fields)
        predicate = build_predicate(Strategy.CONTAINS, q, spec.required_fields(fields))
        known = sorted({r["entry"] for r in self._store.find(category, predicate)})

        try:
            fetched = self._remote.search(
                category, q, self._remote_fields(fields), exclude=known, limit=resolve_limit(limit)
            )
        except RemoteFetchError:
            raise
        except Exception as e:
            raise RemoteFetchError(f"remote search for {category.value} failed: {e}") from e

        with self._lock:
            if fetched:
                self._merge(category, spec, fields, fetched, [])
            return self._answer(category, predicate, fields, limit)

    # ---- Internals ----

    @staticmethod
    def _remote_fields(fields: Sequence[str]) -> list[str]:
        return [f for f in fields if f != "entry"]

    def _fetch(
        self,
        category: Category,
        keys: list[str],
        fields: Sequence[str],
        exclude: list[str],
        include_alt: bool
    ) -> list[dict]:
        logger.debug("Fetching %d missing %s keys (%d known)", len(keys), category.value, len(exclude))
        try:
            return self._remote.fetch(
                category, keys, self._remote_fields(fields), exclude=exclude, include_alt=include_alt
            )
        except RemoteFetchError:
            raise
        except Exception as e:
            raise RemoteFetchError(f"remote fetch for {category.value} failed: {e}") from e

    def _merge(
        self,
        category: Category,
        spec: CategorySpec,
        fields: Sequence[str],
        fetched: list[dict],
        unanswered: list[str]
    ) -> None:
        """
        Upsert fetched records, preceded by placeholders.

        Placeholders cover unanswered keys and any requested list field a
        fetched record left out, so the next identical request is a cache
        hit. They only fill fields the cache does not hold yet, and the
        fetched records are merged after them, so real data always wins.
        """
        required = spec.required_fields(fields)
        entries: list[str] = []
        for e in unanswered + [r.get("entry") for r in fetched if isinstance(r, Mapping)]:
            if e and e not in entries:
                entries.append(e)

        placeholders: list[dict[str, Any]] = []
        if entries and required:
            existing = {r["entry"]: r for r in self._store.find(category, by_key_set(entries))}
            placeholders = [make_placeholder(e, required, existing.get(e)) for e in entries]
        elif unanswered:
            placeholders = [{"entry": e} for e in unanswered]

        result = self._store.upsert_many(category, placeholders + list(fetched))
        if result.rejected:
            logger.warning(
                "%d %s records rejected during merge", len(result.rejected), category.value
            )

    def _answer(
        self,
        category: Category,
        predicate: Predicate,
        fields: Sequence[str],
        limit: Optional[int]
    ) -> list[dict]:
        records = self._store.find(category, predicate)
        return [project(r, fields) for r in order_and_limit(records, limit)]
