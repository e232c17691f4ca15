from datetime import datetime, timezone

import pytest

from zhquiz.cache import MemoryLexicalStore, by_key_set_excluding, contains_substring
from zhquiz.query import UNLIMITED, order_and_limit
from zhquiz.schemas import Category
from zhquiz.srs import DEFAULT_POLICY, ReviewStore, SrsPolicy, get_engine


NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


VOCAB = [
    {"entry": "你好", "alt": [], "reading": ["nǐ hǎo"], "translation": ["hello"], "frequency": 9.0, "level": 1},
    {"entry": "再见", "alt": ["再見"], "reading": ["zài jiàn"], "translation": ["goodbye"], "frequency": 7.5, "level": 2},
    {"entry": "说话", "alt": ["說話"], "reading": ["shuō huà"], "translation": ["to speak"], "frequency": 6.0, "level": 3},
    {"entry": "好看", "reading": ["hǎo kàn"], "translation": ["good-looking"], "frequency": 5.0, "level": 4},
]

TOKENS = [
    {"entry": "你", "sub": ["亻", "尔"], "sup": ["您"], "variants": ["妳"]},
    {"entry": "好", "sub": ["女", "子"], "sup": [], "variants": []},
]


class FakeRemote:
    """Remote source over in-memory records that counts its calls."""

    def __init__(self, records=None):
        self.records = {
            Category(c): {r["entry"]: dict(r) for r in rs}
            for c, rs in (records or {}).items()
        }
        self.fetch_calls = []
        self.search_calls = []
        self.fail = None

    @staticmethod
    def _project(record, fields):
        keep = {"entry", "frequency", *fields}
        return {k: v for k, v in record.items() if k in keep}

    def fetch(self, category, keys, fields, exclude=(), include_alt=False):
        self.fetch_calls.append({
            "category": Category(category),
            "keys": list(keys),
            "fields": list(fields),
            "exclude": list(exclude),
            "include_alt": include_alt,
        })
        if self.fail:
            raise self.fail
        predicate = by_key_set_excluding(keys, exclude, include_alt=include_alt)
        return [
            self._project(r, fields)
            for r in self.records.get(Category(category), {}).values()
            if predicate.matches(r)
        ]

    def search(self, category, q, fields, exclude=(), limit=None):
        self.search_calls.append({
            "category": Category(category),
            "q": q,
            "exclude": list(exclude),
            "limit": limit,
        })
        if self.fail:
            raise self.fail
        predicate = contains_substring(q)
        found = [
            self._project(r, fields)
            for r in self.records.get(Category(category), {}).values()
            if predicate.matches(r) and r["entry"] not in exclude
        ]
        return order_and_limit(found, limit if limit is not None else UNLIMITED)


@pytest.fixture
def store():
    return MemoryLexicalStore()


@pytest.fixture
def remote():
    return FakeRemote({Category.VOCAB: VOCAB, Category.TOKEN: TOKENS})


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def reviews(clock):
    """Review store on in-memory SQLite."""
    review_store = ReviewStore(engine=get_engine("sqlite://"), policy=DEFAULT_POLICY, clock=clock)
    review_store.init_db()
    yield review_store
    review_store.engine.dispose()


@pytest.fixture
def short_policy():
    return SrsPolicy.from_hours([1, 24, 24 * 7])
