"""
Local-first lexical cache.

Quick start:
    from zhquiz.cache import MemoryLexicalStore, by_key_set
    from zhquiz.schemas import Category

    store = MemoryLexicalStore()
    store.upsert_many(Category.VOCAB, [{"entry": "你好", "reading": ["nǐ hǎo"]}])
    store.find(Category.VOCAB, by_key_set(["你好"]))
"""

from zhquiz.cache.merge import make_placeholder, merge_record
from zhquiz.cache.mongo_store import MongoLexicalStore
from zhquiz.cache.predicates import (
    Predicate,
    all_of,
    by_key_set,
    by_key_set_excluding,
    by_level_range,
    contains_substring,
    has_fields,
)
from zhquiz.cache.store import LexicalStore, MemoryLexicalStore, UpsertResult


__all__ = [
    # Stores
    "LexicalStore",
    "MemoryLexicalStore",
    "MongoLexicalStore",
    "UpsertResult",

    # Merging
    "merge_record",
    "make_placeholder",

    # Predicates
    "Predicate",
    "all_of",
    "by_key_set",
    "by_key_set_excluding",
    "by_level_range",
    "contains_substring",
    "has_fields",
]
