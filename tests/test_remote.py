"""
Tests for the MongoDB remote source.
"""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import PyMongoError

from zhquiz.errors import RemoteFetchError
from zhquiz.remote import MongoRemoteSource
from zhquiz.schemas import Category


@pytest.fixture
def cursor():
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.__iter__.return_value = iter([{"entry": "你好", "frequency": 9.0}])
    return cursor


@pytest.fixture
def collection(cursor):
    collection = MagicMock()
    collection.find.return_value = cursor
    return collection


@pytest.fixture
def source(collection):
    db = MagicMock()
    db.__getitem__.return_value = collection
    return MongoRemoteSource(db=db)


class TestSearch:

    def test_zero_limit_queries_nothing(self, source, collection):
        assert source.search(Category.VOCAB, "好", ["reading"], limit=0) == []
        collection.find.assert_not_called()

    def test_limit_is_applied(self, source, cursor):
        found = source.search(Category.VOCAB, "好", ["reading"], limit=3)

        assert found == [{"entry": "你好", "frequency": 9.0}]
        cursor.limit.assert_called_once_with(3)

    def test_no_limit(self, source, cursor):
        source.search(Category.VOCAB, "好", ["reading"])
        cursor.limit.assert_not_called()

    def test_scoped_to_category(self, source, collection):
        source.search(Category.VOCAB, "好", ["reading"], exclude=["你好"])

        cond, projection = collection.find.call_args[0]
        assert cond["$and"][0] == {"type": "vocab"}
        assert projection == {"_id": 0, "entry": 1, "frequency": 1, "reading": 1}

    def test_errors_are_wrapped(self, source, collection):
        collection.find.side_effect = PyMongoError("down")
        with pytest.raises(RemoteFetchError):
            source.search(Category.VOCAB, "好", ["reading"])


class TestFetch:

    def test_no_keys(self, source, collection):
        assert source.fetch(Category.VOCAB, [], ["reading"]) == []
        collection.find.assert_not_called()

    def test_excludes_known_entries(self, source, collection):
        collection.find.return_value = [{"entry": "再见"}]

        found = source.fetch(Category.VOCAB, ["再见"], ["reading"], exclude=["你好"])

        assert found == [{"entry": "再见"}]
        cond = collection.find.call_args[0][0]
        assert cond == {
            "$and": [
                {"type": "vocab"},
                {"$and": [{"entry": {"$in": ["再见"]}}, {"entry": {"$nin": ["你好"]}}]},
            ]
        }
