"""
Tests for cached record validation.
"""

import pytest

from zhquiz.errors import RecordValidationError
from zhquiz.schemas import (
    Category,
    LexicalRecord,
    TokenRecord,
    model_for,
    supplied_fields,
    validate_record,
)


class TestLexicalRecord:

    def test_minimal_record(self):
        record = validate_record(Category.VOCAB, {"entry": "你好"})
        assert isinstance(record, LexicalRecord)
        assert record.reading is None

    def test_english_is_accepted_for_translation(self):
        record = validate_record(Category.VOCAB, {"entry": "你好", "english": ["hello"]})
        assert record.translation == ["hello"]

    def test_list_fields_are_deduplicated(self):
        record = validate_record(Category.HANZI, {"entry": "好", "reading": ["hǎo", "hào", "hǎo"]})
        assert record.reading == ["hǎo", "hào"]

    def test_unknown_fields_are_ignored(self):
        record = validate_record(Category.VOCAB, {"entry": "你好", "_id": "abc", "type": "vocab"})
        assert supplied_fields(record) == {"entry": "你好"}

    @pytest.mark.parametrize("data", [
        {"entry": ""},
        {"entry": "   "},
        {"reading": ["nǐ"]},
        {"entry": "你好", "level": 0},
        {"entry": "你好", "level": 61},
        {"entry": "你好", "reading": "nǐ hǎo"},
    ])
    def test_invalid_records_are_rejected(self, data):
        with pytest.raises(RecordValidationError):
            validate_record(Category.VOCAB, data)

    def test_rejection_names_the_entry(self):
        with pytest.raises(RecordValidationError) as exc:
            validate_record(Category.VOCAB, {"entry": "你好", "level": 99})
        assert exc.value.entry == "你好"
        assert "level" in exc.value.reason


class TestTokenRecord:

    def test_model_for_token(self):
        assert model_for(Category.TOKEN) is TokenRecord
        assert model_for(Category.SENTENCE) is LexicalRecord

    def test_single_han_entry(self):
        record = validate_record(Category.TOKEN, {"entry": "好", "sub": ["女", "子", "女"]})
        assert record.sub == ["女", "子"]

    @pytest.mark.parametrize("data", [
        {"entry": "好好"},
        {"entry": "a"},
        {"entry": "好", "sub": ["女子"]},
    ])
    def test_invalid_tokens_are_rejected(self, data):
        with pytest.raises(RecordValidationError):
            validate_record(Category.TOKEN, data)


class TestSuppliedFields:

    def test_none_and_unset_fields_are_not_supplied(self):
        record = validate_record(Category.VOCAB, {"entry": "你好", "reading": None, "translation": []})
        assert supplied_fields(record) == {"entry": "你好", "translation": []}
