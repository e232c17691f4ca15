"""
Pydantic models for cached lexical data.

These models define the shape of records held in the lexical cache (one
collection per category) and validate everything that comes back from the
remote lexical source before it is merged.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from zhquiz.errors import RecordValidationError


# Configuration
LEVEL_MIN = 1
LEVEL_MAX = 60

# CJK unified ideographs, extension A and compatibility ideographs
HAN_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")


class Category(str, Enum):
    """Lexical category; each one is cached in its own collection."""
    HANZI = "hanzi"         # Single characters with readings/meanings
    VOCAB = "vocab"         # Multi-character words
    SENTENCE = "sentence"   # Example sentences
    EXTRA = "extra"         # User-authored items
    TOKEN = "token"         # Character decomposition (sub/sup/variants)


def dedupe(values: list[str]) -> list[str]:
    """Drop repeated values, keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for v in values:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


# ---- Lexical records ----

class LexicalRecord(BaseModel):
    """
    One cached entry per (category, entry).

    List fields are None until fetched. A fetched field with no data is an
    empty list, which is how placeholders mark "asked, nothing there".
    """
    entry: str = Field(..., min_length=1, description="Canonical key within the category")
    alt: Optional[list[str]] = Field(default=None, description="Alternate surface forms (e.g. traditional)")
    reading: Optional[list[str]] = None
    translation: Optional[list[str]] = Field(
        default=None,
        validation_alias=AliasChoices("translation", "english"),
    )
    frequency: Optional[float] = None
    level: Optional[int] = Field(default=None, ge=LEVEL_MIN, le=LEVEL_MAX)
    priority: Optional[float] = None
    tag: Optional[list[str]] = None

    class Config:
        extra = "ignore"

    @field_validator("entry")
    @classmethod
    def _entry_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("entry must not be blank")
        return v

    @field_validator("alt", "reading", "translation", "tag")
    @classmethod
    def _unique_items(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return dedupe(v) if v is not None else None


class TokenRecord(BaseModel):
    """Character decomposition data, keyed by a single grapheme."""
    entry: str
    sub: Optional[list[str]] = None
    sup: Optional[list[str]] = None
    variants: Optional[list[str]] = None
    frequency: Optional[float] = None
    level: Optional[int] = Field(default=None, ge=LEVEL_MIN, le=LEVEL_MAX)
    tag: Optional[list[str]] = None

    class Config:
        extra = "ignore"

    @field_validator("entry")
    @classmethod
    def _single_han(cls, v: str) -> str:
        if len(v) != 1 or not HAN_RE.match(v):
            raise ValueError("token entry must be a single Han character")
        return v

    @field_validator("sub", "sup", "variants")
    @classmethod
    def _unique_graphemes(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return None
        if any(len(s) != 1 for s in v):
            raise ValueError("related tokens must be single characters")
        return dedupe(v)

    @field_validator("tag")
    @classmethod
    def _unique_tags(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return dedupe(v) if v is not None else None


CachedRecord = Union[LexicalRecord, TokenRecord]


def model_for(category: Category) -> type[CachedRecord]:
    """Record model used to validate a category's records."""
    return TokenRecord if Category(category) is Category.TOKEN else LexicalRecord


def validate_record(category: Category, data: Union[Mapping[str, Any], BaseModel]) -> CachedRecord:
    """
    Validate raw data for a category.

    Raises:
        RecordValidationError: if the data does not fit the category's model
    """
    model = model_for(category)
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)

    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        entry = data.get("entry") if isinstance(data, Mapping) else None
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(part) for part in first.get("loc", ()))
        reason = f"{loc}: {first.get('msg', str(e))}" if loc else first.get("msg", str(e))
        raise RecordValidationError(entry, reason) from e
    except (TypeError, ValueError) as e:
        raise RecordValidationError(None, str(e)) from e


def supplied_fields(record: CachedRecord) -> dict[str, Any]:
    """
    Fields the record explicitly carries.

    Fields left at their default and fields set to None are not a
    replacement for anything already cached.
    """
    return record.model_dump(exclude_unset=True, exclude_none=True)
