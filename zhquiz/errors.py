"""
Exceptions raised by the lexical cache and the review scheduler.
"""

from __future__ import annotations

from typing import Optional


class ZhquizError(Exception):
    """Base class for all errors raised by this package."""


class RecordValidationError(ZhquizError):
    """A lexical record failed its shape constraints and was not stored."""

    def __init__(self, entry: Optional[str], reason: str):
        self.entry = entry
        self.reason = reason
        super().__init__(f"invalid record {entry!r}: {reason}")


class RemoteFetchError(ZhquizError):
    """The remote lexical source could not answer; the cache was not touched."""


class ConcurrencyConflictError(ZhquizError):
    """A review item kept changing underneath a mark until retries ran out."""
