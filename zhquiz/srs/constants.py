"""
SRS Constants and Parameters

Defaults for the review scheduler. The interval table and the repeat delay
are policy, not correctness: SrsPolicy (see scheduler.py) takes them as
arguments and falls back to these values.
"""

from datetime import timedelta
from enum import Enum, IntEnum


# ---- Mark Results ----

class MarkResult(IntEnum):
    """Outcome of a review attempt; the value is the level change."""
    WRONG = -1   # Answered incorrectly
    REPEAT = 0   # Show again soon, no judgement
    RIGHT = 1    # Answered correctly


# ---- Stages ----

class Stage(str, Enum):
    """Derived labels; an item can carry several at once."""
    NEW = "new"
    LEECH = "leech"
    LEARNING = "learning"
    GRADUATED = "graduated"


# ---- Interval Table ----
# Delay until the next review, indexed by SRS level

DEFAULT_INTERVALS = (
    timedelta(hours=4),
    timedelta(hours=8),
    timedelta(days=1),
    timedelta(days=3),
    timedelta(weeks=1),
    timedelta(weeks=2),
    timedelta(weeks=4),
    timedelta(weeks=16),
)

# Wrong and repeat marks bring the item back after this delay, at any level
DEFAULT_REPEAT_DELAY = timedelta(minutes=10)


# ---- Stage Thresholds ----

LEECH_WRONG_STREAK = 3   # streak.wrong at or above this = leech
GRADUATED_LEVEL = 3      # srs_level at or above this = graduated


# ---- Concurrency ----

MAX_MARK_RETRIES = 5     # Optimistic-update attempts per mark
