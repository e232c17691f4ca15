"""
Scheduler - SRS state transitions

Pure scheduling logic (no database calls).

Main workflow:
1. Load or create the review item (caller's responsibility)
2. Apply a mark: right, wrong or repeat
3. Update streaks, move the level, compute the next due time
4. Return the updated item + event data dict

Streak policy for repeat marks: streak counters and last_right/last_wrong
are left exactly as they were. A repeat is neither a success nor a failure,
so it neither extends nor breaks a streak.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence, Tuple

from zhquiz.config import Settings
from zhquiz.srs.constants import DEFAULT_INTERVALS, DEFAULT_REPEAT_DELAY, MarkResult
from zhquiz.srs.state import ReviewItem

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SrsPolicy:
    """
    Interval table and repeat delay.

    intervals[level] is the delay after a right mark that lands on that
    level; the table length bounds the level (0 .. len - 1).
    """
    intervals: Tuple[timedelta, ...] = DEFAULT_INTERVALS
    repeat_delay: timedelta = DEFAULT_REPEAT_DELAY

    def __post_init__(self):
        intervals = tuple(self.intervals)
        if not intervals:
            raise ValueError("interval table must not be empty")
        if any(b <= a for a, b in zip(intervals, intervals[1:])):
            raise ValueError("interval table must be strictly increasing")
        if self.repeat_delay <= timedelta(0):
            raise ValueError("repeat delay must be positive")
        object.__setattr__(self, "intervals", intervals)

    @classmethod
    def from_hours(cls, hours: Sequence[float], repeat_minutes: float = 10) -> "SrsPolicy":
        return cls(
            intervals=tuple(timedelta(hours=h) for h in hours),
            repeat_delay=timedelta(minutes=repeat_minutes)
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SrsPolicy":
        return cls.from_hours(settings.srs_interval_hours, settings.repeat_minutes)

    @property
    def max_level(self) -> int:
        return len(self.intervals) - 1

    def clamp(self, level: int) -> int:
        return max(0, min(level, self.max_level))


DEFAULT_POLICY = SrsPolicy()


def process_mark(
    item: ReviewItem,
    result: MarkResult,
    timestamp: Optional[datetime] = None,
    policy: Optional[SrsPolicy] = None
) -> Tuple[ReviewItem, dict]:
    """
    Apply a mark and return the updated item + event data.

    No database calls. Caller is responsible for:
    1. Loading the item
    2. Saving the item after the mark
    3. Persisting the event

    Args:
        item: ReviewItem to update (modified in place)
        result: RIGHT, WRONG or REPEAT
        timestamp: Time of the mark (defaults to now)
        policy: Interval table and repeat delay (defaults to DEFAULT_POLICY)

    Returns:
        Tuple of (updated_item, event_data_dict)
    """
    if timestamp is None:
        timestamp = utcnow()
    policy = policy or DEFAULT_POLICY
    result = MarkResult(result)

    level_before = item.srs_level
    streak = item.stat.streak

    if result is MarkResult.RIGHT:
        streak.right += 1
        streak.wrong = 0
        item.stat.last_right = timestamp
        if streak.right > streak.max_right:
            streak.max_right = streak.right
    elif result is MarkResult.WRONG:
        streak.wrong += 1
        streak.right = 0
        item.stat.last_wrong = timestamp
        if streak.wrong > streak.max_wrong:
            streak.max_wrong = streak.wrong

    item.srs_level = policy.clamp((item.srs_level or 0) + int(result))

    if result is MarkResult.RIGHT:
        item.next_review = timestamp + policy.intervals[item.srs_level]
    else:
        item.next_review = timestamp + policy.repeat_delay

    event_data = {
        'user_id': item.user_id,
        'entry': item.entry,
        'category': item.category,
        'direction': item.direction,
        'result': int(result),
        'timestamp': timestamp,
        'srs_level_before': level_before,
        'srs_level_after': item.srs_level,
        'next_review': item.next_review,
    }

    return item, event_data


def mark_right(item: ReviewItem, timestamp: Optional[datetime] = None, policy: Optional[SrsPolicy] = None) -> ReviewItem:
    return process_mark(item, MarkResult.RIGHT, timestamp, policy)[0]


def mark_wrong(item: ReviewItem, timestamp: Optional[datetime] = None, policy: Optional[SrsPolicy] = None) -> ReviewItem:
    return process_mark(item, MarkResult.WRONG, timestamp, policy)[0]


def mark_repeat(item: ReviewItem, timestamp: Optional[datetime] = None, policy: Optional[SrsPolicy] = None) -> ReviewItem:
    return process_mark(item, MarkResult.REPEAT, timestamp, policy)[0]
