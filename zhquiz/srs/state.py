"""
Review State - per-learner SRS state and stage classification

A review item is defined as: (user_id, entry, category, direction)

Its state is only (srs_level, next_review) plus accuracy statistics. There
is no stored status: stages are derived from the state on demand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from zhquiz.srs.constants import GRADUATED_LEVEL, LEECH_WRONG_STREAK, Stage


@dataclass
class Streak:
    """Consecutive right/wrong answers and their maxima."""
    right: int = 0
    wrong: int = 0
    max_right: int = 0
    max_wrong: int = 0


@dataclass
class ReviewStat:
    streak: Streak = field(default_factory=Streak)
    last_right: Optional[datetime] = None
    last_wrong: Optional[datetime] = None


@dataclass
class ReviewItem:
    """
    SRS state for one learner and one reviewable item.

    The lexical record is referenced by entry only; its lifetime is
    independent of any learner's review state.
    """
    user_id: str
    entry: str
    category: str
    direction: str = "ec"

    srs_level: int = 0
    next_review: Optional[datetime] = None  # None = never scheduled (new)
    stat: ReviewStat = field(default_factory=ReviewStat)

    # Learner-editable card content
    front: Optional[str] = None
    back: Optional[str] = None
    mnemonic: Optional[str] = None
    tag: list[str] = field(default_factory=list)

    # Storage identity (set once persisted)
    id: Optional[int] = None

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.user_id, self.entry, self.category, self.direction)


# ---- Stage classification ----

def is_new(item: ReviewItem) -> bool:
    return item.next_review is None


def is_leech(item: ReviewItem) -> bool:
    return item.stat.streak.wrong >= LEECH_WRONG_STREAK


def is_learning(item: ReviewItem) -> bool:
    return item.srs_level < GRADUATED_LEVEL


def is_graduated(item: ReviewItem) -> bool:
    return item.srs_level >= GRADUATED_LEVEL


def is_due(item: ReviewItem, now: datetime) -> bool:
    """Scheduled and the due time has passed."""
    return item.next_review is not None and item.next_review <= now


_STAGE_TESTS = {
    Stage.NEW: is_new,
    Stage.LEECH: is_leech,
    Stage.LEARNING: is_learning,
    Stage.GRADUATED: is_graduated,
}


def stages(item: ReviewItem) -> set[Stage]:
    """
    Every stage label that applies to the item.

    Labels are evaluated independently, e.g. a brand-new item is both
    NEW and LEARNING.
    """
    return {stage for stage, test in _STAGE_TESTS.items() if test(item)}


def has_stage(item: ReviewItem, stage: Stage) -> bool:
    return _STAGE_TESTS[Stage(stage)](item)
