"""
SRS - spaced repetition state for review items

Quick start:
    from zhquiz import srs

    store = srs.ReviewStore()
    store.init_db()

    # Pure state transition (no DB calls)
    item, event_data = srs.process_mark(item, srs.MarkResult.RIGHT)

    # Atomic mark against the store
    store.mark("default", "你好", "vocab", "ec", srs.MarkResult.RIGHT)

    # Items with a stage label
    store.find_review_items("default", stages=[srs.Stage.LEECH])
"""

# Core scheduler API (state transitions)
from zhquiz.srs.scheduler import (
    DEFAULT_POLICY,
    SrsPolicy,
    mark_repeat,
    mark_right,
    mark_wrong,
    process_mark,
    utcnow,
)

# Database API
from zhquiz.srs.database import (
    ReviewStore,
    get_database_url,
    get_engine,
    stage_condition,
)

# Constants
from zhquiz.srs.constants import (
    DEFAULT_INTERVALS,
    DEFAULT_REPEAT_DELAY,
    GRADUATED_LEVEL,
    LEECH_WRONG_STREAK,
    MAX_MARK_RETRIES,
    MarkResult,
    Stage,
)

# Review state
from zhquiz.srs.state import (
    ReviewItem,
    ReviewStat,
    Streak,
    has_stage,
    is_due,
    is_graduated,
    is_leech,
    is_learning,
    is_new,
    stages,
)


__all__ = [
    # Core algorithm
    "process_mark",
    "mark_right",
    "mark_wrong",
    "mark_repeat",
    "SrsPolicy",
    "DEFAULT_POLICY",
    "utcnow",

    # Database operations
    "ReviewStore",
    "get_database_url",
    "get_engine",
    "stage_condition",

    # Enums
    "MarkResult",
    "Stage",

    # Review state
    "ReviewItem",
    "ReviewStat",
    "Streak",
    "stages",
    "has_stage",
    "is_new",
    "is_leech",
    "is_learning",
    "is_graduated",
    "is_due",

    # Parameters
    "DEFAULT_INTERVALS",
    "DEFAULT_REPEAT_DELAY",
    "GRADUATED_LEVEL",
    "LEECH_WRONG_STREAK",
    "MAX_MARK_RETRIES",
]
