"""
Random picker for new study material.

Draws entries from a level range of the lexical cache, skipping anything the
learner already has scheduled for review.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from zhquiz.cache.predicates import by_level_range
from zhquiz.cache.store import LexicalStore
from zhquiz.config import get_settings
from zhquiz.schemas import Category

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 1


def pick_random(
    store: LexicalStore,
    reviews,
    user_id: str,
    category: Category = Category.VOCAB,
    level_min: Optional[int] = None,
    level_max: Optional[int] = None,
    count: int = DEFAULT_COUNT,
    rng: Optional[random.Random] = None
) -> list[dict]:
    """
    Pick up to `count` distinct random entries not under active review.

    Args:
        store: Lexical cache to draw from
        reviews: Review store (anything with find_review_items)
        user_id: Learner whose review queue is excluded
        category: Category to draw from
        level_min: Lowest level (defaults to the configured minimum)
        level_max: Highest level (defaults to the configured maximum)
        count: Number of entries wanted
        rng: Random source (anything with sample)

    Returns:
        List of {"entry", "level", "translation"} dicts; empty if nothing
        is eligible (including an inverted level range)
    """
    if count <= 0:
        return []

    settings = get_settings()
    level_min = settings.level_min if level_min is None else level_min
    level_max = settings.level_max if level_max is None else level_max
    if level_min > level_max:
        return []

    category = Category(category)
    rng = rng or random.Random()

    pool = {
        r["entry"]: r
        for r in store.find(category, by_level_range(level_min, level_max))
    }
    if not pool:
        return []

    scheduled = reviews.find_review_items(
        user_id,
        category=category,
        entries=list(pool),
        scheduled_only=True
    )
    for item in scheduled:
        pool.pop(item.entry, None)

    if not pool:
        logger.debug(
            "Every %s entry in levels %d-%d is already scheduled for %s",
            category.value, level_min, level_max, user_id
        )
        return []

    picked = rng.sample(sorted(pool), min(count, len(pool)))
    return [
        {
            "entry": e,
            "level": pool[e].get("level"),
            "translation": pool[e].get("translation") or [],
        }
        for e in picked
    ]
