"""
Database - review store I/O

Handles all database operations for review items and review events.
Uses SQLAlchemy ORM; production runs on Postgres, tests on SQLite.

This module handles ONLY database I/O and write atomicity.
Scheduling logic lives in the scheduler module.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy import create_engine, inspect, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from zhquiz.config import Settings, get_settings
from zhquiz.errors import ConcurrencyConflictError
from zhquiz.srs import scheduler
from zhquiz.srs.constants import (
    GRADUATED_LEVEL,
    LEECH_WRONG_STREAK,
    MAX_MARK_RETRIES,
    MarkResult,
    Stage,
)
from zhquiz.srs.models import Base, ReviewEventModel, ReviewItemModel
from zhquiz.srs.state import ReviewItem, ReviewStat, Streak

logger = logging.getLogger(__name__)


# ---- Engine ----

def get_database_url(settings: Optional[Settings] = None) -> str:
    """
    Get the review database URL from settings.

    Uses TEST_MODE to switch to the test database (see Settings).
    """
    return (settings or get_settings()).review_database_url()


def get_engine(url: Optional[str] = None) -> Engine:
    """
    Get SQLAlchemy engine for the review database.

    In-memory SQLite gets a single shared connection, so every session
    sees the same database.
    """
    url = url or get_database_url()
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=5,           # Keep 5 connections open
        max_overflow=10,       # Allow up to 10 extra connections
        pool_pre_ping=True,    # Verify connections before use
        echo=False
    )


# ---- Conversions ----

def _as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values (as SQLite returns them) are UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _category_value(category) -> str:
    return getattr(category, "value", category)


def _to_state(row: ReviewItemModel) -> ReviewItem:
    return ReviewItem(
        id=row.id,
        user_id=row.user_id,
        entry=row.entry,
        category=row.category,
        direction=row.direction,
        srs_level=row.srs_level or 0,
        next_review=_as_utc(row.next_review),
        stat=ReviewStat(
            streak=Streak(
                right=row.streak_right or 0,
                wrong=row.streak_wrong or 0,
                max_right=row.streak_max_right or 0,
                max_wrong=row.streak_max_wrong or 0,
            ),
            last_right=_as_utc(row.last_right),
            last_wrong=_as_utc(row.last_wrong),
        ),
        front=row.front,
        back=row.back,
        mnemonic=row.mnemonic,
        tag=list(row.tag or []),
    )


def _apply_state(row: ReviewItemModel, item: ReviewItem) -> None:
    row.srs_level = item.srs_level
    row.next_review = _as_utc(item.next_review)
    row.streak_right = item.stat.streak.right
    row.streak_wrong = item.stat.streak.wrong
    row.streak_max_right = item.stat.streak.max_right
    row.streak_max_wrong = item.stat.streak.max_wrong
    row.last_right = _as_utc(item.stat.last_right)
    row.last_wrong = _as_utc(item.stat.last_wrong)
    row.front = item.front
    row.back = item.back
    row.mnemonic = item.mnemonic
    row.tag = list(item.tag or [])


# ---- Stage conditions ----

def stage_condition(stage: Stage):
    """SQL condition selecting review items that carry a stage label."""
    stage = Stage(stage)
    if stage is Stage.NEW:
        return ReviewItemModel.next_review.is_(None)
    if stage is Stage.LEECH:
        return ReviewItemModel.streak_wrong >= LEECH_WRONG_STREAK
    if stage is Stage.LEARNING:
        return ReviewItemModel.srs_level < GRADUATED_LEVEL
    return ReviewItemModel.srs_level >= GRADUATED_LEVEL


EDITABLE_FIELDS = ("front", "back", "mnemonic", "tag")


class ReviewStore:
    """
    Persistent review store.

    Every write is a read-modify-write of one item inside one transaction,
    guarded by the item's version column. A write that lost a race is
    retried from a fresh read, so concurrent marks on the same item are
    serialized (last committed wins) and never lost.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        policy: Optional[scheduler.SrsPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.engine = engine or get_engine()
        self.policy = policy or scheduler.SrsPolicy.from_settings(get_settings())
        self.clock = clock or scheduler.utcnow
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    # ---- Schema ----

    def init_db(self) -> None:
        """
        Create tables if they don't exist.

        Safe to call multiple times.
        """
        existing = set(inspect(self.engine).get_table_names())
        if {"review_item", "review_event"} <= existing:
            return
        Base.metadata.create_all(self.engine)

    def reset_db(self) -> None:
        """
        DANGEROUS: Delete all review state and history, then recreate tables.
        """
        Base.metadata.drop_all(self.engine)
        logger.warning("Review tables dropped")
        Base.metadata.create_all(self.engine)

    def session(self) -> Session:
        return self._sessions()

    # ---- Reads ----

    def find_review_items(
        self,
        user_id: str,
        category=None,
        entries: Optional[Iterable[str]] = None,
        direction: Optional[str] = None,
        scheduled_only: bool = False,
        stages: Sequence[Stage] = (),
        due_before: Optional[datetime] = None
    ) -> list[ReviewItem]:
        """
        Review items of one learner.

        Args:
            user_id: Learner
            category: Only this category
            entries: Only these entries (an empty collection matches nothing)
            direction: Only this direction
            scheduled_only: Only items with next_review set
            stages: Only items carrying any of these stage labels
            due_before: Only items due at or before this time

        Returns:
            ReviewItems, soonest due first (new items last)
        """
        if entries is not None:
            entries = list(entries)
            if not entries:
                return []

        session = self.session()
        try:
            q = session.query(ReviewItemModel).filter(ReviewItemModel.user_id == user_id)
            if category is not None:
                q = q.filter(ReviewItemModel.category == _category_value(category))
            if entries is not None:
                q = q.filter(ReviewItemModel.entry.in_(entries))
            if direction is not None:
                q = q.filter(ReviewItemModel.direction == direction)
            if scheduled_only:
                q = q.filter(ReviewItemModel.next_review.isnot(None))
            if stages:
                q = q.filter(or_(*[stage_condition(s) for s in stages]))
            if due_before is not None:
                q = q.filter(ReviewItemModel.next_review <= _as_utc(due_before))

            rows = q.order_by(
                ReviewItemModel.next_review.is_(None),
                ReviewItemModel.next_review,
                ReviewItemModel.id,
            ).all()
            return [_to_state(row) for row in rows]
        finally:
            session.close()

    def get_review_item(self, user_id: str, entry: str, category, direction: str) -> Optional[ReviewItem]:
        session = self.session()
        try:
            row = self._load_row(session, user_id, entry, category, direction)
            return _to_state(row) if row is not None else None
        finally:
            session.close()

    def recent_events(self, user_id: str, limit: int = 10) -> list[dict]:
        """
        Most recent marks of a learner (newest first).
        """
        session = self.session()
        try:
            events = session.query(ReviewEventModel).filter(
                ReviewEventModel.user_id == user_id
            ).order_by(
                ReviewEventModel.timestamp.desc(),
                ReviewEventModel.id.desc()
            ).limit(limit).all()

            return [
                {
                    "id": e.id,
                    "user_id": e.user_id,
                    "entry": e.entry,
                    "category": e.category,
                    "direction": e.direction,
                    "timestamp": _as_utc(e.timestamp),
                    "result": MarkResult(e.result),
                    "srs_level_before": e.srs_level_before,
                    "srs_level_after": e.srs_level_after,
                    "next_review": _as_utc(e.next_review),
                }
                for e in events
            ]
        finally:
            session.close()

    # ---- Writes ----

    def get_or_create(self, user_id: str, entry: str, category, direction: str) -> ReviewItem:
        """The learner's item for a key, created (as new) on first request."""
        return self._write(user_id, entry, category, direction, lambda item, session: item)

    def mark(
        self,
        user_id: str,
        entry: str,
        category,
        direction: str,
        result: MarkResult,
        now: Optional[datetime] = None
    ) -> ReviewItem:
        """
        Record a right/wrong/repeat mark, creating the item if needed.

        Returns:
            The item state as committed
        """
        timestamp = now or self.clock()

        def apply(item: ReviewItem, session: Session) -> ReviewItem:
            item, event_data = scheduler.process_mark(item, result, timestamp, self.policy)
            event_data["timestamp"] = _as_utc(event_data["timestamp"])
            event_data["next_review"] = _as_utc(event_data["next_review"])
            session.add(ReviewEventModel(**event_data))
            return item

        return self._write(user_id, entry, category, direction, apply)

    def upsert_review_item(self, item: ReviewItem) -> ReviewItem:
        """Insert or overwrite an item's stored state with the given state."""
        def apply(current: ReviewItem, session: Session) -> ReviewItem:
            item.id = current.id
            return item

        return self._write(item.user_id, item.entry, item.category, item.direction, apply)

    def update_fields(self, user_id: str, entry: str, category, direction: str, **fields) -> ReviewItem:
        """
        Set learner-editable content (front, back, mnemonic, tag).

        Raises:
            ValueError: for any other field
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"not editable: {', '.join(sorted(unknown))}")

        def apply(item: ReviewItem, session: Session) -> ReviewItem:
            for name, value in fields.items():
                setattr(item, name, value)
            return item

        return self._write(user_id, entry, category, direction, apply)

    def delete_review_items(self, user_id: str, ids: Iterable[int]) -> int:
        """
        Delete (unschedule) items of a learner by id.

        Returns:
            Number of items deleted
        """
        ids = list(ids)
        if not ids:
            return 0

        session = self.session()
        try:
            deleted = session.query(ReviewItemModel).filter(
                ReviewItemModel.user_id == user_id,
                ReviewItemModel.id.in_(ids)
            ).delete(synchronize_session=False)
            session.commit()
            return deleted
        finally:
            session.close()

    # ---- Internals ----

    @staticmethod
    def _load_row(session: Session, user_id: str, entry: str, category, direction: str) -> Optional[ReviewItemModel]:
        return session.query(ReviewItemModel).filter(
            ReviewItemModel.user_id == user_id,
            ReviewItemModel.entry == entry,
            ReviewItemModel.category == _category_value(category),
            ReviewItemModel.direction == direction
        ).first()

    def _write(
        self,
        user_id: str,
        entry: str,
        category,
        direction: str,
        apply: Callable[[ReviewItem, Session], ReviewItem]
    ) -> ReviewItem:
        """
        Atomic read-modify-write of one item, retried on conflict.

        Raises:
            ConcurrencyConflictError: if every attempt lost a race
        """
        category = _category_value(category)

        for attempt in range(1, MAX_MARK_RETRIES + 1):
            session = self.session()
            try:
                row = self._load_row(session, user_id, entry, category, direction)
                if row is None:
                    row = ReviewItemModel(
                        user_id=user_id,
                        entry=entry,
                        category=category,
                        direction=direction,
                    )
                    session.add(row)

                item = apply(_to_state(row), session)
                _apply_state(row, item)
                session.commit()

                item.id = row.id
                return item
            except (StaleDataError, IntegrityError):
                session.rollback()
                logger.info(
                    "Concurrent write on %s/%s/%s for %s, retrying (%d/%d)",
                    category, entry, direction, user_id, attempt, MAX_MARK_RETRIES
                )
            finally:
                session.close()

        raise ConcurrencyConflictError(
            f"review item {category}/{entry}/{direction} for {user_id} kept changing"
        )
