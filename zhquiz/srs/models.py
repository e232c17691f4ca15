"""
SQLAlchemy ORM Models for the review store

Defines ReviewItem (current SRS state) and ReviewEvent (append-only log of
marks).
"""

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint, Index, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ReviewItemModel(Base):
    """
    Persistent SRS state for one (user_id, entry, category, direction).

    `version` is bumped on every write and checked by the UPDATE, so two
    concurrent marks on the same item cannot silently overwrite each other.
    """
    __tablename__ = 'review_item'
    __table_args__ = (
        UniqueConstraint('user_id', 'entry', 'category', 'direction', name='uq_review_item_key'),
        Index('idx_review_item_user_category', 'user_id', 'category'),
        Index('idx_review_item_next_review', 'user_id', 'next_review'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Card identity
    user_id = Column(String(255), nullable=False)
    entry = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False)
    direction = Column(String(50), nullable=False)

    # Learner-editable content
    front = Column(String, nullable=True)
    back = Column(String, nullable=True)
    mnemonic = Column(String, nullable=True)
    tag = Column(JSON, nullable=True)

    # SRS state
    srs_level = Column(Integer, nullable=False, default=0)
    next_review = Column(DateTime(timezone=True), nullable=True)  # NULL = new

    # Accuracy statistics
    streak_right = Column(Integer, nullable=False, default=0)
    streak_wrong = Column(Integer, nullable=False, default=0)
    streak_max_right = Column(Integer, nullable=False, default=0)
    streak_max_wrong = Column(Integer, nullable=False, default=0)
    last_right = Column(DateTime(timezone=True), nullable=True)
    last_wrong = Column(DateTime(timezone=True), nullable=True)

    # Bookkeeping
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<ReviewItem({self.user_id}, {self.entry}, {self.category}, {self.direction})>"


class ReviewEventModel(Base):
    """
    Log entry for a single mark of a review item.
    """
    __tablename__ = 'review_event'
    __table_args__ = (
        Index('idx_review_event_user_time', 'user_id', 'timestamp'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(String(255), nullable=False)
    entry = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False)
    direction = Column(String(50), nullable=False)

    timestamp = Column(DateTime(timezone=True), nullable=False)
    result = Column(Integer, nullable=False)  # -1=WRONG, 0=REPEAT, 1=RIGHT

    srs_level_before = Column(Integer, nullable=False)
    srs_level_after = Column(Integer, nullable=False)
    next_review = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<ReviewEvent(id={self.id}, {self.entry}/{self.direction}, result={self.result})>"
