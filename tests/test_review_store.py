"""
Tests for the persistent review store (SQLite).
"""

from datetime import timedelta

import pytest

from conftest import NOW
from zhquiz.config import get_settings
from zhquiz.errors import ConcurrencyConflictError
from zhquiz.schemas import Category
from zhquiz.srs import MAX_MARK_RETRIES, MarkResult, ReviewItem, ReviewStore, Stage, get_engine, scheduler
from zhquiz.srs.models import ReviewItemModel


class TestSchema:

    def test_init_db_is_idempotent(self, reviews):
        reviews.init_db()
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        reviews.init_db()
        assert len(reviews.find_review_items("u1")) == 1

    def test_reset_db(self, reviews):
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        reviews.reset_db()
        assert reviews.find_review_items("u1") == []
        assert reviews.recent_events("u1") == []


class TestMark:

    def test_first_mark_creates_item(self, reviews):
        item = reviews.mark("u1", "你好", Category.VOCAB, "ec", MarkResult.RIGHT)

        assert item.id is not None
        assert item.category == "vocab"
        assert item.srs_level == 1
        assert item.next_review == NOW + timedelta(hours=8)

        stored = reviews.get_review_item("u1", "你好", "vocab", "ec")
        assert stored.srs_level == 1
        assert stored.next_review == NOW + timedelta(hours=8)
        assert stored.stat.streak.right == 1
        assert stored.stat.last_right == NOW

    def test_marks_accumulate(self, reviews):
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        item = reviews.mark("u1", "你好", "vocab", "ec", MarkResult.WRONG, now=NOW + timedelta(days=1))

        assert item.srs_level == 1
        assert item.stat.streak.max_right == 2
        assert item.stat.streak.wrong == 1
        assert item.next_review == NOW + timedelta(days=1, minutes=10)

    def test_version_bumped_on_every_write(self, reviews):
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)

        session = reviews.session()
        try:
            assert session.query(ReviewItemModel).one().version == 2
        finally:
            session.close()

    def test_directions_are_separate_items(self, reviews):
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        reviews.mark("u1", "你好", "vocab", "ce", MarkResult.WRONG)
        assert len(reviews.find_review_items("u1")) == 2

    def test_custom_policy(self, clock, short_policy):
        store = ReviewStore(engine=get_engine("sqlite://"), policy=short_policy, clock=clock)
        store.init_db()

        for _ in range(3):
            item = store.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)

        assert item.srs_level == 2
        assert item.next_review == NOW + timedelta(weeks=1)

    def test_policy_defaults_to_configured_intervals(self, clock, monkeypatch):
        monkeypatch.setenv("ZHQUIZ_SRS_INTERVALS", "1,2,3")
        monkeypatch.setenv("ZHQUIZ_REPEAT_MINUTES", "5")
        get_settings.cache_clear()
        try:
            store = ReviewStore(engine=get_engine("sqlite://"), clock=clock)
            store.init_db()

            item = store.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
            assert item.next_review == NOW + timedelta(hours=2)

            item = store.mark("u1", "你好", "vocab", "ec", MarkResult.WRONG)
            assert item.next_review == NOW + timedelta(minutes=5)
        finally:
            get_settings.cache_clear()

    def test_events_are_logged(self, reviews):
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.REPEAT, now=NOW + timedelta(hours=1))

        events = reviews.recent_events("u1")

        assert [e["result"] for e in events] == [MarkResult.REPEAT, MarkResult.RIGHT]
        assert events[0]["srs_level_before"] == 1
        assert events[0]["srs_level_after"] == 1
        assert events[0]["timestamp"] == NOW + timedelta(hours=1)
        assert reviews.recent_events("u2") == []
        assert len(reviews.recent_events("u1", limit=1)) == 1


class TestConcurrentMarks:

    @pytest.fixture
    def file_engine(self, tmp_path):
        engine = get_engine(f"sqlite:///{tmp_path / 'reviews.db'}")
        yield engine
        engine.dispose()

    def interfering(self, monkeypatch, rival, times):
        """
        Make process_mark commit a rival mark on the same item before
        returning, the first `times` times it is called from outside.
        """
        original = scheduler.process_mark
        state = {"inside": False, "left": times}

        def process_mark(item, result, timestamp=None, policy=None):
            if not state["inside"] and state["left"] > 0:
                state["inside"] = True
                state["left"] -= 1
                try:
                    rival.mark(item.user_id, item.entry, item.category, item.direction, MarkResult.RIGHT)
                finally:
                    state["inside"] = False
            return original(item, result, timestamp, policy)

        monkeypatch.setattr(scheduler, "process_mark", process_mark)

    def test_conflicting_mark_is_retried_not_lost(self, file_engine, clock, monkeypatch):
        store = ReviewStore(engine=file_engine, clock=clock)
        rival = ReviewStore(engine=file_engine, clock=clock)
        store.init_db()
        store.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)

        self.interfering(monkeypatch, rival, times=1)
        item = store.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)

        assert item.srs_level == 3
        assert item.stat.streak.right == 3
        assert store.get_review_item("u1", "你好", "vocab", "ec").srs_level == 3
        assert len(store.recent_events("u1")) == 3

    def test_gives_up_after_max_retries(self, file_engine, clock, monkeypatch):
        store = ReviewStore(engine=file_engine, clock=clock)
        rival = ReviewStore(engine=file_engine, clock=clock)
        store.init_db()
        store.mark("u1", "你好", "vocab", "ec", MarkResult.WRONG)

        self.interfering(monkeypatch, rival, times=MAX_MARK_RETRIES)
        with pytest.raises(ConcurrencyConflictError):
            store.mark("u1", "你好", "vocab", "ec", MarkResult.WRONG)

        item = store.get_review_item("u1", "你好", "vocab", "ec")
        assert item.stat.streak.right == MAX_MARK_RETRIES
        assert item.stat.streak.wrong == 0


class TestFindReviewItems:

    @pytest.fixture
    def populated(self, reviews):
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)                            # level 1, due +8h
        reviews.mark("u1", "再见", "vocab", "ec", MarkResult.WRONG)                            # level 0, due +10m
        reviews.get_or_create("u1", "好看", "vocab", "ec")                                     # new
        for _ in range(3):
            reviews.mark("u1", "好", "hanzi", "ec", MarkResult.RIGHT)                          # graduated
        for _ in range(3):
            reviews.mark("u1", "说话", "vocab", "ec", MarkResult.WRONG)                        # leech
        reviews.mark("u2", "你好", "vocab", "ec", MarkResult.RIGHT)
        return reviews

    def entries(self, items):
        return sorted(i.entry for i in items)

    def test_per_user(self, populated):
        assert len(populated.find_review_items("u1")) == 5
        assert self.entries(populated.find_review_items("u2")) == ["你好"]

    def test_category(self, populated):
        assert self.entries(populated.find_review_items("u1", category=Category.HANZI)) == ["好"]

    def test_entries(self, populated):
        found = populated.find_review_items("u1", entries=["你好", "好看", "没有"])
        assert self.entries(found) == ["你好", "好看"]

    def test_empty_entries_match_nothing(self, populated):
        assert populated.find_review_items("u1", entries=[]) == []

    def test_scheduled_only(self, populated):
        found = populated.find_review_items("u1", category="vocab", scheduled_only=True)
        assert self.entries(found) == ["你好", "再见", "说话"]

    def test_stages_are_combined_with_or(self, populated):
        assert self.entries(populated.find_review_items("u1", stages=[Stage.NEW])) == ["好看"]
        assert self.entries(populated.find_review_items("u1", stages=[Stage.GRADUATED])) == ["好"]
        assert self.entries(populated.find_review_items("u1", stages=[Stage.LEECH, Stage.NEW])) == ["好看", "说话"]

    def test_due_before(self, populated):
        found = populated.find_review_items("u1", due_before=NOW + timedelta(hours=1))
        assert self.entries(found) == ["再见", "说话"]

    def test_soonest_first_new_last(self, populated):
        found = populated.find_review_items("u1", category="vocab")
        assert found[-1].entry == "好看"
        assert found[0].next_review <= found[1].next_review


class TestWrites:

    def test_get_or_create(self, reviews):
        item = reviews.get_or_create("u1", "你好", "vocab", "ec")
        again = reviews.get_or_create("u1", "你好", "vocab", "ec")

        assert item.id == again.id
        assert item.next_review is None
        assert item.srs_level == 0

    def test_upsert_review_item(self, reviews):
        item = ReviewItem(user_id="u1", entry="你好", category="vocab", direction="ec", srs_level=4,
                          next_review=NOW + timedelta(days=3), tag=["hsk1"])
        saved = reviews.upsert_review_item(item)

        item.srs_level = 5
        reviews.upsert_review_item(item)

        stored = reviews.get_review_item("u1", "你好", "vocab", "ec")
        assert stored.id == saved.id
        assert stored.srs_level == 5
        assert stored.tag == ["hsk1"]

    def test_update_fields(self, reviews):
        reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)

        item = reviews.update_fields("u1", "你好", "vocab", "ec", front="你好", mnemonic="you good", tag=["greeting"])

        assert item.mnemonic == "you good"
        assert item.srs_level == 1
        stored = reviews.get_review_item("u1", "你好", "vocab", "ec")
        assert stored.front == "你好"
        assert stored.tag == ["greeting"]

    def test_update_fields_rejects_state(self, reviews):
        with pytest.raises(ValueError):
            reviews.update_fields("u1", "你好", "vocab", "ec", srs_level=5)

    def test_delete_review_items(self, reviews):
        first = reviews.mark("u1", "你好", "vocab", "ec", MarkResult.RIGHT)
        reviews.mark("u1", "再见", "vocab", "ec", MarkResult.RIGHT)
        other = reviews.mark("u2", "你好", "vocab", "ec", MarkResult.RIGHT)

        assert reviews.delete_review_items("u1", [first.id, other.id]) == 1
        assert [i.entry for i in reviews.find_review_items("u1")] == ["再见"]
        assert len(reviews.find_review_items("u2")) == 1
        assert reviews.delete_review_items("u1", []) == 0
