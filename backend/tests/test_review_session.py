"""
Tests for the self-graded review session manager.
"""
import asyncio
import random
from datetime import timedelta

import pytest

from recall.models.review_session import ReviewMode, ReviewScope
from recall.models.reviewable import Question
from recall.services.review_session import ReviewSessionManager

from conftest import FakeItemStore, FakeScopeLookup


@pytest.fixture
def manager(question_store, scope_lookup, clock):
    return ReviewSessionManager(question_store, scope_lookup, clock=clock, rng=random.Random(7))


class YieldingItemStore(FakeItemStore):
    async def update(self, item_id, fields):
        await asyncio.sleep(0)
        return await super().update(item_id, fields)


async def start(manager):
    return await manager.start_review_session(ReviewMode.DUE, ReviewScope.NOTE, "note-1")


class TestStart:
    @pytest.mark.asyncio
    async def test_builds_session_in_lookup_order(self, manager, clock):
        session = await start(manager)

        assert session.remaining == ["q1", "q2", "q3"]
        assert session.current_item_id == "q1"
        assert session.started_at == clock.now
        assert session.is_showing_answer is False
        assert session.answered == []

    @pytest.mark.asyncio
    async def test_nothing_due_starts_nothing(self, clock):
        store = FakeItemStore(
            [Question(id="q1", note_id="note-1", next_review=clock.now + timedelta(days=3))]
        )
        manager = ReviewSessionManager(store, FakeScopeLookup(store), clock=clock)

        assert await start(manager) is None
        assert manager.session is None

    @pytest.mark.asyncio
    async def test_all_mode_includes_items_not_due(self, clock):
        store = FakeItemStore(
            [Question(id="q1", note_id="note-1", next_review=clock.now + timedelta(days=3))]
        )
        manager = ReviewSessionManager(store, FakeScopeLookup(store), clock=clock)

        session = await manager.start_review_session(ReviewMode.ALL, ReviewScope.NOTE, "note-1")
        assert session.remaining == ["q1"]


class TestShowAnswer:
    @pytest.mark.asyncio
    async def test_idempotent(self, manager):
        await start(manager)
        seen = []
        manager.state.subscribe(seen.append)

        manager.show_answer()
        manager.show_answer()

        assert manager.session.is_showing_answer is True
        assert len(seen) == 1


class TestFeedback:
    @pytest.mark.asyncio
    async def test_good_answer_persists_and_leaves_pool(self, manager, question_store, clock):
        await start(manager)
        clock.advance(seconds=4)

        assert await manager.submit_feedback(3) is True

        item_id, fields = question_store.updates[0]
        assert item_id == "q1"
        assert fields["repetition"] == 1
        assert fields["interval"] == 1
        assert question_store.items["q1"].repetition == 1

        session = manager.session
        assert "q1" not in session.remaining
        assert session.current_item_id in {"q2", "q3"}
        assert session.answered[0].item_id == "q1"
        assert session.answered[0].time_spent_ms == 4000
        assert session.is_showing_answer is False

    @pytest.mark.asyncio
    async def test_forgotten_item_stays_in_pool(self, manager):
        await start(manager)

        await manager.submit_feedback(1)

        session = manager.session
        assert session.remaining == ["q1", "q2", "q3"]
        # with more than one remaining, the just-answered item is not repeated
        assert session.current_item_id != "q1"

    @pytest.mark.asyncio
    async def test_slow_answer_is_penalised(self, manager, question_store, clock):
        await start(manager)
        clock.advance(seconds=20)

        await manager.submit_feedback(3)

        assert question_store.items["q1"].ease_factor == pytest.approx(2.435)

    @pytest.mark.asyncio
    async def test_failed_write_blocks_advancement(self, manager, question_store):
        await start(manager)
        question_store.fail_updates = True

        assert await manager.submit_feedback(3) is False

        session = manager.session
        assert session.current_item_id == "q1"
        assert session.remaining == ["q1", "q2", "q3"]
        assert session.answered == []
        assert "q1" in session.error

    @pytest.mark.asyncio
    async def test_error_clears_after_successful_retry(self, manager, question_store):
        await start(manager)
        question_store.fail_updates = True
        await manager.submit_feedback(3)
        question_store.fail_updates = False

        assert await manager.submit_feedback(3) is True
        assert manager.session.error is None

    @pytest.mark.asyncio
    async def test_session_ends_when_pool_is_empty(self, manager):
        await start(manager)
        ended = []
        manager.state.subscribe(lambda s: ended.append(s is None))

        for _ in range(3):
            await manager.submit_feedback(4)

        assert manager.session is None
        assert ended[-1] is True

    @pytest.mark.asyncio
    async def test_overlapping_submits_run_one_at_a_time(self, question_store, clock):
        store = YieldingItemStore(list(question_store.items.values()))
        manager = ReviewSessionManager(store, FakeScopeLookup(store), clock=clock, rng=random.Random(7))
        await start(manager)

        results = await asyncio.gather(manager.submit_feedback(1), manager.submit_feedback(1))

        assert results == [True, True]
        assert len(store.updates) == 2
        answered = manager.session.answered
        assert len(answered) == 2
        for item in store.items.values():
            assert len(item.history) == sum(1 for a in answered if a.item_id == item.id)

    @pytest.mark.asyncio
    async def test_without_session_returns_false(self, manager):
        assert await manager.submit_feedback(3) is False


class TestNavigationAndTime:
    @pytest.mark.asyncio
    async def test_next_question_resets_timer_and_reveal(self, manager, clock):
        await start(manager)
        manager.show_answer()
        clock.advance(seconds=30)

        await manager.next_question()

        session = manager.session
        assert session.current_item_id != "q1"
        assert session.is_showing_answer is False
        assert session.current_item_started_at == clock.now

    @pytest.mark.asyncio
    async def test_single_remaining_item_repeats(self, clock):
        store = FakeItemStore([Question(id="only", note_id="note-1")])
        manager = ReviewSessionManager(store, FakeScopeLookup(store), clock=clock)
        await start(manager)

        await manager.submit_feedback(1)

        assert manager.session.current_item_id == "only"

    @pytest.mark.asyncio
    async def test_elapsed_times(self, manager, clock):
        await start(manager)
        clock.advance(seconds=12)
        assert manager.get_session_elapsed_time() == 12
        await manager.next_question()
        clock.advance(seconds=3)
        assert manager.get_current_item_elapsed_time() == 3
        assert manager.get_session_elapsed_time() == 15

    @pytest.mark.asyncio
    async def test_end_session_without_flush_writes_nothing(self, manager, question_store):
        await start(manager)
        await manager.submit_feedback(1)
        writes = len(question_store.updates)

        await manager.end_session()

        assert manager.session is None
        assert len(question_store.updates) == writes

    @pytest.mark.asyncio
    async def test_end_session_flush_rewrites_answered(self, question_store, scope_lookup, clock):
        manager = ReviewSessionManager(
            question_store, scope_lookup, clock=clock, rng=random.Random(1), flush_on_end=True
        )
        await start(manager)
        await manager.submit_feedback(1)
        writes = len(question_store.updates)

        await manager.end_session()

        assert len(question_store.updates) == writes + 1
        assert question_store.updates[-1][0] == "q1"
