"""
Tests for the AI review session manager: generation hand-off, question
state machine, completion and source rescheduling.
"""
import pytest

from recall.models.ai_review import (
    AiReviewDifficulty,
    AiReviewEvaluation,
    AiReviewQuestionStatus,
    AiReviewStatus,
    AnswerEvaluation,
    SourceType,
    StartAiReviewRequest,
)
from recall.services.ai_review_session import AiReviewSessionManager
from recall.services.generation import GenerationOrchestrator
from recall.services.llm_service import LLMUnavailableError
from recall.services.retry import RetryPolicy

QS = AiReviewQuestionStatus


class BackgroundCollector:
    def __init__(self):
        self.jobs = []

    def __call__(self, session_id, coro):
        self.jobs.append((session_id, coro))

    async def run_all(self):
        while self.jobs:
            _, coro = self.jobs.pop(0)
            await coro


@pytest.fixture
def background():
    collector = BackgroundCollector()
    yield collector
    for _, coro in collector.jobs:
        coro.close()


@pytest.fixture
def orchestrator(provider, ai_sessions, content_lookup, clock):
    return GenerationOrchestrator(
        provider,
        ai_sessions,
        content_lookup,
        chunk_size=3,
        retry=RetryPolicy(max_attempts=2, base_delay=0, max_delay=0),
        clock=clock,
    )


@pytest.fixture
def manager(ai_sessions, orchestrator, source_stores, clock, background):
    return AiReviewSessionManager(
        ai_sessions, orchestrator, source_stores, clock=clock, run_in_background=background
    )


def request(**overrides):
    fields = {
        "source_id": "note-1",
        "source_type": SourceType.NOTE,
        "user_id": "user-1",
        "difficulty": AiReviewDifficulty.EASY,
        "question_count": 3,
    }
    fields.update(overrides)
    return StartAiReviewRequest(**fields)


async def ready_session(manager, background, **overrides):
    session_id = await manager.start_ai_review(request(**overrides))
    await background.run_all()
    await manager.load_session(session_id)
    return session_id


class TestStart:
    @pytest.mark.asyncio
    async def test_returns_id_before_generation(self, manager, ai_sessions, background):
        session_id = await manager.start_ai_review(request())

        assert session_id is not None
        assert ai_sessions.sessions[session_id].status == AiReviewStatus.PENDING
        assert manager.session.status == AiReviewStatus.PENDING
        assert len(background.jobs) == 1

    @pytest.mark.asyncio
    async def test_generation_makes_session_ready(self, manager, ai_sessions, background, clock):
        session_id = await manager.start_ai_review(request())
        await background.run_all()

        stored = ai_sessions.sessions[session_id]
        assert stored.status == AiReviewStatus.READY_FOR_REVIEW
        assert len(stored.questions) == 3
        assert all(q.status == QS.GENERATED for q in stored.questions)
        assert all(q.id.startswith("ai_q_") for q in stored.questions)
        assert stored.questions_generated_at == clock.now
        assert manager.session.status == AiReviewStatus.READY_FOR_REVIEW

    @pytest.mark.asyncio
    async def test_generation_failure_marks_session_failed(
        self, manager, ai_sessions, provider, background
    ):
        provider.generation_error = RuntimeError("model exploded")
        session_id = await manager.start_ai_review(request())
        await background.run_all()

        stored = ai_sessions.sessions[session_id]
        assert stored.status == AiReviewStatus.FAILED
        assert stored.error_message == "model exploded"
        assert manager.session.status == AiReviewStatus.FAILED
        assert manager.state.snapshot().error == "Failed to generate questions"

    @pytest.mark.asyncio
    async def test_missing_source_fails_generation(self, manager, ai_sessions, background):
        session_id = await manager.start_ai_review(request(source_id="ghost"))
        await background.run_all()
        assert ai_sessions.sessions[session_id].status == AiReviewStatus.FAILED

    @pytest.mark.asyncio
    async def test_store_failure_returns_none(self, manager, ai_sessions, background):
        ai_sessions.fail_create = True
        assert await manager.start_ai_review(request()) is None
        assert manager.state.snapshot().error == "Failed to create AI review session"
        assert background.jobs == []


class TestLoad:
    @pytest.mark.asyncio
    async def test_ready_session_moves_to_in_progress(self, manager, ai_sessions, background, clock):
        session_id = await manager.start_ai_review(request())
        await background.run_all()
        clock.advance(minutes=5)

        session = await manager.load_session(session_id)

        assert session.status == AiReviewStatus.IN_PROGRESS
        assert session.session_started_at == clock.now
        assert ai_sessions.sessions[session_id].status == AiReviewStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        assert await manager.load_session("nope") is None
        assert manager.state.snapshot().error == "Session not found"


class TestQuestionStateMachine:
    @pytest.mark.asyncio
    async def test_answer_is_evaluated(self, manager, ai_sessions, background, provider):
        session_id = await ready_session(manager, background)
        question = manager.get_current_question()

        assert await manager.submit_answer(question.id, "Light becomes sugar") is True

        graded = manager.get_current_question()
        assert graded.status == QS.EVALUATED
        assert graded.evaluation == AiReviewEvaluation.CORRECT
        assert graded.score == 90
        assert graded.answer == "Light becomes sugar"
        assert provider.evaluate_calls[0].content == "Plants turn light into sugar."
        assert ai_sessions.sessions[session_id].questions[0].status == QS.EVALUATED

    @pytest.mark.asyncio
    async def test_failed_evaluation_rolls_back_to_answered(self, manager, background, provider):
        await ready_session(manager, background)
        question = manager.get_current_question()
        provider.evaluation_error = LLMUnavailableError("offline")

        assert await manager.submit_answer(question.id, "guess") is False

        q = manager.get_current_question()
        assert q.status == QS.ANSWERED
        assert q.evaluation is None
        assert manager.state.snapshot().error == "Failed to evaluate answer"
        # one call per retry attempt
        assert len(provider.evaluate_calls) == 2

    @pytest.mark.asyncio
    async def test_evaluation_can_be_retried(self, manager, background, provider):
        await ready_session(manager, background)
        question = manager.get_current_question()
        provider.evaluation_error = RuntimeError("bad gateway")
        await manager.submit_answer(question.id, "guess")
        provider.evaluation_error = None

        assert await manager.evaluate_answer(question.id) is True
        assert manager.get_current_question().status == QS.EVALUATED
        assert manager.state.snapshot().error is None

    @pytest.mark.asyncio
    async def test_skip_only_from_generated(self, manager, background):
        session_id = await ready_session(manager, background)
        first, second = manager.session.questions[:2]

        assert await manager.skip_question(first.id) is True
        assert manager.session.questions[0].status == QS.SKIPPED
        assert await manager.skip_question(first.id) is False

        await manager.submit_answer(second.id, "answer")
        assert await manager.skip_question(second.id) is False

    @pytest.mark.asyncio
    async def test_cannot_answer_skipped_or_evaluated(self, manager, background):
        await ready_session(manager, background)
        first, second = manager.session.questions[:2]
        await manager.skip_question(first.id)
        await manager.submit_answer(second.id, "one")

        assert await manager.submit_answer(first.id, "late") is False
        assert await manager.submit_answer(second.id, "again") is False

    @pytest.mark.asyncio
    async def test_evaluate_requires_answered(self, manager, background, provider):
        await ready_session(manager, background)
        question = manager.get_current_question()
        assert await manager.evaluate_answer(question.id) is False
        assert provider.evaluate_calls == []

    @pytest.mark.asyncio
    async def test_unknown_question(self, manager, background):
        await ready_session(manager, background)
        assert await manager.submit_answer("missing", "x") is False


class TestProgressNavigationTime:
    @pytest.mark.asyncio
    async def test_progress_counts_answered_evaluated_and_skipped(self, manager, background):
        await ready_session(manager, background)
        first, second, _ = manager.session.questions
        await manager.skip_question(first.id)
        await manager.submit_answer(second.id, "x")

        progress = manager.get_progress()
        assert (progress.answered, progress.total, progress.percentage) == (2, 3, 67)

    def test_progress_without_session(self, manager):
        progress = manager.get_progress()
        assert (progress.answered, progress.total, progress.percentage) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_navigation_is_bounded(self, manager, background):
        await ready_session(manager, background)
        manager.previous_question()
        assert manager.state.snapshot().current_question_index == 0
        for _ in range(5):
            manager.next_question()
        assert manager.state.snapshot().current_question_index == 2
        manager.previous_question()
        assert manager.state.snapshot().current_question_index == 1

    @pytest.mark.asyncio
    async def test_tick_only_counts_unanswered_question(self, manager, background):
        await ready_session(manager, background)
        assert manager.tick(5) is True
        assert manager.get_current_question().time_spent == 5

        await manager.submit_answer(manager.get_current_question().id, "x")
        assert manager.tick(5) is False
        assert manager.get_current_question().time_spent == 5

    @pytest.mark.asyncio
    async def test_tick_needs_in_progress_session(self, manager, background):
        await manager.start_ai_review(request())
        await background.run_all()
        # generated but not loaded yet
        assert manager.tick() is False

    @pytest.mark.asyncio
    async def test_set_time_spent(self, manager, background):
        await ready_session(manager, background)
        question = manager.get_current_question()
        manager.set_time_spent_for_question(question.id, 42)
        assert manager.get_current_question().time_spent == 42

    @pytest.mark.asyncio
    async def test_session_elapsed(self, manager, background, clock):
        await ready_session(manager, background)
        clock.advance(seconds=90)
        assert manager.get_session_elapsed_time() == 90


class TestComplete:
    @pytest.mark.asyncio
    async def test_grades_leftovers_and_reschedules_note(
        self, manager, ai_sessions, background, provider, source_stores, clock
    ):
        session_id = await ready_session(manager, background)
        first, second, third = manager.session.questions
        await manager.submit_answer(first.id, "right")
        provider.evaluation = AnswerEvaluation(
            evaluation=AiReviewEvaluation.INCORRECT, score=10, message="No"
        )
        await manager.skip_question(second.id)
        provider.evaluation_error = RuntimeError("flaky")
        await manager.submit_answer(third.id, "wrong")
        provider.evaluation_error = None

        result = await manager.complete_session()

        assert (result.total_questions, result.correct_answers, result.skipped_answers) == (3, 1, 1)
        stored = ai_sessions.sessions[session_id]
        assert stored.status == AiReviewStatus.COMPLETED
        assert stored.completed_at == clock.now
        assert stored.result == result
        assert stored.questions[2].status == QS.EVALUATED
        assert stored.questions[2].evaluation == AiReviewEvaluation.INCORRECT

        note = source_stores[SourceType.NOTE].items["note-1"]
        # 1/3 correct -> feedback 2 -> failed review
        assert note.history[-1].quality == 2
        assert note.repetition == 0
        assert note.ease_factor == pytest.approx(2.3)

    @pytest.mark.asyncio
    async def test_all_correct_passes_note(self, manager, background, source_stores):
        await ready_session(manager, background)
        for question in manager.session.questions:
            await manager.submit_answer(question.id, "yes")

        result = await manager.complete_session()

        assert result.correct_answers == 3
        note = source_stores[SourceType.NOTE].items["note-1"]
        assert note.history[-1].quality == 4
        assert note.repetition == 1
        assert note.interval == 1

    @pytest.mark.asyncio
    async def test_folder_source_is_rescheduled(self, manager, background, source_stores):
        await ready_session(manager, background, source_type=SourceType.FOLDER, source_id="folder-1")
        for question in manager.session.questions:
            await manager.skip_question(question.id)

        result = await manager.complete_session()

        assert result.skipped_answers == 3
        folder = source_stores[SourceType.FOLDER].items["folder-1"]
        assert folder.history[-1].quality == 1

    @pytest.mark.asyncio
    async def test_evaluation_failure_on_completion_is_recorded(self, manager, background, provider):
        await ready_session(manager, background)
        question = manager.get_current_question()
        provider.evaluation_error = RuntimeError("down")
        await manager.submit_answer(question.id, "x")

        result = await manager.complete_session()

        graded = manager.session.questions[0]
        assert graded.evaluation == AiReviewEvaluation.ERROR
        assert graded.status == QS.ANSWERED
        assert result.correct_answers == 0

    @pytest.mark.asyncio
    async def test_source_update_failure_does_not_fail_completion(
        self, manager, background, source_stores
    ):
        await ready_session(manager, background)
        source_stores[SourceType.NOTE].fail_updates = True

        result = await manager.complete_session()

        assert result is not None
        assert manager.session.status == AiReviewStatus.COMPLETED
        assert manager.state.snapshot().error == "Failed to update note review"

    @pytest.mark.asyncio
    async def test_cannot_complete_twice(self, manager, background):
        await ready_session(manager, background)
        assert await manager.complete_session() is not None
        assert await manager.complete_session() is None

    @pytest.mark.asyncio
    async def test_cannot_complete_pending(self, manager):
        await manager.start_ai_review(request())
        assert await manager.complete_session() is None


class TestInsightsAndEnd:
    @pytest.mark.asyncio
    async def test_insights_are_stored_on_session(self, manager, ai_sessions, background):
        session_id = await ready_session(manager, background)

        insights = await manager.generate_insights()

        assert insights.key_takeaways == ["First takeaway", "Second takeaway"]
        assert ai_sessions.sessions[session_id].summary == insights.summary
        assert manager.session.key_takeaways == insights.key_takeaways

    @pytest.mark.asyncio
    async def test_end_session_clears_state(self, manager, background):
        await ready_session(manager, background)
        manager.end_session()
        assert manager.session is None
        assert manager.get_current_question() is None
