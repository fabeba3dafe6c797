"""
AI review session.

Session status:   pending -> ready_for_review -> in_progress -> completed
                  pending / ready_for_review -> failed
Question status:  generated -> answered -> evaluating -> evaluated
                  evaluating -> answered   (evaluation failed, retryable)
                  generated -> skipped

Generation runs as a background task; the caller gets the session id right
away and loads the session once it is ready. Completing a session grades
whatever is still ungraded, stores the result and feeds a 1-4 score for the
whole session into the scheduler of the reviewed note or folder.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any

from recall.models.ai_review import (
    AiReviewEvaluation,
    AiReviewProgress,
    AiReviewQuestion,
    AiReviewQuestionStatus,
    AiReviewResult,
    AiReviewSession,
    AiReviewSessionCreate,
    AiReviewSessionUpdate,
    AiReviewState,
    AiReviewStatus,
    ContentInsights,
    EvaluationRequest,
    GenerationRequest,
    SourceType,
    StartAiReviewRequest,
)
from recall.services.generation import GenerationOrchestrator
from recall.services.ports import AiSessionStore, ItemStore
from recall.services.scheduler import as_utc, feedback_from_ratio, schedule, utcnow
from recall.services.state_store import StateStore
from recall.services.task_registry import start_task

logger = logging.getLogger(__name__)

QS = AiReviewQuestionStatus

_PROGRESS_STATUSES = {QS.EVALUATED, QS.ANSWERED, QS.SKIPPED}
_ANSWERABLE = {QS.GENERATED, QS.ANSWERED}
_COMPLETABLE = {AiReviewStatus.READY_FOR_REVIEW, AiReviewStatus.IN_PROGRESS}

BackgroundRunner = Callable[[str, Coroutine[Any, Any, Any]], Any]


class AiReviewSessionManager:
    def __init__(
        self,
        sessions: AiSessionStore,
        orchestrator: GenerationOrchestrator,
        sources: dict[SourceType, ItemStore],
        clock: Callable[[], datetime] = utcnow,
        run_in_background: BackgroundRunner = start_task,
    ) -> None:
        self._sessions = sessions
        self._orchestrator = orchestrator
        self._sources = sources
        self._clock = clock
        self._run_in_background = run_in_background
        self._content: str | None = None
        self.state: StateStore[AiReviewState] = StateStore(AiReviewState())

    # --- reads ---

    @property
    def session(self) -> AiReviewSession | None:
        return self.state.snapshot().session

    def get_current_question(self) -> AiReviewQuestion | None:
        current = self.state.snapshot()
        if current.session is None:
            return None
        questions = current.session.questions
        if 0 <= current.current_question_index < len(questions):
            return questions[current.current_question_index]
        return None

    def get_progress(self) -> AiReviewProgress:
        session = self.session
        if session is None or not session.questions:
            return AiReviewProgress(answered=0, total=0, percentage=0)
        total = len(session.questions)
        answered = sum(1 for q in session.questions if q.status in _PROGRESS_STATUSES)
        return AiReviewProgress(
            answered=answered, total=total, percentage=int(answered * 100 / total + 0.5)
        )

    def get_session_elapsed_time(self) -> int:
        session = self.session
        if session is None or session.session_started_at is None:
            return 0
        return int((self._clock() - as_utc(session.session_started_at)).total_seconds())

    # --- lifecycle ---

    async def start_ai_review(self, params: StartAiReviewRequest) -> str | None:
        """Create a pending session and start generating its questions in the background."""
        self.state.set(AiReviewState(is_loading=True))
        self._content = None
        created = await self._sessions.create(
            AiReviewSessionCreate(
                user_id=params.user_id,
                source_id=params.source_id,
                source_type=params.source_type,
                mode=params.mode,
                difficulty=params.difficulty,
                question_count=params.question_count,
                question_types=params.question_types,
                requested_at=self._clock(),
            )
        )
        if created is None:
            self.state.set(AiReviewState(error="Failed to create AI review session"))
            return None

        self.state.set(AiReviewState(session=created))
        self._run_in_background(created.id, self._generate(created))
        return created.id

    async def _generate(self, session: AiReviewSession) -> None:
        outcome = await self._orchestrator.generate_for_session(
            session.id,
            session.source_type,
            session.source_id,
            GenerationRequest(
                content="",
                difficulty=session.difficulty,
                count=session.question_count,
                mode=session.mode,
                types=session.question_types,
            ),
        )
        current = self.state.snapshot()
        if current.session is None or current.session.id != session.id:
            return
        if outcome.success:
            self.state.update(session=outcome.session, current_question_index=0, error=None)
        else:
            failed = current.session.model_copy(
                update={"status": AiReviewStatus.FAILED, "error_message": outcome.error}
            )
            self.state.update(session=failed, error="Failed to generate questions")

    async def load_session(self, session_id: str) -> AiReviewSession | None:
        self.state.update(is_loading=True, error=None)
        session = await self._sessions.get(session_id)
        if session is None:
            self.state.set(AiReviewState(error="Session not found"))
            return None

        if session.status == AiReviewStatus.READY_FOR_REVIEW:
            started = self._clock()
            updated = await self._sessions.update(
                session_id,
                AiReviewSessionUpdate(
                    status=AiReviewStatus.IN_PROGRESS, session_started_at=started
                ),
            )
            if updated is None:
                logger.warning("Could not persist in_progress status for %s", session_id)
                updated = session.model_copy(
                    update={"status": AiReviewStatus.IN_PROGRESS, "session_started_at": started}
                )
            session = updated

        previous = self.state.snapshot().session
        if previous is None or previous.id != session_id:
            self._content = None
        self.state.set(AiReviewState(session=session))
        return self.session

    def end_session(self) -> None:
        self._content = None
        self.state.set(AiReviewState())

    # --- questions ---

    def _find(self, question_id: str) -> tuple[AiReviewSession, AiReviewQuestion] | None:
        session = self.session
        if session is None:
            return None
        for question in session.questions:
            if question.id == question_id:
                return session, question
        return None

    def _put(self, question: AiReviewQuestion) -> AiReviewSession | None:
        """Replace one question in the latest state and return the new session."""
        session = self.session
        if session is None:
            return None
        questions = [question if q.id == question.id else q for q in session.questions]
        session = session.model_copy(update={"questions": questions})
        self.state.update(session=session)
        return session

    async def _persist_questions(self, session: AiReviewSession) -> None:
        saved = await self._sessions.update(
            session.id, AiReviewSessionUpdate(questions=session.questions)
        )
        if saved is None:
            logger.warning("Failed to persist questions for session %s", session.id)

    async def _source_content(self, session: AiReviewSession) -> str | None:
        if self._content is None:
            self._content = await self._orchestrator.get_content(
                session.source_type, session.source_id
            )
        return self._content

    async def submit_answer(self, question_id: str, answer: str) -> bool:
        found = self._find(question_id)
        if found is None or found[1].status not in _ANSWERABLE:
            return False
        _, question = found
        self._put(
            question.model_copy(
                update={"answer": answer, "status": QS.ANSWERED, "evaluation": None}
            )
        )
        return await self.evaluate_answer(question_id)

    async def evaluate_answer(self, question_id: str) -> bool:
        """Grade one answered question. On failure it goes back to answered."""
        found = self._find(question_id)
        if found is None or found[1].status != QS.ANSWERED:
            return False
        session, question = found
        self._put(question.model_copy(update={"status": QS.EVALUATING}))

        try:
            result = await self._orchestrator.evaluate_answer(
                EvaluationRequest(
                    question=question.question,
                    answer=question.answer or "",
                    question_type=question.question_type,
                    content=await self._source_content(session),
                    difficulty=session.difficulty,
                )
            )
        except Exception as e:
            logger.warning("Evaluation failed for question %s: %s", question_id, e)
            latest = self._find(question_id)
            if latest is not None:
                self._put(latest[1].model_copy(update={"status": QS.ANSWERED}))
                self.state.update(error="Failed to evaluate answer")
            return False

        latest = self._find(question_id)
        if latest is None:
            # Session was ended or replaced while grading
            return False
        updated = self._put(
            latest[1].model_copy(
                update={
                    "status": QS.EVALUATED,
                    "evaluation": result.evaluation,
                    "score": result.score,
                    "ai_message": result.message,
                    "suggestions": result.suggestions,
                    "correct_answer": result.correct_answer or latest[1].correct_answer,
                }
            )
        )
        self.state.update(error=None)
        if updated is not None:
            await self._persist_questions(updated)
        return True

    async def skip_question(self, question_id: str) -> bool:
        found = self._find(question_id)
        if found is None or found[1].status != QS.GENERATED:
            return False
        updated = self._put(found[1].model_copy(update={"status": QS.SKIPPED}))
        if updated is not None:
            await self._persist_questions(updated)
        return True

    # --- navigation & time ---

    def next_question(self) -> None:
        current = self.state.snapshot()
        if current.session is None:
            return
        if current.current_question_index + 1 < len(current.session.questions):
            self.state.update(current_question_index=current.current_question_index + 1)

    def previous_question(self) -> None:
        current = self.state.snapshot()
        if current.session is None:
            return
        if current.current_question_index > 0:
            self.state.update(current_question_index=current.current_question_index - 1)

    def tick(self, seconds: int = 1) -> bool:
        """Accrue viewing time on the current question while it is still unanswered."""
        session = self.session
        question = self.get_current_question()
        if session is None or question is None:
            return False
        if session.status != AiReviewStatus.IN_PROGRESS or question.status != QS.GENERATED:
            return False
        self._put(question.model_copy(update={"time_spent": question.time_spent + seconds}))
        return True

    def set_time_spent_for_question(self, question_id: str, seconds: int) -> None:
        found = self._find(question_id)
        if found is not None:
            self._put(found[1].model_copy(update={"time_spent": max(0, seconds)}))

    # --- completion ---

    async def _grade_for_completion(
        self, session: AiReviewSession, question: AiReviewQuestion
    ) -> AiReviewQuestion:
        try:
            result = await self._orchestrator.evaluate_answer(
                EvaluationRequest(
                    question=question.question,
                    answer=question.answer or "",
                    question_type=question.question_type,
                    content=await self._source_content(session),
                    difficulty=session.difficulty,
                )
            )
        except Exception as e:
            logger.warning("Evaluation on completion failed for %s: %s", question.id, e)
            return question.model_copy(
                update={"evaluation": AiReviewEvaluation.ERROR, "status": QS.ANSWERED}
            )
        return question.model_copy(
            update={
                "status": QS.EVALUATED,
                "evaluation": result.evaluation,
                "score": result.score,
                "ai_message": result.message,
                "suggestions": result.suggestions,
                "correct_answer": result.correct_answer or question.correct_answer,
            }
        )

    async def complete_session(self) -> AiReviewResult | None:
        """
        Finish the session. Ungraded answers are graded first (best effort);
        the session is stored as completed and the source item is rescheduled.
        Returns None only when there is no session that can be completed.
        """
        session = self.session
        if session is None or session.status not in _COMPLETABLE:
            return None

        ungraded = [q for q in session.questions if q.status == QS.ANSWERED and q.evaluation is None]
        graded = await asyncio.gather(*(self._grade_for_completion(session, q) for q in ungraded))
        by_id = {q.id: q for q in graded}

        latest = self.session
        if latest is None or latest.id != session.id:
            return None
        questions = [by_id.get(q.id, q) for q in latest.questions]

        result = AiReviewResult(
            total_questions=len(questions),
            correct_answers=sum(1 for q in questions if q.evaluation == AiReviewEvaluation.CORRECT),
            skipped_answers=sum(1 for q in questions if q.status == QS.SKIPPED),
        )
        completed_at = self._clock()
        completed = latest.model_copy(
            update={
                "status": AiReviewStatus.COMPLETED,
                "questions": questions,
                "result": result,
                "completed_at": completed_at,
            }
        )

        saved = await self._sessions.update(
            session.id,
            AiReviewSessionUpdate(
                status=AiReviewStatus.COMPLETED,
                questions=questions,
                result=result,
                completed_at=completed_at,
            ),
        )
        error = None
        if saved is None:
            logger.warning("Failed to persist completion of session %s", session.id)
            error = "Failed to save session result"

        feedback = feedback_from_ratio(result.correct_answers, result.total_questions)
        try:
            await self._reschedule_source(completed, feedback)
        except Exception as e:
            logger.warning("Rescheduling %s %s failed: %s", session.source_type.value, session.source_id, e)
            error = error or f"Failed to update {session.source_type.value} review"

        self.state.update(session=completed, error=error)
        return result

    async def _reschedule_source(self, session: AiReviewSession, feedback: int) -> None:
        store = self._sources[session.source_type]
        source = await store.get(session.source_id)
        if source is None:
            raise LookupError(f"{session.source_type.value} {session.source_id} not found")

        # Latency penalty is judged on the average active time per question
        questions = session.questions
        average_ms = (
            sum(q.time_spent for q in questions) * 1000 / len(questions) if questions else 0
        )
        update = schedule(source, feedback, average_ms, now=self._clock())
        if await store.update(source.id, update.changes()) is None:
            raise RuntimeError("item update returned no record")
        logger.info(
            "Rescheduled %s %s with feedback %d", session.source_type.value, source.id, feedback
        )

    # --- insights ---

    async def generate_insights(self) -> ContentInsights | None:
        session = self.session
        if session is None:
            return None
        insights = await self._orchestrator.generate_content_insights(
            session.source_type, session.source_id
        )
        if insights is None:
            return None
        await self._sessions.update(
            session.id,
            AiReviewSessionUpdate(summary=insights.summary, key_takeaways=insights.key_takeaways),
        )
        latest = self.session
        if latest is not None and latest.id == session.id:
            self.state.update(
                session=latest.model_copy(
                    update={"summary": insights.summary, "key_takeaways": insights.key_takeaways}
                )
            )
        return insights
