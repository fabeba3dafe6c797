"""
Generation / evaluation orchestrator.

Every provider call made by the AI review flow goes through here so that
retry policy lives in one place. Batch generation runs requests in
fixed-size chunks: requests inside a chunk run concurrently, chunks run
one after another, and each request's outcome is captured on its own.
"""
from __future__ import annotations

import asyncio
import logging
import traceback
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from recall.config import settings
from recall.models.ai_review import (
    AiReviewQuestion,
    AiReviewSession,
    AiReviewSessionUpdate,
    AiReviewStatus,
    AnswerEvaluation,
    BatchGenerationItem,
    BatchGenerationResult,
    ContentInsights,
    EvaluationRequest,
    GenerationRequest,
    SourceType,
)
from recall.services.ai_provider import GenerationError
from recall.services.ports import AiSessionStore, ContentLookup, ReviewProvider
from recall.services.question_types import select_question_types
from recall.services.retry import RetryPolicy
from recall.services.scheduler import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunk_list(items: list[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


class GenerationOutcome:
    def __init__(self, session: AiReviewSession | None, error: str | None = None) -> None:
        self.session = session
        self.error = error

    @property
    def success(self) -> bool:
        return self.error is None and self.session is not None


class GenerationOrchestrator:
    def __init__(
        self,
        provider: ReviewProvider,
        sessions: AiSessionStore,
        content: ContentLookup,
        chunk_size: int | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._provider = provider
        self._sessions = sessions
        self._content = content
        self.chunk_size = chunk_size or settings.generation_chunk_size
        self._retry = retry or RetryPolicy()
        self._clock = clock

    async def generate_for_session(
        self, session_id: str, source_type: SourceType, source_id: str, request: GenerationRequest
    ) -> GenerationOutcome:
        """
        Generate questions for one pending session and persist the outcome.

        On success the session becomes ready_for_review with its questions;
        on any failure it becomes failed with error_message set.
        Sessions that are no longer pending are left untouched.
        """
        session = await self._sessions.get(session_id)
        if session is None:
            return GenerationOutcome(None, f"Session {session_id} not found")
        if session.status != AiReviewStatus.PENDING:
            logger.warning("Skipping generation for %s: status is %s", session_id, session.status.value)
            return GenerationOutcome(None, f"Session is {session.status.value}")

        try:
            content = await self._content.get_content(source_type, source_id)
            if content is None:
                raise GenerationError(f"{source_type.value.capitalize()} {source_id} not found")
            if not content.strip():
                raise GenerationError("Source has no content to generate questions from")

            types = request.types or select_question_types(request.difficulty, request.count)
            request = request.model_copy(update={"content": content, "types": types})
            drafts = await self._retry.run(
                lambda: self._provider.generate_questions(request),
                label=f"question generation for {session_id}",
            )
            if len(drafts) != request.count:
                raise GenerationError(
                    f"Expected {request.count} questions, provider returned {len(drafts)}"
                )

            questions = [
                AiReviewQuestion(
                    id=f"ai_q_{uuid.uuid4().hex[:12]}",
                    question_type=draft.question_type or types[index],
                    question=draft.question,
                    options=draft.options,
                    correct_answer=draft.correct_answer,
                )
                for index, draft in enumerate(drafts)
            ]
        except Exception as e:
            logger.error("Question generation failed for %s:\n%s", session_id, traceback.format_exc())
            message = str(e) or "Question generation failed"
            await self._mark_failed(session_id, message)
            return GenerationOutcome(None, message)

        updated = await self._sessions.update(
            session_id,
            AiReviewSessionUpdate(
                status=AiReviewStatus.READY_FOR_REVIEW,
                questions=questions,
                questions_generated_at=self._clock(),
            ),
        )
        if updated is None:
            message = "Failed to update session with generated questions"
            logger.warning("Session %s: %s", session_id, message)
            await self._mark_failed(session_id, message)
            return GenerationOutcome(None, message)
        logger.info("Session %s: generated %d questions", session_id, len(questions))
        return GenerationOutcome(updated)

    async def _mark_failed(self, session_id: str, message: str) -> None:
        try:
            await self._sessions.update(
                session_id,
                AiReviewSessionUpdate(status=AiReviewStatus.FAILED, error_message=message),
            )
        except Exception as e:
            logger.error("Failed to set failed status for %s: %s", session_id, e)

    async def batch_generate_questions(
        self, items: list[BatchGenerationItem]
    ) -> list[BatchGenerationResult]:
        results: list[BatchGenerationResult] = []
        chunks = chunk_list(items, self.chunk_size)
        for number, chunk in enumerate(chunks, start=1):
            logger.info("Batch generation chunk %d/%d (%d sessions)", number, len(chunks), len(chunk))
            results.extend(await asyncio.gather(*(self._generate_one(item) for item in chunk)))
        return results

    async def _generate_one(self, item: BatchGenerationItem) -> BatchGenerationResult:
        try:
            outcome = await self.generate_for_session(
                item.session_id,
                item.source_type,
                item.source_id,
                GenerationRequest(
                    content="",
                    difficulty=item.difficulty,
                    count=item.question_count,
                    mode=item.mode,
                    types=item.question_types,
                ),
            )
        except Exception as e:
            return BatchGenerationResult(session_id=item.session_id, success=False, error=str(e))
        return BatchGenerationResult(
            session_id=item.session_id, success=outcome.success, error=outcome.error
        )

    async def evaluate_answer(self, request: EvaluationRequest) -> AnswerEvaluation:
        return await self._retry.run(
            lambda: self._provider.evaluate_answer(request), label="answer evaluation"
        )

    async def get_content(self, source_type: SourceType, source_id: str) -> str | None:
        return await self._content.get_content(source_type, source_id)

    async def generate_content_insights(
        self, source_type: SourceType, source_id: str
    ) -> ContentInsights | None:
        content = await self._content.get_content(source_type, source_id)
        if content is None:
            return None
        summary, takeaways = await asyncio.gather(
            self._retry.run(lambda: self._provider.summarize_content(content), label="summary"),
            self._retry.run(
                lambda: self._provider.extract_key_takeaways(content), label="key takeaways"
            ),
        )
        return ContentInsights(summary=summary, key_takeaways=takeaways)
