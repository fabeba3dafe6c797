"""Collaborator interfaces consumed by the review engine.

The sqlite adapters in recall.db.sqlite implement these; tests use
in-memory fakes.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from recall.models.ai_review import (
    AiReviewSession,
    AiReviewSessionCreate,
    AiReviewSessionUpdate,
    AnswerEvaluation,
    EvaluationRequest,
    GenerationRequest,
    QuestionDraft,
    SourceType,
)
from recall.models.review_session import ReviewScope
from recall.models.reviewable import ReviewableItem


@runtime_checkable
class ItemStore(Protocol):
    """Reads and writes one kind of reviewable record (question, note or folder)."""

    async def get(self, item_id: str) -> ReviewableItem | None: ...

    async def update(self, item_id: str, fields: dict) -> ReviewableItem | None:
        """Apply a partial update; return the stored item, or None on failure."""
        ...


@runtime_checkable
class ScopeLookup(Protocol):
    async def items_for_scope(self, scope: ReviewScope, scope_id: str) -> list[ReviewableItem]: ...


@runtime_checkable
class ContentLookup(Protocol):
    async def get_content(self, source_type: SourceType, source_id: str) -> str | None: ...


@runtime_checkable
class AiSessionStore(Protocol):
    async def create(self, draft: AiReviewSessionCreate) -> AiReviewSession | None: ...

    async def get(self, session_id: str) -> AiReviewSession | None: ...

    async def update(
        self, session_id: str, updates: AiReviewSessionUpdate
    ) -> AiReviewSession | None: ...


@runtime_checkable
class ReviewProvider(Protocol):
    """AI backend that writes and grades review questions."""

    async def generate_questions(self, request: GenerationRequest) -> list[QuestionDraft]:
        """Return exactly request.count drafts or raise GenerationError."""
        ...

    async def evaluate_answer(self, request: EvaluationRequest) -> AnswerEvaluation: ...

    async def summarize_content(self, content: str) -> str: ...

    async def extract_key_takeaways(self, content: str) -> list[str]: ...
