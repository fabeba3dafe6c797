"""
Shared fixtures: in-memory fakes for every collaborator port and a
controllable clock.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("RECALL_LOG_LEVEL", "warning")
os.environ.setdefault("RECALL_PROVIDER_RETRY_BASE_DELAY", "0")

from recall.models.ai_review import (  # noqa: E402
    AiReviewEvaluation,
    AiReviewSession,
    AiReviewSessionCreate,
    AiReviewSessionUpdate,
    AiReviewStatus,
    AnswerEvaluation,
    EvaluationRequest,
    GenerationRequest,
    QuestionDraft,
    SourceType,
)
from recall.models.review_session import ReviewScope  # noqa: E402
from recall.models.reviewable import Folder, Note, Question, ReviewableItem  # noqa: E402
from recall.services.retry import RetryPolicy  # noqa: E402

T0 = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeItemStore:
    def __init__(self, items: list[ReviewableItem] | None = None) -> None:
        self.items = {item.id: item for item in items or []}
        self.updates: list[tuple[str, dict]] = []
        self.fail_updates = False

    async def get(self, item_id: str) -> ReviewableItem | None:
        return self.items.get(item_id)

    async def update(self, item_id: str, fields: dict) -> ReviewableItem | None:
        self.updates.append((item_id, fields))
        if self.fail_updates or item_id not in self.items:
            return None
        self.items[item_id] = self.items[item_id].model_copy(update=fields)
        return self.items[item_id]


class FakeScopeLookup:
    def __init__(self, store: FakeItemStore) -> None:
        self.store = store

    async def items_for_scope(self, scope: ReviewScope, scope_id: str) -> list[ReviewableItem]:
        items = list(self.store.items.values())
        if scope == ReviewScope.NOTE:
            return [i for i in items if getattr(i, "note_id", None) == scope_id]
        if scope == ReviewScope.USER:
            return [i for i in items if getattr(i, "user_id", None) == scope_id]
        return items


class FakeContentLookup:
    def __init__(self, contents: dict[tuple[SourceType, str], str] | None = None) -> None:
        self.contents = contents or {}

    async def get_content(self, source_type: SourceType, source_id: str) -> str | None:
        return self.contents.get((source_type, source_id))


class FakeAiSessionStore:
    def __init__(self) -> None:
        self.sessions: dict[str, AiReviewSession] = {}
        self.fail_create = False
        self.fail_updates = False
        self._counter = 0

    async def create(self, draft: AiReviewSessionCreate) -> AiReviewSession | None:
        if self.fail_create:
            return None
        self._counter += 1
        session = AiReviewSession(id=f"ai-session-{self._counter}", **draft.model_dump())
        self.sessions[session.id] = session
        return session

    async def get(self, session_id: str) -> AiReviewSession | None:
        return self.sessions.get(session_id)

    async def update(
        self, session_id: str, updates: AiReviewSessionUpdate
    ) -> AiReviewSession | None:
        if self.fail_updates or session_id not in self.sessions:
            return None
        fields = {
            name: getattr(updates, name)
            for name in updates.model_fields_set
            if getattr(updates, name) is not None
        }
        self.sessions[session_id] = self.sessions[session_id].model_copy(update=fields)
        return self.sessions[session_id]

    async def find_by_status(self, statuses: list[AiReviewStatus]) -> list[AiReviewSession]:
        return [s for s in self.sessions.values() if s.status in statuses]

    async def list_for_source(
        self, source_type: SourceType, source_id: str
    ) -> list[AiReviewSession]:
        return [
            s
            for s in reversed(list(self.sessions.values()))
            if s.source_type == source_type and s.source_id == source_id
        ]


class FakeProvider:
    """Review provider with scripted replies and failure switches."""

    name = "fake"

    def __init__(self) -> None:
        self.generation_error: Exception | None = None
        self.evaluation_error: Exception | None = None
        self.evaluation = AnswerEvaluation(
            evaluation=AiReviewEvaluation.CORRECT, score=90, message="Well done"
        )
        self.generate_calls: list[GenerationRequest] = []
        self.evaluate_calls: list[EvaluationRequest] = []
        self.fail_for_content: set[str] = set()

    async def generate_questions(self, request: GenerationRequest) -> list[QuestionDraft]:
        self.generate_calls.append(request)
        if self.generation_error is not None:
            raise self.generation_error
        if request.content in self.fail_for_content:
            raise RuntimeError(f"cannot generate for {request.content!r}")
        return [
            QuestionDraft(
                question_type=request.types[i] if request.types else None,
                question=f"Question {i + 1} about {request.content[:20]}",
                correct_answer=f"Answer {i + 1}",
            )
            for i in range(request.count)
        ]

    async def evaluate_answer(self, request: EvaluationRequest) -> AnswerEvaluation:
        self.evaluate_calls.append(request)
        if self.evaluation_error is not None:
            raise self.evaluation_error
        return self.evaluation

    async def summarize_content(self, content: str) -> str:
        return f"Summary of {len(content)} chars"

    async def extract_key_takeaways(self, content: str) -> list[str]:
        return ["First takeaway", "Second takeaway"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def questions():
    return [
        Question(id=f"q{i}", note_id="note-1", user_id="user-1", question=f"Q{i}?", answer=f"A{i}")
        for i in range(1, 4)
    ]


@pytest.fixture
def question_store(questions):
    return FakeItemStore(questions)


@pytest.fixture
def scope_lookup(question_store):
    return FakeScopeLookup(question_store)


@pytest.fixture
def note():
    return Note(id="note-1", user_id="user-1", title="Photosynthesis", content="Plants turn light into sugar.")


@pytest.fixture
def source_stores(note):
    return {
        SourceType.NOTE: FakeItemStore([note]),
        SourceType.FOLDER: FakeItemStore([Folder(id="folder-1", user_id="user-1", name="Biology")]),
    }


@pytest.fixture
def content_lookup(note):
    return FakeContentLookup(
        {
            (SourceType.NOTE, note.id): note.content,
            (SourceType.FOLDER, "folder-1"): "# Photosynthesis\nPlants turn light into sugar.",
        }
    )


@pytest.fixture
def ai_sessions():
    return FakeAiSessionStore()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def no_wait_retry():
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0)
