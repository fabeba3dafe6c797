"""
AI review router.

Endpoints:
  POST   /ai-review/sessions                               request a session; generation runs in background
  POST   /ai-review/sessions/{id}/load                     load a generated session and start it
  GET    /ai-review/sessions/{id}                          current state (or stored session)
  POST   /ai-review/sessions/{id}/questions/{qid}/answer   submit and grade an answer
  POST   /ai-review/sessions/{id}/questions/{qid}/evaluate retry grading of an answered question
  POST   /ai-review/sessions/{id}/questions/{qid}/skip     skip an unanswered question
  POST   /ai-review/sessions/{id}/next | /previous         navigation
  POST   /ai-review/sessions/{id}/tick                     accrue time on the current question
  GET    /ai-review/sessions/{id}/progress                 answered / total
  POST   /ai-review/sessions/{id}/complete                 grade leftovers, store result, reschedule source
  POST   /ai-review/sessions/{id}/insights                 summary + key takeaways of the source
  DELETE /ai-review/sessions/{id}                          drop the in-memory session
  POST   /ai-review/batch                                  generate questions for several pending sessions
  GET    /ai-review/sources/{type}/{id}/sessions           sessions for a note / folder, newest first
  GET    /ai-review/sources/{type}/{id}/recommendation     suggested mode and time estimate
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from recall.dependencies import (
    get_ai_session_store,
    get_orchestrator,
    get_source_stores,
)
from recall.models.ai_review import (
    AiReviewDifficulty,
    AiReviewProgress,
    AiReviewQuestionStatus,
    AiReviewResult,
    AiReviewSession,
    AiReviewState,
    AnswerRequest,
    BatchGenerationItem,
    BatchGenerationResult,
    ContentInsights,
    SourceType,
    StartAiReviewRequest,
    TickRequest,
)
from recall.services.ai_review_session import AiReviewSessionManager
from recall.services.generation import GenerationOrchestrator
from recall.services.ports import AiSessionStore, ItemStore
from recall.services.question_types import estimate_time, recommended_mode

logger = logging.getLogger(__name__)
router = APIRouter()

_managers: dict[str, AiReviewSessionManager] = {}


def _new_manager(
    sessions: AiSessionStore,
    orchestrator: GenerationOrchestrator,
    sources: dict[SourceType, ItemStore],
) -> AiReviewSessionManager:
    return AiReviewSessionManager(sessions, orchestrator, sources)


def _manager_or_404(session_id: str) -> AiReviewSessionManager:
    manager = _managers.get(session_id)
    if manager is None or manager.session is None:
        raise HTTPException(status_code=404, detail="AI review session not loaded")
    return manager


def _question_or_404(manager: AiReviewSessionManager, question_id: str):
    session = manager.session
    for question in session.questions if session else []:
        if question.id == question_id:
            return question
    raise HTTPException(status_code=404, detail="Question not found")


@router.post("/sessions", status_code=202)
async def start_ai_review(
    body: StartAiReviewRequest,
    sessions: AiSessionStore = Depends(get_ai_session_store),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    sources: dict[SourceType, ItemStore] = Depends(get_source_stores),
) -> dict:
    manager = _new_manager(sessions, orchestrator, sources)
    session_id = await manager.start_ai_review(body)
    if session_id is None:
        raise HTTPException(status_code=502, detail=manager.state.snapshot().error)
    _managers[session_id] = manager
    return {"session_id": session_id}


@router.post("/sessions/{session_id}/load", response_model=AiReviewState)
async def load_session(
    session_id: str,
    sessions: AiSessionStore = Depends(get_ai_session_store),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    sources: dict[SourceType, ItemStore] = Depends(get_source_stores),
) -> AiReviewState:
    manager = _managers.get(session_id) or _new_manager(sessions, orchestrator, sources)
    if await manager.load_session(session_id) is None:
        _managers.pop(session_id, None)
        raise HTTPException(status_code=404, detail="AI review session not found")
    _managers[session_id] = manager
    return manager.state.snapshot()


@router.get("/sessions/{session_id}", response_model=AiReviewState)
async def get_session(
    session_id: str,
    sessions: AiSessionStore = Depends(get_ai_session_store),
) -> AiReviewState:
    manager = _managers.get(session_id)
    if manager is not None and manager.session is not None:
        return manager.state.snapshot()
    stored = await sessions.get(session_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="AI review session not found")
    return AiReviewState(session=stored)


@router.post("/sessions/{session_id}/questions/{question_id}/answer", response_model=AiReviewState)
async def submit_answer(session_id: str, question_id: str, body: AnswerRequest) -> AiReviewState:
    manager = _manager_or_404(session_id)
    question = _question_or_404(manager, question_id)
    if question.status not in (AiReviewQuestionStatus.GENERATED, AiReviewQuestionStatus.ANSWERED):
        raise HTTPException(status_code=409, detail=f"Question is {question.status.value}")
    if not await manager.submit_answer(question_id, body.answer):
        raise HTTPException(status_code=502, detail=manager.state.snapshot().error)
    return manager.state.snapshot()


@router.post(
    "/sessions/{session_id}/questions/{question_id}/evaluate", response_model=AiReviewState
)
async def evaluate_answer(session_id: str, question_id: str) -> AiReviewState:
    manager = _manager_or_404(session_id)
    question = _question_or_404(manager, question_id)
    if question.status != AiReviewQuestionStatus.ANSWERED:
        raise HTTPException(status_code=409, detail=f"Question is {question.status.value}")
    if not await manager.evaluate_answer(question_id):
        raise HTTPException(status_code=502, detail=manager.state.snapshot().error)
    return manager.state.snapshot()


@router.post("/sessions/{session_id}/questions/{question_id}/skip", response_model=AiReviewState)
async def skip_question(session_id: str, question_id: str) -> AiReviewState:
    manager = _manager_or_404(session_id)
    question = _question_or_404(manager, question_id)
    if not await manager.skip_question(question_id):
        raise HTTPException(status_code=409, detail=f"Question is {question.status.value}")
    return manager.state.snapshot()


@router.post("/sessions/{session_id}/next", response_model=AiReviewState)
async def next_question(session_id: str) -> AiReviewState:
    manager = _manager_or_404(session_id)
    manager.next_question()
    return manager.state.snapshot()


@router.post("/sessions/{session_id}/previous", response_model=AiReviewState)
async def previous_question(session_id: str) -> AiReviewState:
    manager = _manager_or_404(session_id)
    manager.previous_question()
    return manager.state.snapshot()


@router.post("/sessions/{session_id}/tick")
async def tick(session_id: str, body: TickRequest) -> dict:
    manager = _manager_or_404(session_id)
    return {
        "counted": manager.tick(body.seconds),
        "session_seconds": manager.get_session_elapsed_time(),
    }


@router.get("/sessions/{session_id}/progress", response_model=AiReviewProgress)
async def get_progress(session_id: str) -> AiReviewProgress:
    return _manager_or_404(session_id).get_progress()


@router.post("/sessions/{session_id}/complete", response_model=AiReviewResult)
async def complete_session(session_id: str) -> AiReviewResult:
    manager = _manager_or_404(session_id)
    result = await manager.complete_session()
    if result is None:
        raise HTTPException(status_code=409, detail="Session cannot be completed")
    return result


@router.post("/sessions/{session_id}/insights", response_model=ContentInsights)
async def generate_insights(session_id: str) -> ContentInsights:
    manager = _manager_or_404(session_id)
    insights = await manager.generate_insights()
    if insights is None:
        raise HTTPException(status_code=404, detail="Source content not found")
    return insights


@router.delete("/sessions/{session_id}", status_code=204)
async def end_session(session_id: str) -> None:
    manager = _manager_or_404(session_id)
    manager.end_session()
    _managers.pop(session_id, None)


@router.post("/batch", response_model=list[BatchGenerationResult])
async def batch_generate(
    items: list[BatchGenerationItem],
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[BatchGenerationResult]:
    return await orchestrator.batch_generate_questions(items)


@router.get("/sources/{source_type}/{source_id}/sessions", response_model=list[AiReviewSession])
async def list_sessions_for_source(
    source_type: SourceType,
    source_id: str,
    sessions=Depends(get_ai_session_store),
) -> list[AiReviewSession]:
    return await sessions.list_for_source(source_type, source_id)


@router.get("/sources/{source_type}/{source_id}/recommendation")
async def get_recommendation(
    source_type: SourceType,
    source_id: str,
    difficulty: AiReviewDifficulty = Query(default=AiReviewDifficulty.MEDIUM),
    question_count: int = Query(default=5, ge=1, le=20),
    sources: dict[SourceType, ItemStore] = Depends(get_source_stores),
) -> dict:
    source = await sources[source_type].get(source_id)
    if source is None:
        raise HTTPException(status_code=404, detail=f"{source_type.value.capitalize()} not found")
    return {
        "mode": recommended_mode(source).value,
        "estimated_time": estimate_time(difficulty, question_count),
    }
