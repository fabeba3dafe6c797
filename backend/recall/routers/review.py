"""
Self-graded review router.

Endpoints:
  POST   /review/sessions                     start a session (204 when nothing qualifies)
  GET    /review/sessions/{id}                current session state
  GET    /review/sessions/{id}/elapsed        session / current item elapsed seconds
  POST   /review/sessions/{id}/show-answer    reveal the answer
  POST   /review/sessions/{id}/feedback       grade the current item (1-4) and advance
  POST   /review/sessions/{id}/next           move to another remaining item
  DELETE /review/sessions/{id}                end the session
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from recall.dependencies import get_question_store, get_scope_lookup
from recall.models.review_session import FeedbackRequest, ReviewSession, StartReviewRequest
from recall.services.ports import ItemStore, ScopeLookup
from recall.services.review_session import ReviewSessionManager

logger = logging.getLogger(__name__)
router = APIRouter()

_managers: dict[str, ReviewSessionManager] = {}


def _dump(session: ReviewSession) -> dict:
    # model_dump keeps Question fields on items; response_model validation would drop them
    return session.model_dump(mode="json")


def _manager_or_404(session_id: str) -> ReviewSessionManager:
    manager = _managers.get(session_id)
    if manager is None or manager.session is None:
        _managers.pop(session_id, None)
        raise HTTPException(status_code=404, detail="Review session not found")
    return manager


def _progress(session_id: str, manager: ReviewSessionManager) -> dict:
    session = manager.session
    if session is None:
        _managers.pop(session_id, None)
        return {"finished": True, "session": None}
    return {"finished": False, "session": _dump(session)}


@router.post("/sessions", status_code=201, response_model=None)
async def start_session(
    body: StartReviewRequest,
    items: ItemStore = Depends(get_question_store),
    lookup: ScopeLookup = Depends(get_scope_lookup),
) -> dict | Response:
    manager = ReviewSessionManager(items, lookup)
    session = await manager.start_review_session(body.mode, body.scope, body.scope_id)
    if session is None:
        return Response(status_code=204)
    _managers[session.id] = manager
    return _dump(session)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str) -> dict:
    return _dump(_manager_or_404(session_id).session)  # type: ignore[arg-type]


@router.get("/sessions/{session_id}/elapsed")
async def get_elapsed(session_id: str) -> dict:
    manager = _manager_or_404(session_id)
    return {
        "session_seconds": manager.get_session_elapsed_time(),
        "current_item_seconds": manager.get_current_item_elapsed_time(),
    }


@router.post("/sessions/{session_id}/show-answer")
async def show_answer(session_id: str) -> dict:
    manager = _manager_or_404(session_id)
    manager.show_answer()
    return _dump(manager.session)  # type: ignore[arg-type]


@router.post("/sessions/{session_id}/feedback")
async def submit_feedback(session_id: str, body: FeedbackRequest) -> dict:
    manager = _manager_or_404(session_id)
    if not await manager.submit_feedback(body.feedback):
        session = manager.session
        detail = session.error if session and session.error else "Failed to save review"
        raise HTTPException(status_code=502, detail=detail)
    return _progress(session_id, manager)


@router.post("/sessions/{session_id}/next")
async def next_question(session_id: str) -> dict:
    manager = _manager_or_404(session_id)
    await manager.next_question()
    return _progress(session_id, manager)


@router.delete("/sessions/{session_id}", status_code=204)
async def end_session(session_id: str) -> None:
    manager = _manager_or_404(session_id)
    await manager.end_session()
    _managers.pop(session_id, None)
