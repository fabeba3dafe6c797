from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)

_running_tasks: dict[str, asyncio.Task[Any]] = {}


def start_task(session_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
    """Create an asyncio task and register it by AI review session ID."""
    task = asyncio.create_task(coro, name=f"generate-{session_id}")
    _running_tasks[session_id] = task
    task.add_done_callback(lambda _: _running_tasks.pop(session_id, None))
    return task


def is_processing(session_id: str) -> bool:
    task = _running_tasks.get(session_id)
    return task is not None and not task.done()


async def recover_stuck_sessions() -> None:
    """Re-queue generation for sessions left pending by a previous crash."""
    from recall.db.sqlite import SqliteAiSessionStore
    from recall.dependencies import get_orchestrator
    from recall.models.ai_review import AiReviewStatus, GenerationRequest

    store = SqliteAiSessionStore()
    orchestrator = get_orchestrator()
    for session in await store.find_by_status([AiReviewStatus.PENDING]):
        if is_processing(session.id):
            continue
        logger.info("Recovering pending AI review session: %s", session.id)
        start_task(
            session.id,
            orchestrator.generate_for_session(
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
            ),
        )
