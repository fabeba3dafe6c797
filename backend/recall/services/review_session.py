"""
Self-graded review session.

Walks the user through a scope's items, runs each answer through the
scheduler and persists the update before moving on. An item whose next
review still falls today stays in the pool for another pass.
"""
from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections.abc import Callable
from datetime import datetime

from recall.config import settings
from recall.models.review_session import (
    AnsweredItem,
    ReviewMode,
    ReviewScope,
    ReviewSession,
)
from recall.services.due_selector import select_items
from recall.services.ports import ItemStore, ScopeLookup
from recall.services.scheduler import schedule, start_of_day, utcnow
from recall.services.state_store import StateStore

logger = logging.getLogger(__name__)

_SCHEDULE_FIELDS = ("repetition", "interval", "ease_factor", "next_review", "last_review", "history")


class ReviewSessionManager:
    def __init__(
        self,
        items: ItemStore,
        lookup: ScopeLookup,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
        flush_on_end: bool | None = None,
    ) -> None:
        self._items = items
        self._lookup = lookup
        self._clock = clock
        self._rng = rng or random.Random()
        self._flush_on_end = (
            settings.review_flush_on_end if flush_on_end is None else flush_on_end
        )
        self.state: StateStore[ReviewSession] = StateStore()
        self._submit_lock = asyncio.Lock()

    @property
    def session(self) -> ReviewSession | None:
        return self.state.snapshot()

    async def start_review_session(
        self, mode: ReviewMode, scope: ReviewScope, scope_id: str
    ) -> ReviewSession | None:
        """Start a session over the scope. Returns None when nothing qualifies."""
        now = self._clock()
        candidates = await select_items(self._lookup, mode, scope, scope_id, now)
        if not candidates:
            logger.info("No items to review for %s %s (%s)", scope.value, scope_id, mode.value)
            return None

        remaining = list(dict.fromkeys(item.id for item in candidates))
        session = ReviewSession(
            id=f"session-{uuid.uuid4()}",
            scope=scope,
            mode=mode,
            items=candidates,
            remaining=remaining,
            current_item_id=remaining[0],
            started_at=now,
            current_item_started_at=now,
        )
        self.state.set(session)
        return self.session

    def show_answer(self) -> None:
        current = self.state.snapshot()
        if current is None or current.is_showing_answer:
            return
        self.state.update(is_showing_answer=True)

    async def submit_feedback(self, feedback: int) -> bool:
        """
        Schedule and persist the current item, then advance.

        Returns False without advancing when there is no session or the
        item update could not be saved; the message is left on session.error.
        Overlapping calls run one at a time.
        """
        async with self._submit_lock:
            return await self._submit_current(feedback)

    async def _submit_current(self, feedback: int) -> bool:
        current = self.state.snapshot()
        if current is None:
            return False

        item = current.current_item()
        if item is None:
            self.state.update(error=f"Item {current.current_item_id} is not part of this session")
            return False

        now = self._clock()
        time_spent_ms = max(
            0, int((now - current.current_item_started_at).total_seconds() * 1000)
        )
        update = schedule(item, feedback, time_spent_ms, now=now)

        saved = await self._items.update(item.id, update.changes())
        if saved is None:
            logger.warning("Failed to persist review for item %s", item.id)
            self.state.update(error=f"Failed to save review for item {item.id}")
            return False

        if self.state.snapshot() is None:
            # Session ended while the write was in flight
            return True

        updated_item = update.apply_to(item)
        remaining = list(current.remaining)
        if start_of_day(updated_item.next_review or now) > start_of_day(now):
            remaining = [item_id for item_id in remaining if item_id != item.id]

        self.state.update(
            items=[updated_item if i.id == item.id else i for i in current.items],
            remaining=remaining,
            answered=current.answered
            + [AnsweredItem(item_id=item.id, feedback=feedback, time_spent_ms=time_spent_ms)],
            error=None,
        )
        await self.next_question()
        return True

    async def next_question(self) -> None:
        current = self.state.snapshot()
        if current is None:
            return
        if not current.remaining:
            await self.end_session()
            return

        candidates = current.remaining
        if len(candidates) > 1:
            candidates = [i for i in candidates if i != current.current_item_id]

        self.state.update(
            current_item_id=self._rng.choice(candidates),
            current_item_started_at=self._clock(),
            is_showing_answer=False,
        )

    async def end_session(self) -> None:
        current = self.state.snapshot()
        if current is None:
            return
        logger.debug("Ending review session %s", current.id)
        if self._flush_on_end:
            await self._flush_answered(current)
        self.state.set(None)

    async def _flush_answered(self, session: ReviewSession) -> None:
        answered_ids = {a.item_id for a in session.answered}
        for item in session.items:
            if item.id not in answered_ids:
                continue
            fields = {name: getattr(item, name) for name in _SCHEDULE_FIELDS}
            if await self._items.update(item.id, fields) is None:
                logger.warning("Flush on end failed for item %s", item.id)

    def get_session_elapsed_time(self) -> int:
        current = self.state.snapshot()
        if current is None:
            return 0
        return int((self._clock() - current.started_at).total_seconds())

    def get_current_item_elapsed_time(self) -> int:
        current = self.state.snapshot()
        if current is None:
            return 0
        return int((self._clock() - current.current_item_started_at).total_seconds())
