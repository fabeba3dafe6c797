from __future__ import annotations

import logging
from datetime import datetime

from recall.models.review_session import ReviewMode, ReviewScope
from recall.models.reviewable import ReviewableItem
from recall.services.ports import ScopeLookup
from recall.services.scheduler import start_of_day, utcnow

logger = logging.getLogger(__name__)


def is_due(item: ReviewableItem, now: datetime | None = None) -> bool:
    """True when the item's review date is today or earlier. Never-reviewed items are due."""
    if item.next_review is None:
        return True
    today = start_of_day(now or utcnow())
    return start_of_day(item.next_review) <= today


async def select_items(
    lookup: ScopeLookup,
    mode: ReviewMode,
    scope: ReviewScope,
    scope_id: str,
    now: datetime | None = None,
) -> list[ReviewableItem]:
    """Candidate items for a review session, in lookup order."""
    items = await lookup.items_for_scope(scope, scope_id)
    if mode == ReviewMode.DUE:
        items = [item for item in items if is_due(item, now)]
    logger.debug("Selected %d items for %s %s (%s)", len(items), scope.value, scope_id, mode.value)
    return items
