"""
SM-2 spaced-repetition scheduler.

schedule() is pure: it reads an item and returns the ScheduleUpdate the
caller must persist. Reviewing ahead of the due date only records history.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from recall.models.reviewable import ReviewableItem, ReviewHistoryEntry, ScheduleUpdate

# feedback: 1=Forgot, 2=Hard, 3=Good, 4=Easy
_FEEDBACK_QUALITY = {1: 0, 2: 2, 3: 4, 4: 5}  # maps to SM-2 quality scores (0–5)

TIME_THRESHOLD_MS = 15000
MAX_TIME_PENALTY = 1.5
TIME_PENALTY_FACTOR = 0.0001  # quality points per ms over the threshold

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
PASSING_QUALITY = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from storage as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def start_of_day(value: datetime) -> datetime:
    return as_utc(value).replace(hour=0, minute=0, second=0, microsecond=0)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def adjusted_quality(feedback: int, time_spent_ms: float) -> float:
    """SM-2 quality for a feedback value, penalised for slow correct answers."""
    if feedback not in _FEEDBACK_QUALITY:
        raise ValueError(f"feedback must be 1, 2, 3 or 4, got {feedback!r}")
    q = float(_FEEDBACK_QUALITY[feedback])
    if q >= PASSING_QUALITY and time_spent_ms > TIME_THRESHOLD_MS:
        penalty = min(MAX_TIME_PENALTY, (time_spent_ms - TIME_THRESHOLD_MS) * TIME_PENALTY_FACTOR)
        q = max(0.0, q - penalty)
    return q


def schedule(
    item: ReviewableItem,
    feedback: int,
    time_spent_ms: float,
    now: datetime | None = None,
) -> ScheduleUpdate:
    now = as_utc(now) if now is not None else utcnow()
    history = list(item.history) + [ReviewHistoryEntry(quality=feedback, date=now)]

    if item.next_review is not None and now < as_utc(item.next_review):
        # Early review: leave the schedule alone
        return ScheduleUpdate(history=history, last_review=now)

    q = adjusted_quality(feedback, time_spent_ms)
    ease_factor = item.ease_factor if item.ease_factor is not None else DEFAULT_EASE_FACTOR

    if q < PASSING_QUALITY:
        repetition = 0
        interval = 0
        ease_factor = max(MIN_EASE_FACTOR, ease_factor - 0.2)
    else:
        repetition = item.repetition + 1
        ease_factor = max(
            MIN_EASE_FACTOR,
            ease_factor + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)),
        )
        if repetition == 1:
            interval = 1
        elif repetition == 2:
            interval = max(2, _round_half_up(1 * ease_factor))
        else:
            base_interval = item.interval if item.interval > 0 else 1
            interval = _round_half_up(base_interval * ease_factor)
        if interval < 1:
            interval = 1

    return ScheduleUpdate(
        repetition=repetition,
        interval=interval,
        ease_factor=ease_factor,
        next_review=start_of_day(now) + timedelta(days=interval),
        last_review=now,
        history=history,
    )


def feedback_from_ratio(correct: int, total: int) -> int:
    """Map a correctness ratio onto the 1–4 feedback scale."""
    ratio = correct / total if total > 0 else 0.0
    if ratio == 0:
        return 1
    if ratio < 0.5:
        return 2
    if ratio < 0.8:
        return 3
    return 4
