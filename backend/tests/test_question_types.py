import random
from collections import Counter
from datetime import datetime, timezone

import pytest

from recall.models.ai_review import AiReviewDifficulty, AiReviewMode, AiReviewQuestionType
from recall.models.reviewable import Note, ReviewHistoryEntry
from recall.services.question_types import (
    QUESTION_TYPE_CONFIGS,
    estimate_time,
    recommended_mode,
    select_question_types,
    types_for_difficulty,
)

D = AiReviewDifficulty


def test_catalogue_covers_every_type():
    assert set(QUESTION_TYPE_CONFIGS) == set(AiReviewQuestionType)
    assert [len(types_for_difficulty(d)) for d in (D.EASY, D.MEDIUM, D.HARD)] == [8, 7, 6]


def test_selection_stays_within_difficulty():
    allowed = {c.type for c in types_for_difficulty(D.HARD)}
    picked = select_question_types(D.HARD, 50, rng=random.Random(3))
    assert len(picked) == 50
    assert set(picked) <= allowed


def test_exclusion():
    easy = [c.type for c in types_for_difficulty(D.EASY)]
    picked = select_question_types(D.EASY, 30, exclude=easy[1:], rng=random.Random(0))
    assert set(picked) == {easy[0]}


def test_excluding_everything_raises():
    with pytest.raises(ValueError):
        select_question_types(D.MEDIUM, 1, exclude=[c.type for c in types_for_difficulty(D.MEDIUM)])


def test_heavier_types_are_drawn_more_often():
    configs = types_for_difficulty(D.EASY)
    heaviest = max(configs, key=lambda c: c.weight)
    lightest = min(configs, key=lambda c: c.weight)
    if heaviest.weight == lightest.weight:
        pytest.skip("uniform weights")
    counts = Counter(select_question_types(D.EASY, 5000, rng=random.Random(11)))
    assert counts[heaviest.type] > counts[lightest.type]


@pytest.mark.parametrize(
    "difficulty,count,expected",
    [(D.EASY, 5, "~3-5 min"), (D.MEDIUM, 5, "~5-10 min"), (D.HARD, 1, "~2-3 min"), (D.EASY, 1, "~1 min"), (D.MEDIUM, 0, "~0 min")],
)
def test_estimate_time(difficulty, count, expected):
    assert estimate_time(difficulty, count) == expected


def _note_with(qualities):
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return Note(id="n", history=[ReviewHistoryEntry(quality=q, date=when) for q in qualities])


def test_recommended_mode():
    assert recommended_mode(None) == AiReviewMode.SEPARATE_QUESTIONS
    assert recommended_mode(_note_with([4, 4, 4])) == AiReviewMode.SEPARATE_QUESTIONS
    assert recommended_mode(_note_with([4, 4, 4, 4])) == AiReviewMode.MONO_TEST
    assert recommended_mode(_note_with([4, 4, 4, 3])) == AiReviewMode.SEPARATE_QUESTIONS
