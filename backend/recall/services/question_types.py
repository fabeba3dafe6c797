"""
Catalogue of AI review question types.

Each type belongs to one difficulty and carries a sampling weight.
select_question_types() expands weights ×10 into a flat pool and draws
from it uniformly, with replacement, once per question slot.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass

from recall.models.ai_review import AiReviewDifficulty, AiReviewMode, AiReviewQuestionType
from recall.models.reviewable import ReviewableItem

T = AiReviewQuestionType
EASY, MEDIUM, HARD = AiReviewDifficulty.EASY, AiReviewDifficulty.MEDIUM, AiReviewDifficulty.HARD


@dataclass(frozen=True)
class QuestionTypeConfig:
    type: AiReviewQuestionType
    name: str
    description: str
    difficulty: AiReviewDifficulty
    prompt_template: str
    weight: float = 1.0


QUESTION_TYPE_CONFIGS: dict[AiReviewQuestionType, QuestionTypeConfig] = {
    c.type: c
    for c in [
        QuestionTypeConfig(
            T.FACT_BASED, "Fact-based (What/When/Who)",
            "Questions that test recall of specific facts, dates, names, or events", EASY,
            "Create a fact-based question about {topic}. Focus on who, what, when, where "
            "details that can be directly answered from the content.", 1.0,
        ),
        QuestionTypeConfig(
            T.DEFINITION, "Definition",
            "Questions asking for definitions of key terms or concepts", EASY,
            "Create a definition question for important terms or concepts in {topic}.", 1.2,
        ),
        QuestionTypeConfig(
            T.TRUE_FALSE, "True/False",
            "Binary choice questions testing understanding of statements", EASY,
            "Create a true/false question about {topic} with a clear, checkable statement.", 0.8,
        ),
        QuestionTypeConfig(
            T.FILL_IN_THE_BLANK, "Fill in the Blank",
            "Questions with missing words or phrases to complete", EASY,
            "Create a fill-in-the-blank question about {topic}. Remove a key term.", 1.0,
        ),
        QuestionTypeConfig(
            T.MULTIPLE_CHOICE_BASIC, "Multiple Choice (Basic facts)",
            "Multiple choice questions testing basic factual knowledge", EASY,
            "Create a multiple choice question about {topic} with one correct answer "
            "and 3 plausible distractors.", 1.1,
        ),
        QuestionTypeConfig(
            T.FLASHCARD, "Flashcards (Basic Q&A)",
            "Simple question-answer pairs for memorization", EASY,
            "Create a flashcard-style question about {topic} focused on one key fact.", 0.9,
        ),
        QuestionTypeConfig(
            T.MATCHING, "Matching Terms with Definitions",
            "Questions that require matching related items", EASY,
            "Create a matching question about {topic} pairing terms with definitions.", 1.0,
        ),
        QuestionTypeConfig(
            T.CLOZE_DELETION, "Cloze Deletion",
            "Text passages with strategically removed words", EASY,
            "Create a cloze deletion exercise about {topic}.", 1.0,
        ),
        QuestionTypeConfig(
            T.EXPLAIN_OWN_WORDS, "Explain in Your Own Words",
            "Questions requiring students to demonstrate understanding by explaining concepts",
            MEDIUM, "Ask the student to explain {topic} in their own words.", 1.3,
        ),
        QuestionTypeConfig(
            T.SCENARIO, "Scenario Questions",
            "Situational questions that apply knowledge to realistic contexts", MEDIUM,
            "Create a scenario-based question about {topic} set in a realistic situation.", 1.4,
        ),
        QuestionTypeConfig(
            T.COMPARE_CONTRAST, "Compare & Contrast",
            "Questions asking students to identify similarities and differences", MEDIUM,
            "Create a compare and contrast question about {topic}.", 1.2,
        ),
        QuestionTypeConfig(
            T.CAUSE_EFFECT, "Cause and Effect",
            "Questions exploring relationships between events, actions, and outcomes", MEDIUM,
            "Create a cause and effect question about {topic}.", 1.3,
        ),
        QuestionTypeConfig(
            T.CATEGORIZATION, "Categorization",
            "Questions requiring classification or organization of information", MEDIUM,
            "Create a categorization question about {topic}.", 1.1,
        ),
        QuestionTypeConfig(
            T.MULTIPLE_CHOICE_CONCEPTUAL, "Multiple Choice (Conceptual)",
            "Multiple choice questions testing deeper conceptual understanding", MEDIUM,
            "Create a conceptual multiple choice question about {topic}.", 1.2,
        ),
        QuestionTypeConfig(
            T.PROBLEM_SOLVING, "Problem Solving / Case-based",
            "Questions presenting problems that require analytical thinking", MEDIUM,
            "Create a problem-solving question about {topic} built around a case.", 1.5,
        ),
        QuestionTypeConfig(
            T.JUSTIFY_DEFEND, "Justify/Defend",
            "Questions requiring students to provide reasoning and evidence for positions", HARD,
            "Ask the student to justify or defend a position about {topic}.", 1.6,
        ),
        QuestionTypeConfig(
            T.CRITIQUE_STATEMENT, "Critique a Statement",
            "Questions asking for critical analysis and evaluation", HARD,
            "Present a statement about {topic} for the student to critique.", 1.5,
        ),
        QuestionTypeConfig(
            T.RANK_PRIORITIZE, "Rank/Prioritize",
            "Questions requiring evaluation and ordering based on criteria", HARD,
            "Ask the student to rank or prioritize items from {topic} by a criterion.", 1.4,
        ),
        QuestionTypeConfig(
            T.SUMMARY, "Create a Summary",
            "Questions asking students to synthesize information into summaries", HARD,
            "Ask the student to summarize the key ideas of {topic}.", 1.3,
        ),
        QuestionTypeConfig(
            T.CONCEPT_MAP, "Design a Concept Map",
            "Questions requiring visualization of relationships between concepts", HARD,
            "Ask the student to map the relationships between concepts in {topic}.", 1.7,
        ),
        QuestionTypeConfig(
            T.PREDICTION_HYPOTHESIS, "Prediction / Hypothesis",
            "Questions asking for predictions or hypothesis formation", HARD,
            "Ask the student to make a prediction or hypothesis based on {topic}.", 1.6,
        ),
    ]
}

DIFFICULTY_DESCRIPTIONS: dict[AiReviewDifficulty, str] = {
    EASY: "Beginner (Low Difficulty) - Focus: Remembering & Understanding. "
    "Questions should test basic recall, recognition, and simple comprehension.",
    MEDIUM: "Intermediate (Moderate Difficulty) - Focus: Applying & Analyzing. "
    "Questions should require applying knowledge and connecting concepts.",
    HARD: "Advanced (High Difficulty) - Focus: Evaluating & Creating. "
    "Questions should involve critical thinking, evaluation, and synthesis.",
}

# minutes per question (min, max)
DIFFICULTY_TIME_FACTORS: dict[AiReviewDifficulty, tuple[float, float]] = {
    EASY: (0.5, 1.0),
    MEDIUM: (1.0, 2.0),
    HARD: (2.0, 3.0),
}


def types_for_difficulty(difficulty: AiReviewDifficulty) -> list[QuestionTypeConfig]:
    return [c for c in QUESTION_TYPE_CONFIGS.values() if c.difficulty == difficulty]


def select_question_types(
    difficulty: AiReviewDifficulty,
    count: int,
    exclude: list[AiReviewQuestionType] | None = None,
    rng: random.Random | None = None,
) -> list[AiReviewQuestionType]:
    available = [c for c in types_for_difficulty(difficulty) if c.type not in (exclude or [])]
    if not available:
        raise ValueError(f"No question types available for difficulty: {difficulty.value}")

    pool: list[AiReviewQuestionType] = []
    for config in available:
        pool.extend([config.type] * math.ceil(round(config.weight * 10, 6)))

    rng = rng or random.Random()
    return [rng.choice(pool) for _ in range(count)]


def estimate_time(difficulty: AiReviewDifficulty, count: int) -> str:
    if count == 0:
        return "~0 min"
    per_min, per_max = DIFFICULTY_TIME_FACTORS[difficulty]
    low = math.floor(per_min * count + 0.5) or 1
    high = max(math.floor(per_max * count + 0.5), low)
    return f"~{low} min" if low == high else f"~{low}-{high} min"


def recommended_mode(source: ReviewableItem | None) -> AiReviewMode:
    """Well-practised sources (4+ reviews averaging Good or better) get a single test."""
    if source is None or not source.history:
        return AiReviewMode.SEPARATE_QUESTIONS
    average = sum(entry.quality for entry in source.history) / len(source.history)
    if len(source.history) >= 4 and average >= 4:
        return AiReviewMode.MONO_TEST
    return AiReviewMode.SEPARATE_QUESTIONS
