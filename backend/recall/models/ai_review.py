from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AiReviewStatus(str, Enum):
    PENDING = "pending"
    READY_FOR_REVIEW = "ready_for_review"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AiReviewQuestionStatus(str, Enum):
    GENERATED = "generated"
    ANSWERED = "answered"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"
    SKIPPED = "skipped"


class AiReviewEvaluation(str, Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"
    ERROR = "error"


class AiReviewMode(str, Enum):
    SEPARATE_QUESTIONS = "separate_questions"
    MONO_TEST = "mono_test"


class AiReviewDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SourceType(str, Enum):
    NOTE = "note"
    FOLDER = "folder"


class AiReviewQuestionType(str, Enum):
    # Beginner
    FACT_BASED = "fact_based"
    DEFINITION = "definition"
    TRUE_FALSE = "true_false"
    FILL_IN_THE_BLANK = "fill_in_the_blank"
    MULTIPLE_CHOICE_BASIC = "multiple_choice_basic"
    FLASHCARD = "flashcard"
    MATCHING = "matching"
    CLOZE_DELETION = "cloze_deletion"
    # Intermediate
    EXPLAIN_OWN_WORDS = "explain_own_words"
    SCENARIO = "scenario"
    COMPARE_CONTRAST = "compare_contrast"
    CAUSE_EFFECT = "cause_effect"
    CATEGORIZATION = "categorization"
    MULTIPLE_CHOICE_CONCEPTUAL = "multiple_choice_conceptual"
    PROBLEM_SOLVING = "problem_solving"
    # Advanced
    JUSTIFY_DEFEND = "justify_defend"
    CRITIQUE_STATEMENT = "critique_statement"
    RANK_PRIORITIZE = "rank_prioritize"
    SUMMARY = "summary"
    CONCEPT_MAP = "concept_map"
    PREDICTION_HYPOTHESIS = "prediction_hypothesis"


class AiReviewQuestion(BaseModel):
    id: str
    question_type: AiReviewQuestionType
    question: str
    options: list[str] | None = None
    status: AiReviewQuestionStatus = AiReviewQuestionStatus.GENERATED
    answer: str | None = None
    evaluation: AiReviewEvaluation | None = None
    score: int | None = None  # 0–100
    ai_message: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    correct_answer: str | None = None
    time_spent: int = 0  # seconds


class AiReviewResult(BaseModel):
    total_questions: int
    correct_answers: int
    skipped_answers: int


class AiReviewSession(BaseModel):
    id: str
    user_id: str
    source_id: str
    source_type: SourceType
    status: AiReviewStatus
    mode: AiReviewMode
    difficulty: AiReviewDifficulty
    question_count: int = 5
    question_types: list[AiReviewQuestionType] | None = None
    questions: list[AiReviewQuestion] = Field(default_factory=list)
    result: AiReviewResult | None = None
    summary: str | None = None
    key_takeaways: list[str] | None = None
    error_message: str | None = None
    requested_at: datetime | None = None
    questions_generated_at: datetime | None = None
    session_started_at: datetime | None = None
    completed_at: datetime | None = None


class AiReviewSessionCreate(BaseModel):
    user_id: str
    source_id: str
    source_type: SourceType
    mode: AiReviewMode
    difficulty: AiReviewDifficulty
    question_count: int
    question_types: list[AiReviewQuestionType] | None = None
    status: AiReviewStatus = AiReviewStatus.PENDING
    requested_at: datetime


class AiReviewSessionUpdate(BaseModel):
    status: AiReviewStatus | None = None
    questions: list[AiReviewQuestion] | None = None
    result: AiReviewResult | None = None
    summary: str | None = None
    key_takeaways: list[str] | None = None
    error_message: str | None = None
    questions_generated_at: datetime | None = None
    session_started_at: datetime | None = None
    completed_at: datetime | None = None


class StartAiReviewRequest(BaseModel):
    source_id: str
    source_type: SourceType
    user_id: str
    difficulty: AiReviewDifficulty = AiReviewDifficulty.MEDIUM
    mode: AiReviewMode = AiReviewMode.SEPARATE_QUESTIONS
    question_count: int = Field(default=5, ge=1, le=20)
    question_types: list[AiReviewQuestionType] | None = None


class AnswerRequest(BaseModel):
    answer: str


class TickRequest(BaseModel):
    seconds: int = Field(default=1, ge=1, le=60)


class AiReviewProgress(BaseModel):
    answered: int
    total: int
    percentage: int


class AiReviewState(BaseModel):
    """Snapshot of one AI review as seen by the UI layer."""

    session: AiReviewSession | None = None
    current_question_index: int = 0
    is_loading: bool = False
    error: str | None = None


# --- Provider contract ---


class QuestionDraft(BaseModel):
    question_type: AiReviewQuestionType | None = None
    question: str
    options: list[str] | None = None
    correct_answer: str | None = None


class GenerationRequest(BaseModel):
    content: str
    difficulty: AiReviewDifficulty
    count: int
    mode: AiReviewMode
    types: list[AiReviewQuestionType] | None = None


class EvaluationRequest(BaseModel):
    question: str
    answer: str
    question_type: AiReviewQuestionType
    content: str | None = None
    difficulty: AiReviewDifficulty | None = None


class AnswerEvaluation(BaseModel):
    evaluation: AiReviewEvaluation
    score: int
    message: str
    suggestions: list[str] = Field(default_factory=list)
    correct_answer: str | None = None


class ContentInsights(BaseModel):
    summary: str
    key_takeaways: list[str]


# --- Batch generation ---


class BatchGenerationItem(BaseModel):
    session_id: str
    source_id: str
    source_type: SourceType = SourceType.NOTE
    difficulty: AiReviewDifficulty
    question_count: int
    mode: AiReviewMode
    question_types: list[AiReviewQuestionType] | None = None


class BatchGenerationResult(BaseModel):
    session_id: str
    success: bool
    error: str | None = None
