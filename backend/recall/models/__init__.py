from recall.models.ai_review import (
    AiReviewDifficulty,
    AiReviewEvaluation,
    AiReviewMode,
    AiReviewQuestion,
    AiReviewQuestionStatus,
    AiReviewQuestionType,
    AiReviewResult,
    AiReviewSession,
    AiReviewSessionCreate,
    AiReviewSessionUpdate,
    AiReviewState,
    AiReviewStatus,
    AnswerEvaluation,
    SourceType,
)
from recall.models.review_session import (
    AnsweredItem,
    ReviewMode,
    ReviewScope,
    ReviewSession,
)
from recall.models.reviewable import (
    Folder,
    Note,
    Question,
    ReviewableItem,
    ReviewHistoryEntry,
    ScheduleUpdate,
)

__all__ = [
    "AiReviewDifficulty",
    "AiReviewEvaluation",
    "AiReviewMode",
    "AiReviewQuestion",
    "AiReviewQuestionStatus",
    "AiReviewQuestionType",
    "AiReviewResult",
    "AiReviewSession",
    "AiReviewSessionCreate",
    "AiReviewSessionUpdate",
    "AiReviewState",
    "AiReviewStatus",
    "AnswerEvaluation",
    "AnsweredItem",
    "Folder",
    "Note",
    "Question",
    "ReviewHistoryEntry",
    "ReviewMode",
    "ReviewScope",
    "ReviewSession",
    "ReviewableItem",
    "ScheduleUpdate",
    "SourceType",
]
