from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, SerializeAsAny

from recall.models.reviewable import Feedback, ReviewableItem


class ReviewScope(str, Enum):
    USER = "user"
    FOLDER = "folder"
    NOTE = "note"


class ReviewMode(str, Enum):
    DUE = "due"
    ALL = "all"


class AnsweredItem(BaseModel):
    item_id: str
    feedback: Feedback
    time_spent_ms: int


class ReviewSession(BaseModel):
    id: str
    scope: ReviewScope
    mode: ReviewMode
    items: list[SerializeAsAny[ReviewableItem]]
    remaining: list[str]  # ordered set of ids still needing an answer
    current_item_id: str
    started_at: datetime
    current_item_started_at: datetime
    answered: list[AnsweredItem] = Field(default_factory=list)
    is_showing_answer: bool = False
    error: str | None = None

    def current_item(self) -> ReviewableItem | None:
        for item in self.items:
            if item.id == self.current_item_id:
                return item
        return None


class StartReviewRequest(BaseModel):
    mode: ReviewMode = ReviewMode.DUE
    scope: ReviewScope
    scope_id: str


class FeedbackRequest(BaseModel):
    feedback: Feedback
