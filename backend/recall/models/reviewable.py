from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Feedback = Literal[1, 2, 3, 4]  # 1=Forgot, 2=Hard, 3=Good, 4=Easy


class ReviewHistoryEntry(BaseModel):
    quality: int = Field(ge=1, le=4)  # raw user feedback, not the 0–5 SM-2 quality
    date: datetime


class ReviewableItem(BaseModel):
    """Scheduling state shared by questions, notes and folders."""

    id: str
    repetition: int = 0
    interval: int = 0
    ease_factor: float = 2.5
    next_review: datetime | None = None
    last_review: datetime | None = None
    history: list[ReviewHistoryEntry] = Field(default_factory=list)


class Question(ReviewableItem):
    note_id: str = ""
    user_id: str = ""
    question: str = ""
    answer: str = ""
    note_title: str | None = None


class Note(ReviewableItem):
    user_id: str = ""
    folder_id: str | None = None
    title: str = ""
    content: str = ""


class Folder(ReviewableItem):
    user_id: str = ""
    name: str = ""


class ScheduleUpdate(BaseModel):
    """Partial scheduling update. Only the fields that were set are applied."""

    repetition: int | None = None
    interval: int | None = None
    ease_factor: float | None = None
    next_review: datetime | None = None
    last_review: datetime | None = None
    history: list[ReviewHistoryEntry] | None = None

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}

    def apply_to(self, item: ReviewableItem) -> ReviewableItem:
        return item.model_copy(update=self.changes())
