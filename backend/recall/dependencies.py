"""FastAPI dependency providers. Router tests swap these out via dependency_overrides."""
from __future__ import annotations

from recall.db.sqlite import (
    SqliteAiSessionStore,
    SqliteContentLookup,
    SqliteItemStore,
    SqliteScopeLookup,
)
from recall.models.ai_review import SourceType
from recall.services.ai_provider import LLMReviewProvider
from recall.services.generation import GenerationOrchestrator
from recall.services.ports import ItemStore


def get_question_store() -> SqliteItemStore:
    return SqliteItemStore("questions")


def get_scope_lookup() -> SqliteScopeLookup:
    return SqliteScopeLookup()


def get_ai_session_store() -> SqliteAiSessionStore:
    return SqliteAiSessionStore()


def get_source_stores() -> dict[SourceType, ItemStore]:
    return {
        SourceType.NOTE: SqliteItemStore("notes"),
        SourceType.FOLDER: SqliteItemStore("folders"),
    }


def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator(
        LLMReviewProvider(), SqliteAiSessionStore(), SqliteContentLookup()
    )
