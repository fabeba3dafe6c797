import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from recall.config import settings
from recall.models.ai_review import (
    AiReviewSession,
    AiReviewSessionCreate,
    AiReviewSessionUpdate,
    AiReviewStatus,
    SourceType,
)
from recall.models.review_session import ReviewScope
from recall.models.reviewable import Folder, Note, Question, ReviewableItem

logger = logging.getLogger(__name__)

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS folders (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    name        TEXT NOT NULL,
    repetition  INTEGER NOT NULL DEFAULT 0,
    interval    INTEGER NOT NULL DEFAULT 0,
    ease_factor REAL NOT NULL DEFAULT 2.5,
    next_review TEXT,
    last_review TEXT,
    history     TEXT NOT NULL DEFAULT '[]',
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS notes (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    folder_id   TEXT REFERENCES folders(id) ON DELETE SET NULL,
    title       TEXT NOT NULL DEFAULT '',
    content     TEXT NOT NULL DEFAULT '',
    repetition  INTEGER NOT NULL DEFAULT 0,
    interval    INTEGER NOT NULL DEFAULT 0,
    ease_factor REAL NOT NULL DEFAULT 2.5,
    next_review TEXT,
    last_review TEXT,
    history     TEXT NOT NULL DEFAULT '[]',
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_notes_folder ON notes(folder_id);

CREATE TABLE IF NOT EXISTS questions (
    id          TEXT PRIMARY KEY,
    note_id     TEXT NOT NULL REFERENCES notes(id) ON DELETE CASCADE,
    user_id     TEXT NOT NULL,
    question    TEXT NOT NULL,
    answer      TEXT NOT NULL,
    repetition  INTEGER NOT NULL DEFAULT 0,
    interval    INTEGER NOT NULL DEFAULT 0,
    ease_factor REAL NOT NULL DEFAULT 2.5,
    next_review TEXT,
    last_review TEXT,
    history     TEXT NOT NULL DEFAULT '[]',
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_questions_note ON questions(note_id);
CREATE INDEX IF NOT EXISTS idx_questions_user ON questions(user_id);

CREATE TABLE IF NOT EXISTS ai_review_sessions (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    source_id       TEXT NOT NULL,
    source_type     TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'pending',
    mode            TEXT NOT NULL,
    difficulty      TEXT NOT NULL,
    question_count  INTEGER NOT NULL DEFAULT 5,
    question_types  TEXT,
    questions       TEXT NOT NULL DEFAULT '[]',
    result          TEXT,
    summary         TEXT,
    key_takeaways   TEXT,
    error_message   TEXT,
    requested_at    TEXT,
    questions_generated_at TEXT,
    session_started_at TEXT,
    completed_at    TEXT,
    created_at      TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at      TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_ai_sessions_source ON ai_review_sessions(source_type, source_id);
CREATE INDEX IF NOT EXISTS idx_ai_sessions_status ON ai_review_sessions(status);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);
"""

_ITEM_MODELS: dict[str, type[ReviewableItem]] = {
    "questions": Question,
    "notes": Note,
    "folders": Folder,
}

_JSON_SESSION_COLUMNS = ("question_types", "questions", "result", "key_takeaways")


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with aiosqlite.connect(_db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _to_column(value: Any) -> Any:
    """Convert a model field value into something sqlite can bind."""
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    if hasattr(value, "model_dump"):
        return json.dumps(value.model_dump(mode="json"))
    if isinstance(value, list):
        return json.dumps(
            [
                v.model_dump(mode="json") if hasattr(v, "model_dump")
                else v.value if hasattr(v, "value")
                else v
                for v in value
            ],
            default=str,
        )
    return value


# --- Folders / notes / questions ---


async def create_folder(db: aiosqlite.Connection, user_id: str, name: str) -> Folder:
    folder_id = str(uuid.uuid4())
    now = _now()
    await db.execute(
        "INSERT INTO folders (id, user_id, name, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
        (folder_id, user_id, name, now, now),
    )
    await db.commit()
    return await get_item(db, "folders", folder_id)  # type: ignore[return-value]


async def create_note(
    db: aiosqlite.Connection,
    user_id: str,
    title: str,
    content: str,
    folder_id: str | None = None,
) -> Note:
    note_id = str(uuid.uuid4())
    now = _now()
    await db.execute(
        """INSERT INTO notes (id, user_id, folder_id, title, content, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (note_id, user_id, folder_id, title, content, now, now),
    )
    await db.commit()
    return await get_item(db, "notes", note_id)  # type: ignore[return-value]


async def create_question(
    db: aiosqlite.Connection, note_id: str, user_id: str, question: str, answer: str
) -> Question:
    question_id = str(uuid.uuid4())
    now = _now()
    await db.execute(
        """INSERT INTO questions (id, note_id, user_id, question, answer, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (question_id, note_id, user_id, question, answer, now, now),
    )
    await db.commit()
    return await get_item(db, "questions", question_id)  # type: ignore[return-value]


def _row_to_item(table: str, row: aiosqlite.Row) -> ReviewableItem:
    d = dict(row)
    d["history"] = json.loads(d.get("history") or "[]")
    return _ITEM_MODELS[table].model_validate(d)


_ITEM_QUERIES = {
    "questions": (
        "SELECT q.*, n.title AS note_title FROM questions q "
        "LEFT JOIN notes n ON n.id = q.note_id"
    ),
    "notes": "SELECT * FROM notes",
    "folders": "SELECT * FROM folders",
}


async def get_item(db: aiosqlite.Connection, table: str, item_id: str) -> ReviewableItem | None:
    alias = "q." if table == "questions" else ""
    cursor = await db.execute(
        f"{_ITEM_QUERIES[table]} WHERE {alias}id = ?",  # noqa: S608
        (item_id,),
    )
    row = await cursor.fetchone()
    return _row_to_item(table, row) if row else None


async def update_item(
    db: aiosqlite.Connection, table: str, item_id: str, fields: dict
) -> ReviewableItem | None:
    allowed = set(_ITEM_MODELS[table].model_fields) - {"id", "note_title"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown {table} columns: {sorted(unknown)}")
    if not fields:
        return await get_item(db, table, item_id)

    columns = {k: _to_column(v) for k, v in fields.items()}
    columns["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in columns)
    cursor = await db.execute(
        f"UPDATE {table} SET {set_clause} WHERE id = ?",  # noqa: S608
        list(columns.values()) + [item_id],
    )
    await db.commit()
    if (cursor.rowcount or 0) == 0:
        return None
    return await get_item(db, table, item_id)


async def list_questions_for_scope(
    db: aiosqlite.Connection, scope: ReviewScope, scope_id: str
) -> list[Question]:
    base = _ITEM_QUERIES["questions"]
    if scope == ReviewScope.USER:
        where = "q.user_id = ?"
    elif scope == ReviewScope.NOTE:
        where = "q.note_id = ?"
    else:
        where = "q.note_id IN (SELECT id FROM notes WHERE folder_id = ?)"
    cursor = await db.execute(
        f"{base} WHERE {where} ORDER BY q.created_at ASC, q.rowid ASC",  # noqa: S608
        (scope_id,),
    )
    rows = await cursor.fetchall()
    return [_row_to_item("questions", r) for r in rows]  # type: ignore[misc]


async def get_source_content(
    db: aiosqlite.Connection, source_type: SourceType, source_id: str
) -> str | None:
    if source_type == SourceType.NOTE:
        cursor = await db.execute("SELECT content FROM notes WHERE id = ?", (source_id,))
        row = await cursor.fetchone()
        return row[0] if row else None

    cursor = await db.execute("SELECT id FROM folders WHERE id = ?", (source_id,))
    if await cursor.fetchone() is None:
        return None
    cursor = await db.execute(
        "SELECT title, content FROM notes WHERE folder_id = ? ORDER BY created_at ASC",
        (source_id,),
    )
    rows = await cursor.fetchall()
    return "\n\n".join(f"# {row[0]}\n{row[1]}" for row in rows)


# --- AI review sessions ---


def _row_to_session(row: aiosqlite.Row) -> AiReviewSession:
    d = dict(row)
    for column in _JSON_SESSION_COLUMNS:
        if d.get(column) is not None:
            d[column] = json.loads(d[column])
    d["questions"] = d.get("questions") or []
    return AiReviewSession.model_validate(d)


async def create_ai_session(
    db: aiosqlite.Connection, draft: AiReviewSessionCreate
) -> AiReviewSession:
    session_id = str(uuid.uuid4())
    now = _now()
    await db.execute(
        """INSERT INTO ai_review_sessions
           (id, user_id, source_id, source_type, status, mode, difficulty,
            question_count, question_types, requested_at, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            session_id,
            draft.user_id,
            draft.source_id,
            draft.source_type.value,
            draft.status.value,
            draft.mode.value,
            draft.difficulty.value,
            draft.question_count,
            _to_column(draft.question_types) if draft.question_types else None,
            draft.requested_at.isoformat(),
            now,
            now,
        ),
    )
    await db.commit()
    return await get_ai_session(db, session_id)  # type: ignore[return-value]


async def get_ai_session(db: aiosqlite.Connection, session_id: str) -> AiReviewSession | None:
    cursor = await db.execute("SELECT * FROM ai_review_sessions WHERE id = ?", (session_id,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return _row_to_session(row)


async def update_ai_session(
    db: aiosqlite.Connection, session_id: str, updates: AiReviewSessionUpdate
) -> AiReviewSession | None:
    names = [name for name in updates.model_fields_set if getattr(updates, name) is not None]
    if not names:
        return await get_ai_session(db, session_id)

    fields = {name: _to_column(getattr(updates, name)) for name in names}
    fields["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    cursor = await db.execute(
        f"UPDATE ai_review_sessions SET {set_clause} WHERE id = ?",  # noqa: S608
        list(fields.values()) + [session_id],
    )
    await db.commit()
    if (cursor.rowcount or 0) == 0:
        return None
    return await get_ai_session(db, session_id)


async def find_ai_sessions_by_status(
    db: aiosqlite.Connection, statuses: list[str]
) -> list[AiReviewSession]:
    placeholders = ", ".join("?" for _ in statuses)
    cursor = await db.execute(
        f"SELECT * FROM ai_review_sessions WHERE status IN ({placeholders})",  # noqa: S608
        statuses,
    )
    rows = await cursor.fetchall()
    return [_row_to_session(r) for r in rows]


async def list_ai_sessions_for_source(
    db: aiosqlite.Connection, source_type: SourceType, source_id: str
) -> list[AiReviewSession]:
    cursor = await db.execute(
        """SELECT * FROM ai_review_sessions
           WHERE source_type = ? AND source_id = ?
           ORDER BY created_at DESC, rowid DESC""",
        (source_type.value, source_id),
    )
    rows = await cursor.fetchall()
    return [_row_to_session(r) for r in rows]


# --- Port adapters ---


class SqliteItemStore:
    """ItemStore over one of the questions / notes / folders tables."""

    def __init__(self, table: str) -> None:
        if table not in _ITEM_MODELS:
            raise ValueError(f"Not a reviewable table: {table}")
        self.table = table

    async def get(self, item_id: str) -> ReviewableItem | None:
        item = None
        async for db in get_db():
            item = await get_item(db, self.table, item_id)
        return item

    async def update(self, item_id: str, fields: dict) -> ReviewableItem | None:
        item = None
        try:
            async for db in get_db():
                item = await update_item(db, self.table, item_id, fields)
        except aiosqlite.Error as e:
            logger.warning("Updating %s %s failed: %s", self.table, item_id, e)
            return None
        return item


class SqliteScopeLookup:
    async def items_for_scope(self, scope: ReviewScope, scope_id: str) -> list[ReviewableItem]:
        items: list[ReviewableItem] = []
        async for db in get_db():
            items = list(await list_questions_for_scope(db, scope, scope_id))
        return items


class SqliteContentLookup:
    async def get_content(self, source_type: SourceType, source_id: str) -> str | None:
        content = None
        async for db in get_db():
            content = await get_source_content(db, source_type, source_id)
        return content


class SqliteAiSessionStore:
    async def create(self, draft: AiReviewSessionCreate) -> AiReviewSession | None:
        session = None
        try:
            async for db in get_db():
                session = await create_ai_session(db, draft)
        except aiosqlite.Error as e:
            logger.warning("Creating AI review session failed: %s", e)
            return None
        return session

    async def get(self, session_id: str) -> AiReviewSession | None:
        session = None
        async for db in get_db():
            session = await get_ai_session(db, session_id)
        return session

    async def update(
        self, session_id: str, updates: AiReviewSessionUpdate
    ) -> AiReviewSession | None:
        session = None
        try:
            async for db in get_db():
                session = await update_ai_session(db, session_id, updates)
        except aiosqlite.Error as e:
            logger.warning("Updating AI review session %s failed: %s", session_id, e)
            return None
        return session

    async def find_by_status(self, statuses: list[AiReviewStatus]) -> list[AiReviewSession]:
        sessions: list[AiReviewSession] = []
        async for db in get_db():
            sessions = await find_ai_sessions_by_status(db, [s.value for s in statuses])
        return sessions

    async def list_for_source(
        self, source_type: SourceType, source_id: str
    ) -> list[AiReviewSession]:
        sessions: list[AiReviewSession] = []
        async for db in get_db():
            sessions = await list_ai_sessions_for_source(db, source_type, source_id)
        return sessions
