"""SQLite persistence for chat sessions and messages."""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional

from ..config import CONFIG
from .models import (
    Message,
    MessageRole,
    Session,
    SessionSummary,
    ToolExecution,
    TriggerType,
    now_ms,
)

_UPDATABLE_FIELDS = {"title", "updated_at", "attached_decision_ids"}
_PREVIEW_CHARS = 100


class PersistenceError(RuntimeError):
    """Raised when the chat store cannot complete a read or write."""


class ChatDB:
    """Durable store for sessions and their user/assistant/tool-result messages."""

    def __init__(self, path: Path | str = CONFIG.paths.sqlite_path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not {action}: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._transaction("create chat schema") as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS chat_sessions (
                    id TEXT PRIMARY KEY,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    trigger_type TEXT NOT NULL DEFAULT 'manual',
                    title TEXT,
                    attached_decision_ids TEXT NOT NULL DEFAULT '[]'
                );
                CREATE INDEX IF NOT EXISTS idx_chat_sessions_updated
                    ON chat_sessions(updated_at DESC);

                CREATE TABLE IF NOT EXISTS chat_messages (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    context_decisions TEXT NOT NULL DEFAULT '[]',
                    tool_execution TEXT,
                    FOREIGN KEY(session_id) REFERENCES chat_sessions(id) ON DELETE CASCADE
                );
                CREATE INDEX IF NOT EXISTS idx_chat_messages_session_created
                    ON chat_messages(session_id, created_at);
                """
            )

    # ---- Sessions --------------------------------------------------------
    def create_session(
        self,
        *,
        attached_decision_ids: Optional[List[str]] = None,
        trigger_type: TriggerType = TriggerType.MANUAL,
        title: Optional[str] = None,
        created_at: Optional[int] = None,
    ) -> str:
        session_id = uuid.uuid4().hex
        timestamp = created_at if created_at is not None else now_ms()
        with self._transaction("create session") as conn:
            conn.execute(
                """
                INSERT INTO chat_sessions(id, created_at, updated_at, trigger_type, title, attached_decision_ids)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    timestamp,
                    timestamp,
                    TriggerType.from_raw(trigger_type).value,
                    title,
                    json.dumps(list(attached_decision_ids or [])),
                ),
            )
        return session_id

    def update_session(self, session_id: str, **fields: Any) -> None:
        """Last-writer-wins update of ``title``, ``updated_at`` or ``attached_decision_ids``."""

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")
        if not fields:
            return
        if "attached_decision_ids" in fields:
            fields["attached_decision_ids"] = json.dumps(list(fields["attached_decision_ids"] or []))
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._transaction("update session") as conn:
            conn.execute(
                f"UPDATE chat_sessions SET {assignments} WHERE id = ?",
                (*fields.values(), session_id),
            )

    def delete_session(self, session_id: str) -> bool:
        with self._transaction("delete session") as conn:
            cursor = conn.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
        return cursor.rowcount > 0

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._transaction("read session") as conn:
            row = conn.execute("SELECT * FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()
        return _row_to_session(row) if row else None

    def list_sessions(self, limit: int) -> List[SessionSummary]:
        """Sessions with at least one message, most recently updated first."""

        with self._transaction("list sessions") as conn:
            rows = conn.execute(
                """
                SELECT s.*,
                       COUNT(m.id) AS message_count,
                       (
                           SELECT substr(first.content, 1, ?)
                           FROM chat_messages AS first
                           WHERE first.session_id = s.id AND first.role = 'user'
                           ORDER BY first.created_at ASC, first.rowid ASC
                           LIMIT 1
                       ) AS first_message_preview
                FROM chat_sessions AS s
                JOIN chat_messages AS m ON m.session_id = s.id
                GROUP BY s.id
                HAVING message_count > 0
                ORDER BY s.updated_at DESC
                LIMIT ?
                """,
                (_PREVIEW_CHARS, limit),
            ).fetchall()
        summaries = []
        for row in rows:
            session = _row_to_session(row)
            summaries.append(
                SessionSummary(
                    id=session.id,
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                    attached_decision_ids=session.attached_decision_ids,
                    title=session.title,
                    trigger_type=session.trigger_type,
                    message_count=int(row["message_count"]),
                    first_message_preview=row["first_message_preview"],
                )
            )
        return summaries

    # ---- Messages --------------------------------------------------------
    def create_message(self, session_id: str, message: Message) -> None:
        """Write a durable message; rewriting the same id replaces its content."""

        if not message.role.is_durable:
            raise ValueError("tool-input messages are never persisted")
        tool_execution = json.dumps(message.tool_execution.to_dict()) if message.tool_execution else None
        with self._transaction("save message") as conn:
            conn.execute(
                """
                INSERT INTO chat_messages(id, session_id, role, content, created_at, context_decisions, tool_execution)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    content=excluded.content,
                    created_at=excluded.created_at,
                    tool_execution=excluded.tool_execution
                """,
                (
                    message.id,
                    session_id,
                    message.role.value,
                    message.content,
                    message.created_at,
                    json.dumps(message.context_decision_ids),
                    tool_execution,
                ),
            )

    def list_messages(self, session_id: str) -> List[Message]:
        with self._transaction("list messages") as conn:
            rows = conn.execute(
                "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY created_at ASC, rowid ASC",
                (session_id,),
            ).fetchall()
        return [
            Message(
                id=row["id"],
                role=MessageRole(row["role"]),
                content=row["content"],
                created_at=int(row["created_at"]),
                context_decision_ids=json.loads(row["context_decisions"] or "[]"),
                tool_execution=ToolExecution.from_dict(json.loads(row["tool_execution"]))
                if row["tool_execution"]
                else None,
            )
            for row in rows
        ]


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        created_at=int(row["created_at"]),
        updated_at=int(row["updated_at"]),
        attached_decision_ids=json.loads(row["attached_decision_ids"] or "[]"),
        title=row["title"],
        trigger_type=TriggerType.from_raw(row["trigger_type"]),
    )


__all__ = ["ChatDB", "PersistenceError"]
