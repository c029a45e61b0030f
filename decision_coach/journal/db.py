"""SQLite read model for journal entries and the user profile."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import List, Optional

from ..config import CONFIG
from .models import Decision, UserProfile


class JournalDB:
    """Stores decisions as JSON payloads keyed by id.

    The orchestrator only reads from here; ``save_*`` exist for seeding
    scripts and tests.
    """

    def __init__(self, path: Path | str = CONFIG.paths.sqlite_path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS decisions (
                    id TEXT PRIMARY KEY,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    payload TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_decisions_created
                    ON decisions(created_at DESC);

                CREATE TABLE IF NOT EXISTS user_profile (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    payload TEXT NOT NULL
                );
                """
            )

    # ---- Decisions -------------------------------------------------------
    def save_decision(self, decision: Decision) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO decisions(id, created_at, updated_at, is_archived, payload)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    updated_at=excluded.updated_at,
                    is_archived=excluded.is_archived,
                    payload=excluded.payload
                """,
                (
                    decision.id,
                    decision.created_at,
                    decision.updated_at,
                    int(decision.is_archived),
                    json.dumps(decision.to_dict()),
                ),
            )

    def get_decision(self, decision_id: str) -> Optional[Decision]:
        with self._connect() as conn:
            row = conn.execute("SELECT payload FROM decisions WHERE id = ?", (decision_id,)).fetchone()
        return Decision.from_dict(json.loads(row["payload"])) if row else None

    def get_decisions(self, decision_ids: List[str]) -> List[Decision]:
        """Return decisions for ``decision_ids`` in the given order, skipping unknown ids."""

        found = [self.get_decision(decision_id) for decision_id in decision_ids]
        return [decision for decision in found if decision is not None]

    def list_decisions(self, include_archived: bool = True) -> List[Decision]:
        query = "SELECT payload FROM decisions"
        if not include_archived:
            query += " WHERE is_archived = 0"
        query += " ORDER BY created_at DESC"
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [Decision.from_dict(json.loads(row["payload"])) for row in rows]

    def recent_decisions(self, limit: int) -> List[Decision]:
        """Newest non-archived decisions first."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT payload FROM decisions WHERE is_archived = 0 ORDER BY created_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [Decision.from_dict(json.loads(row["payload"])) for row in rows]

    # ---- Profile ---------------------------------------------------------
    def get_profile(self) -> UserProfile:
        with self._connect() as conn:
            row = conn.execute("SELECT payload FROM user_profile WHERE id = 1").fetchone()
        return UserProfile.from_dict(json.loads(row["payload"])) if row else UserProfile()

    def save_profile(self, profile: UserProfile) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_profile(id, payload) VALUES (1, ?)
                ON CONFLICT(id) DO UPDATE SET payload=excluded.payload
                """,
                (json.dumps(profile.to_dict()),),
            )


__all__ = ["JournalDB"]
