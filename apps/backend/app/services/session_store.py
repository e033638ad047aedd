"""
Sessions, preferences and the durable history of task requests.

Backed by a single sqlite3 connection shared across FastAPI's worker
threads; every statement runs under one lock.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional
import datetime as dt
import logging
import re
import sqlite3
import threading
import uuid

from app.models import (
    DEFAULT_GENERATION_ASPECT_RATIO,
    DEFAULT_SIZE,
    DEFAULT_STYLE,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS user_sessions (
  session_id TEXT PRIMARY KEY,
  created_at TEXT NOT NULL,
  last_accessed_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_preferences (
  session_id TEXT PRIMARY KEY REFERENCES user_sessions(session_id),
  preferred_size TEXT DEFAULT '1024x768',
  preferred_style TEXT DEFAULT 'default',
  preferred_aspect_ratio TEXT DEFAULT '16:9',
  last_active_mode TEXT DEFAULT 'generation'
);

CREATE TABLE IF NOT EXISTS task_requests (
  id TEXT PRIMARY KEY,
  session_id TEXT NOT NULL REFERENCES user_sessions(session_id),
  kind TEXT NOT NULL,
  prompt TEXT NOT NULL,
  size TEXT,
  style TEXT DEFAULT 'default',
  aspect_ratio TEXT,
  status TEXT DEFAULT 'pending',
  error_message TEXT,
  created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_task_requests_session ON task_requests(session_id, created_at);
"""

PREFERENCE_COLUMNS = ("preferred_size", "preferred_style", "preferred_aspect_ratio", "last_active_mode")

HISTORY_LIMIT = 10
RECENT_PROMPTS = 5


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z")


def _snake(name: str) -> str:
    return re.sub(r"[A-Z]", lambda m: "_" + m.group(0).lower(), name)


def _unique(values: List[str], limit: int) -> List[str]:
    seen: List[str] = []
    for v in values:
        if v not in seen:
            seen.append(v)
        if len(seen) == limit:
            break
    return seen


class SessionStore:
    def __init__(self, database_path: str = ":memory:"):
        if database_path != ":memory:":
            Path(database_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(database_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        logger.info("Session store ready at %s", database_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> None:
        with self._lock:
            self._conn.execute(sql, params)
            self._conn.commit()

    def _one(self, sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        return dict(row) if row else None

    def _all(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [dict(r) for r in rows]

    # sessions

    def create_session(self) -> Dict[str, Any]:
        session_id = str(uuid.uuid4())
        now = _now()
        with self._lock:
            self._conn.execute(
                "INSERT INTO user_sessions (session_id, created_at, last_accessed_at) VALUES (?, ?, ?)",
                (session_id, now, now),
            )
            self._conn.execute(
                "INSERT INTO user_preferences (session_id, preferred_size, preferred_style, "
                "preferred_aspect_ratio, last_active_mode) VALUES (?, ?, ?, ?, ?)",
                (session_id, DEFAULT_SIZE, DEFAULT_STYLE, DEFAULT_GENERATION_ASPECT_RATIO, "generation"),
            )
            self._conn.commit()
        return {"session_id": session_id, "created_at": now, "last_accessed_at": now}

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._one("SELECT * FROM user_sessions WHERE session_id = ?", (session_id,))

    def touch_session(self, session_id: str) -> None:
        self._execute("UPDATE user_sessions SET last_accessed_at = ? WHERE session_id = ?", (_now(), session_id))

    def get_preferences(self, session_id: str) -> Dict[str, Any]:
        return self._one("SELECT * FROM user_preferences WHERE session_id = ?", (session_id,)) or {}

    def update_preferences(self, session_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply known preference keys (camelCase or snake_case); others are ignored."""
        columns = {}
        for key, value in updates.items():
            col = _snake(key)
            if col in PREFERENCE_COLUMNS and value is not None:
                columns[col] = value
        if columns:
            assignments = ", ".join(f"{col} = ?" for col in columns)
            self._execute(
                f"UPDATE user_preferences SET {assignments} WHERE session_id = ?",
                tuple(columns.values()) + (session_id,),
            )
        return self.get_preferences(session_id)

    def get_full_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self.get_session(session_id)
        if not session:
            return None
        self.touch_session(session_id)
        prefs = self.get_preferences(session_id)

        generation = self._history(session_id, ("generation",))
        edits = self._history(session_id, ("edit", "refinement"))

        return {
            "sessionId": session_id,
            "recentPrompts": _unique([r["prompt"] for r in generation], RECENT_PROMPTS),
            "recentEditPrompts": _unique([r["prompt"] for r in edits], RECENT_PROMPTS),
            "preferredSize": prefs.get("preferred_size") or DEFAULT_SIZE,
            "preferredStyle": prefs.get("preferred_style") or DEFAULT_STYLE,
            "preferredAspectRatio": prefs.get("preferred_aspect_ratio") or DEFAULT_GENERATION_ASPECT_RATIO,
            "lastActiveMode": prefs.get("last_active_mode") or "generation",
            "generationHistory": list(reversed(generation)),
            "editHistory": list(reversed(edits)),
            "createdAt": session["created_at"],
        }

    def _history(self, session_id: str, kinds: tuple) -> List[Dict[str, Any]]:
        marks = ", ".join("?" for _ in kinds)
        return self._all(
            f"SELECT * FROM task_requests WHERE session_id = ? AND kind IN ({marks}) "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (session_id,) + tuple(kinds) + (HISTORY_LIMIT,),
        )

    # task requests

    def add_request(
        self,
        session_id: str,
        kind: str,
        prompt: str,
        size: Optional[str] = None,
        style: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
    ) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "session_id": session_id,
            "kind": kind,
            "prompt": prompt,
            "size": size,
            "style": style or DEFAULT_STYLE,
            "aspect_ratio": aspect_ratio,
            "status": "pending",
            "error_message": None,
            "created_at": _now(),
        }
        self._execute(
            "INSERT INTO task_requests (id, session_id, kind, prompt, size, style, aspect_ratio, status, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (row["id"], session_id, kind, prompt, size, row["style"], aspect_ratio, "pending", row["created_at"]),
        )
        return row

    def get_request(self, request_id: str) -> Optional[Dict[str, Any]]:
        return self._one("SELECT * FROM task_requests WHERE id = ?", (request_id,))

    def update_request_status(self, request_id: str, status: str, error_message: Optional[str] = None) -> None:
        self._execute(
            "UPDATE task_requests SET status = ?, error_message = ? WHERE id = ?",
            (status, error_message, request_id),
        )
