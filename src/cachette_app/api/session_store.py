"""In-memory chat session store for the HTTP layer.

Internal limits, not configurable: TTL per session and a cap on live
sessions. Lazy cleanup on write.
"""
from __future__ import annotations

import threading
import uuid
from time import time
from typing import Dict

from cachette import metrics
from cachette.query import ChatSession

MAX_SESSIONS = 64
SESSION_TTL_SECONDS = 60 * 60  # 60 minutes


class SessionStore:
    def __init__(self) -> None:
        self._sessions: Dict[str, ChatSession] = {}
        self._last_access: Dict[str, float] = {}
        self._lock = threading.Lock()

    def add(self, session: ChatSession) -> str:
        now = time()
        sid = uuid.uuid4().hex
        with self._lock:
            self._cleanup(now)
            if len(self._sessions) >= MAX_SESSIONS:
                oldest = min(self._last_access, key=self._last_access.get)
                self._drop(oldest)
            self._sessions[sid] = session
            self._last_access[sid] = now
        metrics.inc("sessions_created_total")
        return sid

    def get(self, session_id: str) -> ChatSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_access[session_id] = time()
            return session

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._drop(session_id)

    def _drop(self, session_id: str) -> bool:
        self._last_access.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def _cleanup(self, now: float) -> None:
        expired = [
            sid
            for sid, ts in self._last_access.items()
            if now - ts > SESSION_TTL_SECONDS
        ]
        for sid in expired:
            self._drop(sid)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"sessions": len(self._sessions)}


__all__ = ["SessionStore", "MAX_SESSIONS", "SESSION_TTL_SECONDS"]
