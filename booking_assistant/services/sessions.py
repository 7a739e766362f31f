"""In-memory session history, keyed by session ID.

Each turn reads the history, runs, and replaces it wholesale.  Two
concurrent turns for the same session are not serialised; the caller is
expected to send one message at a time per session.
"""

from __future__ import annotations

import threading

from booking_assistant.messages import ConversationMessage


class SessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, list[ConversationMessage]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> list[ConversationMessage]:
        """Return a copy of the session's history (empty for a new session)."""
        with self._lock:
            return list(self._sessions.get(session_id, []))

    def replace(self, session_id: str, history: list[ConversationMessage]) -> None:
        with self._lock:
            self._sessions[session_id] = list(history)

    def clear(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
