"""
Session Store

In-memory registry of application sessions, one per signed-in user.

Design choices
--------------
- In-memory only (no persistence across process restarts); documents are
  persisted by autosave, so losing a session only loses undo history.
- Thread-safe access to the registry using a re-entrant lock.
- Global singleton `session_store` for typical application use, while still
  allowing custom instances to be created for tests.
"""

from __future__ import annotations

from typing import Dict, List, Optional
from threading import RLock

from .application import ApplicationSession


class SessionStore:
    """
    Store mapping user ids to their `ApplicationSession`.
    """

    def __init__(self, chat_history_limit: Optional[int] = None) -> None:
        """
        Parameters
        ----------
        chat_history_limit : Optional[int]
            Chat history limit passed to new sessions. Defaults to
            `settings.chat_history_limit`.
        """
        self._store: Dict[str, ApplicationSession] = {}
        self._lock = RLock()
        self._chat_history_limit = chat_history_limit

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def get_or_create(self, user_id: str) -> ApplicationSession:
        with self._lock:
            session = self._store.get(user_id)
            if session is None:
                session = ApplicationSession(user_id, self._chat_history_limit)
                self._store[user_id] = session
            return session

    def get(self, user_id: str) -> Optional[ApplicationSession]:
        with self._lock:
            return self._store.get(user_id)

    def remove(self, user_id: str) -> Optional[ApplicationSession]:
        """Forget a user's session and return it (if any)."""
        with self._lock:
            return self._store.pop(user_id, None)

    # ------------------------------------------------------------------
    # Utility operations
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """
        Remove all sessions.

        Intended primarily for test setup/teardown or administrative resets.
        Editor sessions are dropped without flushing.
        """
        with self._lock:
            for session in self._store.values():
                if session.editor is not None:
                    session.editor.discard()
            self._store.clear()

    def user_ids(self) -> List[str]:
        """Snapshot of the user ids with a session."""
        with self._lock:
            return list(self._store)

    def has_session(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


# Global singleton used by the application.
session_store = SessionStore()
