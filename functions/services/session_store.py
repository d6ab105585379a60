"""Session repository for QuoteSmith conversations.

Keeps chat sessions keyed by session id. Expiring idle sessions is the
caller's job; SessionState.last_activity is kept current for that.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, List

from engines.dialogue_state import SessionState


class SessionRepository(ABC):
    """Storage for conversation sessions."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionState]:
        """Get a session by id, or None if unknown."""

    @abstractmethod
    def save(self, session: SessionState) -> None:
        """Store or replace a session."""

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove a session if present."""


class InMemorySessionRepository(SessionRepository):
    """Sessions held in a process-local dict."""

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}

    def get(self, session_id: str) -> Optional[SessionState]:
        return self._sessions.get(session_id)

    def save(self, session: SessionState) -> None:
        self._sessions[session.session_id] = session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def session_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def __len__(self) -> int:
        return len(self._sessions)
