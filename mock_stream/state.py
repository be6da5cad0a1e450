"""
In-memory state for DJ sessions and their realtime subscribers

Both containers are plain objects owned by the app (no module globals) so
each test can build isolated instances. They are only touched from the
event loop thread.
"""
from typing import Dict, List, Optional, Set

from .errors import NotFound
from .models import Session, apply_patch
from .utils import generate_session_id


class SessionStore:
    """session_id -> Session"""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id) -> bool:
        return session_id in self._sessions

    def create(self, dj_id: str, name: str) -> Session:
        session_id = generate_session_id()
        while session_id in self._sessions:
            session_id = generate_session_id()
        session = Session(id=session_id, dj_id=dj_id, session_name=name)
        self._sessions[session_id] = session
        return session

    def find(self, session_id) -> Optional[Session]:
        return self._sessions.get(session_id)

    def get(self, session_id) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound()
        return session

    def update(self, session_id, fields: dict) -> Session:
        """Merge whitelisted top-level fields and refresh updated_at"""
        session = self.get(session_id)
        apply_patch(session, fields, Session.PATCH)
        session.touch()
        return session

    def delete(self, session_id) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise NotFound()

    def list(self) -> List[Session]:
        return list(self._sessions.values())


class ConnectionRegistry:
    """session_id -> set of live subscriber connections"""

    def __init__(self):
        self._subscribers: Dict[str, Set] = {}

    def subscribe(self, session_id, connection) -> None:
        self._subscribers.setdefault(session_id, set()).add(connection)

    def unsubscribe(self, session_id, connection) -> None:
        subscribers = self._subscribers.get(session_id)
        if subscribers is None:
            return
        subscribers.discard(connection)
        # Drop empty entries so the mapping stays bounded
        if not subscribers:
            del self._subscribers[session_id]

    def connections_for(self, session_id) -> Set:
        """Snapshot of the subscriber set; safe to iterate while it changes"""
        return set(self._subscribers.get(session_id, ()))

    def count(self, session_id) -> int:
        return len(self._subscribers.get(session_id, ()))

    def drop(self, session_id) -> Set:
        """Remove a session's entry entirely, returning its former subscribers"""
        return self._subscribers.pop(session_id, set())

    def sessions(self) -> List[str]:
        return list(self._subscribers)
