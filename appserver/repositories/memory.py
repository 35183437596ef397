"""In-process repositories for single-instance deployments and tests"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from appserver.repositories.base import SessionRepository, UserRepository
from appserver.session.models import Session

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemorySessionRepository(SessionRepository):
    """Sessions kept in a dict keyed by token.

    Stored copies are detached from the caller's objects; the attached user
    is never stored, only ``user_id``.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._sessions)

    def _copy(self, session: Session) -> Session:
        return session.detached()

    async def find_by_token(self, token: str) -> List[Session]:
        session = self._sessions.get(token)
        return [self._copy(session)] if session else []

    async def save(self, session: Session) -> None:
        exists = session.token in self._sessions
        if not exists and not session.has_state():
            return
        if not exists and session.id is None:
            session.id = self._next_id
            self._next_id += 1
        session.updated_at = _now()
        self._sessions[session.token] = self._copy(session)

    async def delete(self, session: Session) -> None:
        self._sessions.pop(session.token, None)

    async def delete_expired(self, timeout: int) -> int:
        cutoff = _now() - timedelta(seconds=timeout)
        expired = [
            token for token, session in self._sessions.items()
            if session.updated_at is not None and session.updated_at < cutoff
        ]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.info(f"Deleted {len(expired)} expired sessions")
        return len(expired)


class MemoryUserRepository(UserRepository):
    """Users held by id; anything with an ``id`` attribute works"""

    def __init__(self, users: Optional[Iterable[Any]] = None):
        self._users: Dict[Any, Any] = {}
        for user in users or []:
            self.add(user)

    def add(self, user: Any) -> None:
        self._users[user.id] = user

    async def find(self, user_id: Any) -> List[Any]:
        user = self._users.get(user_id)
        return [user] if user is not None else []
