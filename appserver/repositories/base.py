"""Abstract base classes for session and user repositories.

The session bridge only talks to these interfaces; concrete storage is
picked per server through the ``session_repository`` / ``user_repository``
configuration names. Methods are async so implementations may perform I/O
without blocking the event loop.
"""

from abc import ABC, abstractmethod
from typing import Any, List

from appserver.session.models import Session


class SessionRepository(ABC):
    """Persistence of session records.

    Concurrent saves of the same token are last-writer-wins; the bridge does
    no locking of its own.
    """

    def get_model(self) -> Session:
        """Return a fresh, unsaved session model."""
        return Session()

    @abstractmethod
    async def find_by_token(self, token: str) -> List[Session]:
        """Find sessions by token.

        Returns:
            List with the matching session, empty when not found.
        """
        pass

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Insert or update a session.

        Implementations may skip sessions that were never stored and carry
        no state (see ``Session.has_state``).
        """
        pass

    @abstractmethod
    async def delete(self, session: Session) -> None:
        """Delete a session. Must not raise if it is already gone."""
        pass

    async def delete_expired(self, timeout: int) -> int:
        """Delete sessions not updated within ``timeout`` seconds.

        Optional; the default implementation deletes nothing.

        Returns:
            Number of deleted sessions.
        """
        return 0


class UserRepository(ABC):
    """Read-only access to users, from the session bridge's point of view."""

    @abstractmethod
    async def find(self, user_id: Any) -> List[Any]:
        """Find users by id.

        Returns:
            List with the matching user, empty when not found.
        """
        pass
