"""Session and user repositories"""

from appserver.repositories.base import SessionRepository, UserRepository
from appserver.repositories.memory import MemorySessionRepository, MemoryUserRepository
from appserver.repositories.sql import SqlSessionRepository, SqlUserRepository

__all__ = [
    "SessionRepository",
    "UserRepository",
    "MemorySessionRepository",
    "MemoryUserRepository",
    "SqlSessionRepository",
    "SqlUserRepository",
]
