"""Database models"""

from appserver.db.models.session_record import SessionRecord
from appserver.db.models.user import User

__all__ = [
    "SessionRecord",
    "User",
]
