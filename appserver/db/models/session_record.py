from typing import Any, Optional

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from appserver.db.base import Base


class SessionRecord(Base):
    """Persisted web session."""

    # Base provides: id, created_at, updated_at
    token: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
    info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SessionRecord(id={self.id!r}, user_id={self.user_id!r})>"
