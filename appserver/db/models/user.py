from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from appserver.db.base import Base


class User(Base):
    """Application user referenced by sessions."""

    login: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<User(id={self.id!r}, login={self.login!r})>"
