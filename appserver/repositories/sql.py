"""Session and user repositories on SQLAlchemy.

Database work is synchronous and pushed to the threadpool so that request
handling on the event loop never blocks on I/O.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any, List, Optional
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from appserver.core.errors import RepositoryError
from appserver.db.base import utcnow
from appserver.db.models.session_record import SessionRecord
from appserver.db.models.user import User
from appserver.db.session import SessionLocal, get_db_sync
from appserver.repositories.base import SessionRepository, UserRepository
from appserver.session.models import Session

logger = logging.getLogger(__name__)


class SqlSessionRepository(SessionRepository):
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._factory = session_factory or SessionLocal

    @staticmethod
    def _to_model(row: SessionRecord) -> Session:
        return Session(
            id=row.id,
            token=row.token,
            payload=dict(row.payload or {}),
            user_id=row.user_id,
            info=dict(row.info or {}),
            updated_at=row.updated_at,
        )

    async def find_by_token(self, token: str) -> List[Session]:
        return await run_in_threadpool(self._find_by_token, token)

    def _find_by_token(self, token: str) -> List[Session]:
        with get_db_sync(self._factory) as db:
            try:
                row = db.scalar(select(SessionRecord).where(SessionRecord.token == token))
            except SQLAlchemyError as e:
                raise RepositoryError(f"Session lookup failed: {e}") from e
            return [self._to_model(row)] if row else []

    async def save(self, session: Session) -> None:
        await run_in_threadpool(self._save, session)

    def _save(self, session: Session) -> None:
        now = utcnow()
        with get_db_sync(self._factory) as db:
            try:
                # UPDATE first; last writer wins on concurrent saves
                result = db.execute(
                    update(SessionRecord)
                    .where(SessionRecord.token == session.token)
                    .values(
                        payload=session.payload,
                        user_id=session.user_id,
                        info=session.info,
                        updated_at=now,
                    )
                )

                if result.rowcount == 0:
                    if not session.has_state():
                        # Anonymous and empty: nothing worth a row
                        db.rollback()
                        return
                    row = SessionRecord(
                        token=session.token,
                        payload=session.payload,
                        user_id=session.user_id,
                        info=session.info,
                        created_at=now,
                        updated_at=now,
                    )
                    db.add(row)
                    db.flush()
                    session.id = row.id

                db.commit()
                session.updated_at = now

            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database operation failed for session {session.id}: {e}")
                raise RepositoryError(f"Session save failed: {e}") from e

    async def delete(self, session: Session) -> None:
        await run_in_threadpool(self._delete, session)

    def _delete(self, session: Session) -> None:
        with get_db_sync(self._factory) as db:
            try:
                db.execute(delete(SessionRecord).where(SessionRecord.token == session.token))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise RepositoryError(f"Session delete failed: {e}") from e

    async def delete_expired(self, timeout: int) -> int:
        return await run_in_threadpool(self._delete_expired, timeout)

    def _delete_expired(self, timeout: int) -> int:
        cutoff = utcnow() - timedelta(seconds=timeout)
        with get_db_sync(self._factory) as db:
            try:
                result = db.execute(delete(SessionRecord).where(SessionRecord.updated_at < cutoff))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise RepositoryError(f"Session expiration failed: {e}") from e

        if result.rowcount:
            logger.info(f"Deleted {result.rowcount} expired sessions")
        return result.rowcount


class SqlUserRepository(UserRepository):
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._factory = session_factory or SessionLocal

    async def find(self, user_id: Any) -> List[User]:
        return await run_in_threadpool(self._find, user_id)

    def _find(self, user_id: Any) -> List[User]:
        with get_db_sync(self._factory) as db:
            try:
                user = db.get(User, user_id)
            except SQLAlchemyError as e:
                raise RepositoryError(f"User lookup failed: {e}") from e
            return [user] if user else []
