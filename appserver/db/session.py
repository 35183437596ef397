from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from appserver.core.config import settings


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # Repository calls run in the threadpool
        return {"check_same_thread": False}
    return {}


def create_db_engine(database_url: str) -> Engine:
    return create_engine(database_url, connect_args=get_connect_args(database_url))


def create_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# Engine is lazy: nothing connects until the first query
engine = create_db_engine(settings.database_url)

SessionLocal = create_session_factory(engine)


@contextmanager
def get_db_sync(factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
    """Get a synchronous DB session with proper resource management"""
    db = factory()
    try:
        yield db
    finally:
        db.close()
