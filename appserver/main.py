"""
Service wiring and application factory.

Every service the servers resolve by name is declared here.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from appserver.app import Application
from appserver.core.config import Settings, load_settings
from appserver.core.logging_config import init_application_logging
from appserver.core.modules import load_modules
from appserver.core.registry import ServiceRegistry
from appserver.db.init_db import init_database
from appserver.db.session import create_db_engine, create_session_factory
from appserver.middleware import Favicon, RequestLogger, RequestParser, Routes, SessionMiddleware, StaticFilesRegistrar
from appserver.repositories import (
    MemorySessionRepository,
    MemoryUserRepository,
    SqlSessionRepository,
    SqlUserRepository,
)
from appserver.servers.web import WebServer
from appserver.session.bridge import SessionBridge
from appserver.session.models import Session
from appserver.session.service import SessionService

logger = logging.getLogger("appserver.main")


def build_registry(settings: Settings) -> ServiceRegistry:
    """Declare every service of the application"""
    registry = ServiceRegistry()
    registry.register_instance(settings, "settings")
    registry.register_instance(registry, "registry")

    registry.provide("db.engine", lambda: create_db_engine(settings.database_url))
    registry.provide("db.session_factory", lambda: create_session_factory(registry.get("db.engine")))

    registry.provide("modules", lambda: load_modules(settings.modules))
    registry.provide("session", SessionService)

    # Middleware, in the names used by servers.<name>.middleware
    registry.provide("web.requestParser", lambda: RequestParser(settings))
    registry.provide("web.requestLogger", lambda: RequestLogger(settings))
    registry.provide("web.staticFiles", lambda: StaticFilesRegistrar(settings))
    registry.provide("web.favicon", lambda: Favicon(settings))
    registry.provide("web.session", lambda: SessionMiddleware(settings, registry, registry.get("session")))
    registry.provide("web.routes", lambda: Routes(registry.get("modules")))

    # One bridge per server
    registry.provide("session.bridge", lambda server: SessionBridge(settings, registry, server), singleton=False)
    registry.provide("models.session", Session, singleton=False)

    registry.provide("repositories.session.sql", lambda: SqlSessionRepository(registry.get("db.session_factory")))
    registry.provide("repositories.user.sql", lambda: SqlUserRepository(registry.get("db.session_factory")))
    registry.provide("repositories.session.memory", MemorySessionRepository)
    registry.provide("repositories.user.memory", MemoryUserRepository)

    registry.provide("servers.web", lambda application: WebServer(application, settings, registry), singleton=False)

    return registry


def create_application(config_file: Optional[Union[str, Path]] = None) -> Application:
    """
    Build a ready to run application.

    Args:
        config_file: Optional JSON configuration overlaid on the environment
    """
    settings = load_settings(config_file)
    init_application_logging(settings)

    registry = build_registry(settings)
    if _uses_sql(settings):
        init_database(registry.get("db.engine"))

    logger.info(f"Configured servers: {', '.join(settings.servers) or 'none'}")
    return Application(settings, registry)


def _uses_sql(settings: Settings) -> bool:
    for config in settings.servers.values():
        session = config.session
        if session is None:
            continue
        if (session.session_repository or "").endswith(".sql") or (session.user_repository or "").endswith(".sql"):
            return True
    return False
