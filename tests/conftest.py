"""
Global test configuration and fixtures for appserver

This module provides shared fixtures: settings built for a test server,
the service registry, a throwaway SQLite database, an initialized web
server and an HTTP client bound to its ASGI app.
"""

from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from appserver.app import Application
from appserver.core.config import DEFAULT_MIDDLEWARE, ModuleConfig, ServerConfig, SessionConfig, Settings
from appserver.core.registry import ServiceRegistry
from appserver.db.init_db import init_database
from appserver.db.session import create_db_engine, create_session_factory
from appserver.main import build_registry
from appserver.servers.web import WebServer

TEST_SECRET = "test-secret-key-0123456789-abcdefghijklmnopqrstuvwxyz"
TEST_PROJECT = "testproj"


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def make_settings(tmp_path):
    """Factory for settings with a single ``web`` server on memory repositories"""

    def _make(
        session: Optional[Dict[str, Any]] = None,
        with_session: bool = True,
        middleware: Optional[List[str]] = None,
        modules: Optional[Dict[str, ModuleConfig]] = None,
        **server: Any,
    ) -> Settings:
        session_config = None
        if with_session:
            session_config = SessionConfig(**{
                "secret": TEST_SECRET,
                "session_repository": "repositories.session.memory",
                "user_repository": "repositories.user.memory",
                **(session or {}),
            })

        server_options = {"host": "127.0.0.1", "port": 0, **server}
        server_config = ServerConfig(
            middleware=list(DEFAULT_MIDDLEWARE) if middleware is None else middleware,
            session=session_config,
            **server_options,
        )

        if modules is None:
            modules = {
                "health": ModuleConfig(entrypoint="appserver.modules.health:HealthModule"),
                "demo": ModuleConfig(entrypoint="tests.utils.modules:DemoModule"),
            }

        return Settings(
            project=TEST_PROJECT,
            env="test",
            base_path=str(tmp_path),
            database_url=f"sqlite:///{tmp_path / 'app.db'}",
            servers={"web": server_config},
            modules=modules,
        )

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def registry(settings) -> ServiceRegistry:
    return build_registry(settings)


@pytest.fixture
def application(settings, registry) -> Application:
    return Application(settings, registry)


# ============================================================================
# Repository Fixtures
# ============================================================================

@pytest.fixture
def session_repository(registry):
    """Memory session repository shared with the bridges of ``registry``"""
    return registry.get("repositories.session.memory")


@pytest.fixture
def user_repository(registry):
    return registry.get("repositories.user.memory")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_engine(tmp_path):
    """Create a test database for each test function"""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def web_server(application, registry) -> AsyncGenerator[WebServer, None]:
    """Initialized (not listening) ``web`` server"""
    server = registry.get("servers.web", application)
    await server.init("web")
    yield server
    await server.stop("web")


@pytest_asyncio.fixture
async def client(web_server) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the server's ASGI app in-process"""
    transport = ASGITransport(app=web_server.app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
