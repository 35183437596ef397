"""
Session middleware

Per request: read the session cookie, resolve or create the session through
the server's bridge and expose it as ``request.state.session`` (payload
dict) and ``request.state.user``. When the response is ready, persist what
the handlers left there and re-issue the cookie.

``request.state.session`` is always a dict and the handlers' final value
replaces the stored payload; it is never merged.
"""

import logging
from typing import Optional

import anyio
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from appserver.core.config import Settings
from appserver.core.errors import TokenDecodeError
from appserver.core.registry import ServiceRegistry
from appserver.middleware.base import ServerMiddleware
from appserver.session.bridge import SessionBridge
from appserver.session.models import Session
from appserver.session.service import SessionService

logger = logging.getLogger(__name__)

COOKIE_MAX_AGE = 365 * 24 * 60 * 60


class SessionHTTPMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, service: SessionService, server_name: str, bridge: SessionBridge):
        super().__init__(app)
        self.service = service
        self.server_name = server_name
        self.bridge = bridge

    async def dispatch(self, request: Request, call_next):
        session = await self._attach(request)

        response: Optional[Response] = None
        try:
            response = await call_next(request)
        finally:
            # Runs once on every exit path, also when the client went away
            with anyio.CancelScope(shield=True):
                await self._finalize(request, response, session)
        return response

    async def _attach(self, request: Request) -> Optional[Session]:
        request.state.session = {}
        request.state.user = None

        session = None
        try:
            token = request.cookies.get(self.bridge.token_var)
            if token:
                try:
                    decoded = await self.service.decode_jwt(self.server_name, token, request)
                    session = decoded.session
                except TokenDecodeError as e:
                    logger.info(f"{self.server_name}: discarding session cookie: {e}")
            if session is None:
                session = await self.service.create(self.server_name, None, request)
        except Exception as e:
            logger.error(f"{self.server_name}: session unavailable for {request.method} {request.url.path}: {e}")
            return None

        request.state.session = session.payload
        request.state.user = session.user
        return session

    async def _finalize(self, request: Request, response: Optional[Response], session: Optional[Session]) -> None:
        if session is None:
            return

        payload = getattr(request.state, "session", None)
        session.payload = payload if isinstance(payload, dict) else {}
        session.user = getattr(request.state, "user", None)

        try:
            await self.service.update(self.server_name, session, request)
            if response is not None and self.bridge.token_var and self.service.is_valid(self.server_name, session):
                token = self.service.encode_jwt(self.server_name, session)
                response.set_cookie(
                    self.bridge.token_var,
                    token,
                    max_age=COOKIE_MAX_AGE,
                    path="/",
                    httponly=False,
                )
        except Exception as e:
            logger.error(f"{self.server_name}: could not finalize session {session.id}: {e}")


class SessionMiddleware(ServerMiddleware):
    """
    Installs the session bridge of a server and the per-request middleware.
    """

    def __init__(self, settings: Settings, registry: ServiceRegistry, service: SessionService):
        self._settings = settings
        self._registry = registry
        self._service = service

    async def register(self, server) -> None:
        config = self._settings.lookup(f"servers.{server.name}.session")
        if not config:
            return

        bridge = self._registry.get(config.bridge, server.name)
        await self._service.add_bridge(server.name, bridge)

        server.use(
            SessionHTTPMiddleware,
            service=self._service,
            server_name=server.name,
            bridge=bridge,
        )

    async def unregister(self, server) -> None:
        config = self._settings.lookup(f"servers.{server.name}.session")
        if not config:
            return

        await self._service.remove_bridge(server.name)
