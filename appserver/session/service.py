"""
Session service.

Keeps the bridge bound to every server, runs the periodic expiration sweep
and coalesces session writes when a save interval is configured. Requests
are never serialized against each other: when two requests save the same
session the last write reaching the repository wins.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from starlette.requests import HTTPConnection

from appserver.core.errors import ConfigurationError
from appserver.session.bridge import SessionBridge
from appserver.session.models import DecodedToken, Session

logger = logging.getLogger(__name__)


@dataclass
class _Binding:
    bridge: SessionBridge
    pending: Dict[str, Session] = field(default_factory=dict)
    expire_task: Optional[asyncio.Task] = None
    flush_task: Optional[asyncio.Task] = None


class SessionService:
    def __init__(self):
        self._bindings: Dict[str, _Binding] = {}

    def has_bridge(self, server: str) -> bool:
        return server in self._bindings

    def get_bridge(self, server: str) -> SessionBridge:
        binding = self._bindings.get(server)
        if binding is None:
            raise ConfigurationError(f"No session bridge for server {server}")
        return binding.bridge

    async def add_bridge(self, server: str, bridge: SessionBridge) -> None:
        """
        Bind a bridge to a server, replacing any previous binding.
        """
        if server in self._bindings:
            logger.debug(f"{server}: replacing session bridge")
            await self.remove_bridge(server)

        binding = _Binding(bridge=bridge)
        if bridge.expiration_interval > 0:
            binding.expire_task = asyncio.create_task(
                self._expire_loop(server, bridge), name=f"session-expire-{server}"
            )
        if bridge.save_interval > 0:
            binding.flush_task = asyncio.create_task(
                self._flush_loop(server, binding), name=f"session-flush-{server}"
            )
        self._bindings[server] = binding
        logger.debug(f"{server}: session bridge added")

    async def remove_bridge(self, server: str) -> None:
        """Unbind a server's bridge: stop timers, flush pending saves"""
        binding = self._bindings.pop(server, None)
        if binding is None:
            return

        for task in (binding.expire_task, binding.flush_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._flush(server, binding)
        binding.bridge.close()
        logger.debug(f"{server}: session bridge removed")

    async def create(self, server: str, user: Optional[Any], request: Optional[HTTPConnection] = None) -> Session:
        return await self.get_bridge(server).create(user, request)

    async def update(self, server: str, session: Session, request: Optional[HTTPConnection] = None) -> None:
        """
        Save a session, or queue it when the bridge coalesces writes.
        """
        binding = self._bindings.get(server)
        if binding is None:
            raise ConfigurationError(f"No session bridge for server {server}")

        if binding.bridge.save_interval <= 0:
            await binding.bridge.save(session, request)
            return

        binding.bridge.refresh(session, request)
        binding.pending[session.token] = session

    async def destroy(self, server: str, session: Session) -> None:
        binding = self._bindings.get(server)
        if binding is None:
            raise ConfigurationError(f"No session bridge for server {server}")
        binding.pending.pop(session.token, None)
        await binding.bridge.destroy(session)

    def is_valid(self, server: str, session: Session) -> bool:
        return self.get_bridge(server).is_valid(session)

    def encode_jwt(self, server: str, session: Session) -> str:
        return self.get_bridge(server).encode_token(session)

    async def decode_jwt(self, server: str, token: str, request: Optional[HTTPConnection] = None) -> DecodedToken:
        """
        Verify a cookie token and load its session.

        A queued write is newer than the stored record, so it is returned
        instead when the session is still waiting to be flushed.
        """
        binding = self._bindings.get(server)
        if binding is None:
            raise ConfigurationError(f"No session bridge for server {server}")

        session_token, issued_at = binding.bridge.read_token(token)
        queued = binding.pending.get(session_token)
        if queued is not None:
            session = await binding.bridge.resolve(queued.detached(), request)
        else:
            session = await binding.bridge.find(session_token, request)
        return DecodedToken(session=session, issued_at=issued_at)

    async def _flush(self, server: str, binding: _Binding) -> None:
        # Entries leave the queue only once written, so readers never miss them
        for token, session in list(binding.pending.items()):
            try:
                await binding.bridge.save(session)
            except Exception as e:
                logger.error(f"{server}: could not save session {session.id}: {e}")
            if binding.pending.get(token) is session:
                del binding.pending[token]

    async def _flush_loop(self, server: str, binding: _Binding) -> None:
        while True:
            await asyncio.sleep(binding.bridge.save_interval)
            await self._flush(server, binding)

    async def _expire_loop(self, server: str, bridge: SessionBridge) -> None:
        while True:
            await asyncio.sleep(bridge.expiration_interval)
            try:
                await bridge.expire()
            except Exception as e:
                logger.error(f"{server}: session expiration failed: {e}")
