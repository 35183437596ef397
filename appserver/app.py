"""
Application

Owns the configured servers and drives them through init, start and stop.
A fatal server error ends the process with ``FATAL_EXIT_CODE``.
"""

import asyncio
import logging
import signal
from typing import Any, Dict, Optional

from appserver.core.config import Settings
from appserver.core.registry import ServiceRegistry

logger = logging.getLogger("appserver.app")

FATAL_EXIT_CODE = 255


class Application:
    fatal_exit_code = FATAL_EXIT_CODE

    def __init__(self, settings: Settings, registry: ServiceRegistry):
        self.settings = settings
        self.registry = registry
        self.servers: Dict[str, Any] = {}
        self.exit_code = 0
        self._shutdown: Optional[asyncio.Event] = None

    @property
    def shutdown_event(self) -> asyncio.Event:
        if self._shutdown is None:
            self._shutdown = asyncio.Event()
        return self._shutdown

    async def init(self) -> None:
        """Create and initialize every configured server"""
        for name, config in self.settings.servers.items():
            server = self.registry.get(config.class_, self)
            self.servers[name] = server
            await server.init(name)

    async def start(self) -> None:
        for name, server in self.servers.items():
            await server.start(name)

    async def stop(self) -> None:
        # Reverse order so servers started last are stopped first
        for name, server in reversed(list(self.servers.items())):
            try:
                await server.stop(name)
            except Exception as e:
                logger.error(f"{name}: failed to stop: {e}")

    async def exit(self, code: int, message: Optional[str] = None) -> None:
        """Request the process to end with an exit code"""
        if message:
            if code:
                logger.critical(message)
            else:
                logger.info(message)
        self.exit_code = code
        self.request_shutdown()

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    async def run(self) -> int:
        """
        Run until a signal or a fatal error asks for shutdown.

        Returns:
            Process exit code
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Not available on every platform
                pass

        try:
            await self.init()
            await self.start()
            if not self.shutdown_event.is_set():
                logger.info(f"{self.settings.project} started ({self.settings.env})")
            await self.shutdown_event.wait()
        finally:
            await self.stop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except NotImplementedError:
                    pass

        logger.info(f"{self.settings.project} stopped")
        return self.exit_code
