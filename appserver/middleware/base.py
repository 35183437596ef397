"""Base class for server middleware"""

from abc import ABC, abstractmethod


class ServerMiddleware(ABC):
    """A named unit wired into a web server at init.

    ``register(server)`` must be a coroutine; the server awaits each
    middleware before registering the next one, so later middleware can
    rely on what earlier ones installed. Middleware that hold per-server
    resources also define ``async def unregister(server)``, which the
    server calls on stop.
    """

    @abstractmethod
    async def register(self, server) -> None:
        pass
