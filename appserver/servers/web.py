"""
FastAPI/uvicorn web server

One instance per configured server name. ``init`` builds the FastAPI
application and registers the configured middleware in order, ``start``
binds and serves it with uvicorn, ``stop`` closes the listener and
unregisters the middleware.
"""

import asyncio
import errno
import inspect
import logging
import os
import socket
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import uvicorn
from fastapi import FastAPI
from fastapi.templating import Jinja2Templates
from starlette.middleware import Middleware

from appserver.core.config import ServerConfig, Settings
from appserver.core.errors import ConfigurationError, MiddlewareRegistrationError, ServerBindError
from appserver.core.events import EventRegistry
from appserver.core.modules import module_path
from appserver.core.registry import ServiceRegistry

logger = logging.getLogger(__name__)

# Registry name of the middleware instances shared by all servers
MIDDLEWARE_CACHE = "web.middleware"

# Events fed by the ASGI lifespan of the application
LIFESPAN_EVENTS = ("startup", "shutdown")


def normalize_port(value: Union[int, str]) -> Union[int, str, bool]:
    """
    Port number, unix socket path, or False for an invalid (negative) port.
    """
    try:
        port = int(value)
    except (TypeError, ValueError):
        return value
    if port >= 0:
        return port
    return False


class WebServer:
    def __init__(self, application, settings: Settings, registry: ServiceRegistry):
        self.name: Optional[str] = None
        self.app: Optional[FastAPI] = None
        self.templates: Optional[Jinja2Templates] = None
        self.server: Optional[uvicorn.Server] = None
        self.listening = False
        self.bound_port: Optional[Union[int, str]] = None
        self.events = EventRegistry(install=self._install_listener, uninstall=self._uninstall_listener)

        self._application = application
        self._settings = settings
        self._registry = registry
        self._registered: List[str] = []
        self._ssl_options: Dict[str, Any] = {}
        self._serve_task: Optional[asyncio.Task] = None
        self._stopping = False
        self._listeners: Dict[str, Callable[[], Awaitable[None]]] = {}

    def _config(self, name: str) -> ServerConfig:
        config = self._settings.servers.get(name)
        if config is None:
            raise ConfigurationError(f"Server {name} is not configured")
        return config

    async def init(self, name: str) -> None:
        """
        Initialize the server

        Raises:
            MiddlewareRegistrationError: If a middleware's register() is not awaitable
        """
        self.name = name
        config = self._config(name)
        self._registered = []
        if not config.enable:
            return

        logger.debug(f"{name}: Initializing web application")
        self.app = FastAPI(**config.app_options)
        self.app.state.env = self._settings.env
        self.app.state.server_name = name
        for event, listener in self._listeners.items():
            self.app.router.add_event_handler(event, listener)

        views = []
        for module_name, module_config in self._settings.modules.items():
            for view in module_config.views:
                views.append(str(module_path(self._settings.base_path, module_name, view)))
        if views:
            self.templates = Jinja2Templates(directory=views)
            self.app.state.templates = self.templates

        self._ssl_options = self._get_ssl_options(config)
        if not self.events.count("error"):
            self.events.subscribe("error", self.on_error)
            self.events.subscribe("listening", self.on_listening)
        self.listening = False

        if not config.middleware:
            return

        logger.debug(f"{name}: Loading middleware")
        if self._registry.has(MIDDLEWARE_CACHE):
            middleware = self._registry.get(MIDDLEWARE_CACHE)
        else:
            middleware = {}
            self._registry.register_instance(middleware, MIDDLEWARE_CACHE)

        for ident in config.middleware:
            if ident in middleware:
                obj = middleware[ident]
            else:
                obj = self._registry.get(ident)
                middleware[ident] = obj

            logger.debug(f"{name}: Registering middleware {ident}")
            result = obj.register(self)
            if not inspect.isawaitable(result):
                raise MiddlewareRegistrationError(f"Middleware '{ident}' register() did not return an awaitable")
            await result
            self._registered.append(ident)

    def use(self, middleware_class, **options) -> None:
        """
        Append a Starlette middleware.

        Middleware runs in the order it was added: the first one added sees
        the request first.
        """
        if self.app is None:
            raise ConfigurationError(f"Server {self.name} has no application")
        if self.app.middleware_stack is not None:
            raise RuntimeError(f"{self.name}: cannot add middleware after the server has started")
        self.app.user_middleware.append(Middleware(middleware_class, **options))

    async def start(self, name: str) -> None:
        """Start listening; resolves once the server accepts connections"""
        if name != self.name:
            raise ConfigurationError(f"Server {name} was not properly initialized")

        config = self._config(name)
        if not config.enable:
            return

        if self.app is None or self.listening:
            return

        logger.debug(f"{name}: Starting the server")
        port = normalize_port(config.port)
        if port is False:
            raise ConfigurationError(f"{name}: invalid port {config.port}")

        options: Dict[str, Any] = dict(log_config=None, **self._ssl_options)
        if isinstance(port, str):
            uvicorn_config = uvicorn.Config(self.app, uds=port, **options)
            sockets = None
            self.bound_port = port
        else:
            try:
                sock = self._bind(config.host, port)
            except ServerBindError as e:
                await self.events.emit("error", e)
                return
            uvicorn_config = uvicorn.Config(self.app, host=config.host, port=port, **options)
            sockets = [sock]
            self.bound_port = sock.getsockname()[1]

        self._stopping = False
        self.server = uvicorn.Server(uvicorn_config)
        self._serve_task = asyncio.create_task(self._serve(sockets), name=f"server-{name}")
        self._serve_task.add_done_callback(self._on_serve_done)

        while not self.server.started and not self._serve_task.done():
            await asyncio.sleep(0.01)

        if not self.server.started:
            error = self._serve_task.exception() if not self._serve_task.cancelled() else None
            self.server = None
            self._serve_task = None
            await self.events.emit("error", error or ServerBindError(f"{name}: server did not start"))
            return

        self.listening = True
        await self.events.emit("listening")

    async def stop(self, name: str) -> None:
        """Stop listening, then unregister middleware in configuration order"""
        if name != self.name:
            raise ConfigurationError(f"Server {name} was not properly initialized")

        config = self._config(name)
        if not config.enable:
            return

        if self.server is not None and self.listening:
            self._stopping = True
            self.server.should_exit = True
            try:
                await self._serve_task
            except Exception as e:
                logger.error(f"{name}: error while shutting down: {e}")
            self.server = None
            self._serve_task = None
            self.listening = False
            logger.info(f"{name}: Server is no longer listening on {self._address(config)}")
            await self.events.emit("close")

        if not self._registered or not self._registry.has(MIDDLEWARE_CACHE):
            return

        logger.debug(f"{name}: Unloading middleware")
        middleware = self._registry.get(MIDDLEWARE_CACHE)
        registered, self._registered = self._registered, []
        for ident in registered:
            obj = middleware.get(ident)
            unregister = getattr(obj, "unregister", None)
            if unregister is None:
                continue

            logger.debug(f"{name}: Unregistering middleware {ident}")
            result = unregister(self)
            if not inspect.isawaitable(result):
                raise MiddlewareRegistrationError(f"Middleware '{ident}' unregister() did not return an awaitable")
            await result

    async def on_error(self, error: BaseException) -> None:
        """Bind errors are fatal to the process; anything else is logged"""
        if not isinstance(error, ServerBindError):
            logger.error(f"{self.name}: server error: {error}")
            return

        if error.errno == errno.EACCES:
            message = f"{self.name}: Could not bind to web server port"
        elif error.errno == errno.EADDRINUSE:
            message = f"{self.name}: Web server port is already in use"
        else:
            message = f"{self.name}: {error}"
        await self._application.exit(self._application.fatal_exit_code, message)

    async def on_listening(self) -> None:
        config = self._config(self.name)
        scheme = "HTTPS" if config.ssl.enable else "HTTP"
        logger.info(f"{self.name}: {scheme} server listening on {self._address(config)}")

    def _install_listener(self, event: str) -> None:
        """Hook a lifespan event into the application once someone subscribes"""
        if event not in LIFESPAN_EVENTS:
            return

        async def listener() -> None:
            await self.events.emit(event)

        self._listeners[event] = listener
        if self.app is not None:
            self.app.router.add_event_handler(event, listener)

    def _uninstall_listener(self, event: str) -> None:
        listener = self._listeners.pop(event, None)
        if listener is None or self.app is None:
            return
        handlers = self.app.router.on_startup if event == "startup" else self.app.router.on_shutdown
        if listener in handlers:
            handlers.remove(listener)

    async def _serve(self, sockets: Optional[List[socket.socket]]) -> None:
        try:
            await self.server.serve(sockets=sockets)
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind by itself
            raise ServerBindError(f"{self.name}: server failed to start") from e

    def _on_serve_done(self, task: asyncio.Task) -> None:
        if self._stopping or task.cancelled():
            return
        if self.listening:
            # Stopped on its own, e.g. uvicorn caught a signal
            self.listening = False
            logger.warning(f"{self.name}: server exited")
            self._application.request_shutdown()

    def _bind(self, host: str, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise ServerBindError(f"{self.name}: {e.strerror}", errno=e.errno) from e
        sock.set_inheritable(True)
        return sock

    def _address(self, config: ServerConfig) -> str:
        port = self.bound_port if self.bound_port is not None else normalize_port(config.port)
        if isinstance(port, str):
            return port
        return f"{config.host}:{port}"

    def _get_ssl_options(self, config: ServerConfig) -> Dict[str, Any]:
        if not config.ssl.enable:
            return {}

        def resolve(path: Optional[str]) -> Optional[str]:
            if not path:
                return None
            if os.path.isabs(path):
                return path
            return str(Path(self._settings.base_path) / path)

        options = {
            "ssl_keyfile": resolve(config.ssl.key),
            "ssl_certfile": resolve(config.ssl.cert),
        }
        ca = resolve(config.ssl.ca)
        if ca:
            options["ssl_ca_certs"] = ca
        return options
