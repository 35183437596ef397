"""Favicon middleware"""

import logging
from pathlib import Path

from starlette.responses import FileResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send

from appserver.core.config import Settings
from appserver.core.modules import module_path
from appserver.middleware.base import ServerMiddleware

logger = logging.getLogger(__name__)

FAVICON_MAX_AGE = 365 * 24 * 60 * 60


class FaviconMiddleware:
    """Answer /favicon.ico from a single file"""

    def __init__(self, app: ASGIApp, path: Path, max_age: int = FAVICON_MAX_AGE):
        self.app = app
        self.path = path
        self.max_age = max_age

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] != "/favicon.ico":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response: Response = Response(status_code=200, headers={"Allow": "GET, HEAD, OPTIONS"})
        elif scope["method"] not in ("GET", "HEAD"):
            response = Response(status_code=405, headers={"Allow": "GET, HEAD, OPTIONS"})
        else:
            response = FileResponse(
                self.path,
                media_type="image/x-icon",
                headers={"Cache-Control": f"public, max-age={self.max_age}"},
            )
        await response(scope, receive, send)


class Favicon(ServerMiddleware):
    def __init__(self, settings: Settings):
        self._settings = settings

    def find_favicon(self):
        """First img/favicon.ico in the modules' static directories"""
        for module_name, module_config in self._settings.modules.items():
            for directory in module_config.static:
                path = module_path(self._settings.base_path, module_name, directory) / "img" / "favicon.ico"
                if path.is_file():
                    return path
        return None

    async def register(self, server) -> None:
        path = self.find_favicon()
        if path is None:
            return
        logger.debug(f"{server.name}: serving favicon from {path}")
        server.use(FaviconMiddleware, path=path)
