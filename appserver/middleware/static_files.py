"""Module-provided static files middleware"""

import logging
from pathlib import Path
from typing import List

from starlette.exceptions import HTTPException
from starlette.staticfiles import StaticFiles
from starlette.types import ASGIApp, Receive, Scope, Send

from appserver.core.config import Settings
from appserver.core.modules import module_path
from appserver.middleware.base import ServerMiddleware

logger = logging.getLogger(__name__)


class StaticFilesMiddleware:
    """
    Serve files from several directories at the site root.

    Directories are tried in order; a request that matches no file falls
    through to the rest of the application.
    """

    def __init__(self, app: ASGIApp, directories: List[Path]):
        self.app = app
        self.statics = [StaticFiles(directory=directory, check_dir=False) for directory in directories]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] in ("GET", "HEAD"):
            for static in self.statics:
                try:
                    response = await static.get_response(static.get_path(scope), scope)
                except HTTPException as exc:
                    if exc.status_code == 404:
                        continue
                    raise
                await response(scope, receive, send)
                return

        await self.app(scope, receive, send)


class StaticFilesRegistrar(ServerMiddleware):
    def __init__(self, settings: Settings):
        self._settings = settings

    async def register(self, server) -> None:
        directories = []
        for module_name, module_config in self._settings.modules.items():
            for directory in module_config.static:
                path = module_path(self._settings.base_path, module_name, directory)
                if not path.is_dir():
                    logger.warning(f"{server.name}: static directory not found: {path}")
                    continue
                directories.append(path)

        if directories:
            server.use(StaticFilesMiddleware, directories=directories)
