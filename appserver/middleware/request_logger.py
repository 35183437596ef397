"""HTTP request logging middleware"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from appserver.core.config import Settings
from appserver.core.logging_config import set_correlation_id
from appserver.middleware.base import ServerMiddleware

logger = logging.getLogger("appserver.access")


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Logs one line per request and tags the request with a correlation ID.

    The "dev" line goes to the ``appserver.access`` logger; when a combined
    log logger is given, an Apache combined format line is written to it as
    well.
    """

    def __init__(self, app, combined_logger: Optional[logging.Logger] = None):
        super().__init__(app)
        self.combined_logger = combined_logger

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        set_correlation_id(request_id)
        request.state.request_id = request_id

        started = time.perf_counter()
        status_code = 500
        content_length = "-"
        try:
            response = await call_next(request)
            status_code = response.status_code
            content_length = response.headers.get("content-length", "-")
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            elapsed = (time.perf_counter() - started) * 1000
            logger.info(f"{request.method} {request.url.path} {status_code} {elapsed:.3f} ms")
            if self.combined_logger is not None:
                self.combined_logger.info(self._combined_line(request, status_code, content_length))

    @staticmethod
    def _combined_line(request: Request, status_code: int, content_length: str) -> str:
        host = request.client.host if request.client else "-"
        timestamp = datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z")
        target = request.url.path
        if request.url.query:
            target += "?" + request.url.query
        version = request.scope.get("http_version", "1.1")
        referer = request.headers.get("referer", "-")
        agent = request.headers.get("user-agent", "-")
        return (
            f'{host} - - [{timestamp}] "{request.method} {target} HTTP/{version}" '
            f'{status_code} {content_length} "{referer}" "{agent}"'
        )


class RequestLogger(ServerMiddleware):
    def __init__(self, settings: Settings):
        self._settings = settings
        self._handlers: Dict[str, logging.Handler] = {}

    async def register(self, server) -> None:
        combined_logger = None
        if self._settings.access_log_file:
            combined_logger = logging.getLogger(f"appserver.access.combined.{server.name}")
            combined_logger.propagate = False
            handler = logging.FileHandler(self._settings.access_log_file)
            handler.setFormatter(logging.Formatter("%(message)s"))
            combined_logger.addHandler(handler)
            self._handlers[server.name] = handler

        server.use(AccessLogMiddleware, combined_logger=combined_logger)

    async def unregister(self, server) -> None:
        handler = self._handlers.pop(server.name, None)
        if handler is None:
            return
        logging.getLogger(f"appserver.access.combined.{server.name}").removeHandler(handler)
        handler.close()
