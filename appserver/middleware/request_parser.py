"""
HTTP request parsing middleware

Starlette parses JSON, form and cookie data lazily on access, so the only
thing left to enforce up front is the configured request body limit.
"""

import logging
import re
from typing import Union

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from appserver.core.config import Settings
from appserver.middleware.base import ServerMiddleware

logger = logging.getLogger(__name__)

_UNITS = {"b": 1, "kb": 1024, "mb": 1024 ** 2, "gb": 1024 ** 3}
_LIMIT_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)


def parse_size(value: Union[int, str]) -> int:
    """
    Convert a size such as ``1024``, ``"100kb"`` or ``"1.5mb"`` to bytes.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, int):
        return value
    match = _LIMIT_RE.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _UNITS[(unit or "b").lower()])


class BodyLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body is larger than the limit"""

    def __init__(self, app, limit: int):
        super().__init__(app)
        self.limit = limit

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                length = int(content_length)
            except ValueError:
                return JSONResponse({"detail": "Invalid Content-Length"}, status_code=400)
            if length > self.limit:
                logger.warning(
                    f"Request body too large: {length} > {self.limit} for {request.method} {request.url.path}"
                )
                return JSONResponse({"detail": "Request entity too large"}, status_code=413)
        return await call_next(request)


class RequestParser(ServerMiddleware):
    def __init__(self, settings: Settings):
        self._settings = settings

    async def register(self, server) -> None:
        limit = self._settings.lookup(f"servers.{server.name}.options.body_limit")
        if limit is None:
            return
        server.use(BodyLimitMiddleware, limit=parse_size(limit))
