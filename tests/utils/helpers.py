"""
Test helper functions for common testing operations
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from http.cookies import Morsel, SimpleCookie
from typing import Dict, List, Optional, Tuple

import pytest
from starlette.requests import Request

from appserver.repositories import memory


@dataclass
class DemoUser:
    """Minimal user object; the session bridge only needs ``id``"""

    id: int
    name: str = "demo"


def make_request(
    headers: Optional[Dict[str, str]] = None,
    client: Optional[Tuple[str, int]] = ("127.0.0.1", 50000),
    path: str = "/",
    method: str = "GET",
) -> Request:
    """Build a Starlette request without a running app"""
    raw_headers: List[Tuple[bytes, bytes]] = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "headers": raw_headers,
        "client": client,
        "server": ("testserver", 80),
    }
    return Request(scope)


def parse_set_cookie(response) -> Dict[str, Morsel]:
    """All cookies set by an httpx response, keyed by name"""
    cookies: SimpleCookie = SimpleCookie()
    for header in response.headers.get_list("set-cookie"):
        cookies.load(header)
    return dict(cookies)


async def save_aged(repository, session, age: float) -> None:
    """Save into a memory repository as if the write happened ``age`` seconds ago"""
    when = memory._now() - timedelta(seconds=age)
    with pytest.MonkeyPatch.context() as patch:
        patch.setattr(memory, "_now", lambda: when)
        await repository.save(session)


async def wait_for(condition, timeout: float = 5.0) -> None:
    """Poll ``condition`` until it holds or ``timeout`` seconds pass"""
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
