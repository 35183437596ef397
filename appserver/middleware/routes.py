"""Module-defined routes middleware"""

import logging
from typing import Iterable, List

from appserver.core.modules import AppModule, RouterEntry
from appserver.middleware.base import ServerMiddleware

logger = logging.getLogger(__name__)


def merge_routers(modules: Iterable[AppModule]) -> List[RouterEntry]:
    """
    Collect every module's routers, highest priority first.

    The sort is stable: routers with equal priority keep the order in which
    modules contributed them.
    """
    routers: List[RouterEntry] = []
    for module in modules:
        routers.extend(module.routers())
    return sorted(routers, key=lambda entry: -entry.priority)


class Routes(ServerMiddleware):
    def __init__(self, modules: dict):
        self._modules = modules

    async def register(self, server) -> None:
        entries = merge_routers(self._modules.values())
        for entry in entries:
            server.app.include_router(entry.router)
        logger.debug(f"{server.name}: mounted {len(entries)} routers")
