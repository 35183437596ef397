"""
Publish/subscribe registry for server events.

Handlers subscribe by event name. The optional ``install`` callback runs when
an event gets its first subscriber and ``uninstall`` when the last one
leaves, so underlying transport listeners exist only while someone cares.
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventRegistry:
    def __init__(
        self,
        install: Optional[Callable[[str], None]] = None,
        uninstall: Optional[Callable[[str], None]] = None,
    ):
        self._handlers: Dict[str, List[Handler]] = {}
        self._install = install
        self._uninstall = uninstall

    def subscribe(self, event: str, handler: Handler) -> int:
        """
        Add a handler.

        Returns:
            Number of subscribers for the event after the call
        """
        handlers = self._handlers.setdefault(event, [])
        handlers.append(handler)
        if len(handlers) == 1 and self._install:
            self._install(event)
        return len(handlers)

    def unsubscribe(self, event: str, handler: Handler) -> int:
        """
        Remove a handler; unknown handlers are ignored.

        Returns:
            Number of subscribers for the event after the call
        """
        handlers = self._handlers.get(event)
        if not handlers or handler not in handlers:
            return len(handlers or [])
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event]
            if self._uninstall:
                self._uninstall(event)
            return 0
        return len(handlers)

    def count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def emit(self, event: str, *args: Any) -> int:
        """
        Call every handler of an event in subscription order.

        Coroutine handlers are awaited one after another.

        Returns:
            Number of handlers called
        """
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        return len(handlers)
