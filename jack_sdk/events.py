"""
Observer registry shared by watchers, the ClearNode connection and the
Yellow provider.

Handlers may be plain functions or coroutines. Each one runs in
isolation: an exception is logged and the remaining handlers still
receive the event.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[[Any], Coroutine[Any, Any, None] | None]


class EventManager:
    """Named callback lists with per-handler error isolation."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for a specific event type."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler | None = None) -> None:
        """Remove a handler (or all handlers) for an event type."""
        if handler is None:
            self._handlers.pop(event_type, None)
        else:
            handlers = self._handlers.get(event_type, [])
            self._handlers[event_type] = [h for h in handlers if h is not handler]

    def clear(self) -> None:
        """Remove every handler."""
        self._handlers.clear()

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    async def emit(self, event_type: str, payload: Any = None) -> None:
        """Deliver ``payload`` to every handler of ``event_type``."""
        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in event handler for %s", event_type)
