"""Local listener registration: event name -> ordered handlers.

Handlers may be plain callables or coroutine functions. A handler that
raises is logged and does not prevent the remaining handlers from running.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class ListenerRegistry:
    """Per-client mapping from event name to the handlers registered for it."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> Handler:
        """Register handler for event; returns handler for a later off()."""
        self._handlers.setdefault(event, []).append(handler)
        return handler

    def off(self, event: str, handler: Handler | None = None) -> None:
        """Remove handler from event, or every handler when handler is None."""
        if handler is None:
            self._handlers.pop(event, None)
            return
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def emit(self, event: str, payload: Any) -> int:
        """Deliver payload to every handler of event in registration order.

        Returns:
            Number of handlers that completed without raising.
        """
        delivered = 0
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for '%s' failed", event)
            else:
                delivered += 1
        return delivered

    def clear(self) -> None:
        self._handlers.clear()
