from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from tasky.models.events import EventName

EventHandler = Callable[[Any], None]
AsyncEventHandler = Callable[[Any], Awaitable[None]]
# (event name, payload, call_next); not calling call_next drops the event
EventMiddleware = Callable[[str, Any, Callable[[], None]], None]


class EventBus(Protocol):
    """In-process publish/subscribe contract the engine emits through.

    Keep this tiny and stable: observers depend on ``on``/``off`` and the engine
    only ever calls ``emit``.
    """

    def on(self, event: EventName, handler: EventHandler) -> None:
        """Register ``handler`` for ``event``; handlers run in registration order."""

    def off(self, event: EventName, handler: EventHandler) -> None:
        """Unregister ``handler``; unknown handlers are ignored."""

    def emit(self, event: EventName, payload: Any) -> None:
        """Call every handler for ``event`` synchronously.

        A failing handler must not stop the others or reach the emitter.
        """


__all__ = ["AsyncEventHandler", "EventBus", "EventHandler", "EventMiddleware"]
