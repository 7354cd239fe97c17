from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from tasky.models.events import EVENT_NAMES, EventName
from tasky.observability import get_json_logger

from .interface import AsyncEventHandler, EventBus, EventHandler, EventMiddleware


def _check_event(event: str) -> None:
    if event not in EVENT_NAMES:
        raise ValueError(f"unknown event name: {event!r}")


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


def _log_handler_error(event: str, handler: Callable[..., Any]) -> None:
    get_json_logger("tasky.bus").exception(
        "event handler failed",
        extra={
            "event": "event_handler_error",
            "attributes": {"event_name": event, "handler": _handler_name(handler)},
        },
    )


class TypedEventBus(EventBus):
    """Synchronous fan-out over the closed set of task event names.

    A handler is registered at most once per event. Handler exceptions are
    logged and isolated from the emitter and from the remaining handlers.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventHandler]] = {}

    def on(self, event: EventName, handler: EventHandler) -> None:
        _check_event(event)
        handlers = self._listeners.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def once(self, event: EventName, handler: EventHandler) -> EventHandler:
        """Register a handler that unsubscribes itself before its first call.

        Returns the wrapper actually registered, so it can be passed to ``off``.
        """

        def _once(payload: Any) -> None:
            self.off(event, _once)
            handler(payload)

        self.on(event, _once)
        return _once

    def off(self, event: EventName, handler: EventHandler) -> None:
        handlers = self._listeners.get(event)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._listeners[event]

    def emit(self, event: EventName, payload: Any) -> None:
        _check_event(event)
        self._dispatch(event, payload)

    def _dispatch(self, event: str, payload: Any) -> None:
        # Copy so handlers may (un)subscribe while we iterate
        for handler in list(self._listeners.get(event, ())):
            try:
                handler(payload)
            except Exception:  # noqa: BLE001
                _log_handler_error(event, handler)

    def remove_all_listeners(self, event: EventName | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def event_names(self) -> list[str]:
        return list(self._listeners)

    def listener_count(self, event: EventName) -> int:
        return len(self._listeners.get(event, ()))

    def has_listeners(self, event: EventName) -> bool:
        return self.listener_count(event) > 0


class AsyncEventBus(TypedEventBus):
    """Adds coroutine handlers awaited by ``emit_async``.

    ``emit`` still only runs the synchronous handlers; ``emit_async`` runs those
    first and then awaits every async handler concurrently.
    """

    def __init__(self) -> None:
        super().__init__()
        self._async_listeners: dict[str, list[AsyncEventHandler]] = {}

    def on_async(self, event: EventName, handler: AsyncEventHandler) -> None:
        _check_event(event)
        handlers = self._async_listeners.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def once_async(self, event: EventName, handler: AsyncEventHandler) -> AsyncEventHandler:
        async def _once(payload: Any) -> None:
            self.off_async(event, _once)
            await handler(payload)

        self.on_async(event, _once)
        return _once

    def off_async(self, event: EventName, handler: AsyncEventHandler) -> None:
        handlers = self._async_listeners.get(event)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._async_listeners[event]

    async def emit_async(self, event: EventName, payload: Any) -> None:
        _check_event(event)
        await self._dispatch_async(event, payload)

    async def _dispatch_async(self, event: str, payload: Any) -> None:
        self._dispatch(event, payload)
        handlers = list(self._async_listeners.get(event, ()))
        if handlers:
            await asyncio.gather(*(self._run_isolated(event, h, payload) for h in handlers))

    @staticmethod
    async def _run_isolated(event: str, handler: AsyncEventHandler, payload: Any) -> None:
        try:
            await handler(payload)
        except Exception:  # noqa: BLE001
            _log_handler_error(event, handler)

    def remove_all_listeners(self, event: EventName | None = None) -> None:
        super().remove_all_listeners(event)
        if event is None:
            self._async_listeners.clear()
        else:
            self._async_listeners.pop(event, None)

    def total_listener_count(self, event: EventName) -> int:
        return self.listener_count(event) + len(self._async_listeners.get(event, ()))


class MiddlewareEventBus(AsyncEventBus):
    """Runs every emission through a middleware chain before dispatch.

    Each middleware receives ``(event, payload, call_next)``; the event reaches
    the handlers only if the whole chain calls ``call_next``.
    """

    def __init__(self) -> None:
        super().__init__()
        self._middlewares: list[EventMiddleware] = []

    def use(self, middleware: EventMiddleware) -> None:
        self._middlewares.append(middleware)

    def remove_middleware(self, middleware: EventMiddleware) -> None:
        if middleware in self._middlewares:
            self._middlewares.remove(middleware)

    def emit(self, event: EventName, payload: Any) -> None:
        _check_event(event)
        if self._passes_middleware(event, payload):
            self._dispatch(event, payload)

    async def emit_async(self, event: EventName, payload: Any) -> None:
        _check_event(event)
        if self._passes_middleware(event, payload):
            await self._dispatch_async(event, payload)

    def _passes_middleware(self, event: str, payload: Any) -> bool:
        chain = list(self._middlewares)
        reached = False
        index = 0

        def call_next() -> None:
            nonlocal index, reached
            if index >= len(chain):
                reached = True
                return
            middleware = chain[index]
            index += 1
            middleware(event, payload, call_next)

        try:
            call_next()
        except Exception:  # noqa: BLE001
            get_json_logger("tasky.bus").exception(
                "event middleware failed",
                extra={"event": "event_middleware_error", "attributes": {"event_name": event}},
            )
            return False
        return reached


__all__ = ["AsyncEventBus", "MiddlewareEventBus", "TypedEventBus"]
