from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from tasky.bus.local import AsyncEventBus, MiddlewareEventBus, TypedEventBus


def test_handlers_run_in_registration_order() -> None:
    bus = TypedEventBus()
    calls: list[str] = []
    bus.on("task:created", lambda p: calls.append(f"first:{p}"))
    bus.on("task:created", lambda p: calls.append(f"second:{p}"))

    bus.emit("task:created", "x")

    assert calls == ["first:x", "second:x"]


def test_failing_handler_is_isolated() -> None:
    bus = TypedEventBus()
    calls: list[str] = []

    def boom(payload: Any) -> None:
        raise RuntimeError("handler broke")

    bus.on("task:updated", boom)
    bus.on("task:updated", lambda p: calls.append("after"))

    bus.emit("task:updated", {})

    assert calls == ["after"]


def test_off_and_duplicate_registration() -> None:
    bus = TypedEventBus()
    calls: list[int] = []

    def handler(payload: Any) -> None:
        calls.append(payload)

    bus.on("task:deleted", handler)
    bus.on("task:deleted", handler)
    assert bus.listener_count("task:deleted") == 1

    bus.emit("task:deleted", 1)
    bus.off("task:deleted", handler)
    bus.emit("task:deleted", 2)

    assert calls == [1]
    assert not bus.has_listeners("task:deleted")
    assert bus.event_names() == []
    # Removing an unknown handler is a no-op
    bus.off("task:deleted", handler)


def test_once_fires_a_single_time() -> None:
    bus = TypedEventBus()
    calls: list[str] = []

    bus.once("task:completed", lambda p: calls.append(p))
    bus.emit("task:completed", "a")
    bus.emit("task:completed", "b")

    assert calls == ["a"]
    assert bus.listener_count("task:completed") == 0


def test_handler_may_unsubscribe_during_emit() -> None:
    bus = TypedEventBus()
    calls: list[str] = []

    def first(payload: Any) -> None:
        calls.append("first")
        bus.off("task:created", second)

    def second(payload: Any) -> None:
        calls.append("second")

    bus.on("task:created", first)
    bus.on("task:created", second)

    bus.emit("task:created", None)
    bus.emit("task:created", None)

    assert calls == ["first", "second", "first"]


def test_unknown_event_names_are_rejected() -> None:
    bus = TypedEventBus()
    with pytest.raises(ValueError):
        bus.on("task:exploded", lambda p: None)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        bus.emit("reminder:due", {})  # type: ignore[arg-type]


def test_remove_all_listeners() -> None:
    bus = TypedEventBus()
    bus.on("task:created", lambda p: None)
    bus.on("task:updated", lambda p: None)

    bus.remove_all_listeners("task:created")
    assert bus.event_names() == ["task:updated"]

    bus.remove_all_listeners()
    assert bus.event_names() == []


@pytest.mark.asyncio
async def test_async_bus_awaits_async_handlers_after_sync_ones() -> None:
    bus = AsyncEventBus()
    calls: list[str] = []

    async def slow(payload: Any) -> None:
        calls.append(f"async:{payload}")

    async def broken(payload: Any) -> None:
        raise RuntimeError("nope")

    bus.on("task:created", lambda p: calls.append(f"sync:{p}"))
    bus.on_async("task:created", slow)
    bus.on_async("task:created", broken)

    await bus.emit_async("task:created", 1)

    assert calls == ["sync:1", "async:1"]
    assert bus.total_listener_count("task:created") == 3


@pytest.mark.asyncio
async def test_async_once_and_plain_emit_skip_async_handlers() -> None:
    bus = AsyncEventBus()
    calls: list[str] = []

    async def record(payload: Any) -> None:
        calls.append(payload)

    bus.once_async("task:archived", record)
    bus.emit("task:archived", "sync-only")
    await bus.emit_async("task:archived", "first")
    await bus.emit_async("task:archived", "second")

    assert calls == ["first"]


def _tagging(tag: str, log: list[str]) -> Callable[[str, Any, Callable[[], None]], None]:
    def middleware(event: str, payload: Any, call_next: Callable[[], None]) -> None:
        log.append(f"{tag}:before")
        call_next()
        log.append(f"{tag}:after")

    return middleware


def test_middleware_wraps_dispatch_in_order() -> None:
    bus = MiddlewareEventBus()
    log: list[str] = []
    bus.use(_tagging("outer", log))
    bus.use(_tagging("inner", log))
    bus.on("task:created", lambda p: log.append("handler"))

    bus.emit("task:created", None)

    assert log == ["outer:before", "inner:before", "inner:after", "outer:after", "handler"]


def test_middleware_can_drop_events() -> None:
    bus = MiddlewareEventBus()
    calls: list[Any] = []

    def only_completed(event: str, payload: Any, call_next: Callable[[], None]) -> None:
        if event == "task:completed":
            call_next()

    bus.use(only_completed)
    bus.on("task:created", calls.append)
    bus.on("task:completed", calls.append)

    bus.emit("task:created", "dropped")
    bus.emit("task:completed", "kept")

    assert calls == ["kept"]

    bus.remove_middleware(only_completed)
    bus.emit("task:created", "now allowed")
    assert calls == ["kept", "now allowed"]


@pytest.mark.asyncio
async def test_failing_middleware_drops_event_without_raising() -> None:
    bus = MiddlewareEventBus()
    calls: list[Any] = []

    def broken(event: str, payload: Any, call_next: Callable[[], None]) -> None:
        raise RuntimeError("middleware bug")

    async def record(payload: Any) -> None:
        calls.append(payload)

    bus.use(broken)
    bus.on("task:updated", calls.append)
    bus.on_async("task:updated", record)

    bus.emit("task:updated", "sync")
    await bus.emit_async("task:updated", "async")

    assert calls == []
