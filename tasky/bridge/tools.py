from __future__ import annotations

import importlib
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import BaseModel

from tasky.engine.engine import TaskEngine
from tasky.models.result import ToolResult
from tasky.models.task import CamelModel, TaskStatus
from tasky.observability import Metrics, get_json_logger, get_request_context

Payload = Mapping[str, Any]


def to_jsonable(value: Any) -> Any:
    if isinstance(value, CamelModel):
        return value.to_json_dict()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, Mapping):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [to_jsonable(v) for v in value]
    return value


def _envelope(result: ToolResult) -> dict[str, Any]:
    out: dict[str, Any] = {"success": result.success}
    if result.data is not None:
        out["data"] = to_jsonable(result.data)
    for key in ("error", "message", "code", "field"):
        value = getattr(result, key)
        if value is not None:
            out[key] = value
    return out


def _require_id(payload: Payload) -> str:
    value = payload.get("id")
    if not isinstance(value, str) or not value.strip():
        raise ValueError("id is required")
    return value.strip()


class TaskBridge:
    """Request/response adapter over the engine.

    Each operation takes a plain dict and returns
    ``{success, data?, error?, message?, code?, field?}`` with JSON-safe data.
    """

    def __init__(self, engine: TaskEngine, metrics: Metrics | None = None) -> None:
        self._engine = engine
        self._metrics = metrics or Metrics()
        self._operations: dict[str, Callable[[Payload], Awaitable[ToolResult]]] = {
            "create": self._create,
            "update": self._update,
            "delete": self._delete,
            "get": self._get,
            "list": self._list,
            "execute": self._execute,
            "archive": self._archive,
            "stats": self._stats,
            "analytics": self._analytics,
            "insights": self._insights,
        }

    @property
    def engine(self) -> TaskEngine:
        return self._engine

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    @property
    def operations(self) -> list[str]:
        return list(self._operations)

    async def handle(self, operation: str, payload: Payload | None = None) -> dict[str, Any]:
        logger = get_json_logger("tasky.bridge")
        ctx = get_request_context() or {}
        impl = self._operations.get(operation)
        if impl is None:
            logger.warning(
                "unknown bridge operation",
                extra={"event": "bridge_error", "operation": operation},
            )
            self._metrics.increment("bridge_errors", {"operation": "unknown"})
            return _envelope(
                ToolResult.fail(f"Unknown operation: {operation}", code="unknown_operation")
            )

        logger.info(
            "bridge call",
            extra={
                "event": "bridge_call",
                "operation": operation,
                "metadata": {"request_id": str(ctx.get("request_id", ""))},
            },
        )
        self._metrics.increment("bridge_calls", {"operation": operation})
        try:
            result = await impl(payload or {})
        except ValueError as exc:
            result = ToolResult.fail(str(exc), code="validation_error", field="id")
        if not result.success:
            logger.info(
                "bridge error",
                extra={
                    "event": "bridge_error",
                    "operation": operation,
                    "metadata": {"code": result.code, "error": (result.error or "")[:200]},
                },
            )
            self._metrics.increment("bridge_errors", {"operation": operation})
        return _envelope(result)

    # Named entry points mirroring the operation table
    async def create(self, payload: Payload) -> dict[str, Any]:
        return await self.handle("create", payload)

    async def update(self, payload: Payload) -> dict[str, Any]:
        return await self.handle("update", payload)

    async def delete(self, payload: Payload) -> dict[str, Any]:
        return await self.handle("delete", payload)

    async def get(self, payload: Payload) -> dict[str, Any]:
        return await self.handle("get", payload)

    async def list_tasks(self, payload: Payload | None = None) -> dict[str, Any]:
        return await self.handle("list", payload)

    async def execute(self, payload: Payload) -> dict[str, Any]:
        return await self.handle("execute", payload)

    async def archive(self, payload: Payload) -> dict[str, Any]:
        return await self.handle("archive", payload)

    async def stats(self, payload: Payload | None = None) -> dict[str, Any]:
        return await self.handle("stats", payload)

    async def analytics(self, payload: Payload | None = None) -> dict[str, Any]:
        return await self.handle("analytics", payload)

    async def insights(self, payload: Payload | None = None) -> dict[str, Any]:
        return await self.handle("insights", payload)

    # ----------------------------
    # Operation implementations
    # ----------------------------

    async def _create(self, payload: Payload) -> ToolResult:
        return await self._engine.create_task(payload)

    async def _update(self, payload: Payload) -> ToolResult:
        updates = payload.get("updates") or {}
        if not isinstance(updates, Mapping):
            return ToolResult.fail(
                "updates must be an object", code="validation_error", field="updates"
            )
        return await self._engine.update_task(_require_id(payload), updates)

    async def _delete(self, payload: Payload) -> ToolResult:
        return await self._engine.delete_task(_require_id(payload))

    async def _get(self, payload: Payload) -> ToolResult:
        return await self._engine.get_task(_require_id(payload))

    async def _list(self, payload: Payload) -> ToolResult:
        return await self._engine.get_tasks(payload)

    async def _execute(self, payload: Payload) -> ToolResult:
        task_id = _require_id(payload)
        if payload.get("status") == TaskStatus.COMPLETED.value:
            return await self._engine.update_task(
                task_id, {"status": TaskStatus.COMPLETED}, completion_method="auto"
            )
        return await self._engine.update_task(task_id, {"status": TaskStatus.IN_PROGRESS})

    async def _archive(self, payload: Payload) -> ToolResult:
        return await self._engine.archive_task(_require_id(payload))

    async def _stats(self, payload: Payload) -> ToolResult:
        return await self._engine.get_task_stats()

    async def _analytics(self, payload: Payload) -> ToolResult:
        return await self._engine.get_task_analytics()

    async def _insights(self, payload: Payload) -> ToolResult:
        observation = await self._engine.observe()
        strategy = await self._engine.orient(observation)
        actions = await self._engine.decide(strategy)
        return ToolResult.ok(
            {"observation": observation, "strategy": strategy, "actions": actions}
        )


def _maybe_get_function_tool() -> Any | None:
    try:
        module = importlib.import_module("agents")
    except Exception:  # noqa: BLE001
        return None
    return getattr(module, "function_tool", None)


def build_agent_tools(bridge: TaskBridge) -> list[Any]:
    """Expose the bridge as Agents SDK function tools; empty when the SDK is absent."""
    function_tool = _maybe_get_function_tool()
    if function_tool is None:
        return []

    @function_tool(strict_mode=False)
    async def tasky_create_task(
        title: str,
        description: str | None = None,
        due_date: str | None = None,
        tags: list[str] | None = None,
        assigned_agent: str | None = None,
    ) -> Any:
        """Create a task. ``due_date`` is an ISO-8601 timestamp."""
        payload: dict[str, Any] = {"title": title, "tags": tags or []}
        if description is not None:
            payload["description"] = description
        if due_date:
            payload["dueDate"] = due_date
        if assigned_agent:
            payload["assignedAgent"] = assigned_agent
        return await bridge.create(payload)

    @function_tool(strict_mode=False)
    async def tasky_update_task(task_id: str, updates: dict[str, Any]) -> Any:
        """Update fields of a task (title, description, dueDate, tags, status, result...)."""
        return await bridge.update({"id": task_id, "updates": updates})

    @function_tool
    async def tasky_delete_task(task_id: str) -> Any:
        """Delete a task by id."""
        return await bridge.delete({"id": task_id})

    @function_tool
    async def tasky_get_task(task_id: str) -> Any:
        """Get a task by id."""
        return await bridge.get({"id": task_id})

    @function_tool(strict_mode=False)
    async def tasky_list_tasks(
        status: list[str] | None = None,
        tags: list[str] | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> Any:
        """List tasks, optionally filtered by status, tags or a search string."""
        filters = {"status": status, "tags": tags, "search": search, "limit": limit}
        return await bridge.list_tasks({k: v for k, v in filters.items() if v is not None})

    @function_tool(strict_mode=False)
    async def tasky_execute_task(task_id: str, status: str | None = None) -> Any:
        """Start a task, or complete it when status is COMPLETED."""
        payload = {"id": task_id}
        if status:
            payload["status"] = status
        return await bridge.execute(payload)

    return [
        tasky_create_task,
        tasky_update_task,
        tasky_delete_task,
        tasky_get_task,
        tasky_list_tasks,
        tasky_execute_task,
    ]


__all__ = ["TaskBridge", "build_agent_tools", "to_jsonable"]
