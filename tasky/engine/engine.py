from __future__ import annotations

import csv
import datetime as _dt
import inspect
import io
import json
import re
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from tasky.bus.interface import EventBus
from tasky.bus.local import AsyncEventBus, TypedEventBus
from tasky.errors import TaskError, TaskNotFoundError, TaskStorageError, TaskValidationError
from tasky.models.events import (
    COMPLETION_METHODS,
    CompletionMethod,
    EventName,
    TaskArchivedEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskUpdatedEvent,
)
from tasky.models.insights import TaskAction, TaskObservation, TaskStrategy
from tasky.models.result import ToolResult
from tasky.models.task import (
    ASSIGNED_AGENTS,
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    CreateTaskInput,
    Task,
    TaskCollectionDocument,
    TaskFilterOptions,
    TaskMetadata,
    TaskSchema,
    TaskStatus,
    UpdateTaskInput,
    utc_now,
)
from tasky.observability import get_json_logger
from tasky.storage.interface import TaskStorage

from . import analytics, ooda

ActionHandler = Callable[[TaskAction], Awaitable[None] | None]
ModelT = TypeVar("ModelT", bound=BaseModel)

_SCHEMA_FIELDS = (
    "title",
    "description",
    "due_date",
    "tags",
    "affected_files",
    "estimated_duration",
    "dependencies",
    "assigned_agent",
    "execution_path",
)
_TOP_LEVEL_FIELDS = ("status", "reminder_enabled", "reminder_time", "result")
# Accept both python and on-disk spellings of every updatable key
_UPDATE_KEYS: dict[str, str] = {
    **{name: name for name in _SCHEMA_FIELDS + _TOP_LEVEL_FIELDS},
    **{to_camel(name): name for name in _SCHEMA_FIELDS + _TOP_LEVEL_FIELDS},
}
_EXPORT_COLUMNS = (
    "id",
    "title",
    "description",
    "status",
    "dueDate",
    "createdAt",
    "completedAt",
    "tags",
    "assignedAgent",
)


def _alias(name: str) -> str:
    return to_camel(name) if "_" in name else name


def _first_error_field(exc: ValidationError) -> str | None:
    for err in exc.errors():
        names = [part for part in err.get("loc", ()) if isinstance(part, str)]
        if names:
            return _alias(names[-1])
    return None


def _parse(model: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` into ``model``, reporting failures as TaskValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else str(exc)
        raise TaskValidationError(message, field=_first_error_field(exc)) from exc


def _check_title(title: str | None) -> str:
    value = (title or "").strip()
    if not value:
        raise TaskValidationError("Task title is required", field="title")
    if len(value) > TITLE_MAX_LENGTH:
        raise TaskValidationError(
            f"Task title too long (max {TITLE_MAX_LENGTH} characters)", field="title"
        )
    return value


def _check_description(description: str | None) -> None:
    if description and len(description) > DESCRIPTION_MAX_LENGTH:
        raise TaskValidationError(
            f"Task description too long (max {DESCRIPTION_MAX_LENGTH} characters)",
            field="description",
        )


def _check_agent(agent: str | None) -> None:
    if agent and agent not in ASSIGNED_AGENTS:
        raise TaskValidationError(
            "assignedAgent must be 'gemini' or 'claude'", field="assignedAgent"
        )


def generate_task_id(title: str, now: _dt.datetime | None = None) -> str:
    """``<first three title words>_<YYYYmmdd_HHMMSS>_<8 hex>`` using local time."""
    words = re.sub(r"[^a-z0-9\s]", "", title.lower()).split(" ")[:3]
    stamp = (now or utc_now()).astimezone().strftime("%Y%m%d_%H%M%S")
    return f"{'_'.join(words)}_{stamp}_{uuid.uuid4().hex[:8]}"


def _split_updates(updates: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any], list[str]]:
    schema_updates: dict[str, Any] = {}
    top_updates: dict[str, Any] = {}
    changed: list[str] = []
    ignored: list[str] = []
    for key, value in updates.items():
        name = _UPDATE_KEYS.get(key)
        if name is None:
            ignored.append(key)
            continue
        if name in _SCHEMA_FIELDS:
            if name == "due_date" and not value:
                value = None
            schema_updates[name] = value
        else:
            top_updates[name] = value
        changed.append(_alias(name))
    if ignored:
        get_json_logger("tasky.engine").debug(
            "ignoring unknown update keys",
            extra={"event": "update_keys_ignored", "attributes": {"keys": ignored}},
        )
    return schema_updates, top_updates, changed


def _sort_key(task: Task) -> tuple[int, float]:
    # Dated tasks first by due date ascending, then undated by creation time descending
    if task.due_date is not None:
        return (0, task.due_date.timestamp())
    return (1, -task.created_at.timestamp())


def _matches_search(task: Task, needle: str) -> bool:
    details = task.details
    return (
        needle in details.title.lower()
        or (details.description is not None and needle in details.description.lower())
        or any(needle in tag.lower() for tag in details.tags)
    )


def apply_filters(tasks: Iterable[Task], filters: TaskFilterOptions) -> list[Task]:
    """Filter, paginate, then sort.

    Pagination is applied before sorting, so ``offset``/``limit`` slice the
    collection in storage order.
    """
    result = list(tasks)
    if filters.status:
        wanted = set(filters.status)
        result = [t for t in result if t.status in wanted]
    if filters.tags:
        tags = set(filters.tags)
        result = [t for t in result if tags.intersection(t.details.tags)]
    if filters.search:
        needle = filters.search.lower()
        result = [t for t in result if _matches_search(t, needle)]
    if filters.due_date_from is not None:
        lower = filters.due_date_from
        result = [t for t in result if t.due_date is not None and t.due_date >= lower]
    if filters.due_date_to is not None:
        upper = filters.due_date_to
        result = [t for t in result if t.due_date is not None and t.due_date <= upper]
    if filters.has_files is not None:
        result = [t for t in result if bool(t.details.affected_files) == filters.has_files]
    if filters.created_after is not None:
        after = filters.created_after
        result = [t for t in result if t.created_at >= after]
    if filters.created_before is not None:
        before = filters.created_before
        result = [t for t in result if t.created_at <= before]
    if filters.offset:
        result = result[filters.offset :]
    if filters.limit:
        result = result[: filters.limit]
    result.sort(key=_sort_key)
    return result


class TaskEngine:
    """Sole writer of task state.

    Every public coroutine returns a ``ToolResult`` and never raises. Mutations
    persist through the storage first and only then touch the in-memory
    collection, so a storage failure leaves memory and disk as they were.
    """

    def __init__(
        self,
        storage: TaskStorage,
        bus: EventBus | None = None,
        action_handler: ActionHandler | None = None,
        clock: Callable[[], _dt.datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._bus: EventBus = bus if bus is not None else TypedEventBus()
        self._action_handler = action_handler
        self._clock = clock
        self._tasks: list[Task] = []
        self._loaded = False
        self._last_updated = time.time()

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def storage(self) -> TaskStorage:
        return self._storage

    # ----------------------------
    # Lifecycle
    # ----------------------------

    async def initialize(self) -> ToolResult:
        result = self._storage.initialize()
        if not result.success:
            return result
        loaded = self._reload()
        if not loaded.success:
            return loaded
        get_json_logger("tasky.engine").info(
            "engine initialized",
            extra={"event": "engine_initialized", "attributes": {"tasks": len(self._tasks)}},
        )
        return ToolResult.ok(message="Task engine initialized")

    def _reload(self) -> ToolResult:
        result = self._storage.load_all()
        if result.success:
            self._tasks = list(result.data or [])
            self._loaded = True
        else:
            get_json_logger("tasky.engine").warning(
                "reload failed; keeping previous tasks",
                extra={"event": "reload_failed", "attributes": {"error": result.error}},
            )
        return result

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._reload()

    def _index_of(self, task_id: str) -> int:
        for i, task in enumerate(self._tasks):
            if task.id == task_id:
                return i
        raise TaskNotFoundError(task_id)

    def _touch(self) -> None:
        self._last_updated = time.time()

    @staticmethod
    def _persisted(result: ToolResult) -> None:
        if not result.success:
            raise TaskStorageError(result.error or "save failed")

    async def _emit(self, event: EventName, payload: Any) -> None:
        if isinstance(self._bus, AsyncEventBus):
            await self._bus.emit_async(event, payload)
        else:
            self._bus.emit(event, payload)

    @staticmethod
    def _failed(operation: str, exc: Exception, task_id: str | None = None) -> ToolResult:
        logger = get_json_logger("tasky.engine")
        extra: dict[str, Any] = {"event": "engine_error", "operation": operation}
        if task_id:
            extra["task_id"] = task_id
        if isinstance(exc, TaskError):
            extra["attributes"] = {"code": exc.code, "error": str(exc)[:200]}
            logger.info("operation failed", extra=extra)
        else:
            logger.exception("unexpected engine failure", extra=extra)
        return ToolResult.from_exception(exc)

    # ----------------------------
    # CRUD
    # ----------------------------

    async def create_task(
        self, data: CreateTaskInput | Mapping[str, Any], *, source: str = "user"
    ) -> ToolResult:
        try:
            self._ensure_loaded()
            task_input = _parse(CreateTaskInput, data)
            now = self._clock()
            title = _check_title(task_input.title)
            _check_description(task_input.description)
            if task_input.due_date is not None and task_input.due_date < now:
                raise TaskValidationError("Due date cannot be in the past", field="dueDate")
            _check_agent(task_input.assigned_agent)

            task = Task(
                details=TaskSchema(
                    id=generate_task_id(title, now),
                    title=title,
                    description=task_input.description,
                    due_date=task_input.due_date,
                    created_at=now,
                    updated_at=now,
                    tags=list(task_input.tags),
                    affected_files=list(task_input.affected_files),
                    estimated_duration=task_input.estimated_duration,
                    dependencies=list(task_input.dependencies),
                    assigned_agent=task_input.assigned_agent,  # type: ignore[arg-type]
                    execution_path=task_input.execution_path,
                ),
                reminder_enabled=task_input.reminder_enabled,
                reminder_time=task_input.reminder_time,
                metadata=TaskMetadata(last_modified=now),
            )
            self._persisted(self._storage.save_one(task))
            self._tasks.append(task)
            self._touch()
        except Exception as exc:  # noqa: BLE001
            return self._failed("create", exc)

        get_json_logger("tasky.engine").info(
            "task created", extra={"event": "task_created", "task_id": task.id}
        )
        await self._emit(
            "task:created",
            TaskCreatedEvent(task_id=task.id, task=task, source=source),  # type: ignore[arg-type]
        )
        return ToolResult.ok(task, message="Task created successfully")

    async def update_task(
        self,
        task_id: str,
        updates: UpdateTaskInput | Mapping[str, Any],
        *,
        completion_method: CompletionMethod = "manual",
    ) -> ToolResult:
        try:
            if completion_method not in COMPLETION_METHODS:
                raise TaskValidationError(
                    "completionMethod must be 'manual' or 'auto'", field="completionMethod"
                )
            self._ensure_loaded()
            index = self._index_of(task_id)
            current = self._tasks[index]
            if isinstance(updates, UpdateTaskInput):
                updates = updates.model_dump(exclude_unset=True)
            schema_updates, top_updates, changed = _split_updates(updates)
            now = self._clock()

            if "title" in schema_updates:
                schema_updates["title"] = _check_title(schema_updates["title"])
            if "description" in schema_updates:
                _check_description(schema_updates["description"])
            if "assigned_agent" in schema_updates:
                _check_agent(schema_updates["assigned_agent"])

            details = _parse(
                TaskSchema,
                {**current.details.model_dump(), **schema_updates, "updated_at": now},
            )
            previous_status = current.status
            merged: dict[str, Any] = {
                **current.model_dump(exclude={"details", "metadata"}),
                **top_updates,
                "details": details,
                "metadata": current.metadata.model_copy(
                    update={"version": current.metadata.version + 1, "last_modified": now}
                ),
            }
            updated = _parse(Task, merged)
            completed_now = (
                updated.status == TaskStatus.COMPLETED
                and previous_status != TaskStatus.COMPLETED
            )
            if completed_now and updated.completed_at is None:
                updated.completed_at = now

            self._persisted(self._storage.save_one(updated))
            self._tasks[index] = updated
            self._touch()
        except Exception as exc:  # noqa: BLE001
            return self._failed("update", exc, task_id)

        get_json_logger("tasky.engine").info(
            "task updated",
            extra={
                "event": "task_updated",
                "task_id": task_id,
                "attributes": {"changes": changed, "version": updated.metadata.version},
            },
        )
        await self._emit(
            "task:updated",
            TaskUpdatedEvent(
                task_id=task_id, task=updated, previous_status=previous_status, changes=changed
            ),
        )
        if completed_now:
            duration = analytics.completion_duration(updated)
            await self._emit(
                "task:completed",
                TaskCompletedEvent(
                    task_id=task_id,
                    task=updated,
                    duration_minutes=duration.total_seconds() / 60,
                    completion_method=completion_method,
                ),
            )
        return ToolResult.ok(updated, message="Task updated successfully")

    async def delete_task(self, task_id: str) -> ToolResult:
        try:
            self._ensure_loaded()
            index = self._index_of(task_id)
            removed = self._tasks[index]
            result = self._storage.delete_one(task_id)
            if not result.success and result.code != "not_found":
                raise TaskStorageError(result.error or "delete failed")
            del self._tasks[index]
            self._touch()
        except Exception as exc:  # noqa: BLE001
            return self._failed("delete", exc, task_id)

        get_json_logger("tasky.engine").info(
            "task deleted", extra={"event": "task_deleted", "task_id": task_id}
        )
        await self._emit("task:deleted", TaskDeletedEvent(task_id=task_id, task=removed))
        return ToolResult.ok(message="Task deleted successfully")

    async def archive_task(self, task_id: str) -> ToolResult:
        result = await self.update_task(task_id, {"status": TaskStatus.ARCHIVED})
        if not result.success:
            return result
        try:
            index = self._index_of(task_id)
            now = self._clock()
            task = self._tasks[index]
            archived = task.model_copy(
                update={
                    "metadata": task.metadata.model_copy(
                        update={"archived_at": now, "last_modified": now}
                    )
                }
            )
            self._persisted(self._storage.save_one(archived))
            self._tasks[index] = archived
            self._touch()
        except Exception as exc:  # noqa: BLE001
            return self._failed("archive", exc, task_id)

        await self._emit("task:archived", TaskArchivedEvent(task_id=task_id, task=archived))
        return ToolResult.ok(archived, message="Task archived successfully")

    async def get_task(self, task_id: str) -> ToolResult:
        try:
            self._ensure_loaded()
            return ToolResult.ok(self._tasks[self._index_of(task_id)])
        except Exception as exc:  # noqa: BLE001
            return self._failed("get", exc, task_id)

    async def get_tasks(
        self, filters: TaskFilterOptions | Mapping[str, Any] | None = None
    ) -> ToolResult:
        try:
            options = _parse(TaskFilterOptions, filters or {})
            self._reload()
            return ToolResult.ok(apply_filters(self._tasks, options))
        except Exception as exc:  # noqa: BLE001
            return self._failed("list", exc)

    def get_last_updated(self) -> float:
        """Epoch seconds of the latest known change, including out-of-process writes."""
        mtime = self._storage.last_modified()
        if mtime is not None:
            return max(mtime, self._last_updated)
        return self._last_updated

    # ----------------------------
    # Bulk helpers
    # ----------------------------

    async def duplicate_task(self, task_id: str) -> ToolResult:
        """Create a fresh PENDING copy of a task; a past due date is dropped."""
        found = await self.get_task(task_id)
        if not found.success:
            return found
        source: Task = found.data
        due = source.due_date
        if due is not None and due < self._clock():
            due = None
        data = CreateTaskInput(
            title=f"{source.title} (copy)"[:TITLE_MAX_LENGTH],
            description=source.details.description,
            due_date=due,
            tags=list(source.details.tags),
            affected_files=list(source.details.affected_files),
            estimated_duration=source.details.estimated_duration,
            dependencies=list(source.details.dependencies),
            reminder_enabled=source.reminder_enabled,
            reminder_time=source.reminder_time,
            assigned_agent=source.details.assigned_agent,
            execution_path=source.details.execution_path,
        )
        return await self.create_task(data, source="duplicate")

    async def bulk_update_tasks(
        self, task_ids: Iterable[str], updates: UpdateTaskInput | Mapping[str, Any]
    ) -> ToolResult:
        """Apply the same update to several tasks; per-id failures are reported, not raised."""
        updated: list[Task] = []
        failed: list[dict[str, Any]] = []
        for task_id in task_ids:
            result = await self.update_task(task_id, updates)
            if result.success:
                updated.append(result.data)
            else:
                failed.append({"id": task_id, "error": result.error, "code": result.code})
        return ToolResult.ok(
            {"updated": updated, "failed": failed},
            message=f"Updated {len(updated)} tasks, {len(failed)} failed",
        )

    async def export_tasks(self, fmt: str = "json") -> ToolResult:
        loaded = await self.get_tasks()
        if not loaded.success:
            return loaded
        tasks: list[Task] = loaded.data
        if fmt == "json":
            document = TaskCollectionDocument.from_tasks(tasks)
            return ToolResult.ok(json.dumps(document.to_json_dict(), indent=2, ensure_ascii=False))
        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.DictWriter(buffer, fieldnames=_EXPORT_COLUMNS)
            writer.writeheader()
            for task in tasks:
                row = task.details.to_json_dict()
                writer.writerow(
                    {
                        "id": task.id,
                        "title": task.title,
                        "description": row.get("description", ""),
                        "status": task.status.value,
                        "dueDate": row.get("dueDate", ""),
                        "createdAt": row.get("createdAt", ""),
                        "completedAt": task.completed_at.isoformat() if task.completed_at else "",
                        "tags": ";".join(task.details.tags),
                        "assignedAgent": row.get("assignedAgent", ""),
                    }
                )
            return ToolResult.ok(buffer.getvalue())
        return ToolResult.fail(
            f"Unsupported export format: {fmt}", code="validation_error", field="format"
        )

    async def import_tasks(self, path: str | Path) -> ToolResult:
        """Merge tasks from a collection document or a bare task list.

        Tasks whose id already exists are skipped. Imported tasks keep their
        ids, timestamps and status.
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
            items = raw.get("tasks", []) if isinstance(raw, dict) else raw
            if not isinstance(items, list):
                raise TaskValidationError("expected a task list or collection document")
            incoming = [_parse(Task, item) for item in items]
            # save_all replaces the whole document, so merge into what is on disk now
            loaded = self._reload()
            if not loaded.success:
                raise TaskStorageError(loaded.error or "load failed")
            existing = {t.id for t in self._tasks}
            fresh: list[Task] = []
            for task in incoming:
                if task.id not in existing:
                    existing.add(task.id)
                    fresh.append(task)
            if fresh:
                self._persisted(self._storage.save_all([*self._tasks, *fresh]))
                self._tasks.extend(fresh)
                self._touch()
        except (OSError, json.JSONDecodeError) as exc:
            return self._failed("import", TaskValidationError(f"cannot read {path}: {exc}"))
        except Exception as exc:  # noqa: BLE001
            return self._failed("import", exc)

        for task in fresh:
            await self._emit(
                "task:created", TaskCreatedEvent(task_id=task.id, task=task, source="import")
            )
        skipped = len(incoming) - len(fresh)
        return ToolResult.ok(
            {"imported": len(fresh), "skipped": skipped},
            message=f"Imported {len(fresh)} tasks, skipped {skipped}",
        )

    # ----------------------------
    # Analytics
    # ----------------------------

    async def get_task_stats(self) -> ToolResult:
        try:
            self._reload()
            return ToolResult.ok(analytics.build_statistics(self._tasks, self._clock()))
        except Exception as exc:  # noqa: BLE001
            return self._failed("stats", exc)

    async def get_task_analytics(self) -> ToolResult:
        try:
            self._reload()
            return ToolResult.ok(analytics.build_analytics(self._tasks, self._clock()))
        except Exception as exc:  # noqa: BLE001
            return self._failed("analytics", exc)

    # ----------------------------
    # Observe / orient / decide / act
    # ----------------------------

    async def observe(self) -> TaskObservation:
        self._reload()
        return ooda.observe_tasks(self._tasks, self._clock())

    async def orient(self, observation: TaskObservation) -> TaskStrategy:
        return ooda.orient_observation(observation)

    async def decide(self, strategy: TaskStrategy) -> list[TaskAction]:
        return ooda.decide_actions(strategy)

    async def act(self, actions: Iterable[TaskAction]) -> None:
        """Hand each action to the configured handler. Task state is not touched."""
        logger = get_json_logger("tasky.engine")
        for action in actions:
            logger.info(
                "ooda action",
                extra={
                    "event": "ooda_action",
                    "task_id": action.task_id,
                    "attributes": {"type": action.type, "message": action.message},
                },
            )
            if self._action_handler is None:
                continue
            try:
                outcome = self._action_handler(action)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:  # noqa: BLE001
                logger.exception(
                    "action handler failed",
                    extra={"event": "ooda_action_error", "task_id": action.task_id},
                )

    async def run_cycle(self) -> list[TaskAction]:
        observation = await self.observe()
        strategy = await self.orient(observation)
        actions = await self.decide(strategy)
        await self.act(actions)
        return actions


__all__ = ["ActionHandler", "TaskEngine", "apply_filters", "generate_task_id"]
