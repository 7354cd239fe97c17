from __future__ import annotations

import datetime
from typing import Literal, get_args

from pydantic import BaseModel, Field

from .task import Task, TaskStatus

EventName = Literal[
    "task:created",
    "task:updated",
    "task:completed",
    "task:deleted",
    "task:archived",
]
EVENT_NAMES: frozenset[str] = frozenset(get_args(EventName))
CompletionMethod = Literal["manual", "auto"]
COMPLETION_METHODS: frozenset[str] = frozenset(get_args(CompletionMethod))


class BaseTaskEvent(BaseModel):
    """Fields shared by every event emitted by the engine."""

    task_id: str
    emitted_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC)
    )


class TaskCreatedEvent(BaseTaskEvent):
    event: Literal["task:created"] = "task:created"
    task: Task
    source: Literal["user", "import", "duplicate"] = "user"


class TaskUpdatedEvent(BaseTaskEvent):
    event: Literal["task:updated"] = "task:updated"
    task: Task
    previous_status: TaskStatus
    changes: list[str] = Field(default_factory=list)


class TaskCompletedEvent(BaseTaskEvent):
    event: Literal["task:completed"] = "task:completed"
    task: Task
    duration_minutes: float
    completion_method: CompletionMethod = "manual"


class TaskDeletedEvent(BaseTaskEvent):
    event: Literal["task:deleted"] = "task:deleted"
    task: Task


class TaskArchivedEvent(BaseTaskEvent):
    event: Literal["task:archived"] = "task:archived"
    task: Task


TaskEvent = (
    TaskCreatedEvent | TaskUpdatedEvent | TaskCompletedEvent | TaskDeletedEvent | TaskArchivedEvent
)


__all__ = [
    "COMPLETION_METHODS",
    "EVENT_NAMES",
    "BaseTaskEvent",
    "CompletionMethod",
    "EventName",
    "TaskArchivedEvent",
    "TaskCompletedEvent",
    "TaskCreatedEvent",
    "TaskDeletedEvent",
    "TaskEvent",
    "TaskUpdatedEvent",
]
