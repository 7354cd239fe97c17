from __future__ import annotations

import datetime as _dt
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DOCUMENT_VERSION = "1.0"
CREATED_BY = "tasky-user"
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
ASSIGNED_AGENTS: tuple[str, ...] = ("gemini", "claude")


def utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.UTC)


def ensure_utc(value: _dt.datetime) -> _dt.datetime:
    """Normalise to an aware UTC datetime. Naive values are taken as local time."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(_dt.UTC)


UtcDatetime = Annotated[_dt.datetime, AfterValidator(ensure_utc)]
AssignedAgent = Literal["gemini", "claude"]


class TaskStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    ARCHIVED = "ARCHIVED"


class CamelModel(BaseModel):
    """Base for persisted and wire models: snake_case in Python, camelCase on disk."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TaskSchema(CamelModel):
    """Descriptive fields of a task. ``id`` and ``created_at`` never change."""

    id: str
    title: str
    description: str | None = None
    due_date: UtcDatetime | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime | None = None
    tags: list[str] = Field(default_factory=list)
    affected_files: list[str] = Field(default_factory=list)
    estimated_duration: float | None = None
    dependencies: list[str] = Field(default_factory=list)
    assigned_agent: AssignedAgent | None = None
    execution_path: str | None = None


class TaskMetadata(CamelModel):
    version: int = 1
    created_by: str = CREATED_BY
    last_modified: UtcDatetime = Field(default_factory=utc_now)
    archived_at: UtcDatetime | None = None


class Task(CamelModel):
    """A task as held by the engine and persisted in the collection document.

    The descriptive part lives under ``details`` (``schema`` on disk); lifecycle
    fields sit at the top level.
    """

    details: TaskSchema = Field(alias="schema")
    status: TaskStatus = TaskStatus.PENDING
    human_approved: bool = False
    result: str | None = None
    completed_at: UtcDatetime | None = None
    reminder_enabled: bool = False
    reminder_time: str | None = None
    notification_sent: bool | None = None
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)

    @property
    def id(self) -> str:
        return self.details.id

    @property
    def title(self) -> str:
        return self.details.title

    @property
    def due_date(self) -> _dt.datetime | None:
        return self.details.due_date

    @property
    def created_at(self) -> _dt.datetime:
        return self.details.created_at


class DocumentMetadata(CamelModel):
    total_tasks: int = 0
    last_task_id: str = ""


class TaskCollectionDocument(CamelModel):
    """The single persisted aggregate holding every task."""

    version: str = DOCUMENT_VERSION
    last_saved: UtcDatetime = Field(default_factory=utc_now)
    tasks: list[Task] = Field(default_factory=list)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)

    @classmethod
    def from_tasks(cls, tasks: list[Task]) -> TaskCollectionDocument:
        return cls(
            tasks=list(tasks),
            metadata=DocumentMetadata(
                total_tasks=len(tasks),
                last_task_id=tasks[-1].id if tasks else "",
            ),
        )


class CreateTaskInput(CamelModel):
    title: str
    description: str | None = None
    due_date: UtcDatetime | None = None
    tags: list[str] = Field(default_factory=list)
    affected_files: list[str] = Field(default_factory=list)
    estimated_duration: float | None = None
    dependencies: list[str] = Field(default_factory=list)
    reminder_enabled: bool = False
    reminder_time: str | None = None
    # Checked by the engine so the error can name the field
    assigned_agent: str | None = None
    execution_path: str | None = None


class UpdateTaskInput(CamelModel):
    """Typed form of an update payload. Only explicitly set fields are applied."""

    title: str | None = None
    description: str | None = None
    due_date: UtcDatetime | None = None
    tags: list[str] | None = None
    affected_files: list[str] | None = None
    estimated_duration: float | None = None
    dependencies: list[str] | None = None
    status: TaskStatus | None = None
    reminder_enabled: bool | None = None
    reminder_time: str | None = None
    result: str | None = None
    assigned_agent: str | None = None
    execution_path: str | None = None


class TaskFilterOptions(CamelModel):
    status: list[TaskStatus] | None = None
    tags: list[str] | None = None
    search: str | None = None
    due_date_from: UtcDatetime | None = None
    due_date_to: UtcDatetime | None = None
    has_files: bool | None = None
    created_after: UtcDatetime | None = None
    created_before: UtcDatetime | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)


__all__ = [
    "ASSIGNED_AGENTS",
    "CREATED_BY",
    "DESCRIPTION_MAX_LENGTH",
    "DOCUMENT_VERSION",
    "TITLE_MAX_LENGTH",
    "AssignedAgent",
    "CamelModel",
    "CreateTaskInput",
    "DocumentMetadata",
    "Task",
    "TaskCollectionDocument",
    "TaskFilterOptions",
    "TaskMetadata",
    "TaskSchema",
    "TaskStatus",
    "UpdateTaskInput",
    "UtcDatetime",
    "ensure_utc",
    "utc_now",
]
