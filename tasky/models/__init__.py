from .events import (
    EVENT_NAMES,
    EventName,
    TaskArchivedEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskEvent,
    TaskUpdatedEvent,
)
from .insights import (
    TaskAction,
    TaskAlert,
    TaskAnalytics,
    TaskObservation,
    TaskStatistics,
    TaskStrategy,
    TaskSuggestion,
)
from .result import ToolResult
from .task import (
    CreateTaskInput,
    Task,
    TaskCollectionDocument,
    TaskFilterOptions,
    TaskMetadata,
    TaskSchema,
    TaskStatus,
    UpdateTaskInput,
)

__all__ = [
    "EVENT_NAMES",
    "CreateTaskInput",
    "EventName",
    "Task",
    "TaskAction",
    "TaskAlert",
    "TaskAnalytics",
    "TaskArchivedEvent",
    "TaskCollectionDocument",
    "TaskCompletedEvent",
    "TaskCreatedEvent",
    "TaskDeletedEvent",
    "TaskEvent",
    "TaskFilterOptions",
    "TaskMetadata",
    "TaskObservation",
    "TaskSchema",
    "TaskStatistics",
    "TaskStatus",
    "TaskStrategy",
    "TaskSuggestion",
    "TaskUpdatedEvent",
    "ToolResult",
    "UpdateTaskInput",
]
