from __future__ import annotations


class TaskError(Exception):
    """Base class for task engine failures. ``code`` is surfaced in result envelopes."""

    code = "internal_error"


class TaskValidationError(TaskError):
    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(f"Task validation failed: {message}")
        self.field = field


class TaskNotFoundError(TaskError):
    code = "not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskStorageError(TaskError):
    code = "storage_error"

    prefix = "Task storage error: "

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        # Re-wrapping an already reported storage failure keeps a single prefix
        text = message if message.startswith(self.prefix) else f"{self.prefix}{message}"
        if cause is not None:
            text = f"{text} ({cause})"
        super().__init__(text)
        self.cause = cause


__all__ = ["TaskError", "TaskNotFoundError", "TaskStorageError", "TaskValidationError"]
