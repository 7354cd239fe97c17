from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from tasky.errors import TaskError, TaskValidationError


class ToolResult(BaseModel):
    """Uniform result envelope returned by storage, engine and bridge operations.

    ``code`` and ``field`` are only set on failures.
    """

    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None
    code: str | None = None
    field: str | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> ToolResult:
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls, error: str, *, code: str = "internal_error", field: str | None = None
    ) -> ToolResult:
        return cls(success=False, error=error, code=code, field=field)

    @classmethod
    def from_exception(cls, exc: BaseException) -> ToolResult:
        if isinstance(exc, TaskError):
            field = exc.field if isinstance(exc, TaskValidationError) else None
            return cls.fail(str(exc), code=exc.code, field=field)
        return cls.fail(str(exc) or type(exc).__name__)


__all__ = ["ToolResult"]
