from __future__ import annotations

from typing import Protocol

from tasky.models.result import ToolResult
from tasky.models.task import Task


class TaskStorage(Protocol):
    """Minimal pluggable storage interface used by the engine.

    Implementations never raise across this boundary: every call returns a
    ``ToolResult`` and callers check ``success``.
    """

    def initialize(self) -> ToolResult:
        """Ensure the backing document exists and is well formed."""

    def load_all(self) -> ToolResult:
        """Return every stored task as ``data`` (a list of ``Task``)."""

    def save_all(self, tasks: list[Task]) -> ToolResult:
        """Replace the stored collection with ``tasks``."""

    def save_one(self, task: Task) -> ToolResult:
        """Insert or replace one task by id."""

    def delete_one(self, task_id: str) -> ToolResult:
        """Remove one task by id; fails with ``not_found`` if absent."""

    def last_modified(self) -> float | None:
        """Epoch seconds of the last write, or None when the backend cannot tell."""
        return None


__all__ = ["TaskStorage"]
