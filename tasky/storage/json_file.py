from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path

from tasky.errors import TaskStorageError
from tasky.models.result import ToolResult
from tasky.models.task import Task, TaskCollectionDocument, utc_now
from tasky.observability import get_json_logger


class JsonFileTaskStorage:
    """Task collection persisted as one JSON document.

    - No cached state: every call re-reads the file so writes made by other
      processes are picked up.
    - Writes go to a sibling temp file that is renamed over the target, so a
      reader never sees a half-written document. If the rename fails the
      document is written in place instead.
    - Nothing raises to the caller; failures come back as ``ToolResult``.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def last_modified(self) -> float | None:
        try:
            return self._path.stat().st_mtime
        except OSError:
            return None

    # ----------------------------
    # Protocol operations
    # ----------------------------

    def initialize(self) -> ToolResult:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self.exists():
                self._write_document(TaskCollectionDocument())
            return ToolResult.ok(message="Task storage initialized successfully")
        except OSError as exc:
            return self._failure("initialize", exc)

    def load_document(self) -> ToolResult:
        try:
            if not self.exists():
                document = TaskCollectionDocument()
                self._write_document(document)
                return ToolResult.ok(document)
            raw = self._path.read_text(encoding="utf-8")
            return ToolResult.ok(TaskCollectionDocument.model_validate_json(raw))
        except (OSError, ValueError) as exc:
            return self._failure("load", exc)

    def load_all(self) -> ToolResult:
        result = self.load_document()
        if not result.success:
            return result
        return ToolResult.ok(list(result.data.tasks))

    def save_all(self, tasks: list[Task]) -> ToolResult:
        try:
            self._write_document(TaskCollectionDocument.from_tasks(tasks))
            return ToolResult.ok(message="All tasks saved successfully")
        except (OSError, TypeError, ValueError) as exc:
            return self._failure("save", exc)

    def save_one(self, task: Task) -> ToolResult:
        loaded = self.load_all()
        if not loaded.success:
            return loaded
        tasks: list[Task] = loaded.data
        for i, existing in enumerate(tasks):
            if existing.id == task.id:
                tasks[i] = task
                break
        else:
            tasks.append(task)
        return self.save_all(tasks)

    def delete_one(self, task_id: str) -> ToolResult:
        loaded = self.load_all()
        if not loaded.success:
            return loaded
        tasks: list[Task] = loaded.data
        remaining = [t for t in tasks if t.id != task_id]
        if len(remaining) == len(tasks):
            return ToolResult.fail(f"Task {task_id} not found", code="not_found")
        return self.save_all(remaining)

    def backup(self) -> ToolResult:
        """Copy the document to ``<stem>_backup_<timestamp><suffix>`` next to it."""
        if not self.exists():
            return ToolResult.fail("No tasks file to backup", code="not_found")
        stamp = utc_now().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        backup_path = self._path.with_name(f"{self._path.stem}_backup_{stamp}{self._path.suffix}")
        try:
            shutil.copy2(self._path, backup_path)
        except OSError as exc:
            return self._failure("backup", exc)
        get_json_logger("tasky.storage").info(
            "tasks backed up",
            extra={"event": "storage_backup", "path": str(backup_path)},
        )
        return ToolResult.ok(str(backup_path), message="Tasks backed up successfully")

    # ----------------------------
    # Helpers
    # ----------------------------

    def _write_document(self, document: TaskCollectionDocument) -> None:
        payload = json.dumps(document.to_json_dict(), indent=2, ensure_ascii=False)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            try:
                os.replace(tmp_path, self._path)
            except OSError as exc:
                get_json_logger("tasky.storage").warning(
                    "atomic rename failed; writing document in place",
                    extra={"event": "storage_rename_fallback", "path": str(self._path)},
                    exc_info=exc,
                )
                self._path.write_text(payload, encoding="utf-8")
        finally:
            tmp_path.unlink(missing_ok=True)

    def _failure(self, operation: str, exc: BaseException) -> ToolResult:
        err = TaskStorageError(f"failed to {operation} {self._path}", exc)
        get_json_logger("tasky.storage").error(
            "storage error",
            extra={
                "event": "storage_error",
                "operation": operation,
                "path": str(self._path),
                "attributes": {"error": str(exc)[:200]},
            },
        )
        return ToolResult.from_exception(err)


__all__ = ["JsonFileTaskStorage"]
