from __future__ import annotations

from pathlib import Path

import pytest

from tasky.engine.engine import TaskEngine
from tasky.storage.json_file import JsonFileTaskStorage


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the user's real task document and log settings."""
    for name in ("TASKY_TASKS_PATH", "TASKY_DATA_DIR", "GATEWAY_HOST", "GATEWAY_PORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("LOG_FORMAT", "json")


@pytest.fixture()
def tasks_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "tasks.json"


@pytest.fixture()
def storage(tasks_path: Path) -> JsonFileTaskStorage:
    store = JsonFileTaskStorage(tasks_path)
    assert store.initialize().success
    return store


@pytest.fixture()
def engine(storage: JsonFileTaskStorage) -> TaskEngine:
    return TaskEngine(storage)
