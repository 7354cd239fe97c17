from __future__ import annotations

from fastapi import FastAPI

from tasky.bridge.tools import TaskBridge
from tasky.config import TaskyConfig, load_config
from tasky.engine.engine import TaskEngine
from tasky.observability import Metrics
from tasky.storage.json_file import JsonFileTaskStorage

from .app import create_app


def build_app(config: TaskyConfig | None = None) -> FastAPI:
    cfg = config or load_config()
    metrics = Metrics()
    engine = TaskEngine(JsonFileTaskStorage(cfg.tasks_path))
    return create_app(TaskBridge(engine, metrics), metrics)


app = build_app()
