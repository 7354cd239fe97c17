from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

APP_DIR_NAME = "tasky"
TASKS_FILE_NAME = "tasky-tasks.json"


@dataclass(slots=True)
class TaskyConfig:
    tasks_path: Path
    gateway_host: str
    gateway_port: int


def default_data_dir(env: dict[str, Any] | None = None, platform: str | None = None) -> Path:
    """Per-user data directory following each platform's convention."""
    e = env if env is not None else dict(os.environ)
    plat = platform or sys.platform
    home = Path(e.get("HOME") or Path.home())
    if plat.startswith("win"):
        appdata = e.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / APP_DIR_NAME
    if plat == "darwin":
        return home / "Library" / "Application Support" / APP_DIR_NAME
    xdg = e.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else home / ".local" / "share"
    return base / APP_DIR_NAME


def _resolve_tasks_path(e: dict[str, Any]) -> Path:
    explicit = (e.get("TASKY_TASKS_PATH") or "").strip()
    if explicit:
        return Path(explicit).expanduser()
    data_dir = (e.get("TASKY_DATA_DIR") or "").strip()
    if data_dir:
        return Path(data_dir).expanduser() / TASKS_FILE_NAME
    return default_data_dir(e) / TASKS_FILE_NAME


def load_config(env: dict[str, str] | None = None) -> TaskyConfig:
    e: dict[str, Any] = dict(os.environ)
    if env:
        e.update(env)
    port_raw = (e.get("GATEWAY_PORT") or "").strip()
    try:
        port = int(port_raw) if port_raw else 8000
    except ValueError:
        port = 8000
    return TaskyConfig(
        tasks_path=_resolve_tasks_path(e),
        gateway_host=e.get("GATEWAY_HOST") or "127.0.0.1",
        gateway_port=port,
    )


__all__ = ["TaskyConfig", "default_data_dir", "load_config"]
