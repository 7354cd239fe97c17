from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from tasky.bridge.tools import to_jsonable
from tasky.config import TaskyConfig, load_config
from tasky.engine.engine import TaskEngine
from tasky.models.result import ToolResult
from tasky.models.task import TaskStatus
from tasky.storage.json_file import JsonFileTaskStorage


def _print_json(value: Any) -> None:
    sys.stdout.write(json.dumps(to_jsonable(value), indent=2, ensure_ascii=False) + "\n")


def _report(result: ToolResult) -> int:
    if not result.success:
        sys.stderr.write(f"error: {result.error}\n")
        return 1
    if result.data is not None:
        _print_json(result.data)
    elif result.message:
        sys.stdout.write(result.message + "\n")
    return 0


def _serve(cfg: TaskyConfig, host: str | None, port: int | None) -> int:
    # Defer heavy imports so non-server commands stay lightweight
    import uvicorn

    from tasky.gateway.asgi import build_app

    uvicorn.run(build_app(cfg), host=host or cfg.gateway_host, port=port or cfg.gateway_port)
    return 0


async def _run_command(args: argparse.Namespace, engine: TaskEngine) -> int:
    init = await engine.initialize()
    if not init.success:
        return _report(init)

    if args.cmd == "add":
        payload: dict[str, Any] = {"title": args.title, "tags": args.tag or []}
        if args.description:
            payload["description"] = args.description
        if args.due:
            payload["dueDate"] = args.due
        if args.agent:
            payload["assignedAgent"] = args.agent
        return _report(await engine.create_task(payload))

    if args.cmd == "list":
        filters: dict[str, Any] = {}
        if args.status:
            filters["status"] = args.status
        if args.tag:
            filters["tags"] = args.tag
        if args.search:
            filters["search"] = args.search
        if args.limit:
            filters["limit"] = args.limit
        result = await engine.get_tasks(filters)
        if result.success and not args.json:
            for task in result.data:
                due = "-"
                if task.due_date is not None:
                    due = task.due_date.astimezone().strftime("%Y-%m-%d %H:%M")
                sys.stdout.write(f"{task.status.value:<12} {due:<16} {task.id}  {task.title}\n")
            return 0
        return _report(result)

    if args.cmd == "done":
        return _report(await engine.update_task(args.id, {"status": TaskStatus.COMPLETED}))

    if args.cmd == "stats":
        return _report(await engine.get_task_stats())

    if args.cmd == "insights":
        observation = await engine.observe()
        strategy = await engine.orient(observation)
        actions = await engine.decide(strategy)
        _print_json({"observation": observation, "strategy": strategy, "actions": actions})
        return 0

    if args.cmd == "export":
        result = await engine.export_tasks(args.format)
        if not result.success:
            return _report(result)
        if args.output:
            Path(args.output).write_text(result.data, encoding="utf-8")
            sys.stdout.write(f"exported to {args.output}\n")
        else:
            sys.stdout.write(result.data)
        return 0

    if args.cmd == "import":
        return _report(await engine.import_tasks(args.path))

    sys.stderr.write(f"error: unknown command {args.cmd}\n")
    return 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("tasky")
    parser.add_argument("--tasks-path", help="Task document path (overrides TASKY_TASKS_PATH)")
    sub = parser.add_subparsers(dest="cmd")

    p_serve = sub.add_parser("serve", help="Run the HTTP gateway")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)

    p_add = sub.add_parser("add", help="Create a task")
    p_add.add_argument("title")
    p_add.add_argument("--description")
    p_add.add_argument("--due", help="ISO-8601 due date")
    p_add.add_argument("--tag", action="append")
    p_add.add_argument("--agent", choices=["gemini", "claude"])

    p_list = sub.add_parser("list", help="List tasks")
    p_list.add_argument("--status", action="append", choices=[s.value for s in TaskStatus])
    p_list.add_argument("--tag", action="append")
    p_list.add_argument("--search")
    p_list.add_argument("--limit", type=int)
    p_list.add_argument("--json", action="store_true")

    p_done = sub.add_parser("done", help="Mark a task completed")
    p_done.add_argument("id")

    sub.add_parser("stats", help="Show task statistics")
    sub.add_parser("insights", help="Show observations, alerts and suggested actions")
    sub.add_parser("backup", help="Copy the task document to a timestamped sibling")

    p_export = sub.add_parser("export", help="Export tasks as JSON or CSV")
    p_export.add_argument("--format", choices=["json", "csv"], default="json")
    p_export.add_argument("--output", "-o")

    p_import = sub.add_parser("import", help="Import tasks from a JSON file")
    p_import.add_argument("path")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    cfg = load_config()
    if args.tasks_path:
        cfg.tasks_path = Path(args.tasks_path).expanduser()

    if args.cmd is None:
        parser.print_help()
        raise SystemExit(2)
    if args.cmd == "serve":
        raise SystemExit(_serve(cfg, args.host, args.port))

    storage = JsonFileTaskStorage(cfg.tasks_path)
    if args.cmd == "backup":
        raise SystemExit(_report(storage.backup()))
    raise SystemExit(asyncio.run(_run_command(args, TaskEngine(storage))))


if __name__ == "__main__":  # pragma: no cover
    main()
