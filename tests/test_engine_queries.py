from __future__ import annotations

import datetime as dt

import pytest

from tasky.engine.engine import TaskEngine, apply_filters
from tasky.models.task import TaskFilterOptions, TaskStatus
from tasky.storage.json_file import JsonFileTaskStorage
from tests.helpers.storage import InMemoryTaskStorage
from tests.helpers.tasks import make_task, ticking_clock

BASE = dt.datetime(2026, 6, 17, 12, 0, tzinfo=dt.UTC)


def _titles(tasks: list) -> list[str]:
    return [t.title for t in tasks]


@pytest.mark.asyncio
async def test_search_and_default_ordering(storage: JsonFileTaskStorage) -> None:
    engine = TaskEngine(storage, clock=ticking_clock())
    six_months = (dt.datetime.now(dt.UTC) + dt.timedelta(days=182)).isoformat()

    alpha = (await engine.create_task({"title": "Alpha bug"})).data
    beta = (await engine.create_task({"title": "Beta feature"})).data
    await engine.create_task({"title": "Gamma bug", "dueDate": six_months})
    await engine.update_task(beta.id, {"status": "COMPLETED"})

    found = await engine.get_tasks({"search": "bug"})
    assert sorted(_titles(found.data)) == ["Alpha bug", "Gamma bug"]

    everything = await engine.get_tasks()
    assert _titles(everything.data) == ["Gamma bug", "Beta feature", "Alpha bug"]
    assert alpha.id in {t.id for t in everything.data}


@pytest.mark.asyncio
async def test_status_filter_keeps_global_ordering(storage: JsonFileTaskStorage) -> None:
    storage.save_all(
        [
            make_task("undated old", created_at=BASE - dt.timedelta(days=2)),
            make_task("done", status=TaskStatus.COMPLETED, created_at=BASE),
            make_task("late due", due_date=BASE + dt.timedelta(days=9), created_at=BASE),
            make_task("undated new", created_at=BASE - dt.timedelta(days=1)),
            make_task("soon due", due_date=BASE + dt.timedelta(days=1), created_at=BASE),
        ]
    )
    engine = TaskEngine(storage)

    pending = await engine.get_tasks({"status": ["PENDING"]})

    assert _titles(pending.data) == ["soon due", "late due", "undated new", "undated old"]
    assert all(t.status == TaskStatus.PENDING for t in pending.data)


def test_tag_search_and_date_range_filters() -> None:
    tasks = [
        make_task("tagged work", tags=["work"], created_at=BASE),
        make_task("tagged home", tags=["home", "Errands"], created_at=BASE),
        make_task("described", description="Fix the BUG in login", created_at=BASE),
        make_task("due early", due_date=BASE + dt.timedelta(days=1), created_at=BASE),
        make_task("due late", due_date=BASE + dt.timedelta(days=5), created_at=BASE),
    ]

    by_tag = apply_filters(tasks, TaskFilterOptions(tags=["work", "errands", "home"]))
    by_desc = apply_filters(tasks, TaskFilterOptions(search="bug"))
    by_tag_text = apply_filters(tasks, TaskFilterOptions(search="errand"))
    in_range = apply_filters(
        tasks,
        TaskFilterOptions(
            due_date_from=BASE + dt.timedelta(days=1), due_date_to=BASE + dt.timedelta(days=2)
        ),
    )
    inclusive = apply_filters(
        tasks, TaskFilterOptions(due_date_to=BASE + dt.timedelta(days=5))
    )

    assert sorted(_titles(by_tag)) == ["tagged home", "tagged work"]
    assert _titles(by_desc) == ["described"]
    assert _titles(by_tag_text) == ["tagged home"]
    assert _titles(in_range) == ["due early"]
    assert _titles(inclusive) == ["due early", "due late"]


def test_pagination_applies_before_sorting() -> None:
    tasks = [
        make_task("first stored", created_at=BASE - dt.timedelta(hours=3)),
        make_task("second stored", created_at=BASE - dt.timedelta(hours=2)),
        make_task("third stored", created_at=BASE - dt.timedelta(hours=1)),
    ]

    page = apply_filters(tasks, TaskFilterOptions(offset=1, limit=1))
    rest = apply_filters(tasks, TaskFilterOptions(offset=1))
    unlimited = apply_filters(tasks, TaskFilterOptions(limit=0))

    assert _titles(page) == ["second stored"]
    assert _titles(rest) == ["third stored", "second stored"]
    assert len(unlimited) == 3


def test_extra_filters() -> None:
    tasks = [
        make_task("with files", affected_files=["src/app.py"], created_at=BASE),
        make_task("no files", created_at=BASE - dt.timedelta(days=3)),
    ]

    with_files = apply_filters(tasks, TaskFilterOptions(has_files=True))
    without_files = apply_filters(tasks, TaskFilterOptions(has_files=False))
    recent = apply_filters(tasks, TaskFilterOptions(created_after=BASE - dt.timedelta(days=1)))
    older = apply_filters(tasks, TaskFilterOptions(created_before=BASE - dt.timedelta(days=1)))

    assert _titles(with_files) == ["with files"]
    assert _titles(without_files) == ["no files"]
    assert _titles(recent) == ["with files"]
    assert _titles(older) == ["no files"]


@pytest.mark.asyncio
async def test_get_tasks_sees_out_of_process_writes(storage: JsonFileTaskStorage) -> None:
    engine = TaskEngine(storage)
    await engine.initialize()
    other = TaskEngine(JsonFileTaskStorage(storage.path))
    await other.create_task({"title": "Written elsewhere"})

    result = await engine.get_tasks()

    assert _titles(result.data) == ["Written elsewhere"]


@pytest.mark.asyncio
async def test_get_tasks_keeps_previous_collection_when_reload_fails() -> None:
    storage = InMemoryTaskStorage([make_task("cached", task_id="cached")])
    engine = TaskEngine(storage)
    await engine.initialize()
    storage.fail_reads = True

    result = await engine.get_tasks()

    assert result.success
    assert _titles(result.data) == ["cached"]


@pytest.mark.asyncio
async def test_invalid_filters_are_validation_errors(engine: TaskEngine) -> None:
    negative = await engine.get_tasks({"limit": -1})
    bad_status = await engine.get_tasks({"status": ["SOMEDAY"]})

    assert negative.code == "validation_error"
    assert negative.field == "limit"
    assert bad_status.field == "status"
