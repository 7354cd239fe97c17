from __future__ import annotations

import datetime as dt
import os
import time
from collections.abc import Iterator

import pytest

from tasky.engine import analytics
from tasky.engine.engine import TaskEngine
from tasky.models.task import TaskStatus
from tests.helpers.storage import InMemoryTaskStorage
from tests.helpers.tasks import make_task

# Local noon on a Wednesday well away from DST changes; the week started Sunday 14th
NOW = dt.datetime(2026, 6, 17, 12, 0).astimezone().astimezone(dt.UTC)
HOUR = dt.timedelta(hours=1)
DAY = dt.timedelta(days=1)


def _completed(title: str, completed_at: dt.datetime, tags: list[str] | None = None):
    return make_task(
        title,
        status=TaskStatus.COMPLETED,
        created_at=completed_at - 2 * HOUR,
        completed_at=completed_at,
        tags=tags,
    )


@pytest.fixture()
def tasks() -> list:
    return [
        _completed("today", NOW - HOUR, tags=["work"]),
        _completed("monday", NOW - 2 * DAY, tags=["work", "home"]),
        _completed("last week", NOW - 10 * DAY),
        make_task("late", due_date=NOW - HOUR, created_at=NOW - 3 * DAY),
    ]


def test_statistics(tasks: list) -> None:
    stats = analytics.build_statistics(tasks, NOW)

    assert stats.total == 4
    assert stats.by_status == {
        "PENDING": 1,
        "IN_PROGRESS": 0,
        "COMPLETED": 3,
        "NEEDS_REVIEW": 0,
        "ARCHIVED": 0,
    }
    assert stats.by_tags == {"work": 2, "home": 1}
    assert stats.average_completion_time == pytest.approx(2.0)
    assert stats.completion_rate == pytest.approx(75.0)
    assert stats.overdue_count == 1
    assert stats.due_today_count == 1
    assert stats.productivity_trend == "increasing"


def test_overdue_excludes_closed_tasks() -> None:
    tasks = [
        make_task("open", due_date=NOW - DAY),
        make_task("done", due_date=NOW - DAY, status=TaskStatus.COMPLETED),
        make_task("shelved", due_date=NOW - DAY, status=TaskStatus.ARCHIVED),
        make_task("review", due_date=NOW - DAY, status=TaskStatus.NEEDS_REVIEW),
        make_task("future", due_date=NOW + DAY),
    ]

    assert [t.title for t in analytics.overdue_tasks(tasks, NOW)] == ["open", "review"]


def test_due_today_uses_local_calendar_day() -> None:
    local_midnight = analytics.local_day_start(NOW)
    tasks = [
        make_task("start of day", due_date=local_midnight),
        make_task("end of day", due_date=local_midnight + DAY - dt.timedelta(seconds=1)),
        make_task("tomorrow", due_date=local_midnight + DAY),
        make_task("yesterday", due_date=local_midnight - dt.timedelta(seconds=1)),
    ]

    due = analytics.due_today_tasks(tasks, NOW)

    assert [t.title for t in due] == ["start of day", "end of day"]


@pytest.mark.parametrize(
    "last_week,previous_week,expected",
    [
        (0, 0, "stable"),
        (3, 0, "increasing"),
        (0, 3, "decreasing"),
        (10, 10, "stable"),
        (11, 10, "stable"),
        (12, 10, "increasing"),
        (8, 10, "decreasing"),
    ],
)
def test_productivity_trend_threshold(last_week: int, previous_week: int, expected: str) -> None:
    tasks = [_completed(f"recent {i}", NOW - DAY) for i in range(last_week)]
    tasks += [_completed(f"older {i}", NOW - 10 * DAY) for i in range(previous_week)]

    assert analytics.productivity_trend(tasks, NOW) == expected


def test_empty_collection_statistics() -> None:
    stats = analytics.build_statistics([], NOW)

    assert stats.total == 0
    assert stats.completion_rate == 0
    assert stats.average_completion_time == 0
    assert stats.productivity_trend == "stable"


def test_analytics_breakdown(tasks: list) -> None:
    report = analytics.build_analytics(tasks, NOW)

    assert report.productivity.tasks_completed_today == 1
    assert report.productivity.tasks_completed_this_week == 2
    assert report.productivity.average_tasks_per_day == pytest.approx(0.3)
    assert report.completion_rate == pytest.approx(75.0)
    assert report.task_distribution["COMPLETED"] == 3

    daily = report.trends.daily_completion
    assert [d.date for d in daily] == [
        "2026-06-11",
        "2026-06-12",
        "2026-06-13",
        "2026-06-14",
        "2026-06-15",
        "2026-06-16",
        "2026-06-17",
    ]
    assert [d.completed for d in daily] == [0, 0, 0, 0, 1, 0, 1]

    weekly = report.trends.weekly_productivity
    assert [w.week for w in weekly] == ["This week", "Last week", "2 weeks ago", "3 weeks ago"]
    assert [w.productivity for w in weekly] == [2, 1, 0, 0]


def test_average_tasks_per_day_counts_at_least_one_day() -> None:
    tasks = [_completed("a", NOW - HOUR), _completed("b", NOW - 2 * HOUR)]

    assert analytics.average_tasks_per_day(tasks, NOW) == pytest.approx(2.0)
    assert analytics.average_tasks_per_day([make_task("open")], NOW) == 0


def test_analytics_json_is_camel_case(tasks: list) -> None:
    payload = analytics.build_analytics(tasks, NOW).to_json_dict()

    assert set(payload) == {
        "productivity",
        "completionRate",
        "averageCompletionTime",
        "taskDistribution",
        "trends",
    }
    assert set(payload["trends"]) == {"dailyCompletion", "weeklyProductivity"}
    assert "tasksCompletedThisWeek" in payload["productivity"]


@pytest.mark.asyncio
async def test_engine_stats_and_analytics_reload(tasks: list) -> None:
    storage = InMemoryTaskStorage()
    engine = TaskEngine(storage, clock=lambda: NOW)
    await engine.initialize()
    storage.tasks = list(tasks)

    stats = await engine.get_task_stats()
    report = await engine.get_task_analytics()

    assert stats.success and stats.data.total == 4
    assert report.success and report.data.productivity.tasks_completed_today == 1


@pytest.fixture()
def new_york_time() -> Iterator[None]:
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    previous = os.environ.get("TZ")
    # POSIX rule string, so no tz database is needed
    os.environ["TZ"] = "EST5EDT,M3.2.0,M11.1.0"
    time.tzset()
    yield
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()


def test_day_windows_follow_dst_changes(new_york_time: None) -> None:
    # Clocks went forward at 02:00 on Sunday 2026-03-08; midnight was still EST
    now = dt.datetime(2026, 3, 8, 19, 0, tzinfo=dt.UTC)  # 15:00 EDT
    midnight = dt.datetime(2026, 3, 8, 5, 0, tzinfo=dt.UTC)

    assert analytics.local_day_start(now) == midnight

    just_after = _completed("after midnight", midnight + dt.timedelta(minutes=30))
    just_before = _completed("before midnight", midnight - dt.timedelta(minutes=30))
    report = analytics.build_analytics([just_after, just_before], now)

    assert report.productivity.tasks_completed_today == 1
    # Sunday is the first day of the week, so Saturday's completion is last week
    assert report.productivity.tasks_completed_this_week == 1
    daily = report.trends.daily_completion
    assert [(d.date, d.completed) for d in daily[-2:]] == [("2026-03-07", 1), ("2026-03-08", 1)]

    due = [make_task("due 00:30", due_date=midnight + dt.timedelta(minutes=30))]
    assert len(analytics.due_today_tasks(due, now)) == 1
