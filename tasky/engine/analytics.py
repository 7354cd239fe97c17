"""Read-only statistics derived from a task list.

Everything here is a pure function of ``(tasks, now)``. Calendar windows
("today", "this week", daily buckets) use the local timezone of the process;
stored timestamps are UTC and compare directly against them.
"""

from __future__ import annotations

import datetime as _dt
import math
from collections.abc import Iterable, Sequence

from tasky.models.insights import (
    DailyCompletion,
    ProductivityMetrics,
    ProductivityTrend,
    TaskAnalytics,
    TaskStatistics,
    TaskTrends,
    WeeklyProductivity,
)
from tasky.models.task import Task, TaskStatus

DAY = _dt.timedelta(days=1)
TREND_THRESHOLD = 0.10
_CLOSED = (TaskStatus.COMPLETED, TaskStatus.ARCHIVED)
_WEEK_LABELS = ("This week", "Last week", "2 weeks ago", "3 weeks ago")


def local_midnight(day: _dt.date) -> _dt.datetime:
    # Resolved per date so days that cross a DST change get their own offset
    return _dt.datetime.combine(day, _dt.time()).astimezone()


def local_day_start(moment: _dt.datetime) -> _dt.datetime:
    return local_midnight(moment.astimezone().date())


def overdue_tasks(tasks: Iterable[Task], now: _dt.datetime) -> list[Task]:
    return [
        t
        for t in tasks
        if t.due_date is not None and t.due_date < now and t.status not in _CLOSED
    ]


def due_today_tasks(tasks: Iterable[Task], now: _dt.datetime) -> list[Task]:
    today = now.astimezone().date()
    start = local_midnight(today)
    end = local_midnight(today + DAY)
    return [
        t
        for t in tasks
        if t.due_date is not None and start <= t.due_date < end and t.status not in _CLOSED
    ]


def next_due_task(tasks: Iterable[Task], now: _dt.datetime) -> Task | None:
    """Earliest-due PENDING task whose due date has not passed yet."""
    upcoming = [
        t
        for t in tasks
        if t.status == TaskStatus.PENDING and t.due_date is not None and t.due_date >= now
    ]
    return min(upcoming, key=lambda t: t.due_date or now, default=None)


def status_distribution(tasks: Iterable[Task]) -> dict[str, int]:
    distribution = {status.value: 0 for status in TaskStatus}
    for t in tasks:
        distribution[t.status.value] += 1
    return distribution


def tag_distribution(tasks: Iterable[Task]) -> dict[str, int]:
    distribution: dict[str, int] = {}
    for t in tasks:
        for tag in t.details.tags:
            distribution[tag] = distribution.get(tag, 0) + 1
    return distribution


def completion_rate(tasks: Sequence[Task]) -> float:
    if not tasks:
        return 0.0
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    return completed / len(tasks) * 100


def completion_duration(task: Task) -> _dt.timedelta:
    if task.completed_at is None:
        return _dt.timedelta(0)
    return task.completed_at - task.created_at


def average_completion_hours(tasks: Iterable[Task]) -> float:
    completed = [t for t in tasks if t.status == TaskStatus.COMPLETED and t.completed_at]
    if not completed:
        return 0.0
    total = sum((completion_duration(t) for t in completed), _dt.timedelta(0))
    return total.total_seconds() / len(completed) / 3600


def count_completions(
    tasks: Iterable[Task], now: _dt.datetime, days: int, offset: int = 0
) -> int:
    """Completions inside ``[now - (days + offset), now - offset]`` (inclusive)."""
    start = now - (days + offset) * DAY
    end = now - offset * DAY
    return sum(
        1
        for t in tasks
        if t.status == TaskStatus.COMPLETED
        and t.completed_at is not None
        and start <= t.completed_at <= end
    )


def productivity_trend(tasks: Sequence[Task], now: _dt.datetime) -> ProductivityTrend:
    last_week = count_completions(tasks, now, 7)
    previous_week = count_completions(tasks, now, 7, offset=7)
    if last_week > previous_week * (1 + TREND_THRESHOLD):
        return "increasing"
    if last_week < previous_week * (1 - TREND_THRESHOLD):
        return "decreasing"
    return "stable"


def average_tasks_per_day(tasks: Sequence[Task], now: _dt.datetime) -> float:
    completed = [t for t in tasks if t.status == TaskStatus.COMPLETED]
    stamps = [t.completed_at for t in completed if t.completed_at is not None]
    if not stamps:
        return 0.0
    elapsed = (now - min(stamps)) / DAY
    return len(completed) / max(1, math.ceil(elapsed))


def productivity_metrics(tasks: Sequence[Task], now: _dt.datetime) -> ProductivityMetrics:
    local_today = now.astimezone().date()
    today = local_midnight(local_today)
    # Weeks start on Sunday
    week_start = local_midnight(local_today - ((local_today.weekday() + 1) % 7) * DAY)
    stamps = [
        t.completed_at
        for t in tasks
        if t.status == TaskStatus.COMPLETED and t.completed_at is not None
    ]
    return ProductivityMetrics(
        tasks_completed_today=sum(1 for stamp in stamps if stamp >= today),
        tasks_completed_this_week=sum(1 for stamp in stamps if stamp >= week_start),
        average_tasks_per_day=average_tasks_per_day(tasks, now),
    )


def daily_completion_trend(tasks: Sequence[Task], now: _dt.datetime) -> list[DailyCompletion]:
    buckets: list[DailyCompletion] = []
    local_today = now.astimezone().date()
    for days_back in range(6, -1, -1):
        day = local_today - days_back * DAY
        day_start = local_midnight(day)
        day_end = local_midnight(day + DAY)
        completed = sum(
            1
            for t in tasks
            if t.status == TaskStatus.COMPLETED
            and t.completed_at is not None
            and day_start <= t.completed_at < day_end
        )
        buckets.append(DailyCompletion(date=day.isoformat(), completed=completed))
    return buckets


def weekly_productivity_trend(
    tasks: Sequence[Task], now: _dt.datetime
) -> list[WeeklyProductivity]:
    return [
        WeeklyProductivity(week=label, productivity=count_completions(tasks, now, 7, offset=7 * i))
        for i, label in enumerate(_WEEK_LABELS)
    ]


def build_statistics(tasks: Sequence[Task], now: _dt.datetime) -> TaskStatistics:
    return TaskStatistics(
        total=len(tasks),
        by_status=status_distribution(tasks),
        by_tags=tag_distribution(tasks),
        average_completion_time=average_completion_hours(tasks),
        completion_rate=completion_rate(tasks),
        overdue_count=len(overdue_tasks(tasks, now)),
        due_today_count=len(due_today_tasks(tasks, now)),
        productivity_trend=productivity_trend(tasks, now),
    )


def build_analytics(tasks: Sequence[Task], now: _dt.datetime) -> TaskAnalytics:
    return TaskAnalytics(
        productivity=productivity_metrics(tasks, now),
        completion_rate=completion_rate(tasks),
        average_completion_time=average_completion_hours(tasks),
        task_distribution=status_distribution(tasks),
        trends=TaskTrends(
            daily_completion=daily_completion_trend(tasks, now),
            weekly_productivity=weekly_productivity_trend(tasks, now),
        ),
    )


__all__ = [
    "average_completion_hours",
    "build_analytics",
    "build_statistics",
    "completion_duration",
    "completion_rate",
    "count_completions",
    "daily_completion_trend",
    "due_today_tasks",
    "local_day_start",
    "local_midnight",
    "next_due_task",
    "overdue_tasks",
    "productivity_trend",
    "status_distribution",
    "tag_distribution",
    "weekly_productivity_trend",
]
