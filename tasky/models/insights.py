from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from .task import CamelModel, Task

ProductivityTrend = Literal["increasing", "decreasing", "stable"]


class TaskStatistics(CamelModel):
    total: int
    by_status: dict[str, int]
    by_tags: dict[str, int]
    average_completion_time: float  # hours
    completion_rate: float  # percent
    overdue_count: int
    due_today_count: int
    productivity_trend: ProductivityTrend


class ProductivityMetrics(CamelModel):
    tasks_completed_today: int
    tasks_completed_this_week: int
    average_tasks_per_day: float


class DailyCompletion(CamelModel):
    date: str
    completed: int


class WeeklyProductivity(CamelModel):
    week: str
    productivity: int


class TaskTrends(CamelModel):
    daily_completion: list[DailyCompletion]
    weekly_productivity: list[WeeklyProductivity]


class TaskAnalytics(CamelModel):
    productivity: ProductivityMetrics
    completion_rate: float
    average_completion_time: float
    task_distribution: dict[str, int]
    trends: TaskTrends


# ----------------------------
# Observe / orient / decide / act
# ----------------------------


class TaskObservation(CamelModel):
    total_tasks: int
    pending_tasks: int
    completed_tasks: int
    overdue_tasks: int
    todays_due_tasks: int
    next_due_task: Task | None = None


class TaskSuggestion(CamelModel):
    type: Literal["focus", "break_down", "reschedule", "archive"]
    task_id: str
    message: str
    reasoning: str


class TaskAlert(CamelModel):
    type: Literal["overdue", "due_soon", "blocked", "long_pending"]
    task_id: str
    message: str
    severity: Literal["low", "medium", "high"]


class TaskStrategy(CamelModel):
    focus_task: Task | None = None
    suggested_actions: list[TaskSuggestion] = Field(default_factory=list)
    urgent_alerts: list[TaskAlert] = Field(default_factory=list)


class TaskAction(CamelModel):
    type: Literal["focus", "notify", "archive", "break_down"]
    task_id: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "DailyCompletion",
    "ProductivityMetrics",
    "ProductivityTrend",
    "TaskAction",
    "TaskAlert",
    "TaskAnalytics",
    "TaskObservation",
    "TaskStatistics",
    "TaskStrategy",
    "TaskSuggestion",
    "TaskTrends",
    "WeeklyProductivity",
]
