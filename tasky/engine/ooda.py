from __future__ import annotations

import datetime as _dt
from collections.abc import Sequence

from tasky.models.insights import (
    TaskAction,
    TaskAlert,
    TaskObservation,
    TaskStrategy,
    TaskSuggestion,
)
from tasky.models.task import Task, TaskStatus

from .analytics import due_today_tasks, next_due_task, overdue_tasks

# More than this many tasks due today triggers a prioritisation suggestion
BUSY_DAY_THRESHOLD = 5
MULTIPLE = "multiple"


def observe_tasks(tasks: Sequence[Task], now: _dt.datetime) -> TaskObservation:
    return TaskObservation(
        total_tasks=len(tasks),
        pending_tasks=sum(1 for t in tasks if t.status == TaskStatus.PENDING),
        completed_tasks=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
        overdue_tasks=len(overdue_tasks(tasks, now)),
        todays_due_tasks=len(due_today_tasks(tasks, now)),
        next_due_task=next_due_task(tasks, now),
    )


def build_suggestions(observation: TaskObservation) -> list[TaskSuggestion]:
    suggestions: list[TaskSuggestion] = []
    if observation.overdue_tasks > 0:
        suggestions.append(
            TaskSuggestion(
                type="reschedule",
                task_id=MULTIPLE,
                message=f"You have {observation.overdue_tasks} overdue tasks",
                reasoning="Consider rescheduling or breaking down overdue tasks",
            )
        )
    if observation.todays_due_tasks > BUSY_DAY_THRESHOLD:
        suggestions.append(
            TaskSuggestion(
                type="focus",
                task_id=MULTIPLE,
                message=f"{observation.todays_due_tasks} tasks due today",
                reasoning="Consider prioritizing tasks due today",
            )
        )
    return suggestions


def build_alerts(observation: TaskObservation) -> list[TaskAlert]:
    alerts: list[TaskAlert] = []
    if observation.overdue_tasks > 0:
        alerts.append(
            TaskAlert(
                type="overdue",
                task_id=MULTIPLE,
                message=f"{observation.overdue_tasks} tasks are overdue",
                severity="high",
            )
        )
    if observation.todays_due_tasks > 0:
        alerts.append(
            TaskAlert(
                type="due_soon",
                task_id=MULTIPLE,
                message=f"{observation.todays_due_tasks} tasks due today",
                severity="medium",
            )
        )
    return alerts


def orient_observation(observation: TaskObservation) -> TaskStrategy:
    return TaskStrategy(
        focus_task=observation.next_due_task,
        suggested_actions=build_suggestions(observation),
        urgent_alerts=build_alerts(observation),
    )


def decide_actions(strategy: TaskStrategy) -> list[TaskAction]:
    """A ``focus`` action for the focus task, then one ``notify`` per high alert."""
    actions: list[TaskAction] = []
    focus = strategy.focus_task
    if focus is not None:
        due = focus.due_date.isoformat() if focus.due_date else None
        actions.append(
            TaskAction(
                type="focus",
                task_id=focus.id,
                message=f"Focus on: {focus.title}",
                data={"dueDate": due},
            )
        )
    for alert in strategy.urgent_alerts:
        if alert.severity == "high":
            actions.append(
                TaskAction(
                    type="notify",
                    task_id=alert.task_id,
                    message=alert.message,
                    data={"severity": alert.severity},
                )
            )
    return actions


__all__ = [
    "BUSY_DAY_THRESHOLD",
    "build_alerts",
    "build_suggestions",
    "decide_actions",
    "observe_tasks",
    "orient_observation",
]
