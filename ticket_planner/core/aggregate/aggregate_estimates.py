from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ticket_planner.core.errors import ValidationError
from ticket_planner.core.model import ProcessType, ProjectData, TaskEstimate


@dataclass(frozen=True)
class ProcessStats:
    hours: float
    task_count: int
    percentage: int


@dataclass(frozen=True)
class ProjectStatistics:
    total_tasks: int
    total_hours: float
    per_process: dict[ProcessType, ProcessStats]


def aggregate(tasks: Sequence[TaskEstimate]) -> ProjectData:
    if not tasks:
        raise ValidationError(code="E_NO_TASKS", message="no task estimates to aggregate", path="tasks")
    data = ProjectData(tasks=list(tasks))
    if data.total_hours <= 0:
        raise ValidationError(
            code="E_ZERO_TOTAL",
            message="total effort across all processes is 0",
            path="tasks",
        )
    return data


def statistics(data: ProjectData) -> ProjectStatistics:
    """Per-process hours, task counts and rounded share of the total.

    Percentages are rounded independently, so they need not add up to 100.
    """
    totals = data.totals
    total_hours = sum(totals.values())
    per_process: dict[ProcessType, ProcessStats] = {}
    for process, hours in totals.items():
        per_process[process] = ProcessStats(
            hours=hours,
            task_count=sum(1 for t in data.tasks if t.effort(process) > 0),
            percentage=_round_half_up(hours / total_hours * 100) if total_hours > 0 else 0,
        )
    return ProjectStatistics(
        total_tasks=len(data.tasks),
        total_hours=total_hours,
        per_process=per_process,
    )


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; percentages round .5 up.
    return int(value + 0.5)
