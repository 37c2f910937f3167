from __future__ import annotations

from typing import Optional

from ticket_planner.core.model import (
    PROCESS_LABELS,
    GroupNode,
    ProcessNode,
    ProcessType,
    ProjectData,
    TaskEstimate,
    TaskNode,
    TicketNode,
)


UNGROUPED_LABEL = "(ungrouped)"


def build_tickets(data: ProjectData, *, group: bool = True) -> list[ProcessNode]:
    """Build one process ticket per process with effort, in ProcessType order.

    With ``group=True`` each process holds one group ticket per distinct group
    name (first-seen order), each holding its task tickets. With
    ``group=False`` task tickets sit directly under the process.

    Process and group tickets carry 0 estimated hours; their totals appear only
    in the description. Zero-effort tasks, groups and processes are dropped.
    """
    tickets: list[ProcessNode] = []
    for process in ProcessType:
        tasks = [t for t in data.tasks if t.effort(process) > 0]
        if not tasks:
            continue
        hours = sum(t.effort(process) for t in tasks)
        children: list[TicketNode]
        if group:
            children = [
                _group_ticket(name, members, process)
                for name, members in _group_tasks(tasks).items()
            ]
        else:
            children = [_task_ticket(t, process) for t in tasks]

        label = PROCESS_LABELS[process]
        tickets.append(
            ProcessNode(
                subject=label,
                description=f"{label} phase for the whole project.\nTotal estimate: {_fmt(hours)}h",
                estimated_hours=0,
                process_type=process,
                children=children,
            )
        )
    return tickets


def _group_tasks(tasks: list[TaskEstimate]) -> dict[str, list[TaskEstimate]]:
    groups: dict[str, list[TaskEstimate]] = {}
    for t in tasks:
        groups.setdefault(_group_name(t.group_name), []).append(t)
    return groups


def _group_name(name: Optional[str]) -> str:
    if name and name.strip():
        return name.strip()
    return UNGROUPED_LABEL


def _group_ticket(name: str, tasks: list[TaskEstimate], process: ProcessType) -> GroupNode:
    hours = sum(t.effort(process) for t in tasks)
    return GroupNode(
        subject=name,
        description=f"{PROCESS_LABELS[process]} tasks for {name}.\nTotal estimate: {_fmt(hours)}h",
        estimated_hours=0,
        group_name=name,
        children=[_task_ticket(t, process) for t in tasks],
    )


def _task_ticket(task: TaskEstimate, process: ProcessType) -> TaskNode:
    return TaskNode(
        subject=task.task_name,
        description=f"{PROCESS_LABELS[process]} for {task.task_name}.",
        estimated_hours=task.effort(process),
        process_type=process,
        task_name=task.task_name,
    )


def _fmt(hours: float) -> str:
    return str(int(hours)) if float(hours).is_integer() else f"{hours:g}"
