from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Literal, Optional, Union


class ProcessType(str, Enum):
    # Declaration order is the order process tickets are emitted in.
    DETAIL_DESIGN = "detail_design"
    IMPLEMENTATION = "implementation"
    UNIT_TEST = "unit_test"
    IMPLEMENTATION_UNIT = "implementation_unit"
    INTEGRATION_TEST = "integration_test"


PROCESS_LABELS: dict[ProcessType, str] = {
    ProcessType.DETAIL_DESIGN: "Detailed Design",
    ProcessType.IMPLEMENTATION: "Implementation",
    ProcessType.UNIT_TEST: "Unit Test",
    ProcessType.IMPLEMENTATION_UNIT: "Implementation & Unit Test",
    ProcessType.INTEGRATION_TEST: "Integration Test",
}


NodeType = Literal["process", "group", "task"]


@dataclass(frozen=True)
class TaskEstimate:
    task_name: str
    efforts: dict[ProcessType, float]
    group_name: Optional[str] = None

    def effort(self, process: ProcessType) -> float:
        return self.efforts.get(process, 0)

    @property
    def total(self) -> float:
        return sum(self.efforts.values())


@dataclass(frozen=True)
class ProjectData:
    tasks: list[TaskEstimate]

    @property
    def totals(self) -> dict[ProcessType, float]:
        """Effort per process summed over every task, in ProcessType order."""
        return {p: sum(t.effort(p) for t in self.tasks) for p in ProcessType}

    @property
    def total_hours(self) -> float:
        return sum(self.totals.values())


@dataclass(frozen=True)
class ProcessNode:
    type: ClassVar[NodeType] = "process"

    subject: str
    description: str
    estimated_hours: float
    process_type: ProcessType
    children: list[TicketNode] = field(default_factory=list)


@dataclass(frozen=True)
class GroupNode:
    type: ClassVar[NodeType] = "group"

    subject: str
    description: str
    estimated_hours: float
    group_name: str
    children: list[TicketNode] = field(default_factory=list)


@dataclass(frozen=True)
class TaskNode:
    type: ClassVar[NodeType] = "task"

    subject: str
    description: str
    estimated_hours: float
    process_type: ProcessType
    task_name: str
    # Always empty; tasks are leaves.
    children: ClassVar[tuple[()]] = ()


TicketNode = Union[ProcessNode, GroupNode, TaskNode]


@dataclass(frozen=True)
class TicketOptions:
    tracker_id: int
    status_id: int
    priority_id: int


@dataclass(frozen=True)
class CreatedTicket:
    id: int
    subject: str
    level: int
    parent_id: Optional[int] = None


@dataclass(frozen=True)
class CreationReport:
    created_tickets: list[CreatedTicket]
