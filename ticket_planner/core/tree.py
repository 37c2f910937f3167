from __future__ import annotations

from typing import Callable, Iterator, Optional, Sequence, TypeVar

from ticket_planner.core.model import TicketNode


T = TypeVar("T")

Visitor = Callable[[TicketNode, int, Optional[T]], T]


def walk(
    tickets: Sequence[TicketNode],
    visit: Visitor[T],
    *,
    parent: Optional[T] = None,
    level: int = 0,
) -> None:
    """Depth-first pre-order traversal.

    ``visit(node, level, parent_result)`` runs before the node's children, and
    its return value is handed to each child as ``parent_result``. Submission
    relies on this to thread the remote parent id down the tree.
    """
    for node in tickets:
        result = visit(node, level, parent)
        if node.children:
            walk(node.children, visit, parent=result, level=level + 1)


def iter_nodes(tickets: Sequence[TicketNode]) -> Iterator[tuple[TicketNode, int]]:
    out: list[tuple[TicketNode, int]] = []
    walk(tickets, lambda node, level, _: out.append((node, level)))
    return iter(out)


def count_tickets(tickets: Sequence[TicketNode]) -> int:
    return sum(1 for _ in iter_nodes(tickets))


def total_hours(tickets: Sequence[TicketNode]) -> float:
    return sum(node.estimated_hours for node, _ in iter_nodes(tickets))


def max_level(tickets: Sequence[TicketNode]) -> int:
    """Deepest 0-based level in the forest, -1 when empty."""
    return max((level for _, level in iter_nodes(tickets)), default=-1)
