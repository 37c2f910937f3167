from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Any, Optional, Protocol, Sequence

from ticket_planner.core.errors import SubmissionError, TransportError, ValidationError
from ticket_planner.core.model import CreatedTicket, CreationReport, TicketNode, TicketOptions
from ticket_planner.core.security import sanitize_message
from ticket_planner.core.tree import walk


logger = logging.getLogger(__name__)

# Number of ticket levels Redmine is asked to nest; roots are level 0.
MAX_LEVELS = 10


class IssueClient(Protocol):
    def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]: ...


class DryRunClient:
    """Stands in for Redmine: records calls and hands out sequential ids."""

    def __init__(self, first_id: int = 1) -> None:
        self._next_id = first_id
        self.calls: list[dict[str, Any]] = []

    def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(dict(fields))
        issue = {"id": self._next_id, "subject": fields.get("subject", "")}
        self._next_id += 1
        return issue


def validate_options(options: TicketOptions) -> None:
    for name in ("tracker_id", "status_id", "priority_id"):
        value = getattr(options, name)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(
                code="E_INVALID_OPTION",
                message=f"{name} must be a positive integer, got {value!r}",
                path=name,
            )


def validate_tree(tickets: Sequence[TicketNode]) -> None:
    """Reject the whole forest if any ticket is unusable. No network involved."""
    if not tickets:
        raise ValidationError(code="E_NO_TICKETS", message="there are no tickets to create", path="tickets")

    def check(node: TicketNode, level: int, path: Optional[str]) -> str:
        here = f"level {level}"
        if level >= MAX_LEVELS:
            raise ValidationError(
                code="E_MAX_DEPTH",
                message=f"ticket '{node.subject}' is nested {level + 1} levels deep (max {MAX_LEVELS})",
                path=here,
            )
        if not node.subject or not node.subject.strip():
            raise ValidationError(code="E_EMPTY_SUBJECT", message="ticket subject is empty", path=here)
        if not math.isfinite(node.estimated_hours):
            raise ValidationError(
                code="E_INVALID_HOURS",
                message=f"ticket '{node.subject}' has non-finite estimated hours ({node.estimated_hours})",
                path=here,
            )
        if node.estimated_hours < 0:
            raise ValidationError(
                code="E_NEGATIVE_HOURS",
                message=f"ticket '{node.subject}' has negative estimated hours",
                path=here,
            )
        return here

    walk(tickets, check)


def submit(
    tickets: Sequence[TicketNode],
    options: TicketOptions,
    client: IssueClient,
) -> CreationReport:
    """Create every ticket, parents strictly before their children.

    Tickets are created one at a time in depth-first pre-order; each child is
    linked to its parent's freshly assigned id. The first failed create call
    stops the run with SubmissionError. Tickets created so far are left in
    Redmine and listed on the error.
    """
    validate_options(options)
    validate_tree(tickets)

    created: list[CreatedTicket] = []

    def create(node: TicketNode, level: int, parent_id: Optional[int]) -> int:
        fields: dict[str, Any] = {
            "subject": node.subject,
            "description": node.description,
            "tracker_id": options.tracker_id,
            "status_id": options.status_id,
            "priority_id": options.priority_id,
            "estimated_hours": node.estimated_hours,
        }
        if parent_id is not None:
            fields["parent_issue_id"] = parent_id

        try:
            issue = client.create_issue(fields)
        except TransportError as e:
            raise SubmissionError(
                code="E_CREATE_FAILED",
                message=(
                    f"failed to create '{node.subject}' after {len(created)} ticket(s) were created: "
                    f"{sanitize_message(e)}"
                ),
                path=f"level {level}",
                created=tuple(created),
            ) from e

        ticket = CreatedTicket(
            id=int(issue["id"]),
            subject=str(issue.get("subject") or node.subject),
            level=level,
            parent_id=parent_id,
        )
        created.append(ticket)
        logger.info("created #%d %s (level %d, parent %s)", ticket.id, ticket.subject, level, parent_id)
        return ticket.id

    walk(tickets, create)
    return CreationReport(created_tickets=created)


def summarize(report: CreationReport) -> str:
    by_level: dict[int, list[CreatedTicket]] = defaultdict(list)
    for t in report.created_tickets:
        by_level[t.level].append(t)

    lines = ["Created tickets:"]
    for level in sorted(by_level):
        lines.append(f"Level {level} ({len(by_level[level])}):")
        for t in by_level[level]:
            parent = f" <- #{t.parent_id}" if t.parent_id is not None else ""
            lines.append(f"  - #{t.id} {t.subject}{parent}")
    lines.append(f"Total: {len(report.created_tickets)} ticket(s)")
    return "\n".join(lines)
