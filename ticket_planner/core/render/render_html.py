from __future__ import annotations

import html
from typing import Sequence

from ticket_planner.core.model import PROCESS_LABELS, GroupNode, ProcessNode, TaskNode, TicketNode
from ticket_planner.core.tree import count_tickets, iter_nodes, total_hours


# Deeper levels share the last bucket's styling.
MAX_LEVEL_BUCKET = 4

_STYLE = """
    body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; margin: 20px; color: #333; }
    .header { margin-bottom: 30px; padding: 20px; background: #f8f9fa; border-left: 4px solid #007bff; }
    .summary { display: flex; gap: 20px; margin-top: 15px; }
    .summary-item { padding: 10px 15px; background: white; border: 1px solid #dee2e6; }
    .summary-item strong { display: block; font-size: 1.2em; color: #007bff; }
    table { width: 100%; border-collapse: collapse; }
    th { background: #495057; color: white; padding: 12px 8px; text-align: left; }
    td { padding: 10px 8px; border-bottom: 1px solid #dee2e6; vertical-align: top; }
    .level { font-weight: 600; padding: 4px 8px; border-radius: 4px; color: white; }
    .level-0 { background: #dc3545; }
    .level-1 { background: #28a745; }
    .level-2 { background: #ffc107; color: #212529; }
    .level-3 { background: #17a2b8; }
    .level-4 { background: #6c757d; }
    .indent-1 { padding-left: 20px; }
    .indent-2 { padding-left: 40px; }
    .indent-3 { padding-left: 60px; }
    .indent-4 { padding-left: 80px; }
    .process-badge { padding: 3px 8px; border-radius: 12px; font-size: 0.8em; border: 1px solid #bbb; }
    .hours { text-align: right; font-weight: 600; }
    .description { max-width: 300px; white-space: pre-line; }
"""


def render_html(tickets: Sequence[TicketNode], *, title: str = "Planned Redmine tickets") -> str:
    """Render a standalone HTML preview: summary header plus one row per ticket."""
    rows = "\n".join(_row(node, level) for node, level in iter_nodes(tickets))
    hours = _fmt_hours(total_hours(tickets))
    esc_title = html.escape(title)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{esc_title}</title>
<style>{_STYLE}</style>
</head>
<body>
<div class="header">
  <h1>{esc_title}</h1>
  <div class="summary">
    <div class="summary-item"><strong class="root-count">{len(tickets)}</strong><span>root tickets</span></div>
    <div class="summary-item"><strong class="ticket-count">{count_tickets(tickets)}</strong><span>total tickets</span></div>
    <div class="summary-item"><strong class="total-hours">{hours}</strong><span>estimated hours</span></div>
  </div>
</div>
<table>
<thead>
<tr><th>Level</th><th>Name</th><th>Subject</th><th>Process</th><th>Estimate</th><th>Description</th></tr>
</thead>
<tbody>
{rows}
</tbody>
</table>
</body>
</html>
"""


def _row(node: TicketNode, level: int) -> str:
    bucket = min(level, MAX_LEVEL_BUCKET)
    indent = f" indent-{bucket}" if bucket else ""
    return (
        f'<tr data-level="{level}">'
        f'<td><span class="level level-{bucket}">L{level}</span></td>'
        f'<td class="name{indent}">{html.escape(_name(node))}</td>'
        f"<td><strong>{html.escape(node.subject)}</strong></td>"
        f"<td>{_process_badge(node)}</td>"
        f'<td class="hours">{_fmt_hours(node.estimated_hours)}h</td>'
        f'<td class="description">{html.escape(node.description)}</td>'
        "</tr>"
    )


def _name(node: TicketNode) -> str:
    if isinstance(node, TaskNode):
        return node.task_name
    if isinstance(node, GroupNode):
        return node.group_name
    return "—"


def _process_badge(node: TicketNode) -> str:
    if isinstance(node, (ProcessNode, TaskNode)):
        p = node.process_type
        return f'<span class="process-badge {p.value}">{html.escape(PROCESS_LABELS[p])}</span>'
    return "-"


def _fmt_hours(hours: float) -> str:
    return str(int(hours)) if float(hours).is_integer() else f"{hours:g}"
