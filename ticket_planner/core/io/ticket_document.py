from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from ticket_planner.core.errors import FormatError
from ticket_planner.core.model import (
    CreationReport,
    GroupNode,
    ProcessNode,
    ProcessType,
    TaskNode,
    TicketNode,
)


DOCUMENT_KEY = "tickets"


def serialize(tickets: Sequence[TicketNode]) -> dict[str, Any]:
    """Wrap the ticket forest as ``{"tickets": [...]}``.

    Each node keeps its ``type`` tag; ``children`` is omitted when empty.
    """
    return {DOCUMENT_KEY: [_node_to_dict(n) for n in tickets]}


def deserialize(doc: Any, *, file: Optional[str] = None) -> list[TicketNode]:
    if not isinstance(doc, dict) or DOCUMENT_KEY not in doc:
        raise FormatError(
            code="E_MISSING_TICKETS",
            message=f"document must be a mapping with a '{DOCUMENT_KEY}' list",
            file=file,
        )
    raw = doc[DOCUMENT_KEY]
    if not isinstance(raw, list):
        raise FormatError(
            code="E_INVALID_TYPE",
            message=f"'{DOCUMENT_KEY}' must be a list",
            file=file,
            path=DOCUMENT_KEY,
        )
    return [_node_from_dict(item, f"{DOCUMENT_KEY}[{i}]", file) for i, item in enumerate(raw)]


def _node_to_dict(node: TicketNode) -> dict[str, Any]:
    out: dict[str, Any] = {"type": node.type}
    if isinstance(node, GroupNode):
        out["group_name"] = node.group_name
    if isinstance(node, TaskNode):
        out["task_name"] = node.task_name
    if isinstance(node, (ProcessNode, TaskNode)):
        out["process_type"] = node.process_type.value
    out["subject"] = node.subject
    out["description"] = node.description
    out["estimated_hours"] = node.estimated_hours
    if node.children:
        out["children"] = [_node_to_dict(c) for c in node.children]
    return out


def _node_from_dict(raw: Any, path: str, file: Optional[str]) -> TicketNode:
    if not isinstance(raw, dict):
        raise FormatError(code="E_INVALID_TYPE", message="ticket must be a mapping", file=file, path=path)

    ntype = raw.get("type")
    subject = _required_str(raw, "subject", path, file)
    description = raw.get("description", "")
    if description is None:
        description = ""
    if not isinstance(description, str):
        raise FormatError(
            code="E_INVALID_TYPE", message="description must be a string", file=file, path=f"{path}.description"
        )

    hours = raw.get("estimated_hours", 0)
    if isinstance(hours, bool) or not isinstance(hours, (int, float)):
        raise FormatError(
            code="E_INVALID_TYPE",
            message="estimated_hours must be a number",
            file=file,
            path=f"{path}.estimated_hours",
        )
    if not math.isfinite(hours):
        raise FormatError(
            code="E_INVALID_HOURS",
            message=f"estimated_hours must be a finite number, got {hours}",
            file=file,
            path=f"{path}.estimated_hours",
        )

    children_raw = raw.get("children", [])
    if children_raw is None:
        children_raw = []
    if not isinstance(children_raw, list):
        raise FormatError(
            code="E_INVALID_TYPE", message="children must be a list", file=file, path=f"{path}.children"
        )
    children = [
        _node_from_dict(c, f"{path}.children[{i}]", file) for i, c in enumerate(children_raw)
    ]

    if ntype == "process":
        return ProcessNode(
            subject=subject,
            description=description,
            estimated_hours=hours,
            process_type=_process_type(raw, path, file),
            children=children,
        )
    if ntype == "group":
        return GroupNode(
            subject=subject,
            description=description,
            estimated_hours=hours,
            group_name=_required_str(raw, "group_name", path, file),
            children=children,
        )
    if ntype == "task":
        if children:
            raise FormatError(
                code="E_TASK_HAS_CHILDREN",
                message="task tickets must not have children",
                file=file,
                path=f"{path}.children",
            )
        return TaskNode(
            subject=subject,
            description=description,
            estimated_hours=hours,
            process_type=_process_type(raw, path, file),
            task_name=_required_str(raw, "task_name", path, file),
        )
    raise FormatError(
        code="E_INVALID_ENUM",
        message="type must be one of ['group', 'process', 'task']",
        file=file,
        path=f"{path}.type",
    )


def _required_str(raw: dict[str, Any], key: str, path: str, file: Optional[str]) -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise FormatError(
            code="E_REQUIRED_FIELD",
            message=f"{key} is required and must be a string",
            file=file,
            path=f"{path}.{key}",
        )
    return value


def _process_type(raw: dict[str, Any], path: str, file: Optional[str]) -> ProcessType:
    value = raw.get("process_type")
    try:
        return ProcessType(value)
    except ValueError as e:
        raise FormatError(
            code="E_INVALID_ENUM",
            message=f"process_type must be one of {[p.value for p in ProcessType]}",
            file=file,
            path=f"{path}.process_type",
        ) from e


def load_document(path: str) -> list[TicketNode]:
    """Load a ticket document from .yaml/.yml/.json."""
    p = Path(path)
    if not p.exists():
        raise FormatError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))

    suffix = p.suffix.lower()
    raw_text = p.read_text(encoding="utf-8")
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise FormatError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except FormatError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise FormatError(code=code, message=str(e), file=str(p)) from e

    return deserialize(data, file=str(p))


def dump_document(tickets: Sequence[TicketNode], path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    doc = serialize(tickets)
    with open(p, "w", encoding="utf-8") as f:
        if p.suffix.lower() == ".json":
            json.dump(doc, f, indent=2, ensure_ascii=False)
            f.write("\n")
        else:
            yaml.safe_dump(doc, f, sort_keys=False, default_flow_style=False, allow_unicode=True)


def dump_report(report: CreationReport, path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "created_tickets": [
            {"id": t.id, "subject": t.subject, "level": t.level, "parent_id": t.parent_id}
            for t in report.created_tickets
        ]
    }
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(payload, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
