"""Column mapping for estimate spreadsheets.

The defaults describe the usual estimate sheet layout:

  A: screen / feature   B: task   C: detailed design
  D: implementation + unit test   E: integration test

with the header on row 1 and data from row 2. A YAML file may override any
of these keys.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from ticket_planner.core.model import ProcessType
from ticket_planner.core.source.workbook import column_to_number


DEFAULT_PROCESS_COLUMNS: dict[ProcessType, str] = {
    ProcessType.DETAIL_DESIGN: "C",
    ProcessType.IMPLEMENTATION_UNIT: "D",
    ProcessType.INTEGRATION_TEST: "E",
}


class SourceConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SourceConfig:
    sheet: Optional[str] = None  # None selects the first sheet
    header_row: int = 1
    start_row: int = 2
    end_row: Optional[int] = None  # None reads to the last populated row
    task_column: str = "B"
    group_column: Optional[str] = "A"
    process_columns: dict[ProcessType, str] = field(
        default_factory=lambda: dict(DEFAULT_PROCESS_COLUMNS)
    )

    def with_overrides(self, **overrides: Any) -> SourceConfig:
        """Return a copy with every non-None override applied, then re-check it."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        cfg = replace(self, **changes) if changes else self
        check_source_config(cfg)
        return cfg


def check_source_config(cfg: SourceConfig) -> None:
    if cfg.header_row < 1:
        raise SourceConfigError("header_row must be >= 1")
    if cfg.start_row <= cfg.header_row:
        raise SourceConfigError(f"start_row must be greater than header_row ({cfg.header_row})")
    if cfg.end_row is not None and cfg.end_row < cfg.start_row:
        raise SourceConfigError("end_row must be >= start_row")
    if not cfg.process_columns:
        raise SourceConfigError("at least one process column is required")

    refs = {"task_column": cfg.task_column}
    if cfg.group_column:
        refs["group_column"] = cfg.group_column
    for p, col in cfg.process_columns.items():
        refs[f"process_columns.{p.value}"] = col
    for key, ref in refs.items():
        try:
            column_to_number(ref)
        except ValueError as e:
            raise SourceConfigError(f"{key}: {e}") from e


def parse_process_columns(raw: Any) -> dict[ProcessType, str]:
    """Parse ``{process_type: column}`` (YAML) into an ordered mapping."""
    if not isinstance(raw, dict) or not raw:
        raise SourceConfigError("process_columns must be a non-empty mapping of process -> column")
    out: dict[ProcessType, str] = {}
    for k, v in raw.items():
        try:
            process = ProcessType(str(k).strip())
        except ValueError as e:
            allowed = ", ".join(p.value for p in ProcessType)
            raise SourceConfigError(f"unknown process '{k}' (choose from: {allowed})") from e
        if not isinstance(v, str) or not v.strip():
            raise SourceConfigError(f"process_columns.{k} must be a column letter")
        out[process] = v.strip().upper()
    return out


def load_source_config(path: str | Path) -> SourceConfig:
    """Load a SourceConfig from YAML.

    Format:
      sheet: Estimates
      header_row: 1
      start_row: 2
      end_row: 40
      task_column: B
      group_column: A        # null disables the group column
      process_columns:
        detail_design: C
        implementation_unit: D
        integration_test: E
    """
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SourceConfigError(f"invalid YAML: {e}") from e
    if raw is None:
        return SourceConfig()
    if not isinstance(raw, dict):
        raise SourceConfigError("source config must be a mapping")

    known = {"sheet", "header_row", "start_row", "end_row", "task_column", "group_column", "process_columns"}
    unknown = sorted(set(map(str, raw.keys())) - known)
    if unknown:
        raise SourceConfigError(f"unknown keys: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for key in ("header_row", "start_row", "end_row"):
        if key in raw and raw[key] is not None:
            if not isinstance(raw[key], int) or isinstance(raw[key], bool):
                raise SourceConfigError(f"{key} must be an integer")
            kwargs[key] = raw[key]
    if raw.get("sheet") is not None:
        kwargs["sheet"] = str(raw["sheet"])
    if "task_column" in raw:
        if not isinstance(raw["task_column"], str) or not raw["task_column"].strip():
            raise SourceConfigError("task_column must be a column letter")
        kwargs["task_column"] = raw["task_column"].strip().upper()
    if "group_column" in raw:
        group = raw["group_column"]
        if group is not None and (not isinstance(group, str) or not group.strip()):
            raise SourceConfigError("group_column must be a column letter or null")
        kwargs["group_column"] = group.strip().upper() if group else None
    if "process_columns" in raw:
        kwargs["process_columns"] = parse_process_columns(raw["process_columns"])

    cfg = SourceConfig(**kwargs)
    check_source_config(cfg)
    return cfg
