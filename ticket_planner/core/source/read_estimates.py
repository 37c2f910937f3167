from __future__ import annotations

import logging
from typing import Optional

from ticket_planner.core.errors import SourceReadError
from ticket_planner.core.model import TaskEstimate
from ticket_planner.core.source.source_config import SourceConfig
from ticket_planner.core.source.workbook import (
    SourceHandle,
    cell_to_number,
    cell_to_text,
    cell_value,
    column_to_number,
    data_range,
    list_sheets,
)


logger = logging.getLogger(__name__)

# Anything above this is treated as a typo in the sheet rather than an estimate.
MAX_EFFORT = 1000


def read_task_estimates(handle: SourceHandle, config: SourceConfig) -> list[TaskEstimate]:
    """Read one TaskEstimate per usable row.

    Rows with an empty task name are skipped silently. Rows whose efforts are
    out of range, or all zero, are skipped with a warning. A blank group cell
    inherits the group of the row above, so vertically merged group cells work.
    """
    sheet = _resolve_sheet(handle, config.sheet)
    _check_columns(handle, config)
    end_row = config.end_row or data_range(handle, sheet)[1]

    tasks: list[TaskEstimate] = []
    current_group: Optional[str] = None

    for row in range(config.start_row, end_row + 1):
        if config.group_column:
            group_text = cell_to_text(cell_value(handle, sheet, config.group_column, row))
            if group_text:
                current_group = group_text

        task_name = cell_to_text(cell_value(handle, sheet, config.task_column, row))
        if not task_name:
            continue

        efforts = {
            process: _normalize_hours(cell_to_number(cell_value(handle, sheet, column, row)))
            for process, column in config.process_columns.items()
        }
        task = TaskEstimate(task_name=task_name, efforts=efforts, group_name=current_group)

        problem = check_task_estimate(task)
        if problem:
            logger.warning("row %d skipped (%s): %s", row, task_name, problem)
            continue
        tasks.append(task)

    logger.info("read %d task(s) from sheet %s", len(tasks), sheet)
    return tasks


def check_task_estimate(task: TaskEstimate) -> Optional[str]:
    """Return why a row is unusable, or None when it is fine."""
    if not task.task_name.strip():
        return "task name is empty"
    for process, hours in task.efforts.items():
        if hours < 0:
            return f"{process.value} effort must be >= 0"
        if hours > MAX_EFFORT:
            return f"{process.value} effort exceeds {MAX_EFFORT}"
    if task.total <= 0:
        return "every process effort is 0"
    return None


def _resolve_sheet(handle: SourceHandle, sheet: Optional[str]) -> str:
    sheets = list_sheets(handle)
    if not sheets:
        raise SourceReadError(code="E_NO_SHEETS", message="workbook has no sheets", file=str(handle.path))
    if sheet is None:
        return sheets[0]
    if sheet not in sheets:
        raise SourceReadError(
            code="E_SHEET_NOT_FOUND",
            message=f"sheet not found: {sheet} (available: {', '.join(sheets)})",
            file=str(handle.path),
            path="sheet",
        )
    return sheet


def _check_columns(handle: SourceHandle, config: SourceConfig) -> None:
    refs = [("task_column", config.task_column)]
    if config.group_column:
        refs.append(("group_column", config.group_column))
    refs.extend((f"process_columns.{p.value}", col) for p, col in config.process_columns.items())
    for key, ref in refs:
        try:
            column_to_number(ref)
        except ValueError as e:
            raise SourceReadError(
                code="E_INVALID_COLUMN", message=str(e), file=str(handle.path), path=key
            ) from e


def _normalize_hours(value: float) -> float:
    if float(value).is_integer():
        return int(value)
    return value
