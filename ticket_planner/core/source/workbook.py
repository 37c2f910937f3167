"""Spreadsheet access for estimate sheets.

Rows are 1-indexed and columns use spreadsheet letters ("A", "B", ... "AA"),
matching what users see in Excel. Every query takes the ``SourceHandle``
returned by ``load_source``; nothing is cached at module level.
"""
from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ticket_planner.core.errors import SourceReadError
from ticket_planner.core.security import SPREADSHEET_SUFFIXES


logger = logging.getLogger(__name__)


@dataclass
class SourceHandle:
    path: Path
    excel: pd.ExcelFile
    _frames: dict[str, pd.DataFrame] = field(default_factory=dict, repr=False)

    def close(self) -> None:
        self.excel.close()

    def __enter__(self) -> SourceHandle:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def load_source(path: str | Path) -> SourceHandle:
    p = Path(path)
    if not p.exists():
        raise SourceReadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))
    if p.suffix.lower() not in SPREADSHEET_SUFFIXES:
        raise SourceReadError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"supported formats are {', '.join(sorted(SPREADSHEET_SUFFIXES))}",
            file=str(p),
        )
    try:
        excel = pd.ExcelFile(p)
    except Exception as e:
        raise SourceReadError(code="E_SOURCE_READ", message=str(e), file=str(p)) from e

    logger.debug("loaded %s with sheets %s", p, excel.sheet_names)
    return SourceHandle(path=p, excel=excel)


def list_sheets(handle: SourceHandle) -> list[str]:
    return [str(name) for name in handle.excel.sheet_names]


def _frame(handle: SourceHandle, sheet: str) -> pd.DataFrame:
    if sheet not in handle._frames:
        if sheet not in list_sheets(handle):
            raise SourceReadError(
                code="E_SHEET_NOT_FOUND",
                message=f"sheet not found: {sheet}",
                file=str(handle.path),
                path="sheet",
            )
        try:
            handle._frames[sheet] = handle.excel.parse(sheet, header=None, dtype=object)
        except Exception as e:
            raise SourceReadError(
                code="E_SOURCE_READ", message=str(e), file=str(handle.path), path=sheet
            ) from e
    return handle._frames[sheet]


def data_range(handle: SourceHandle, sheet: str) -> tuple[int, int]:
    """Return (first_row, last_row) of the sheet, both 1-indexed."""
    frame = _frame(handle, sheet)
    return 1, max(1, len(frame.index))


def column_count(handle: SourceHandle, sheet: str) -> int:
    return len(_frame(handle, sheet).columns)


def cell_value(handle: SourceHandle, sheet: str, column: str, row: int) -> Any:
    """Raw cell value, or None for empty and out-of-range cells.

    Formula cells yield their cached result; error cells yield their marker
    text (e.g. ``#DIV/0!``).
    """
    frame = _frame(handle, sheet)
    col_idx = column_to_number(column) - 1
    row_idx = row - 1
    if row_idx < 0 or row_idx >= len(frame.index) or col_idx >= len(frame.columns):
        return None
    value = frame.iat[row_idx, col_idx]
    if _is_missing(value):
        return None
    return value


def column_names(handle: SourceHandle, sheet: str, header_row: int) -> list[str]:
    """Labels like ``"B (Task)"`` for every non-empty header cell."""
    labels: list[str] = []
    for col in range(1, column_count(handle, sheet) + 1):
        letter = number_to_column(col)
        text = cell_to_text(cell_value(handle, sheet, letter, header_row))
        if text:
            labels.append(f"{letter} ({text})")
    return labels


def column_to_number(column: str) -> int:
    ref = (column or "").strip().upper()
    if not ref:
        raise ValueError("column reference is empty")
    result = 0
    for ch in ref:
        if not "A" <= ch <= "Z":
            raise ValueError(f"invalid column reference: {column}")
        result = result * 26 + (ord(ch) - ord("A") + 1)
    return result


def number_to_column(number: int) -> str:
    if number < 1:
        raise ValueError("column number must be >= 1")
    letters: list[str] = []
    n = number
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


def cell_to_text(value: Any) -> str:
    if value is None or _is_missing(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, numbers.Real) and float(value).is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def cell_to_number(value: Any) -> float:
    """Numeric effort from a cell. Anything unparseable counts as 0."""
    if value is None or _is_missing(value):
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, numbers.Real):
        number = float(value)
        return 0 if math.isnan(number) else number
    if isinstance(value, (datetime, date)):
        return 0
    text = str(value).strip()
    if text.startswith("#"):
        return 0
    try:
        number = float(text)
    except ValueError:
        return 0
    return 0 if math.isnan(number) else number


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False
