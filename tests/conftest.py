from pathlib import Path

import pytest
from openpyxl import Workbook


SAMPLE_ROWS = [
    ["Screen", "Task", "Detailed design", "Impl + unit", "Integration"],
    ["Home", "Log in", 8, 16, 8],
    [None, "Log out", 8, 16, 8],
    [None, "Open list", 8, 16, 8],
    ["List", "Show list", 4, 8, 4],
    [None, "Scroll", 1, 2, 1],
    [None, "Open detail", 1, 2, 1],
    ["Detail", "Show detail", 4, 8, 4],
]


def write_workbook(path: Path, rows: list[list], *, sheet: str = "Estimates", merges: list[str] | None = None) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet
    for row in rows:
        ws.append(row)
    for rng in merges or []:
        ws.merge_cells(rng)
    wb.save(path)
    return path


@pytest.fixture
def sample_xlsx(tmp_path: Path) -> Path:
    return write_workbook(tmp_path / "estimate.xlsx", SAMPLE_ROWS, merges=["A2:A4", "A5:A7"])


@pytest.fixture
def make_xlsx(tmp_path: Path):
    def _make(rows: list[list], *, name: str = "sheet.xlsx", sheet: str = "Estimates", merges: list[str] | None = None) -> Path:
        return write_workbook(tmp_path / name, rows, sheet=sheet, merges=merges)

    return _make
