from __future__ import annotations

import math
from typing import List, Optional, Sequence

from reportbot.core.config import settings
from reportbot.models.schemas import Table, TableInsights


def is_number(value: str) -> bool:
    text = (value or "").strip()
    if not text:
        return False
    try:
        number = float(text)
    except ValueError:
        return False
    return not math.isnan(number)


def is_numeric_column(rows: Sequence[Sequence[str]], index: int, sample_size: int) -> bool:
    """Sample-based numeric test for one column.

    Only the first ``sample_size`` rows are inspected and every sampled cell
    must parse as a float; missing or blank cells fail. Later rows are never
    consulted, so a column whose sample holds no numbers stays categorical
    even when the rest of the file is numeric.
    """
    sample = rows[:sample_size]
    if not sample:
        return False
    for row in sample:
        cell = row[index] if index < len(row) else ""
        if not is_number(cell):
            return False
    return True


def align_row(row: Sequence[object], width: int) -> List[str]:
    cells = ["" if cell is None else str(cell).strip() for cell in row]
    if len(cells) < width:
        cells.extend([""] * (width - len(cells)))
    return cells[:width]


def build_table(
    name: str,
    headers: Sequence[object],
    rows: Sequence[Sequence[object]],
    *,
    max_rows: Optional[int] = None,
    sample_size: Optional[int] = None,
    preview_rows: Optional[int] = None,
) -> Table:
    max_rows = settings.table_max_rows if max_rows is None else max_rows
    sample_size = settings.table_sample_rows if sample_size is None else sample_size
    preview_rows = settings.table_preview_rows if preview_rows is None else preview_rows

    header_cells = ["" if h is None else str(h).strip() for h in headers]
    width = len(header_cells)
    # Rows beyond the cap are only counted, never materialised.
    kept = [align_row(row, width) for row in rows[:max_rows]]

    numeric: List[str] = []
    categorical: List[str] = []
    for index, header in enumerate(header_cells):
        if is_numeric_column(kept, index, sample_size):
            numeric.append(header)
        else:
            categorical.append(header)

    insights = TableInsights(
        row_count=len(rows),
        column_count=width,
        numeric_columns=numeric,
        categorical_columns=categorical,
        preview=kept[:preview_rows],
    )
    return Table(name=name, headers=header_cells, rows=kept, insights=insights)
