"""Load a grid of cell source text from CSV, YAML/JSON or XLSX files.

Every cell comes back as a string (or ``None`` when empty); coercion of
literals and parsing of formulas happen later, in ``ambsheet.sheet``.

Formulas containing commas (``=sum(A1, B1)``, ``{1, 2}``) must be quoted
in CSV, and ``{...}`` literals must be quoted in YAML, where a bare brace
starts a flow mapping.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import polars as pl
import yaml

Grid = list  # list[list[str | None]]


def load_grid(path: Path) -> Grid:
    """Read a grid from *path*, choosing the reader by file extension.

    Raises:
        ValueError: On an unsupported extension or malformed content.
        ImportError: For ``.xlsx`` when openpyxl is not installed.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return load_csv_grid(path)
    if suffix in (".yaml", ".yml", ".json"):
        return load_yaml_grid(path)
    if suffix == ".xlsx":
        return load_xlsx_grid(path)
    raise ValueError(f"Unsupported grid file type: {path.suffix or path.name!r}")


def load_csv_grid(path: Path) -> Grid:
    """Read a header-less CSV file, every column as text."""
    if path.stat().st_size == 0:
        return []
    df = pl.read_csv(path, has_header=False, infer_schema_length=0)
    return [[_cell_text(v) for v in row] for row in df.rows()]


def load_yaml_grid(path: Path) -> Grid:
    """Read a YAML or JSON grid.

    Accepts either a list of rows or a mapping with a ``grid:`` key.
    Scalars are converted back to their source text (``true``, ``1.5``).
    """
    data = yaml.safe_load(path.read_text()) or []
    if isinstance(data, dict):
        if "grid" not in data:
            raise ValueError(f"{path}: mapping must have a 'grid' key")
        data = data["grid"] or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: grid must be a list of rows")

    grid: Grid = []
    for i, row in enumerate(data):
        if row is None:
            grid.append([])
            continue
        if not isinstance(row, list):
            raise ValueError(f"{path}: row {i + 1} is not a list")
        cells: list[str | None] = []
        for j, value in enumerate(row):
            if isinstance(value, (dict, list)):
                raise ValueError(
                    f"{path}: cell at row {i + 1}, column {j + 1} is not a scalar "
                    "(quote amb literals such as \"{1, 2}\")"
                )
            cells.append(_cell_text(value))
        grid.append(cells)
    return grid


def load_xlsx_grid(path: Path) -> Grid:
    """Read the first worksheet of an XLSX workbook.

    Formulas are read as written (``data_only=False``) so ``=...`` cells
    come through as source text.
    """
    try:
        import openpyxl
    except ImportError:
        raise ImportError(
            "openpyxl is required for XLSX grids.  "
            "Install with: pip install 'ambsheet[xlsx]'"
        )

    wb = openpyxl.load_workbook(str(path), data_only=False)
    ws = wb.worksheets[0]
    grid: Grid = []
    for row in ws.iter_rows(values_only=True):
        grid.append([_cell_text(v) for v in row])

    # Drop trailing empty rows that openpyxl reports for formatted cells
    while grid and all(v is None for v in grid[-1]):
        grid.pop()
    return grid


def _cell_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
