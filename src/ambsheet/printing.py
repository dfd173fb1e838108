"""Display strings for raw values, cells and results grids."""

from __future__ import annotations

import math
from typing import Any

from ambsheet.values import NOT_READY, CellError, Results, index_to_col_letter

UNRESOLVED = "#UNRESOLVED"


def round_significant(num: float, figures: int = 4) -> float:
    """Round *num* to *figures* significant figures."""
    if num == 0 or not math.isfinite(num):
        return num
    order = math.floor(math.log10(abs(num)))
    return round(num, figures - 1 - order)


def _format_number(num: int | float) -> str:
    if isinstance(num, float):
        if not math.isfinite(num):
            return str(num)
        if num.is_integer():
            return f"{int(num):,}"
        text = f"{num:,.10f}".rstrip("0").rstrip(".")
        return "0" if text in ("-0", "") else text
    return f"{num:,}"


def print_raw_value(value: Any) -> str:
    """Human-readable text for one raw value.

    Integers get thousands separators, other numbers are rounded to four
    significant figures, booleans print as TRUE/FALSE and errors as their
    short code.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, CellError):
        return value.short
    if isinstance(value, float):
        return _format_number(round_significant(value))
    if isinstance(value, int):
        return _format_number(value)
    if isinstance(value, list):
        rows = ("[" + ",".join(print_raw_value(v) for v in row) + "]" for row in value)
        return "[" + ",".join(rows) + "]"
    return str(value)


def print_cell(result: Any) -> str:
    if result is None:
        return ""
    if result is NOT_READY:
        return UNRESOLVED
    if len(result) == 1:
        return print_raw_value(result[0].raw_value)
    return "{" + ",".join(print_raw_value(v.raw_value) for v in result) + "}"


def print_results(results: Results) -> list[list[str]]:
    return [[print_cell(cell) for cell in row] for row in results]


def format_grid(rows: list[list[str]]) -> str:
    """Render display strings as an aligned text table with A/B/C and 1/2/3 headers."""
    n_cols = max((len(r) for r in rows), default=0)
    header = [""] + [index_to_col_letter(c) for c in range(n_cols)]
    body = [[str(i + 1)] + r + [""] * (n_cols - len(r)) for i, r in enumerate(rows)]
    table = [header] + body
    widths = [max(len(r[c]) for r in table) for c in range(n_cols + 1)]
    lines = ["  ".join(cell.ljust(w) for cell, w in zip(r, widths)).rstrip() for r in table]
    return "\n".join(lines)
