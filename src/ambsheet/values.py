"""Raw values, cell positions and evaluated cell results.

A cell result is one of:

- ``None`` -- the cell is empty
- ``NOT_READY`` -- a formula cell whose dependencies have not resolved
- ``list[Value]`` -- one entry per possible world (may be empty)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NamedTuple, Union

if TYPE_CHECKING:
    from ambsheet.context import AmbContext


class CellError:
    """An error value.  Opaque to arithmetic: operators pass it through.

    Attributes:
        short: Spreadsheet-style code, e.g. ``#DIV/0!``.
        message: Human-readable description.
    """

    __slots__ = ("short", "message")

    def __init__(self, short: str, message: str) -> None:
        self.short = short
        self.message = message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CellError):
            return NotImplemented
        return self.short == other.short and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.short, self.message))

    def __repr__(self) -> str:
        return f"CellError({self.short!r}, {self.message!r})"

    def __str__(self) -> str:
        return self.short


BasicRawValue = Union[int, float, bool, str, None]
Range = list  # list[list[BasicRawValue]], row-major
RawValue = Union[int, float, bool, str, None, Range, CellError]


def is_error(value: Any) -> bool:
    return isinstance(value, CellError)


# ---------------------------------------------------------------------------
# Positions and cell names
# ---------------------------------------------------------------------------


class Position(NamedTuple):
    """Zero-based grid coordinate."""

    row: int
    col: int


_NAME_RE = re.compile(r"^\$?([A-Z]{1,3})\$?(\d+)$")


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters.upper():
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


def cell_name(pos: Position) -> str:
    """Human-readable name of a cell, e.g. ``Position(2, 1)`` -> ``"B3"``."""
    return f"{index_to_col_letter(pos.col)}{pos.row + 1}"


def parse_cell_name(name: str) -> Position:
    """Parse ``"B3"`` (``$`` markers allowed) into a Position.

    Raises:
        FormulaRefError: If *name* is not an A1-style address.
    """
    from ambsheet.formulas.errors import FormulaRefError

    m = _NAME_RE.match(name.strip().upper())
    if not m or int(m.group(2)) < 1:
        raise FormulaRefError(name)
    return Position(int(m.group(2)) - 1, col_letter_to_index(m.group(1)))


# ---------------------------------------------------------------------------
# Evaluated values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Value:
    """One concrete value together with the amb choices that produced it."""

    raw_value: RawValue
    context: AmbContext


class _NotReady:
    """Sentinel for a formula cell whose dependencies are unresolved."""

    _instance: _NotReady | None = None

    def __new__(cls) -> _NotReady:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_READY"

    def __reduce__(self) -> str:
        return "NOT_READY"


NOT_READY = _NotReady()

CellResult = Union[list, _NotReady, None]  # list[Value] | NOT_READY | None
Results = list  # list[list[CellResult]]


# ---------------------------------------------------------------------------
# Literal cells
# ---------------------------------------------------------------------------


def parse_literal(text: str) -> RawValue:
    """Coerce the source text of a non-formula cell.

    Numbers become ``int``/``float``, ``true``/``false`` become booleans and
    any other text is kept as a string.
    """
    s = text.strip()
    try:
        return int(s)
    except ValueError:
        pass
    try:
        num = float(s)
    except ValueError:
        pass
    else:
        # "nan"/"inf" are text in a sheet
        if num == num and num not in (float("inf"), float("-inf")):
            return num
    lowered = s.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return text
