"""AST node model for amb-sheet formulas.

Nodes are immutable.  The three amb-producing kinds (``AmbLiteral``,
``Ambify``, ``Normal``) can yield several worlds from one evaluation and
are used as keys in an ``AmbContext``.  Their identity is the pair
``(pos, ordinal)``: the cell the formula was parsed for, and the order in
which the node was built within that formula.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Union

from ambsheet.values import Position, RawValue


@dataclass(frozen=True)
class Const:
    value: RawValue


@dataclass(frozen=True)
class CellRef:
    """A single-cell reference.

    For a relative axis ``row``/``col`` hold the offset from the cell the
    formula was parsed at; for an absolute axis they hold the coordinate.
    """

    row: int
    col: int
    row_absolute: bool = False
    col_absolute: bool = False

    def resolve(self, pos: Position) -> Position:
        return Position(
            self.row if self.row_absolute else self.row + pos.row,
            self.col if self.col_absolute else self.col + pos.col,
        )


@dataclass(frozen=True)
class RangeRef:
    top_left: CellRef
    bottom_right: CellRef

    def resolve(self, pos: Position) -> tuple[Position, Position]:
        """Return normalised ``(top_left, bottom_right)`` positions."""
        a = self.top_left.resolve(pos)
        b = self.bottom_right.resolve(pos)
        return (
            Position(min(a.row, b.row), min(a.col, b.col)),
            Position(max(a.row, b.row), max(a.col, b.col)),
        )


@dataclass(frozen=True)
class NameRef:
    """Reference to a named cell (``=total: ...``)."""

    name: str


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class If:
    cond: Node
    then: Node
    else_: Node


@dataclass(frozen=True)
class Call:
    func_name: str
    args: tuple[Node, ...]


@dataclass(frozen=True)
class Named:
    """A formula that also declares a name for its cell."""

    name: str
    node: Node


@dataclass(frozen=True)
class Deambify:
    """Collapse every world of ``node`` into one single-row range."""

    node: Node


# ---------------------------------------------------------------------------
# Amb nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Repeat:
    """``value x count`` -- ``count`` worlds sharing one raw value."""

    value: RawValue
    count: int = 1


@dataclass(frozen=True)
class Span:
    """``start to stop [by step]``."""

    start: float
    stop: float
    step: float

    def values(self) -> Iterator[int | float]:
        if self.step == 0:
            return
        if self.start <= self.stop and self.step < 0:
            return
        if self.start >= self.stop and self.step > 0:
            return
        ascending = self.start <= self.stop
        i = 0
        v = self.start
        # multiply rather than accumulate so fractional steps do not drift
        while (v <= self.stop) if ascending else (v >= self.stop):
            yield v
            i += 1
            v = self.start + i * self.step


AmbPart = Union[Repeat, Span]


@dataclass(frozen=True, eq=False)
class _AmbBase:
    pos: Position
    ordinal: int

    @property
    def key(self) -> tuple[Position, int]:
        return (self.pos, self.ordinal)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _AmbBase):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(frozen=True, eq=False)
class AmbLiteral(_AmbBase):
    parts: tuple[AmbPart, ...] = field(default=())


@dataclass(frozen=True, eq=False)
class Ambify(_AmbBase):
    range: Node = field(default=None)  # type: ignore[assignment]


@dataclass(frozen=True, eq=False)
class Normal(_AmbBase):
    mean: Node = field(default=None)  # type: ignore[assignment]
    stdev: Node = field(default=None)  # type: ignore[assignment]
    samples: Node = field(default=None)  # type: ignore[assignment]


AmbNode = Union[AmbLiteral, Ambify, Normal]

Node = Union[
    Const,
    CellRef,
    RangeRef,
    NameRef,
    BinaryOp,
    If,
    Call,
    Named,
    Deambify,
    AmbLiteral,
    Ambify,
    Normal,
]
