"""Whole-sheet fixpoint evaluator.

There is no dependency graph.  Every formula cell starts out ``NOT_READY``
and the evaluator sweeps the grid row-major, evaluating each cell that is
still ``NOT_READY``.  A cell whose formula reads an unresolved cell is left
alone for a later pass; a cell that completes has its value list written
once and never touched again.  Sweeping stops after the first pass that
resolves nothing.

Cells caught in a reference cycle, or reading outside the grid, therefore
stay ``NOT_READY``.  ``SheetEvaluator.unresolved()`` explains why.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from ambsheet.context import AmbContext
from ambsheet.formulas.errors import (
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    WorldLimitError,
)
from ambsheet.formulas.nodes import Named, Node
from ambsheet.formulas.parser import is_formula, parse_formula
from ambsheet.interpreter import PENDING, Interpreter
from ambsheet.logging import EventType, emit_error, emit_info, emit_warning
from ambsheet.logging import events as ev
from ambsheet.project import DEFAULT_CONFIG
from ambsheet.values import (
    NOT_READY,
    CellError,
    Position,
    Results,
    Value,
    cell_name,
    parse_literal,
)

logger = logging.getLogger(__name__)

Grid = list  # list[list[str | None]]


# ---------------------------------------------------------------------------
# Unresolved-cell diagnosis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UnresolvedReason:
    """Why a cell is still ``NOT_READY`` after evaluation.

    Attributes:
        kind: ``"cycle"``, ``"out_of_range"`` or ``"blocked"``.
        blocked_on: The cell this one was waiting for.
        cycle: Cell names around the cycle, first name repeated at the end
            (only for ``"cycle"``).
    """

    kind: str
    blocked_on: Position | None
    cycle: tuple[str, ...] = field(default=())

    def describe(self) -> str:
        if self.kind == "cycle":
            return f"Circular cell reference: {' -> '.join(self.cycle)}"
        if self.blocked_on is None:
            return "Unresolved"
        if self.kind == "out_of_range":
            return f"Reference outside the grid: {_position_label(self.blocked_on)}"
        return f"Waiting on unresolved cell {cell_name(self.blocked_on)}"


def _position_label(pos: Position) -> str:
    if pos.row < 0 or pos.col < 0:
        return f"(row {pos.row + 1}, col {pos.col + 1})"
    return cell_name(pos)


_UNRESOLVED_CODES = {
    "cycle": ev.UNRESOLVED_CYCLE,
    "out_of_range": ev.UNRESOLVED_OUT_OF_RANGE,
    "blocked": ev.UNRESOLVED_BLOCKED,
}


# ---------------------------------------------------------------------------
# SheetEvaluator
# ---------------------------------------------------------------------------


class SheetEvaluator:
    """Evaluates every cell of a grid of source text.

    Usage::

        ev = SheetEvaluator([["1", "=A1+{1,2}"]])
        results = ev.evaluate()

    Parameters
    ----------
    grid : list[list[str | None]]
        Rows of cell source text.  ``""`` and ``None`` are empty cells;
        ``=...`` and ``{...}`` are formulas; anything else is a literal.
    config : dict | None
        Project configuration (see ``ambsheet.project.DEFAULT_CONFIG``).
    strict : bool | None
        Re-raise formula errors instead of storing error values.  Defaults
        to the ``strict`` config key.
    """

    def __init__(
        self,
        grid: Grid,
        config: dict[str, Any] | None = None,
        *,
        strict: bool | None = None,
    ) -> None:
        self.grid: Grid = [list(row) for row in grid]
        self.config = dict(DEFAULT_CONFIG)
        if config:
            self.config.update(config)
        self.strict = bool(self.config["strict"]) if strict is None else strict
        self.results: Results = []
        self.eval_id = ""
        self.passes = 0
        # lower-cased name -> (position, name as written)
        self.names: dict[str, tuple[Position, str]] = {}
        self.errors: dict[Position, CellError] = {}
        self._nodes: dict[Position, Node | FormulaError] = {}
        self._blocked: dict[Position, Position | None] = {}

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self) -> Results:
        """Recompute every cell from scratch.

        Returns:
            The results grid (also kept as ``self.results``).

        Raises:
            FormulaError: Only in strict mode, for the first failing cell.
        """
        self.eval_id = uuid.uuid4().hex[:12]
        self.passes = 0
        self.errors = {}
        self._blocked = {}
        self.results = [
            [self._initial_result(cell) for cell in row] for row in self.grid
        ]
        self._scan_names()

        formula_cells = list(self._formula_cells())
        emit_info(
            EventType.eval_started,
            f"Evaluating {len(formula_cells)} formula cells",
            {"eval_id": self.eval_id, "rows": len(self.grid), "formula_cells": len(formula_cells)},
            eval_id=self.eval_id,
        )

        interp = Interpreter(
            self.results,
            {key: pos for key, (pos, _name) in self.names.items()},
            max_worlds=int(self.config["max_worlds"]),
            random_seed=int(self.config["random_seed"]),
        )

        while True:
            self.passes += 1
            resolved = 0
            for pos, text in formula_cells:
                if self.results[pos.row][pos.col] is not NOT_READY:
                    continue
                values = self._evaluate_cell(interp, pos, text)
                if values is PENDING:
                    self._blocked[pos] = interp.blocked_on
                    continue
                self._blocked.pop(pos, None)
                self.results[pos.row][pos.col] = values
                resolved += 1
                self._check_fanout(pos, text, values)
            logger.debug("pass %d resolved %d cells", self.passes, resolved)
            emit_info(
                EventType.eval_pass,
                f"Pass {self.passes} resolved {resolved} cells",
                {"eval_id": self.eval_id, "pass": self.passes, "resolved": resolved},
                eval_id=self.eval_id,
            )
            if not resolved:
                break

        unresolved = self.unresolved()
        for pos, reason in unresolved.items():
            emit_warning(
                EventType.cell_unresolved,
                reason.describe(),
                {"cell": cell_name(pos), "eval_id": self.eval_id, "kind": reason.kind},
                error_code=_UNRESOLVED_CODES[reason.kind],
                eval_id=self.eval_id,
            )
        emit_info(
            EventType.eval_completed,
            f"Evaluation finished after {self.passes} passes",
            {
                "eval_id": self.eval_id,
                "passes": self.passes,
                "errors": len(self.errors),
                "unresolved": len(unresolved),
            },
            eval_id=self.eval_id,
        )
        return self.results

    def _initial_result(self, cell: Any) -> Any:
        if cell is None or cell == "":
            return None
        if is_formula(cell):
            return NOT_READY
        raw = parse_literal(cell) if isinstance(cell, str) else cell
        return [Value(raw, AmbContext.empty())]

    def _formula_cells(self):
        for row, cells in enumerate(self.grid):
            for col, cell in enumerate(cells):
                if is_formula(cell):
                    yield Position(row, col), cell

    def _scan_names(self) -> None:
        """Parse every formula once, caching the tree, and register names."""
        self.names = {}
        self._nodes = {}
        for pos, text in self._formula_cells():
            try:
                node = parse_formula(text, pos)
            except FormulaError as exc:
                self._nodes[pos] = exc
                continue
            self._nodes[pos] = node
            if isinstance(node, Named):
                self.names[node.name.lower()] = (pos, node.name)

    def _evaluate_cell(self, interp: Interpreter, pos: Position, text: str) -> Any:
        try:
            node = self._nodes[pos]
            if isinstance(node, FormulaError):
                raise node
            return interp.evaluate_node(node, pos)
        except FormulaError as exc:
            if self.strict:
                raise
            err, code = _cell_error(exc)
            self.errors[pos] = err
            emit_error(
                EventType.cell_error,
                f"{cell_name(pos)}: {exc}",
                {"cell": cell_name(pos), "eval_id": self.eval_id, "formula": text},
                error_code=code,
                eval_id=self.eval_id,
            )
            return [Value(err, AmbContext.empty())]

    def _check_fanout(self, pos: Position, text: str, values: list[Value]) -> None:
        warn_worlds = self.config.get("warn_worlds")
        if warn_worlds is None or len(values) <= int(warn_worlds):
            return
        emit_warning(
            EventType.fanout_warning,
            f"{cell_name(pos)} produced {len(values)} worlds",
            {"cell": cell_name(pos), "eval_id": self.eval_id, "worlds": len(values), "formula": text},
            eval_id=self.eval_id,
        )

    # ------------------------------------------------------------------
    # Diagnosis
    # ------------------------------------------------------------------

    def unresolved(self) -> dict[Position, UnresolvedReason]:
        """Explain every cell left ``NOT_READY`` by the last ``evaluate()``.

        Follows the chain of cells each one was last blocked on.  A chain
        that comes back to the starting cell is a ``cycle``; a cell that
        reads outside the grid itself is ``out_of_range``; anything else
        waits on one of those and is ``blocked``.
        """
        out: dict[Position, UnresolvedReason] = {}
        for row, cells in enumerate(self.results):
            for col, result in enumerate(cells):
                if result is NOT_READY:
                    pos = Position(row, col)
                    out[pos] = self._diagnose(pos)
        return out

    def _diagnose(self, pos: Position) -> UnresolvedReason:
        first = self._blocked.get(pos)
        path = [pos]
        seen = {pos: 0}
        cur = pos
        while True:
            nxt = self._blocked.get(cur)
            if nxt is None:
                return UnresolvedReason("blocked", first)
            if not self._in_grid(nxt):
                kind = "out_of_range" if cur == pos else "blocked"
                return UnresolvedReason(kind, first)
            if nxt in seen:
                loop = path[seen[nxt]:] + [nxt]
                if nxt == pos:
                    return UnresolvedReason("cycle", first, tuple(cell_name(p) for p in loop))
                return UnresolvedReason("blocked", first)
            seen[nxt] = len(path)
            path.append(nxt)
            cur = nxt

    def _in_grid(self, pos: Position) -> bool:
        return 0 <= pos.row < len(self.grid) and 0 <= pos.col < len(self.grid[pos.row])

    # ------------------------------------------------------------------
    # Named cells
    # ------------------------------------------------------------------

    def get_cell_name_at(self, pos: Position) -> str | None:
        """Return the declared name of the cell at *pos*, as written."""
        for name_pos, name in self.names.values():
            if name_pos == pos:
                return name
        return None

    def display_name_for_cell(self, pos: Position) -> str:
        """``"total (B3)"`` for a named cell, plain ``"B3"`` otherwise."""
        name = self.get_cell_name_at(pos)
        if name is None:
            return cell_name(pos)
        return f"{name} ({cell_name(pos)})"


def _cell_error(exc: FormulaError) -> tuple[CellError, str]:
    if isinstance(exc, FormulaParseError):
        return CellError("#PARSE!", str(exc)), ev.FORMULA_PARSE_ERROR
    if isinstance(exc, FormulaFunctionError):
        short = "#NAME?" if exc.unknown else "#N/A"
        return CellError(short, str(exc)), ev.FORMULA_FUNCTION_ERROR
    if isinstance(exc, WorldLimitError):
        return CellError("#WORLDS!", str(exc)), ev.WORLD_LIMIT_EXCEEDED
    return CellError("#ERROR!", str(exc)), ev.FORMULA_ERROR


def evaluate_sheet(grid: Grid, config: dict[str, Any] | None = None) -> SheetEvaluator:
    """Build a ``SheetEvaluator`` for *grid* and run it."""
    evaluator = SheetEvaluator(grid, config)
    evaluator.evaluate()
    return evaluator
