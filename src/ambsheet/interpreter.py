"""Continuation-passing interpreter with multi-valued ("amb") semantics.

``Interpreter.interp(node, pos, context, k)`` calls the continuation ``k``
once per possible world the node can produce, in left-to-right,
depth-first order.  A node with one outcome calls it once; a node whose
every branch conflicts with the incoming context calls it zero times.

Reading a referenced cell that is still ``NOT_READY`` (or lies outside the
grid) does not raise: ``interp`` returns ``PENDING`` and every caller
returns it straight up, abandoning the evaluation of the current top-level
cell.  Continuations return ``PENDING`` or ``None`` the same way.
"""

from __future__ import annotations

import itertools
from typing import Any, Callable, Optional

import numpy as np

from ambsheet.context import AmbContext, contexts_compatible
from ambsheet.formulas.errors import FormulaError, WorldLimitError
from ambsheet.formulas.functions import flatten, get_function
from ambsheet.formulas.nodes import (
    AmbLiteral,
    Ambify,
    BinaryOp,
    Call,
    CellRef,
    Const,
    Deambify,
    If,
    Named,
    NameRef,
    Node,
    Normal,
    RangeRef,
    Repeat,
)
from ambsheet.project import DEFAULT_CONFIG
from ambsheet.values import (
    NOT_READY,
    CellError,
    Position,
    RawValue,
    Results,
    Value,
    is_error,
)


class _Pending:
    """Returned through the interpreter when a dependency is unresolved."""

    def __repr__(self) -> str:
        return "PENDING"


PENDING = _Pending()

Continuation = Callable[[Value, Position, AmbContext], Optional[_Pending]]

DEFAULT_MAX_WORLDS: int = DEFAULT_CONFIG["max_worlds"]


def _condition_holds(raw: RawValue) -> bool:
    if raw is None:
        return False
    if isinstance(raw, (bool, int, float)):
        return raw != 0
    return bool(raw)


class Interpreter:
    """Evaluates nodes against a (partially filled) results grid.

    Parameters
    ----------
    results : Results
        The grid being filled by the scheduler.  Only read here.
    names : dict[str, Position] | None
        Named cells, keyed by lower-cased name.
    max_worlds : int
        Upper bound on worlds held at once during one cell evaluation.
    random_seed : int
        Base seed for ``normal()`` sampling.
    """

    def __init__(
        self,
        results: Results,
        names: dict[str, Position] | None = None,
        *,
        max_worlds: int = DEFAULT_MAX_WORLDS,
        random_seed: int = 0,
    ) -> None:
        self.results = results
        self.names = names or {}
        self.max_worlds = max_worlds
        self.random_seed = random_seed
        # Cell that made the last evaluation return PENDING
        self.blocked_on: Position | None = None

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    def evaluate_node(self, node: Node, pos: Position) -> list[Value] | _Pending:
        """Evaluate *node* for the cell at *pos* from the empty context.

        Returns:
            Every world's value in continuation-call order, or ``PENDING``.

        Raises:
            WorldLimitError: If more than ``max_worlds`` worlds are produced.
            FormulaFunctionError: On an unknown function or bad arity.
        """
        values: list[Value] = []

        def collect(value: Value, _pos: Position, context: AmbContext) -> None:
            values.append(Value(value.raw_value, context))
            self._check_limit(len(values))

        self.blocked_on = None
        if self.interp(node, pos, AmbContext.empty(), collect) is PENDING:
            return PENDING
        return values

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def interp(
        self,
        node: Node,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        if isinstance(node, Const):
            return k(Value(node.value, context), pos, context)

        if isinstance(node, CellRef):
            return self._interp_cell(node.resolve(pos), pos, context, k)

        if isinstance(node, RangeRef):
            return self._interp_range(node, pos, context, k)

        if isinstance(node, NameRef):
            target = self.names.get(node.name.lower())
            if target is None:
                err = CellError("#REF!", f"undeclared cell name {node.name}")
                return k(Value(err, context), pos, context)
            return self._interp_cell(target, pos, context, k)

        if isinstance(node, BinaryOp):
            return self._reduce([node.left, node.right], get_function(node.op), pos, context, k)

        if isinstance(node, If):
            return self._interp_if(node, pos, context, k)

        if isinstance(node, Call):
            # Unknown names fail before any argument is evaluated
            fn = get_function(node.func_name)
            return self._reduce(list(node.args), fn, pos, context, k)

        if isinstance(node, Named):
            return self.interp(node.node, pos, context, k)

        if isinstance(node, AmbLiteral):
            return self._interp_amb(node, pos, context, k)

        if isinstance(node, Ambify):
            return self._interp_ambify(node, pos, context, k)

        if isinstance(node, Deambify):
            return self._interp_deambify(node, pos, context, k)

        if isinstance(node, Normal):
            return self._interp_normal(node, pos, context, k)

        raise FormulaError(f"Unknown node type: {type(node).__name__}")

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _interp_cell(
        self,
        target: Position,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        if not (0 <= target.row < len(self.results) and 0 <= target.col < len(self.results[target.row])):
            self.blocked_on = target
            return PENDING
        cell = self.results[target.row][target.col]
        if cell is NOT_READY:
            self.blocked_on = target
            return PENDING
        if cell is None:
            return k(Value(None, context), pos, context)
        for value in cell:
            # Skip worlds that contradict choices already made on this path
            if not contexts_compatible(context, value.context):
                continue
            merged = context.merge(value.context)
            if k(Value(value.raw_value, merged), pos, merged) is PENDING:
                return PENDING
        return None

    def _interp_range(
        self,
        node: RangeRef,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        top_left, bottom_right = node.resolve(pos)
        refs = [
            CellRef(row, col, row_absolute=True, col_absolute=True)
            for row in range(top_left.row, bottom_right.row + 1)
            for col in range(top_left.col, bottom_right.col + 1)
        ]
        n_cols = bottom_right.col - top_left.col + 1

        def to_rows(xs: list[Any]) -> list[list[Any]]:
            return [xs[i:i + n_cols] for i in range(0, len(xs), n_cols)]

        return self._reduce(refs, to_rows, pos, context, k)

    # ------------------------------------------------------------------
    # Operators, calls, conditionals
    # ------------------------------------------------------------------

    def _reduce(
        self,
        nodes: list[Node],
        fn: Callable[[list[Any]], Any],
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        """Evaluate *nodes* left to right, threading each world's context
        into the next node, then apply *fn* to every complete world.

        A world whose argument evaluates to an error stops there and
        yields that error instead of calling *fn*.  Worlds are expanded one
        argument at a time (not by nested continuations) so long ranges do
        not deepen the Python stack; the resulting order is the same.
        """
        worlds: list[tuple[list[Any], AmbContext, CellError | None]] = [([], context, None)]
        for arg in nodes:
            expanded: list[tuple[list[Any], AmbContext, CellError | None]] = []
            for acc, ctx, err in worlds:
                if err is not None:
                    expanded.append((acc, ctx, err))
                    continue

                def collect(value: Value, _pos: Position, new_ctx: AmbContext, acc: list[Any] = acc) -> None:
                    raw = value.raw_value
                    if is_error(raw):
                        expanded.append((acc, new_ctx, raw))
                    else:
                        expanded.append((acc + [raw], new_ctx, None))
                    self._check_limit(len(expanded))

                if self.interp(arg, pos, ctx, collect) is PENDING:
                    return PENDING
            worlds = expanded

        for acc, ctx, err in worlds:
            raw = err if err is not None else fn(acc)
            if k(Value(raw, ctx), pos, ctx) is PENDING:
                return PENDING
        return None

    def _interp_if(
        self,
        node: If,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        def branch(cond: Value, pos: Position, ctx: AmbContext) -> _Pending | None:
            if is_error(cond.raw_value):
                return k(Value(cond.raw_value, ctx), pos, ctx)
            chosen = node.then if _condition_holds(cond.raw_value) else node.else_
            return self.interp(chosen, pos, ctx, k)

        return self.interp(node.cond, pos, context, branch)

    # ------------------------------------------------------------------
    # Amb nodes
    # ------------------------------------------------------------------

    def _choose(
        self,
        node: Any,
        index: int,
        raw: RawValue,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        chosen = context.get(node)
        if chosen is not None and chosen != index:
            return None
        ctx = context.extend(node, index)
        return k(Value(raw, ctx), pos, ctx)

    def _interp_amb(
        self,
        node: AmbLiteral,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        index = 0
        for part in node.parts:
            raws = itertools.repeat(part.value, part.count) if isinstance(part, Repeat) else part.values()
            for raw in raws:
                if self._choose(node, index, raw, pos, context, k) is PENDING:
                    return PENDING
                index += 1
        return None

    def _interp_ambify(
        self,
        node: Ambify,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        def spread(value: Value, pos: Position, ctx: AmbContext) -> _Pending | None:
            raw = value.raw_value
            if is_error(raw):
                return k(Value(raw, ctx), pos, ctx)
            cells = flatten([raw]) if isinstance(raw, list) else [raw]
            for index, cell in enumerate(cells):
                if self._choose(node, index, cell, pos, ctx, k) is PENDING:
                    return PENDING
            return None

        return self.interp(node.range, pos, context, spread)

    def _interp_deambify(
        self,
        node: Deambify,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        collected: list[Any] = []
        errors: list[CellError] = []
        worlds = 0

        def gather(value: Value, _pos: Position, _ctx: AmbContext) -> None:
            nonlocal worlds
            worlds += 1
            self._check_limit(worlds)
            raw = value.raw_value
            if is_error(raw):
                errors.append(raw)
            elif isinstance(raw, list):
                collected.extend(flatten([raw]))
            else:
                collected.append(raw)

        if self.interp(node.node, pos, context, gather) is PENDING:
            return PENDING
        raw: RawValue = errors[0] if errors else [collected]
        return k(Value(raw, context), pos, context)

    def _interp_normal(
        self,
        node: Normal,
        pos: Position,
        context: AmbContext,
        k: Continuation,
    ) -> _Pending | None:
        def sample(params: Value, pos: Position, ctx: AmbContext) -> _Pending | None:
            raw = params.raw_value
            if is_error(raw):
                return k(Value(raw, ctx), pos, ctx)
            mean, stdev, count = raw
            if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in raw):
                err = CellError("#VALUE!", "normal() expects numeric arguments")
                return k(Value(err, ctx), pos, ctx)
            if stdev < 0 or count < 0 or int(count) != count:
                err = CellError("#NUM!", "normal() expects stdev >= 0 and a whole sample count")
                return k(Value(err, ctx), pos, ctx)
            self._check_limit(int(count))
            rng = np.random.default_rng(
                [self.random_seed, node.pos.row, node.pos.col, node.ordinal]
            )
            for index, x in enumerate(rng.normal(mean, stdev, int(count))):
                if self._choose(node, index, float(x), pos, ctx, k) is PENDING:
                    return PENDING
            return None

        return self._reduce([node.mean, node.stdev, node.samples], list, pos, context, sample)

    # ------------------------------------------------------------------

    def _check_limit(self, n: int) -> None:
        if n > self.max_worlds:
            raise WorldLimitError(self.max_worlds)
