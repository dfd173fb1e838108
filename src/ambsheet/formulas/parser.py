"""Lark-based parser for amb-sheet formulas.

Supports:
- Expressions: ``=A1 * (1 + $B$2)``, comparisons, ``if(c, a, b)``, calls
- Cell references ``A1`` / ``$A$1`` / ``A$1`` and ranges ``A1:B3``
- Amb literals ``{1, 2, 3}``, ``{5 x 3}``, ``{0 to 10 by 5}``, either inline
  in an expression or as a whole cell without a leading ``=``
- Special forms ``ambify(range)``, ``deambify(expr)``, ``normal(m, sd, n)``
- Named cells ``=total: A1 + A2``, referenced elsewhere as ``total``

Relative references are resolved against the cell position passed to
``parse_formula`` and stored as offsets, so the tree stays valid for that
cell only.
"""

from __future__ import annotations

import re

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedInput, VisitError

from ambsheet.formulas.errors import FormulaError, FormulaParseError
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
    Span,
)
from ambsheet.values import Position, col_letter_to_index

# LALR(1) grammar.
# Operator precedence (lowest to highest):
#   1. Comparison: = <> < <= > >=   (yield 1 / 0)
#   2. Addition/subtraction: + -
#   3. Multiplication/division: * /
#   4. Unary plus/minus: + -
#   5. Atoms: number, bool, string, amb literal, call, range, reference,
#      parenthesized expr
GRAMMAR = r"""
start: "=" NAME ":" expr    -> named
    | "=" expr
    | amb

?expr: comparison

?comparison: additive
    | comparison "=" additive   -> eq
    | comparison "<>" additive  -> neq
    | comparison "<" additive   -> lt
    | comparison "<=" additive  -> lte
    | comparison ">" additive   -> gt
    | comparison ">=" additive  -> gte

?additive: multiplicative
    | additive "+" multiplicative  -> add
    | additive "-" multiplicative  -> sub

?multiplicative: unary
    | multiplicative "*" unary  -> mul
    | multiplicative "/" unary  -> div

?unary: atom
    | "-" unary  -> neg
    | "+" unary  -> uplus

?atom: NUMBER                   -> number
    | STRING                    -> string
    | BOOL                      -> boolean
    | amb
    | NAME "(" args ")"         -> call
    | CELL ":" CELL             -> range_ref
    | CELL                      -> cell_ref
    | NAME                      -> name_ref
    | "(" expr ")"

args: expr ("," expr)*
    |

amb: "{" "}"
    | "{" amb_part ("," amb_part)* "}"

amb_part: signed_number _TO signed_number (_BY signed_number)?  -> span
    | literal _X INT                                          -> repeat
    | literal                                                 -> single

?literal: signed_number
    | STRING  -> string
    | BOOL    -> boolean

signed_number: NUMBER      -> number
    | "-" NUMBER           -> negative_number
    | "+" NUMBER           -> number

_TO: "to"i
_BY: "by"i
_X: "x"i

BOOL.3: /(true|false)(?![A-Za-z0-9_])/i

// A1, $A$1, AB12 (case-insensitive); never followed by a name character
// or a call paren, so log10( lexes as a function name
CELL.2: /\$?[A-Za-z]{1,3}\$?[0-9]+(?![A-Za-z0-9_])(?!\s*\()/

NAME.1: /[A-Za-z_][A-Za-z0-9_]*/

NUMBER: /[0-9]+(\.[0-9]+)?|\.[0-9]+/
INT: /[0-9]+/
STRING: /"(\\.|[^"\\\n])*"/

%ignore /[ \t\r\n]+/
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")

_CELL_RE = re.compile(r"^(\$?)([A-Za-z]{1,3})(\$?)([0-9]+)$")

_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}

_BINARY_RULES = {
    "eq": "=",
    "neq": "<>",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
    "add": "+",
    "sub": "-",
    "mul": "*",
    "div": "/",
}


def is_formula(text: object) -> bool:
    """Cheap gate: does *text* look like a formula rather than a literal?

    True for ``=...`` and for a whole-cell amb literal ``{...}``.
    """
    if not isinstance(text, str):
        return False
    s = text.strip()
    return s.startswith("=") or (s.startswith("{") and s.endswith("}"))


def parse_formula(text: str, pos: Position = Position(0, 0)) -> Node:
    """Parse formula *text* written in the cell at *pos* into a node tree.

    Args:
        text: ``"=..."`` expression or a bare ``"{...}"`` amb literal.
        pos: Cell the formula belongs to; relative references are
            resolved against it.

    Returns:
        The root node.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    text = text.strip()
    if not is_formula(text):
        raise FormulaParseError("Formula must start with '=' or be an amb literal", position=0)
    try:
        tree = _parser.parse(text)
    except UnexpectedInput as exc:
        raise FormulaParseError(str(exc).strip(), position=getattr(exc, "column", None)) from exc
    try:
        return _NodeBuilder(Position(*pos)).transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, FormulaError):
            raise exc.orig_exc from None
        raise


def parse_number(text: str) -> int | float:
    """Parse a NUMBER token to int or float."""
    if "." in text:
        return float(text)
    return int(text)


def _unescape(raw: str) -> str:
    out: list[str] = []
    chars = iter(raw[1:-1])
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
        else:
            out.append(ch)
    return "".join(out)


@v_args(inline=True)
class _NodeBuilder(Transformer):
    """Turns a lark tree into ``ambsheet.formulas.nodes`` for one cell."""

    def __init__(self, pos: Position) -> None:
        super().__init__()
        self.cell_pos = pos
        self._ordinal = 0

    def _next_ordinal(self) -> int:
        ordinal = self._ordinal
        self._ordinal += 1
        return ordinal

    # -- top level ---------------------------------------------------------

    def start(self, node: Node) -> Node:
        return node

    def named(self, name: Token, node: Node) -> Node:
        return Named(str(name), node)

    # -- literals ----------------------------------------------------------

    def number(self, token: Token) -> Const:
        return Const(parse_number(str(token)))

    def negative_number(self, token: Token) -> Const:
        return Const(-parse_number(str(token)))

    def string(self, token: Token) -> Const:
        return Const(_unescape(str(token)))

    def boolean(self, token: Token) -> Const:
        return Const(str(token).lower() == "true")

    # -- operators ---------------------------------------------------------

    def __default__(self, data, children, meta):
        op = _BINARY_RULES.get(data)
        if op is None:
            return super().__default__(data, children, meta)
        left, right = children
        return BinaryOp(op, left, right)

    def neg(self, node: Node) -> Node:
        if isinstance(node, Const) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return Const(-node.value)
        return BinaryOp("-", Const(0), node)

    def uplus(self, node: Node) -> Node:
        return node

    # -- references --------------------------------------------------------

    def _cell(self, token: Token) -> CellRef:
        m = _CELL_RE.match(str(token))
        if m is None:
            raise FormulaParseError(f"Invalid cell reference {str(token)!r}")
        col_abs, letters, row_abs, digits = m.groups()
        row = int(digits) - 1
        if row < 0:
            raise FormulaParseError(f"Invalid cell reference {str(token)!r}")
        col = col_letter_to_index(letters)
        return CellRef(
            row=row if row_abs else row - self.cell_pos.row,
            col=col if col_abs else col - self.cell_pos.col,
            row_absolute=bool(row_abs),
            col_absolute=bool(col_abs),
        )

    def cell_ref(self, token: Token) -> CellRef:
        return self._cell(token)

    def range_ref(self, first: Token, last: Token) -> RangeRef:
        return RangeRef(self._cell(first), self._cell(last))

    def name_ref(self, token: Token) -> NameRef:
        return NameRef(str(token))

    # -- calls and special forms -------------------------------------------

    def args(self, *exprs: Node) -> list[Node]:
        return list(exprs)

    def call(self, name: Token, args: list[Node]) -> Node:
        func_name = str(name).lower()
        if func_name == "if":
            _expect_args(func_name, args, 3)
            return If(args[0], args[1], args[2])
        if func_name == "ambify":
            _expect_args(func_name, args, 1)
            return Ambify(self.cell_pos, self._next_ordinal(), range=args[0])
        if func_name == "deambify":
            _expect_args(func_name, args, 1)
            return Deambify(args[0])
        if func_name == "normal":
            _expect_args(func_name, args, 3)
            return Normal(
                self.cell_pos, self._next_ordinal(), mean=args[0], stdev=args[1], samples=args[2]
            )
        return Call(func_name, tuple(args))

    # -- amb literals ------------------------------------------------------

    def amb(self, *parts: Repeat | Span) -> AmbLiteral:
        return AmbLiteral(self.cell_pos, self._next_ordinal(), parts=tuple(parts))

    def span(self, start: Const, stop: Const, step: Const | None = None) -> Span:
        if step is None:
            return Span(start.value, stop.value, 1 if start.value <= stop.value else -1)
        return Span(start.value, stop.value, step.value)

    def repeat(self, literal: Const, count: Token) -> Repeat:
        return Repeat(literal.value, int(count))

    def single(self, literal: Const) -> Repeat:
        return Repeat(literal.value, 1)


def _expect_args(func_name: str, args: list[Node], count: int) -> None:
    if len(args) != count:
        raise FormulaParseError(
            f"{func_name}() takes {count} argument{'s' if count != 1 else ''}, got {len(args)}"
        )
