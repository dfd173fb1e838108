"""Built-in scalar functions and operators.

Every built-in receives the fully evaluated argument list of one world and
returns a single raw value.  Problems with the *values* (non-numeric
operands, division by zero, a missing lookup key) come back as
``CellError`` values so one bad world never aborts a whole cell.  Problems
with the *call itself* (wrong number of arguments) raise
``FormulaFunctionError``.
"""

from __future__ import annotations

from typing import Any, Callable

from ambsheet.formulas.errors import FormulaFunctionError
from ambsheet.values import CellError, RawValue, is_error

_FUNCTIONS: dict[str, Callable[[list[RawValue]], RawValue]] = {}


def register(*names: str) -> Callable:
    """Decorator that registers a built-in under one or more names.

    Args:
        names: Lookup names (lower-case).

    Returns:
        The original function, unmodified.
    """

    def decorator(fn: Callable) -> Callable:
        for name in names:
            _FUNCTIONS[name] = fn
        return fn

    return decorator


def get_function(name: str) -> Callable[[list[RawValue]], RawValue]:
    """Look up a registered built-in.

    Raises:
        FormulaFunctionError: If no function is registered under *name*.
    """
    fn = _FUNCTIONS.get(name.lower())
    if fn is None:
        raise FormulaFunctionError(name)
    return fn


def function_names() -> list[str]:
    return sorted(n for n in _FUNCTIONS if n.isidentifier())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def flatten(args: list[RawValue]) -> list[Any]:
    """Flatten range arguments (row-major) into a flat list of scalars."""
    values: list[Any] = []
    for arg in args:
        if isinstance(arg, list):
            for row in arg:
                values.extend(row)
        else:
            values.append(arg)
    return values


def first_error(values: list[Any]) -> CellError | None:
    for v in values:
        if is_error(v):
            return v
    return None


def _num(value: Any) -> int | float | None:
    """Numeric view of a scalar: empty reads as 0, booleans as 1/0."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    return None


def _numbers(name: str, values: list[Any]) -> list[int | float] | CellError:
    out: list[int | float] = []
    for v in values:
        if v is None:
            continue
        n = _num(v)
        if n is None:
            return CellError("#VALUE!", f"{name}() expects numeric arguments")
        out.append(n)
    return out


def _arity(name: str, args: list[RawValue], low: int, high: int | None = None) -> None:
    high = low if high is None else high
    if not low <= len(args) <= high:
        expected = str(low) if low == high else f"{low}-{high}"
        raise FormulaFunctionError(name, f"{name}() takes {expected} arguments, got {len(args)}")


def _truthy(value: Any) -> bool | None:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return None


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _arithmetic(op: str, fn: Callable[[Any, Any], Any]) -> Callable:
    def apply(args: list[RawValue]) -> RawValue:
        x, y = args
        err = first_error([x, y])
        if err is not None:
            return err
        a, b = _num(x), _num(y)
        if a is None or b is None:
            return CellError("#VALUE!", f"{op} expects numeric operands")
        return fn(a, b)

    return apply


def _divide(a: Any, b: Any) -> RawValue:
    if b == 0:
        return CellError("#DIV/0!", "divide by zero")
    result = a / b
    if isinstance(result, float) and result.is_integer() and isinstance(a, int) and isinstance(b, int):
        return int(result)
    return result


register("+")(_arithmetic("+", lambda a, b: a + b))
register("-")(_arithmetic("-", lambda a, b: a - b))
register("*")(_arithmetic("*", lambda a, b: a * b))
register("/")(_arithmetic("/", _divide))


def _comparable(x: Any, y: Any) -> tuple[Any, Any] | None:
    nx, ny = _num(x), _num(y)
    if nx is not None and ny is not None:
        return nx, ny
    if isinstance(x, str) and isinstance(y, str):
        return x.lower(), y.lower()
    return None


def _comparison(op: str, fn: Callable[[Any, Any], bool], *, mixed: int | None = None) -> Callable:
    def apply(args: list[RawValue]) -> RawValue:
        x, y = args
        err = first_error([x, y])
        if err is not None:
            return err
        pair = _comparable(x, y)
        if pair is None:
            if mixed is not None:
                return mixed
            return CellError("#VALUE!", f"cannot compare {type(x).__name__} with {type(y).__name__}")
        return 1 if fn(*pair) else 0

    return apply


register("=")(_comparison("=", lambda a, b: a == b, mixed=0))
register("<>")(_comparison("<>", lambda a, b: a != b, mixed=1))
register("<")(_comparison("<", lambda a, b: a < b))
register("<=")(_comparison("<=", lambda a, b: a <= b))
register(">")(_comparison(">", lambda a, b: a > b))
register(">=")(_comparison(">=", lambda a, b: a >= b))


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@register("sum")
def fn_sum(args: list[RawValue]) -> RawValue:
    if not args:
        return CellError("#N/A", "sum() expects at least one argument")
    values = flatten(args)
    err = first_error(values)
    if err is not None:
        return err
    nums = _numbers("sum", values)
    if isinstance(nums, CellError):
        return nums
    return sum(nums)


@register("product")
def fn_product(args: list[RawValue]) -> RawValue:
    if not args:
        return CellError("#N/A", "product() expects at least one argument")
    values = flatten(args)
    err = first_error(values)
    if err is not None:
        return err
    nums = _numbers("product", values)
    if isinstance(nums, CellError):
        return nums
    result: int | float = 1
    for n in nums:
        result *= n
    return result


@register("count")
def fn_count(args: list[RawValue]) -> RawValue:
    return sum(1 for v in flatten(args) if v is not None)


@register("avg", "average")
def fn_avg(args: list[RawValue]) -> RawValue:
    total = fn_sum(args)
    if is_error(total):
        return total
    return _divide(total, fn_count(args))


@register("min")
def fn_min(args: list[RawValue]) -> RawValue:
    values = flatten(args)
    err = first_error(values)
    if err is not None:
        return err
    nums = _numbers("min", values)
    if isinstance(nums, CellError):
        return nums
    if not nums:
        return CellError("#N/A", "min() expects at least one argument")
    return min(nums)


@register("max")
def fn_max(args: list[RawValue]) -> RawValue:
    values = flatten(args)
    err = first_error(values)
    if err is not None:
        return err
    nums = _numbers("max", values)
    if isinstance(nums, CellError):
        return nums
    if not nums:
        return CellError("#N/A", "max() expects at least one argument")
    return max(nums)


# ---------------------------------------------------------------------------
# Scalar math
# ---------------------------------------------------------------------------


@register("abs")
def fn_abs(args: list[RawValue]) -> RawValue:
    _arity("abs", args, 1)
    if is_error(args[0]):
        return args[0]
    n = _num(args[0])
    if n is None:
        return CellError("#VALUE!", "abs() expects a numeric argument")
    return abs(n)


@register("round")
def fn_round(args: list[RawValue]) -> RawValue:
    _arity("round", args, 1, 2)
    err = first_error(args)
    if err is not None:
        return err
    n = _num(args[0])
    digits = _num(args[1]) if len(args) == 2 else 0
    if n is None or digits is None:
        return CellError("#VALUE!", "round() expects numeric arguments")
    return round(n, int(digits))


# ---------------------------------------------------------------------------
# Logical
# ---------------------------------------------------------------------------


def _logical(name: str, args: list[RawValue]) -> list[bool] | CellError:
    values = flatten(args)
    err = first_error(values)
    if err is not None:
        return err
    out: list[bool] = []
    for v in values:
        t = _truthy(v)
        if t is None:
            return CellError("#VALUE!", f"{name}() expects boolean arguments")
        out.append(t)
    return out


@register("and")
def fn_and(args: list[RawValue]) -> RawValue:
    values = _logical("and", args)
    if isinstance(values, CellError):
        return values
    return all(values)


@register("or")
def fn_or(args: list[RawValue]) -> RawValue:
    values = _logical("or", args)
    if isinstance(values, CellError):
        return values
    return any(values)


@register("not")
def fn_not(args: list[RawValue]) -> RawValue:
    _arity("not", args, 1)
    if is_error(args[0]):
        return args[0]
    t = _truthy(args[0])
    if t is None:
        return CellError("#VALUE!", "not() expects a single boolean argument")
    return not t


# ---------------------------------------------------------------------------
# Text and lookup
# ---------------------------------------------------------------------------


@register("concat")
def fn_concat(args: list[RawValue]) -> RawValue:
    values = flatten(args)
    err = first_error(values)
    if err is not None:
        return err
    return "".join(_text(v) for v in values if v is not None)


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@register("vlookup")
def fn_vlookup(args: list[RawValue]) -> RawValue:
    """VLOOKUP(key, range, col_index [, ordered]) -- exact match on column 1.

    The ordered flag is accepted for compatibility and ignored.
    """
    _arity("vlookup", args, 3, 4)
    key, table, index = args[0], args[1], args[2]
    err = first_error([key, table, index])
    if err is not None:
        return err
    if not isinstance(table, list):
        return CellError("#VALUE!", "vlookup() expects a range as its second argument")
    col = _num(index)
    if col is None:
        return CellError("#VALUE!", "vlookup() expects a numeric column index")
    col = int(col) - 1
    if table and 0 <= col < len(table[0]):
        for row in table:
            if row[0] == key:
                return row[col]
    return CellError("#N/A", "key not found")
