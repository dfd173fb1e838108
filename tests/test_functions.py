"""Tests for built-in functions and operators."""

from __future__ import annotations

import pytest

from ambsheet.formulas.errors import FormulaFunctionError
from ambsheet.formulas.functions import flatten, function_names, get_function
from ambsheet.values import CellError


def call(name: str, *args):
    return get_function(name)(list(args))


DIV0 = CellError("#DIV/0!", "divide by zero")


class TestRegistry:
    def test_lookup_is_case_insensitive(self) -> None:
        assert get_function("SUM") is get_function("sum")

    def test_unknown_function(self) -> None:
        with pytest.raises(FormulaFunctionError) as exc_info:
            get_function("nosuch")
        assert exc_info.value.unknown

    def test_function_names(self) -> None:
        names = function_names()
        for expected in ("sum", "product", "count", "avg", "average", "min", "max",
                         "abs", "round", "and", "or", "not", "concat", "vlookup"):
            assert expected in names
        assert "+" not in names

    def test_flatten(self) -> None:
        assert flatten([1, [[2, 3], [4, None]], 5]) == [1, 2, 3, 4, None, 5]


class TestOperators:
    def test_arithmetic(self) -> None:
        assert call("+", 1, 2) == 3
        assert call("-", 1, 2) == -1
        assert call("*", 3, 4) == 12
        assert call("/", 1, 4) == 0.25

    def test_empty_reads_as_zero(self) -> None:
        assert call("+", None, 2) == 2

    def test_booleans_as_numbers(self) -> None:
        assert call("+", True, True) == 2

    def test_divide_by_zero(self) -> None:
        assert call("/", 1, 0).short == "#DIV/0!"

    def test_first_error_wins(self) -> None:
        other = CellError("#N/A", "x")
        assert call("+", DIV0, other) is DIV0
        assert call("*", 1, other) is other

    def test_mixed_equality(self) -> None:
        assert call("=", "1", 1) == 0
        assert call("<>", "1", 1) == 1

    def test_mixed_ordering_is_error(self) -> None:
        assert call("<", "a", 1).short == "#VALUE!"

    def test_string_ordering(self) -> None:
        assert call("<", "apple", "Banana") == 1


class TestAggregates:
    def test_sum_and_product(self) -> None:
        assert call("sum", 1, [[2, 3]], None) == 6
        assert call("product", 2, [[3, 4]]) == 24

    def test_sum_without_arguments(self) -> None:
        assert call("sum").short == "#N/A"
        assert call("product").short == "#N/A"

    def test_count_skips_empty(self) -> None:
        assert call("count", [[1, None], [3, "x"]]) == 3

    def test_avg(self) -> None:
        assert call("avg", 1, 2) == 1.5
        assert call("average", [[2, 4, None]]) == 3

    def test_min_max(self) -> None:
        assert call("min", 3, [[1, 2]]) == 1
        assert call("max", 3, [[1, 2]]) == 3
        assert call("min").short == "#N/A"
        assert call("max", [[None]]).short == "#N/A"

    def test_aggregate_rejects_text(self) -> None:
        assert call("sum", 1, "x").short == "#VALUE!"

    def test_aggregate_propagates_error_in_range(self) -> None:
        assert call("sum", [[1, DIV0]]) is DIV0


class TestScalarFunctions:
    def test_abs(self) -> None:
        assert call("abs", -3) == 3

    def test_round(self) -> None:
        assert call("round", 2.567, 2) == 2.57
        assert call("round", 2.5) == 2

    def test_arity(self) -> None:
        with pytest.raises(FormulaFunctionError) as exc_info:
            call("abs", 1, 2)
        assert not exc_info.value.unknown
        with pytest.raises(FormulaFunctionError):
            call("round")

    def test_logical(self) -> None:
        assert call("and", 1, True) is True
        assert call("and", 1, 0) is False
        assert call("or", 0, [[0, 1]]) is True
        assert call("not", 0) is True
        assert call("and", "x").short == "#VALUE!"

    def test_concat(self) -> None:
        assert call("concat", "a", 1, True, 2.0, None) == "a1TRUE2"


class TestVlookup:
    TABLE = [["a", 1, 10], ["b", 2, 20], ["c", 3, 30]]

    def test_found(self) -> None:
        assert call("vlookup", "b", self.TABLE, 3) == 20
        assert call("vlookup", "c", self.TABLE, 2, True) == 3

    def test_not_found(self) -> None:
        assert call("vlookup", "z", self.TABLE, 2).short == "#N/A"

    def test_column_out_of_range(self) -> None:
        assert call("vlookup", "a", self.TABLE, 9).short == "#N/A"

    def test_needs_range(self) -> None:
        assert call("vlookup", "a", 5, 2).short == "#VALUE!"
