"""Tests for the continuation-passing interpreter."""

from __future__ import annotations

import pytest

from ambsheet.context import AmbContext, resolve_positions
from ambsheet.formulas.errors import FormulaFunctionError, WorldLimitError
from ambsheet.formulas.parser import parse_formula
from ambsheet.interpreter import PENDING, Interpreter
from ambsheet.values import NOT_READY, CellError, Position, Value


def _literal(raw) -> list[Value]:
    return [Value(raw, AmbContext.empty())]


def run(formula: str, results=None, pos: Position = Position(0, 0), **kwargs):
    """Evaluate *formula* at *pos* over *results* and return the raw values."""
    if results is None:
        results = [[None]]
    interp = Interpreter(results, **kwargs)
    values = interp.evaluate_node(parse_formula(formula, pos), pos)
    if values is PENDING:
        return PENDING
    return [v.raw_value for v in values]


# ---------------------------------------------------------------------------
# Basics
# ---------------------------------------------------------------------------


class TestScalars:
    def test_constant(self) -> None:
        assert run("=42") == [42]

    def test_arithmetic(self) -> None:
        assert run("=2 + 3 * 4") == [14]
        assert run("=7 / 2") == [3.5]
        assert run("=6 / 3") == [2]

    def test_comparisons_yield_one_or_zero(self) -> None:
        assert run("=1 < 2") == [1]
        assert run("=1 = 2") == [0]
        assert run('="a" = "A"') == [1]

    def test_if(self) -> None:
        assert run('=if(1 > 0, "pos", "neg")') == ["pos"]
        assert run('=if(0, "pos", "neg")') == ["neg"]

    def test_call(self) -> None:
        assert run("=sum(1, 2, 3)") == [6]


# ---------------------------------------------------------------------------
# Amb semantics
# ---------------------------------------------------------------------------


class TestAmb:
    def test_amb_cardinality(self) -> None:
        assert run("{1, 2, 3}") == [1, 2, 3]

    def test_repeat_expansion(self) -> None:
        values = Interpreter([[None]]).evaluate_node(parse_formula("{5 x 3}"), Position(0, 0))
        assert [v.raw_value for v in values] == [5, 5, 5]
        # repeated values are still distinct worlds
        assert len({v.context for v in values}) == 3

    def test_span_default_step(self) -> None:
        assert run("{1 to 3}") == [1, 2, 3]

    def test_empty_amb_has_no_worlds(self) -> None:
        assert run("{}") == []
        assert run("={} + 1") == []

    def test_threading_order(self) -> None:
        assert run("={1,2}+{10,20}") == [11, 21, 12, 22]

    def test_contexts_record_choices(self) -> None:
        interp = Interpreter([[None, None]])
        values = interp.evaluate_node(parse_formula("={1,2}+{10,20}", Position(0, 1)), Position(0, 1))
        assert [resolve_positions(v.context) for v in values] == [
            {"B1": 0, "B1#1": 0},
            {"B1": 0, "B1#1": 1},
            {"B1": 1, "B1#1": 0},
            {"B1": 1, "B1#1": 1},
        ]

    def test_amb_inside_if(self) -> None:
        assert run('=if({1, 0}, "a", "b")') == ["a", "b"]

    def test_amb_in_function_args(self) -> None:
        assert run("=max({1, 5}, {3, 4})") == [3, 4, 5, 5]


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class TestReferences:
    def test_same_cell_read_twice_stays_consistent(self) -> None:
        a1 = Interpreter([[None]]).evaluate_node(parse_formula("{1, 2}"), Position(0, 0))
        results = [[a1, NOT_READY]]
        assert run("=A1 + A1", results, Position(0, 1)) == [2, 4]

    def test_independent_cells_combine(self) -> None:
        interp = Interpreter([[None, None]])
        a1 = interp.evaluate_node(parse_formula("{1, 2}", Position(0, 0)), Position(0, 0))
        b1 = interp.evaluate_node(parse_formula("{10, 20}", Position(0, 1)), Position(0, 1))
        results = [[a1, b1, NOT_READY]]
        assert run("=A1 + B1", results, Position(0, 2)) == [11, 21, 12, 22]

    def test_not_ready_returns_pending(self) -> None:
        results = [[NOT_READY, NOT_READY]]
        interp = Interpreter(results)
        assert interp.evaluate_node(parse_formula("=A1 + 1", Position(0, 1)), Position(0, 1)) is PENDING
        assert interp.blocked_on == Position(0, 0)

    def test_out_of_grid_returns_pending(self) -> None:
        interp = Interpreter([[NOT_READY]])
        assert interp.evaluate_node(parse_formula("=Z99"), Position(0, 0)) is PENDING
        assert interp.blocked_on == Position(98, 25)

    def test_empty_cell_reads_as_none(self) -> None:
        results = [[None, NOT_READY]]
        assert run("=A1", results, Position(0, 1)) == [None]
        assert run("=A1 + 1", results, Position(0, 1)) == [1]

    def test_range_value(self) -> None:
        results = [[_literal(1), _literal(2)], [_literal(3), None], [NOT_READY, None]]
        assert run("=A1:B2", results, Position(2, 0)) == [[[1, 2], [3, None]]]

    def test_range_worlds_are_cartesian(self) -> None:
        interp = Interpreter([[None]])
        a1 = interp.evaluate_node(parse_formula("{1, 2}", Position(0, 0)), Position(0, 0))
        a2 = interp.evaluate_node(parse_formula("{10, 20}", Position(1, 0)), Position(1, 0))
        results = [[a1], [a2], [NOT_READY]]
        assert run("=sum(A1:A2)", results, Position(2, 0)) == [11, 21, 12, 22]

    def test_absolute_vs_relative(self) -> None:
        results = [[_literal(100) if (r, c) == (0, 0) else _literal(r * 10 + c) for c in range(6)] for r in range(6)]
        results[5][5] = NOT_READY
        # $A$1 -> (0,0) = 100; B2 from (5,5) -> (1,1) = 11
        assert run("=$A$1+B2", results, Position(5, 5)) == [111]

    def test_unknown_name_is_ref_error(self) -> None:
        (value,) = run("=missing + 1")
        assert isinstance(value, CellError)
        assert value.short == "#REF!"

    def test_named_cell(self) -> None:
        results = [[_literal(7), NOT_READY]]
        interp = Interpreter(results, {"total": Position(0, 0)})
        values = interp.evaluate_node(parse_formula("=TOTAL * 2", Position(0, 1)), Position(0, 1))
        assert [v.raw_value for v in values] == [14]


# ---------------------------------------------------------------------------
# Special forms
# ---------------------------------------------------------------------------


class TestSpecialForms:
    def test_ambify(self) -> None:
        results = [[_literal(1)], [_literal(2)], [_literal(3)], [NOT_READY]]
        assert run("=ambify(A1:A3)", results, Position(3, 0)) == [1, 2, 3]

    def test_ambify_scalar(self) -> None:
        assert run("=ambify(5)") == [5]

    def test_deambify_collects_worlds(self) -> None:
        assert run("=deambify({1, 2, 3})") == [[[1, 2, 3]]]

    def test_deambify_then_aggregate(self) -> None:
        assert run("=avg(deambify({1, 2, 3}))") == [2]

    def test_deambify_keeps_context(self) -> None:
        interp = Interpreter([[None]])
        (value,) = interp.evaluate_node(parse_formula("=deambify({1, 2})"), Position(0, 0))
        assert len(value.context) == 0

    def test_normal_is_deterministic(self) -> None:
        first = run("=normal(10, 2, 50)", random_seed=7)
        second = run("=normal(10, 2, 50)", random_seed=7)
        assert len(first) == 50
        assert first == second
        assert all(isinstance(x, float) for x in first)

    def test_normal_seed_changes_samples(self) -> None:
        assert run("=normal(10, 2, 5)", random_seed=1) != run("=normal(10, 2, 5)", random_seed=2)

    def test_normal_zero_stdev(self) -> None:
        assert run("=normal(3, 0, 4)") == [3.0, 3.0, 3.0, 3.0]

    def test_normal_bad_args(self) -> None:
        (value,) = run('=normal("a", 1, 3)')
        assert value.short == "#VALUE!"
        (value,) = run("=normal(0, -1, 3)")
        assert value.short == "#NUM!"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_error_propagates_through_arithmetic(self) -> None:
        (value,) = run("=1 / 0 + 5")
        assert value.short == "#DIV/0!"

    def test_error_per_world(self) -> None:
        values = run("=10 / {0, 2}")
        assert values[0].short == "#DIV/0!"
        assert values[1] == 5

    def test_non_numeric_operand(self) -> None:
        (value,) = run('="a" + 1')
        assert value.short == "#VALUE!"

    def test_unknown_function_raises(self) -> None:
        with pytest.raises(FormulaFunctionError):
            run("=nosuch(1)")

    def test_world_limit(self) -> None:
        with pytest.raises(WorldLimitError):
            run("={1 to 100} + {1 to 100}", max_worlds=500)

    def test_world_limit_not_hit(self) -> None:
        assert len(run("={1 to 10} + {1 to 10}", max_worlds=100)) == 100

    def test_world_limit_huge_repeat(self) -> None:
        with pytest.raises(WorldLimitError):
            run("{1 x 1000000000000}", max_worlds=10)

    def test_world_limit_huge_span(self) -> None:
        with pytest.raises(WorldLimitError):
            run("{1 to 1000000000000}", max_worlds=10)

    def test_world_limit_under_deambify(self) -> None:
        with pytest.raises(WorldLimitError):
            run("=deambify({1 to 2000})", max_worlds=100)

    def test_deambify_within_limit(self) -> None:
        assert run("=deambify({1 to 5})", max_worlds=5) == [[[1, 2, 3, 4, 5]]]

    def test_default_limit_matches_project_default(self) -> None:
        from ambsheet.project import DEFAULT_CONFIG

        assert Interpreter([[None]]).max_worlds == DEFAULT_CONFIG["max_worlds"]
