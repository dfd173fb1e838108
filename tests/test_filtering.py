"""Tests for AND-of-ORs context filtering."""

from __future__ import annotations

import pytest

from ambsheet.filtering import (
    FilteredValue,
    filter_results,
    included_values,
    selection_for_cell,
)
from ambsheet.sheet import SheetEvaluator
from ambsheet.values import NOT_READY, Position


@pytest.fixture
def results():
    grid = [
        ["{1, 2, 3}", "{10, 20}", "=A1 + B1"],
        ["", "=C5", "hello"],
    ]
    return SheetEvaluator(grid).evaluate()


def included(filtered, row: int, col: int) -> list:
    return [v.raw_value for v in included_values(filtered[row][col])]


class TestFilterResults:
    def test_no_selections_includes_everything(self, results) -> None:
        filtered = filter_results(results, [])
        assert all(fv.include for fv in filtered[0][2])
        assert len(filtered[0][2]) == 6

    def test_passthrough_cells(self, results) -> None:
        filtered = filter_results(results, [])
        assert filtered[1][0] is None
        assert filtered[1][1] is NOT_READY
        assert isinstance(filtered[1][2][0], FilteredValue)

    def test_single_selection(self, results) -> None:
        pick_a1_2 = selection_for_cell(results, Position(0, 0), [1])
        filtered = filter_results(results, [pick_a1_2])
        assert included(filtered, 0, 0) == [2]
        assert included(filtered, 0, 2) == [12, 22]
        # unrelated cells are unaffected
        assert included(filtered, 0, 1) == [10, 20]
        assert included(filtered, 1, 2) == ["hello"]

    def test_or_within_selection(self, results) -> None:
        pick = selection_for_cell(results, Position(0, 0), [0, 2])
        filtered = filter_results(results, [pick])
        assert included(filtered, 0, 2) == [11, 21, 13, 23]

    def test_and_across_selections(self, results) -> None:
        a1 = selection_for_cell(results, Position(0, 0), [0, 2])
        b1 = selection_for_cell(results, Position(0, 1), [1])
        filtered = filter_results(results, [a1, b1])
        assert included(filtered, 0, 2) == [21, 23]

    def test_selecting_a_derived_cell(self, results) -> None:
        # picking C1 = 22 pins both A1 and B1
        values = [v.raw_value for v in results[0][2]]
        pick = selection_for_cell(results, Position(0, 2), [values.index(22)])
        filtered = filter_results(results, [pick])
        assert included(filtered, 0, 0) == [2]
        assert included(filtered, 0, 1) == [20]

    def test_empty_selection_excludes_everything_constrained(self, results) -> None:
        filtered = filter_results(results, [[]])
        assert included(filtered, 0, 0) == []


class TestSelectionForCell:
    def test_unevaluated_cell(self, results) -> None:
        with pytest.raises(ValueError):
            selection_for_cell(results, Position(1, 1), [0])
        with pytest.raises(ValueError):
            selection_for_cell(results, Position(1, 0), [0])

    def test_index_out_of_range(self, results) -> None:
        with pytest.raises(IndexError):
            selection_for_cell(results, Position(0, 0), [5])

    def test_negative_index_rejected(self, results) -> None:
        with pytest.raises(IndexError):
            selection_for_cell(results, Position(0, 0), [-1])
