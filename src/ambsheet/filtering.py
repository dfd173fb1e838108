"""Context filtering over a results grid.

A *selection* is a list of contexts, typically the contexts of the values
a user picked in one cell.  A value passes a selection when it is
compatible with at least one of its contexts; it passes a filter when it
passes every selection (an AND of ORs).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Union

from ambsheet.context import AmbContext, contexts_compatible
from ambsheet.values import NOT_READY, Position, Results, Value, _NotReady

Selection = Sequence[AmbContext]


@dataclass(frozen=True)
class FilteredValue:
    value: Value
    include: bool


FilteredCell = Union[list, _NotReady, None]  # list[FilteredValue] | NOT_READY | None
FilteredResults = list  # list[list[FilteredCell]]


def value_matches(value: Value, selections: Iterable[Selection]) -> bool:
    """True iff *value* is compatible with some context in every selection."""
    return all(
        any(contexts_compatible(ctx, value.context) for ctx in selection)
        for selection in selections
    )


def filter_results(results: Results, selections: Sequence[Selection]) -> FilteredResults:
    """Mark every value in *results* as included or excluded.

    Empty and ``NOT_READY`` cells pass through unchanged.  With no
    selections every value is included.
    """
    out: FilteredResults = []
    for row in results:
        filtered_row: list[FilteredCell] = []
        for cell in row:
            if cell is None or cell is NOT_READY:
                filtered_row.append(cell)
                continue
            filtered_row.append(
                [FilteredValue(value, value_matches(value, selections)) for value in cell]
            )
        out.append(filtered_row)
    return out


def selection_for_cell(results: Results, pos: Position, indexes: Iterable[int]) -> list[AmbContext]:
    """Contexts of the values at *indexes* in the cell at *pos*.

    Raises:
        ValueError: If the cell has no evaluated values.
        IndexError: If an index is out of range for the cell.
    """
    cell = results[pos.row][pos.col]
    if cell is None or cell is NOT_READY:
        raise ValueError(f"cell at {pos} has no values to select")
    contexts = []
    for i in indexes:
        if not 0 <= i < len(cell):
            raise IndexError(f"index {i} out of range for {len(cell)} values")
        contexts.append(cell[i].context)
    return contexts


def included_values(cell: FilteredCell) -> list[Value]:
    if cell is None or cell is NOT_READY:
        return []
    return [fv.value for fv in cell if fv.include]
