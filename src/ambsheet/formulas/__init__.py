"""Amb-sheet formula parsing.

Public API::

    from ambsheet.formulas import parse_formula, is_formula
"""

from ambsheet.formulas.errors import (
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    FormulaRefError,
    WorldLimitError,
)
from ambsheet.formulas.parser import is_formula, parse_formula

__all__ = [
    "FormulaError",
    "FormulaFunctionError",
    "FormulaParseError",
    "FormulaRefError",
    "WorldLimitError",
    "is_formula",
    "parse_formula",
]
