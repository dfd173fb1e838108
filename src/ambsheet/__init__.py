"""ambsheet -- a spreadsheet evaluator where a cell can hold many values at once."""

__version__ = "0.1.0"
