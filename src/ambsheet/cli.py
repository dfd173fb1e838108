"""Command-line interface for ambsheet."""

from __future__ import annotations

import dataclasses
import json
import sys
from pathlib import Path
from typing import Any

import click

from ambsheet import __version__


@click.group()
@click.version_option(version=__version__, prog_name="ambsheet")
def main() -> None:
    """ambsheet -- spreadsheet formulas with many possible values per cell."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _load(grid_path: str) -> list:
    from ambsheet.grid_io import load_grid

    try:
        return load_grid(Path(grid_path))
    except (ValueError, ImportError) as e:
        raise click.ClickException(str(e))


def _parse_selections(items: tuple[str, ...]) -> list[tuple[Any, list[int]]]:
    from ambsheet.formulas.errors import FormulaRefError
    from ambsheet.values import parse_cell_name

    parsed = []
    for item in items:
        if "=" not in item:
            raise click.ClickException(f"Invalid --select format: {item!r}. Use CELL=I,J.")
        name, raw_indexes = item.split("=", 1)
        try:
            pos = parse_cell_name(name)
            indexes = [int(i) for i in raw_indexes.split(",") if i.strip()]
        except (FormulaRefError, ValueError) as e:
            raise click.ClickException(f"Invalid --select {item!r}: {e}")
        parsed.append((pos, indexes))
    return parsed


def _jsonable(raw: Any) -> Any:
    from ambsheet.values import CellError

    if isinstance(raw, CellError):
        return {"error": raw.short, "message": raw.message}
    if isinstance(raw, list):
        return [[_jsonable(v) for v in row] for row in raw]
    return raw


def _format_node(node: Any, indent: int = 0) -> list[str]:
    pad = "  " * indent
    if not dataclasses.is_dataclass(node):
        return [f"{pad}{node!r}"]
    scalars = []
    children: list[tuple[str, Any]] = []
    for f in dataclasses.fields(node):
        value = getattr(node, f.name)
        if dataclasses.is_dataclass(value):
            children.append((f.name, value))
        elif isinstance(value, tuple) and value and dataclasses.is_dataclass(value[0]):
            children.extend((f.name, v) for v in value)
        else:
            scalars.append(f"{f.name}={value!r}")
    lines = [f"{pad}{type(node).__name__}({', '.join(scalars)})"]
    for name, child in children:
        lines.append(f"{pad}  {name}:")
        lines.extend(_format_node(child, indent + 2))
    return lines


# ---------------------------------------------------------------------------
# Init
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def init(directory: str) -> None:
    """Create ambsheet.yaml and logs/ in DIRECTORY."""
    from ambsheet.project import scaffold_project

    try:
        path = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {path}")


# ---------------------------------------------------------------------------
# Eval
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("grid", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output every value with its context as JSON.")
@click.option("--select", "selects", multiple=True, help="Filter by the values of a cell, as CELL=I,J (repeatable).")
@click.option("--project", "directory", default=None, type=click.Path(exists=True, file_okay=False), help="Project directory (config and event log).")
@click.option("--strict", is_flag=True, help="Fail on the first formula error.")
def eval_cmd(grid: str, as_json: bool, selects: tuple[str, ...], directory: str | None, strict: bool) -> None:
    """Evaluate GRID (.csv, .yaml, .json or .xlsx) and print its values."""
    from ambsheet.context import resolve_positions
    from ambsheet.filtering import filter_results, included_values, selection_for_cell
    from ambsheet.formulas.errors import FormulaError
    from ambsheet.logging import set_project_dir
    from ambsheet.printing import format_grid, print_cell, print_raw_value
    from ambsheet.project import load_project_config
    from ambsheet.sheet import SheetEvaluator
    from ambsheet.values import NOT_READY, Position, cell_name

    data = _load(grid)
    project_dir = Path(directory) if directory else None
    try:
        config = load_project_config(project_dir)
    except ValueError as e:
        raise click.ClickException(str(e))
    set_project_dir(project_dir)

    evaluator = SheetEvaluator(data, config, strict=True if strict else None)
    try:
        results = evaluator.evaluate()
    except FormulaError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    selections = []
    for pos, indexes in _parse_selections(selects):
        try:
            selections.append(selection_for_cell(results, pos, indexes))
        except (ValueError, IndexError) as e:
            raise click.ClickException(f"Cannot select {cell_name(pos)}: {e}")
    filtered = filter_results(results, selections)
    unresolved = evaluator.unresolved()

    if as_json:
        cells = []
        for r, row in enumerate(filtered):
            for c, cell in enumerate(row):
                if cell is None:
                    continue
                pos = Position(r, c)
                entry: dict[str, Any] = {
                    "cell": cell_name(pos),
                    "name": evaluator.get_cell_name_at(pos),
                }
                if cell is NOT_READY:
                    entry["status"] = "unresolved"
                    entry["reason"] = unresolved[pos].describe()
                    entry["values"] = []
                else:
                    entry["status"] = "ok"
                    entry["values"] = [
                        {
                            "value": _jsonable(fv.value.raw_value),
                            "display": print_raw_value(fv.value.raw_value),
                            "context": resolve_positions(fv.value.context),
                            "include": fv.include,
                        }
                        for fv in cell
                    ]
                cells.append(entry)
        out = {"eval_id": evaluator.eval_id, "passes": evaluator.passes, "cells": cells}
        click.echo(json.dumps(out, indent=2, default=str))
        return

    rows = []
    for row in filtered:
        rows.append([
            print_cell(cell if cell is None or cell is NOT_READY else included_values(cell))
            for cell in row
        ])
    click.echo(format_grid(rows))

    if unresolved:
        click.echo("")
        click.echo("Unresolved:")
        for pos, reason in unresolved.items():
            click.echo(f"  {evaluator.display_name_for_cell(pos)}: {reason.describe()}")


# ---------------------------------------------------------------------------
# Check
# ---------------------------------------------------------------------------


@main.command()
@click.argument("grid", type=click.Path(exists=True, dir_okay=False))
def check(grid: str) -> None:
    """Parse every formula in GRID and report syntax errors."""
    from ambsheet.formulas.errors import FormulaParseError
    from ambsheet.formulas.parser import is_formula, parse_formula
    from ambsheet.values import Position, cell_name

    data = _load(grid)
    n_formulas = 0
    failures: list[str] = []
    for r, row in enumerate(data):
        for c, text in enumerate(row):
            if not is_formula(text):
                continue
            n_formulas += 1
            pos = Position(r, c)
            try:
                parse_formula(text, pos)
            except FormulaParseError as e:
                failures.append(f"  {cell_name(pos)}: {e}")

    if failures:
        click.echo(f"{len(failures)} of {n_formulas} formulas failed to parse:")
        for line in failures:
            click.echo(line)
        raise SystemExit(1)
    click.echo(f"OK: {n_formulas} formulas parsed.")


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


@main.command()
@click.argument("formula")
@click.option("--at", "at", default="A1", help="Cell the formula is written in.")
def parse(formula: str, at: str) -> None:
    """Print the node tree of FORMULA."""
    from ambsheet.formulas.errors import FormulaError
    from ambsheet.formulas.parser import parse_formula
    from ambsheet.values import parse_cell_name

    try:
        node = parse_formula(formula, parse_cell_name(at))
    except FormulaError as e:
        raise click.ClickException(str(e))
    for line in _format_node(node):
        click.echo(line)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--eval-id", default=None, help="Filter by evaluation ID.")
@click.option("--cell", default=None, help="Filter by cell, e.g. B3.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    eval_id: str | None,
    cell: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from ambsheet.logging.sink import EventSink
    from ambsheet.project import load_project_config

    project_dir = Path(directory)
    cfg = load_project_config(project_dir)
    sink = EventSink(project_dir, tail_bytes=int(cfg["logging_tail_bytes"]))
    events = sink.read_global(
        level=level,
        event_type=event_type,
        eval_id=eval_id,
        cell=cell,
        limit=limit,
    )

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)
