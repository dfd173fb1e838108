"""Tests for the ambsheet structured event logging system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a minimal project directory."""
    (tmp_path / "logs").mkdir()
    return tmp_path


@pytest.fixture
def sink(project_dir: Path):
    from ambsheet.logging.sink import EventSink

    return EventSink(project_dir)


@pytest.fixture
def configured(project_dir: Path):
    from ambsheet.logging.events import set_project_dir

    set_project_dir(project_dir)
    yield project_dir
    set_project_dir(None)


def _read_global(project_dir: Path) -> list[dict]:
    path = project_dir / "logs" / "events.ndjson"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestAmbSheetEvent:
    def test_event_defaults(self) -> None:
        from ambsheet.logging.events import AmbSheetEvent, EventLevel, EventType

        evt = AmbSheetEvent(
            level=EventLevel.info,
            event_type=EventType.eval_started,
            message="hello",
        )
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "eval_started"
        assert evt.context == {}
        assert evt.error_code is None

    def test_all_event_types_exist(self) -> None:
        from ambsheet.logging.events import EventType

        expected = {
            "eval_started", "eval_completed", "eval_pass",
            "cell_error", "cell_unresolved", "fanout_warning",
        }
        assert {e.value for e in EventType} == expected

    def test_make_cell_event(self) -> None:
        from ambsheet.logging.events import EventLevel, EventType, make_cell_event

        evt = make_cell_event(
            EventType.cell_error,
            EventLevel.error,
            "bad",
            cell="B3",
            formula="=1 +",
            error_code="formula_parse_error",
        )
        assert evt.context == {"cell": "B3", "formula": "=1 +"}
        assert evt.error_code == "formula_parse_error"


# ---------------------------------------------------------------------------
# B) Sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_write_and_read(self, sink, project_dir: Path) -> None:
        from ambsheet.logging.events import AmbSheetEvent, EventLevel, EventType

        sink.write(AmbSheetEvent(level=EventLevel.info, event_type=EventType.eval_started, message="a"))
        sink.write(
            AmbSheetEvent(level=EventLevel.error, event_type=EventType.cell_error, message="b",
                          context={"cell": "A1", "eval_id": "e1"}),
            eval_id="e1",
        )
        events = sink.read_global()
        assert [e["message"] for e in events] == ["b", "a"]
        assert sink.read_global(level="error")[0]["message"] == "b"
        assert sink.read_global(event_type="eval_started")[0]["message"] == "a"
        assert sink.read_global(eval_id="e1")[0]["message"] == "b"
        assert sink.read_global(cell="a1")[0]["message"] == "b"
        assert [e["message"] for e in sink.read_eval_log("e1")] == ["b"]

    def test_lines_are_sorted_json(self, sink, project_dir: Path) -> None:
        from ambsheet.logging.events import AmbSheetEvent, EventLevel, EventType

        sink.write(AmbSheetEvent(level=EventLevel.info, event_type=EventType.eval_pass))
        line = (project_dir / "logs" / "events.ndjson").read_text().strip()
        keys = list(json.loads(line).keys())
        assert keys == sorted(keys)

    def test_unsafe_eval_id_ignored(self, sink, project_dir: Path) -> None:
        from ambsheet.logging.events import AmbSheetEvent, EventLevel, EventType

        sink.write(AmbSheetEvent(level=EventLevel.info, event_type=EventType.eval_pass), eval_id="../x")
        assert list((project_dir / "logs" / "evals").iterdir()) == []
        assert sink.read_eval_log("../x") == []

    def test_limit(self, sink) -> None:
        from ambsheet.logging.events import AmbSheetEvent, EventLevel, EventType

        for i in range(5):
            sink.write(AmbSheetEvent(level=EventLevel.info, event_type=EventType.eval_pass, message=str(i)))
        assert [e["message"] for e in sink.read_global(limit=2)] == ["4", "3"]

    def test_tail_bytes(self, project_dir: Path) -> None:
        from ambsheet.logging.events import AmbSheetEvent, EventLevel, EventType
        from ambsheet.logging.sink import EventSink

        small = EventSink(project_dir, tail_bytes=400)
        for i in range(20):
            small.write(AmbSheetEvent(level=EventLevel.info, event_type=EventType.eval_pass, message=str(i)))
        events = small.read_global()
        assert 0 < len(events) < 20
        assert events[0]["message"] == "19"


# ---------------------------------------------------------------------------
# C) Emit helpers
# ---------------------------------------------------------------------------


class TestEmit:
    def test_noop_without_sink(self, project_dir: Path) -> None:
        from ambsheet.logging.events import EventType, emit_info, set_project_dir

        set_project_dir(None)
        emit_info(EventType.eval_started, "nothing")
        assert _read_global(project_dir) == []

    def test_long_context_truncated(self, configured: Path) -> None:
        from ambsheet.logging.events import EventType, emit_error

        emit_error(EventType.cell_error, "x", {"cell": "A1", "formula": "=" + "1+" * 500})
        (evt,) = _read_global(configured)
        assert evt["context"]["formula"].endswith("...[truncated]")

    def test_missing_cell_downgraded(self, configured: Path) -> None:
        from ambsheet.logging.events import EventType, emit_error

        emit_error(EventType.cell_error, "no cell")
        (evt,) = _read_global(configured)
        assert evt["level"] == "warning"
        assert evt["context"]["_missing_attribution"] == ["cell"]

    def test_emit_never_raises(self, configured: Path, monkeypatch) -> None:
        from ambsheet.logging import events
        from ambsheet.logging.events import EventType, emit_info

        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(events._sink, "write", boom)
        emit_info(EventType.eval_started, "still fine")


# ---------------------------------------------------------------------------
# D) Evaluator events
# ---------------------------------------------------------------------------


class TestEvaluatorEvents:
    def test_lifecycle_and_cell_events(self, configured: Path) -> None:
        from ambsheet.sheet import SheetEvaluator

        ev = SheetEvaluator([["=1 +", "=C1", "=B1", "{1 to 5}"]], {"warn_worlds": 3})
        ev.evaluate()
        events = _read_global(configured)
        types = [e["event_type"] for e in events]
        assert types[0] == "eval_started"
        assert types[-1] == "eval_completed"
        assert types.count("eval_pass") == ev.passes

        (err,) = [e for e in events if e["event_type"] == "cell_error"]
        assert err["context"]["cell"] == "A1"
        assert err["error_code"] == "formula_parse_error"

        unresolved = {e["context"]["cell"]: e["error_code"] for e in events if e["event_type"] == "cell_unresolved"}
        assert unresolved == {"B1": "unresolved_cycle", "C1": "unresolved_cycle"}

        (fanout,) = [e for e in events if e["event_type"] == "fanout_warning"]
        assert fanout["context"]["worlds"] == 5

        eval_log = configured / "logs" / "evals" / f"{ev.eval_id}.ndjson"
        assert len(eval_log.read_text().splitlines()) == len(events)
