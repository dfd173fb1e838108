"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Evaluation lifecycle
    eval_started = "eval_started"
    eval_completed = "eval_completed"
    eval_pass = "eval_pass"

    # Per-cell diagnostics
    cell_error = "cell_error"
    cell_unresolved = "cell_unresolved"
    fanout_warning = "fanout_warning"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

FORMULA_PARSE_ERROR = "formula_parse_error"
FORMULA_FUNCTION_ERROR = "formula_function_error"
WORLD_LIMIT_EXCEEDED = "world_limit_exceeded"
FORMULA_ERROR = "formula_error"

UNRESOLVED_CYCLE = "unresolved_cycle"
UNRESOLVED_OUT_OF_RANGE = "unresolved_out_of_range"
UNRESOLVED_BLOCKED = "unresolved_blocked"


# ---------------------------------------------------------------------------
# Context truncation
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long strings truncated.

    Formula text and display values can be arbitrarily long; anything over
    256 characters is cut and marked ``...[truncated]``.
    """
    out: dict[str, Any] = {}
    for k, v in context.items():
        if isinstance(v, dict):
            out[k] = truncate_context(v)
        elif isinstance(v, list):
            out[k] = [_truncate_value(item) for item in v]
        else:
            out[k] = _truncate_value(v)
    return out


def _truncate_value(v: Any) -> Any:
    if isinstance(v, dict):
        return truncate_context(v)
    if isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
        return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_CELL_EVENT_REQUIRED = {"cell"}

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.eval_started.value: set(),
    EventType.eval_completed.value: {"eval_id"},
    EventType.eval_pass.value: set(),
    EventType.cell_error.value: _CELL_EVENT_REQUIRED,
    EventType.cell_unresolved.value: _CELL_EVENT_REQUIRED,
    EventType.fanout_warning.value: _CELL_EVENT_REQUIRED,
}


def _validate_attribution(event: AmbSheetEvent) -> AmbSheetEvent:
    """Check required context keys; downgrade to warning if missing."""
    etype = event.event_type.value if isinstance(event.event_type, EventType) else event.event_type
    required = _EVENT_REQUIRED_KEYS.get(etype, set())
    if not required:
        return event
    missing = required - set(event.context.keys())
    if missing:
        ctx = dict(event.context)
        ctx["_missing_attribution"] = sorted(missing)
        return AmbSheetEvent(
            schema_version=event.schema_version,
            ts=event.ts,
            level=EventLevel.warning,
            event_type=event.event_type,
            context=ctx,
            message=event.message,
            error_code=event.error_code,
        )
    return event


def make_cell_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    cell: str,
    eval_id: str | None = None,
    formula: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> AmbSheetEvent:
    """Build an event with guaranteed cell attribution context."""
    ctx: dict[str, Any] = {"cell": cell}
    if eval_id is not None:
        ctx["eval_id"] = eval_id
    if formula is not None:
        ctx["formula"] = formula
    if extra:
        ctx.update(extra)
    return AmbSheetEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=ctx,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class AmbSheetEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Lazily initialised when ``set_project_dir`` is called.
_sink: Any = None  # EventSink | None
_project_dir: Any = None


def set_project_dir(project_dir: Any) -> None:
    """Configure the module-level event sink for a project directory.

    Call this early in a CLI command.  If it is never called, ``emit()``
    silently discards events.  Passing ``None`` detaches the sink.

    Reads ``logging_fsync`` and ``logging_tail_bytes`` from the project
    config (``ambsheet.yaml``) to configure the sink.
    """
    global _sink, _project_dir
    from pathlib import Path

    from ambsheet.logging.sink import EventSink

    if project_dir is None:
        _sink = None
        _project_dir = None
        return

    project_dir = Path(project_dir)
    _project_dir = project_dir

    fsync = False
    tail_bytes = None
    try:
        from ambsheet.project import load_project_config

        cfg = load_project_config(project_dir)
        fsync = bool(cfg.get("logging_fsync", False))
        tb = cfg.get("logging_tail_bytes")
        if tb is not None:
            tail_bytes = int(tb)
    except Exception:
        pass

    _sink = EventSink(project_dir, fsync=fsync, tail_bytes=tail_bytes)


def _get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[ambsheet] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: AmbSheetEvent, *, eval_id: str | None = None) -> None:
    """Write an event to the global log and optionally to a per-eval log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.

    Truncates long context values and validates attribution before writing.
    """
    try:
        sink = _get_sink()
        if sink is None:
            return
        event = AmbSheetEvent(
            schema_version=event.schema_version,
            ts=event.ts,
            level=event.level,
            event_type=event.event_type,
            context=truncate_context(event.context),
            message=event.message,
            error_code=event.error_code,
        )
        event = _validate_attribution(event)
        sink.write(event, eval_id=eval_id)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    eval_id: str | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        AmbSheetEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        ),
        eval_id=eval_id,
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    eval_id: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        AmbSheetEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        eval_id=eval_id,
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    eval_id: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        AmbSheetEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        eval_id=eval_id,
    )
