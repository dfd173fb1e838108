"""Structured event logging for ambsheet.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from ambsheet.logging.events import (
    AmbSheetEvent,
    EventLevel,
    EventType,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    make_cell_event,
    set_project_dir,
    truncate_context,
)
from ambsheet.logging.sink import EventSink

__all__ = [
    "AmbSheetEvent",
    "EventLevel",
    "EventSink",
    "EventType",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "make_cell_event",
    "set_project_dir",
    "truncate_context",
]
