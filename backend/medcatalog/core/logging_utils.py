"""Structured JSON logging for import sessions and exports.

Every line carries the active import session id and the input row sequence
from context variables. Row timings are also collected per session, keyed by
pipeline stage and row operation, and popped as a summary when the session
is finalized.
"""
from __future__ import annotations

import contextvars
import json
import logging
import statistics
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, NamedTuple

LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

_session_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "import_session_id",
    default=None,
)
_sequence_ctx: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "import_row_sequence",
    default=None,
)


class _RowTiming(NamedTuple):
    stage: str
    operation: str
    status: str
    duration_ms: float


_timings_lock = threading.Lock()
_session_timings: dict[str, list[_RowTiming]] = {}


def _get_logger() -> logging.Logger:
    logger = logging.getLogger("medcatalog.structured")
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def set_session_id(session_id: str | None) -> None:
    """Store the active import session id for the current context."""
    _session_id_ctx.set(session_id)


def get_session_id() -> str | None:
    return _session_id_ctx.get()


def set_sequence(sequence: int | None) -> None:
    """Store the input row sequence number being processed."""
    _sequence_ctx.set(sequence)


def get_sequence() -> int | None:
    return _sequence_ctx.get()


def clear_log_context() -> None:
    set_session_id(None)
    set_sequence(None)


def log_event(
    *,
    component: str,
    event: str,
    level: LogLevelName = "INFO",
    session_id: str | None = None,
    sequence: int | None = None,
    details: Mapping[str, Any] | None = None,
) -> None:
    """Emit one JSON log line; session and sequence default to the context."""
    payload: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "level": level,
        "component": component,
        "event": event,
        "session_id": session_id if session_id is not None else get_session_id(),
        "sequence": sequence if sequence is not None else get_sequence(),
        "details": dict(details or {}),
    }
    _get_logger().log(
        logging.getLevelName(level),
        json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str),
    )


def duration_to_ms(duration_s: float) -> float:
    if duration_s < 0:
        return 0.0
    return round(duration_s * 1000.0, 3)


def log_row_timing(
    *,
    component: str,
    stage: str,
    operation: str,
    status: str,
    duration_s: float,
    sequence: int | None = None,
    level: LogLevelName = "INFO",
    details: Mapping[str, Any] | None = None,
) -> float:
    """Log a ``row_processed`` event and record its timing for the session.

    Returns the duration in milliseconds as written to the log line.
    """
    duration_ms = duration_to_ms(duration_s)
    session_id = get_session_id()
    if session_id:
        with _timings_lock:
            _session_timings.setdefault(session_id, []).append(
                _RowTiming(stage, operation, status, duration_ms)
            )

    payload_details = dict(details or {})
    payload_details.update(
        {
            "stage": stage,
            "operation": operation,
            "status": status,
            "duration_ms": duration_ms,
        }
    )
    log_event(
        component=component,
        event="row_processed",
        level=level,
        sequence=sequence,
        details=payload_details,
    )
    return duration_ms


def _p95(values: list[float]) -> float:
    if len(values) == 1:
        return values[0]
    return statistics.quantiles(values, n=20, method="inclusive")[18]


def _summarize(durations: list[float]) -> dict[str, Any]:
    return {
        "count": len(durations),
        "avg_ms": round(sum(durations) / len(durations), 3),
        "p95_ms": round(_p95(durations), 3),
        "max_ms": round(max(durations), 3),
    }


def pop_session_timings(session_id: str) -> dict[str, Any]:
    """Remove the timings collected for a session and summarize them.

    Shape: ``{"rows": n, "stages": {stage: {count, avg_ms, p95_ms, max_ms,
    "operations": {operation: {count, avg_ms, p95_ms, max_ms}},
    "statuses": {status: count}}}}``.
    """
    with _timings_lock:
        timings = _session_timings.pop(session_id, [])

    stages: dict[str, dict[str, Any]] = {}
    for stage in dict.fromkeys(timing.stage for timing in timings):
        in_stage = [timing for timing in timings if timing.stage == stage]
        by_operation: dict[str, list[float]] = {}
        statuses: dict[str, int] = {}
        for timing in in_stage:
            by_operation.setdefault(timing.operation, []).append(timing.duration_ms)
            statuses[timing.status] = statuses.get(timing.status, 0) + 1
        stages[stage] = {
            **_summarize([timing.duration_ms for timing in in_stage]),
            "operations": {
                operation: _summarize(durations)
                for operation, durations in by_operation.items()
            },
            "statuses": statuses,
        }
    return {"rows": len(timings), "stages": stages}
