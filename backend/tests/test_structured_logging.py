from contextlib import contextmanager
from io import StringIO
import json
import logging

from medcatalog.core.logging_utils import (
    clear_log_context,
    get_session_id,
    log_event,
    log_row_timing,
    pop_session_timings,
    set_sequence,
    set_session_id,
)
from medcatalog.pipelines import run_import_session
from medcatalog.store import InMemoryAuditSink, InMemoryTestStore


def _parse_log_lines(raw_output: str) -> list[dict]:
    lines = [line for line in raw_output.splitlines() if line.strip()]
    return [json.loads(line) for line in lines]


@contextmanager
def _capture_structured_logs():
    logger = logging.getLogger("medcatalog.structured")
    original_handlers = list(logger.handlers)
    original_level = logger.level
    original_propagate = logger.propagate

    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers = [handler]
    logger.setLevel(logging.INFO)
    logger.propagate = False
    try:
        yield buffer
    finally:
        handler.flush()
        logger.handlers = original_handlers
        logger.setLevel(original_level)
        logger.propagate = original_propagate


def test_log_event_schema_includes_required_fields():
    set_session_id("session-schema")
    set_sequence(7)

    with _capture_structured_logs() as buffer:
        log_event(component="test_component", event="test_event")
    parsed = _parse_log_lines(buffer.getvalue())
    assert parsed
    record = parsed[-1]

    assert "ts" in record
    assert record["level"] == "INFO"
    assert record["component"] == "test_component"
    assert record["event"] == "test_event"
    assert record["session_id"] == "session-schema"
    assert record["sequence"] == 7
    assert isinstance(record["details"], dict)

    clear_log_context()


def test_row_timings_are_summarized_by_stage_and_operation():
    set_session_id("session-timings")
    samples = (
        (0.001, "insert", "success"),
        (0.003, "insert", "success"),
        (0.002, "skip", "duplicate"),
    )
    with _capture_structured_logs() as buffer:
        for duration_s, operation, status in samples:
            log_row_timing(
                component="test_component",
                stage="import_row",
                operation=operation,
                status=status,
                duration_s=duration_s,
            )
    clear_log_context()

    events = _parse_log_lines(buffer.getvalue())
    assert {event["event"] for event in events} == {"row_processed"}
    assert [event["details"]["duration_ms"] for event in events] == [1.0, 3.0, 2.0]
    assert [event["details"]["operation"] for event in events] == ["insert", "insert", "skip"]

    timings = pop_session_timings("session-timings")
    assert timings["rows"] == 3
    stage = timings["stages"]["import_row"]
    assert stage["count"] == 3
    assert stage["avg_ms"] == 2.0
    assert stage["max_ms"] == 3.0
    assert stage["operations"]["insert"]["count"] == 2
    assert stage["operations"]["insert"]["avg_ms"] == 2.0
    assert stage["operations"]["skip"] == {"count": 1, "avg_ms": 2.0, "p95_ms": 2.0, "max_ms": 2.0}
    assert stage["statuses"] == {"success": 2, "duplicate": 1}
    assert pop_session_timings("session-timings") == {"rows": 0, "stages": {}}


def test_row_timings_without_a_session_are_not_collected():
    clear_log_context()
    with _capture_structured_logs():
        duration_ms = log_row_timing(
            component="test_component",
            stage="import_row",
            operation="insert",
            status="success",
            duration_s=-1.0,
        )

    assert duration_ms == 0.0
    assert pop_session_timings("None") == {"rows": 0, "stages": {}}


def test_import_session_logs_each_row_and_final_summary():
    content = (
        "name,category,subCategory,cptCode\n"
        "CBC,Laboratory Tests,Hematology,85027\n"
        "CBC,Laboratory Tests,Hematology,8502\n"
    )
    with _capture_structured_logs() as buffer:
        result = run_import_session(
            content,
            store=InMemoryTestStore(),
            audit_sink=InMemoryAuditSink(),
        )

    events = _parse_log_lines(buffer.getvalue())
    session_id = str(result.session.id)
    assert all(event["session_id"] == session_id for event in events)

    rows = [event for event in events if event["event"] == "row_processed"]
    assert [row["sequence"] for row in rows] == [1, 2]
    assert [row["details"]["status"] for row in rows] == ["success", "validation_error"]

    finalized = [event for event in events if event["event"] == "import_session_finalized"]
    assert len(finalized) == 1
    details = finalized[0]["details"]
    assert details["status"] == "partial"
    assert details["timings"]["stages"]["import_row"]["operations"]["insert"]["count"] == 1
    assert details["timings"]["stages"]["import_row"]["operations"]["error"]["count"] == 1
    assert result.timings == details["timings"]
    assert get_session_id() is None
