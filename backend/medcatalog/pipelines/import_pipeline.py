"""CSV import session orchestration.

Raw CSV -> parser -> column mapping -> validator -> duplicate detector ->
store write, with one audit entry per input row and one session summary.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Protocol

from ..catalog.categories import DEFAULT_ID_PREFIX, TestIdAllocator
from ..core.error_mapping import EMPTY_FILE_MESSAGE, classify_store_error_code
from ..core.logging_utils import (
    clear_log_context,
    duration_to_ms,
    log_event,
    log_row_timing,
    pop_session_timings,
    set_sequence,
    set_session_id,
)
from ..core.schemas import (
    ImportAuditLogEntry,
    ImportSession,
    ImportSessionResult,
    TestRecord,
)
from ..core.types import DuplicatePolicy, RawRow, SessionStatus
from ..importing.columns import canonicalize_row, map_columns, missing_required_columns
from ..importing.duplicates import DuplicateCheck, DuplicateIndex
from ..importing.parser import parse_csv, read_headers
from ..importing.validator import format_row_errors, validate_row
from ..store.base import BaseAuditSink, BaseTestStore, StoreError

_COMPONENT = "import_pipeline"
_SUPPORTED_POLICIES = ("skip", "update")


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


class ImportSessionAborted(Exception):
    """Raised inside a run when the caller cancels or the session times out."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def derive_session_status(total: int, success_count: int, error_count: int) -> SessionStatus:
    """Final session status from the tallies.

    An empty file fails; otherwise no errors means completed, no successes
    means failed, and anything else is partial.
    """
    if total == 0:
        return "failed"
    if error_count == 0:
        return "completed"
    if success_count == 0:
        return "failed"
    return "partial"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _describe_duplicate(record: TestRecord, check: DuplicateCheck) -> str:
    parts: list[str] = []
    if check.by_id:
        parts.append(f"test id '{record.id}' already exists")
    if check.by_cpt_code:
        parts.append(f"CPT code '{record.cpt_code}' already used by '{check.cpt_code_owner}'")
    return "Duplicate: " + "; ".join(parts)


@dataclass
class _Tally:
    success: int = 0
    error: int = 0
    duplicate: int = 0
    inserted: int = 0
    updated: int = 0
    validation_errors: list[str] = field(default_factory=list)


class _ImportRun:
    """Mutable state of one session while its rows are being processed."""

    def __init__(
        self,
        session: ImportSession,
        store: BaseTestStore,
        audit_sink: BaseAuditSink,
        column_mapping: dict[str, str],
        duplicate_policy: DuplicatePolicy,
        dry_run: bool,
        id_prefix: str,
    ):
        self.session = session
        self.store = store
        self.audit_sink = audit_sink
        self.column_mapping = column_mapping
        self.duplicate_policy = duplicate_policy
        self.dry_run = dry_run
        self.id_prefix = id_prefix
        self.tally = _Tally()
        self.entries: list[ImportAuditLogEntry] = []
        self.accepted: list[TestRecord] = []
        self.timings: dict[str, Any] = {}
        self.index = DuplicateIndex()
        self.allocator = TestIdAllocator(prefix=id_prefix)

    def load_snapshot(self) -> None:
        snapshot = list(self.store.snapshot())
        self.index = DuplicateIndex(snapshot)
        self.allocator = TestIdAllocator(snapshot, prefix=self.id_prefix)
        log_event(
            component=_COMPONENT,
            event="duplicate_index_built",
            details={"existing_records": len(snapshot)},
        )

    def _emit(self, sequence: int, started_at: float, **fields: Any) -> ImportAuditLogEntry:
        elapsed = time.perf_counter() - started_at
        entry = ImportAuditLogEntry(
            session_id=self.session.id,
            sequence=sequence,
            processing_time=duration_to_ms(elapsed),
            timestamp=_utcnow(),
            **fields,
        )
        self.audit_sink.append_entry(entry)
        self.entries.append(entry)
        log_row_timing(
            component=_COMPONENT,
            stage="import_row",
            operation=entry.operation,
            status=entry.status,
            duration_s=elapsed,
            sequence=sequence,
            level="WARNING" if entry.status == "failed" else "INFO",
            details={"test_id": entry.test_id},
        )
        return entry

    def process(self, sequence: int, raw_row: RawRow) -> ImportAuditLogEntry:
        started_at = time.perf_counter()
        set_sequence(sequence)
        original = {str(key): str(value) for key, value in raw_row.items()}
        canonical = canonicalize_row(raw_row, self.column_mapping)
        original_test_id = canonical.get("id", "").strip() or None

        result = validate_row(canonical)
        if not result.is_valid:
            self.tally.error += 1
            self.tally.validation_errors.append(format_row_errors(sequence, result.errors))
            return self._emit(
                sequence,
                started_at,
                original_test_id=original_test_id,
                operation="error",
                status="validation_error",
                error_message="Validation failed",
                validation_errors=dict(result.errors),
                original_data=original,
            )

        record = result.record
        if record.id is None:
            record = record.model_copy(
                update={
                    "id": self.allocator.allocate(
                        record.category, record.sub_category, record.cpt_code, taken=self.index
                    )
                }
            )

        check = self.index.check(record)
        if original_test_id is None and check.by_cpt_code:
            # Generated ids embed the CPT code, so the CPT collision is the real one.
            check = replace(check, by_id=False, id_owner=None)
        if check.is_duplicate and self.duplicate_policy == "skip":
            self.tally.duplicate += 1
            return self._emit(
                sequence,
                started_at,
                original_test_id=original_test_id,
                operation="skip",
                status="duplicate",
                error_message=_describe_duplicate(record, check),
                original_data=original,
                processed_data=record.to_row(),
                duplicate_reason=check.primary_reason,
            )

        operation = "insert"
        if check.is_duplicate:
            operation = "update"
            record = record.model_copy(update={"id": check.target_id})

        if not self.dry_run:
            try:
                if operation == "insert":
                    self.store.insert(record)
                else:
                    self.store.update(record)
            except StoreError as err:
                return self._store_failure(sequence, started_at, original_test_id, original, record, err)
            except Exception as err:
                log_event(
                    component=_COMPONENT,
                    event="store_unexpected_error",
                    level="ERROR",
                    details={"error_type": type(err).__name__, "error": str(err)},
                )
                return self._store_failure(sequence, started_at, original_test_id, original, record, err)

        self.tally.success += 1
        if operation == "insert":
            self.tally.inserted += 1
        else:
            self.tally.updated += 1
        self.index.register(record)
        self.accepted.append(record)
        return self._emit(
            sequence,
            started_at,
            test_id=record.id,
            original_test_id=original_test_id,
            operation=operation,
            status="success",
            original_data=original,
            processed_data=record.to_row(),
            duplicate_reason=check.primary_reason,
        )

    def _store_failure(
        self,
        sequence: int,
        started_at: float,
        original_test_id: str | None,
        original: dict[str, str],
        record: TestRecord,
        err: Exception,
    ) -> ImportAuditLogEntry:
        self.tally.error += 1
        log_event(
            component=_COMPONENT,
            event="store_write_failed",
            level="WARNING",
            sequence=sequence,
            details={"error_code": classify_store_error_code(str(err)), "test_id": record.id},
        )
        return self._emit(
            sequence,
            started_at,
            original_test_id=original_test_id,
            operation="error",
            status="failed",
            error_message=str(err) or type(err).__name__,
            original_data=original,
            processed_data=record.to_row(),
        )

    def abort_row(self, sequence: int, raw_row: RawRow, reason: str) -> ImportAuditLogEntry:
        started_at = time.perf_counter()
        set_sequence(sequence)
        self.tally.error += 1
        canonical = canonicalize_row(raw_row, self.column_mapping)
        return self._emit(
            sequence,
            started_at,
            original_test_id=canonical.get("id", "").strip() or None,
            operation="error",
            status="failed",
            error_message=f"Import aborted before row was processed: {reason}",
            original_data={str(key): str(value) for key, value in raw_row.items()},
        )

    def summary_notes(self) -> str:
        tally = self.tally
        prefix = "Dry run: " if self.dry_run else ""
        return (
            f"{prefix}{tally.inserted} inserted, {tally.updated} updated, "
            f"{tally.duplicate} duplicates skipped, {tally.error} errors"
        )


def _check_abort(
    cancel_event: CancelSignal | None,
    deadline: float | None,
) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ImportSessionAborted("cancelled by caller")
    if deadline is not None and time.monotonic() >= deadline:
        raise ImportSessionAborted("session timed out")


def _finalize(
    run: _ImportRun,
    total: int,
    abort_reason: str | None,
    validation_errors: list[str],
) -> ImportSession:
    tally = run.tally
    if abort_reason is not None:
        status: SessionStatus = "failed"
        notes = f"aborted: {abort_reason}"
    else:
        status = derive_session_status(total, tally.success, tally.error)
        notes = run.summary_notes()

    final = run.session.model_copy(
        update={
            "success_count": tally.success,
            "error_count": tally.error,
            "duplicate_count": tally.duplicate,
            "validation_errors": [*validation_errors, *tally.validation_errors],
            "status": status,
            "completed_at": _utcnow(),
            "notes": notes,
        }
    )
    final = run.audit_sink.finalize_session(final)
    run.timings = pop_session_timings(str(final.id))
    log_event(
        component=_COMPONENT,
        event="import_session_finalized",
        level="INFO" if status != "failed" else "WARNING",
        details={
            "status": status,
            "total": total,
            "success": tally.success,
            "errors": tally.error,
            "duplicates": tally.duplicate,
            "timings": run.timings,
        },
    )
    return final


def run_import_session(
    content: str,
    *,
    store: BaseTestStore,
    audit_sink: BaseAuditSink,
    filename: str = "import.csv",
    duplicate_policy: DuplicatePolicy = "skip",
    dry_run: bool = False,
    id_prefix: str = DEFAULT_ID_PREFIX,
    timeout_s: float | None = None,
    cancel_event: CancelSignal | None = None,
) -> ImportSessionResult:
    """
    Import one CSV file into the store, auditing every row.

    Rows are processed strictly in input order. No row-level failure aborts
    the batch; cancellation or timeout marks the rows not yet processed as
    failed and finalizes the session as ``failed``.

    :param content: Raw CSV text with a header row
    :param store: Test store collaborator
    :param audit_sink: Session and audit entry sink
    :param duplicate_policy: ``skip`` (default) or ``update``; never inferred
    :param dry_run: Classify rows without writing to the store
    :param timeout_s: Optional wall-clock budget for the whole session
    :param cancel_event: Optional object whose ``is_set()`` requests cancellation
    :return: Final session, ordered audit entries and accepted records
    """
    if duplicate_policy not in _SUPPORTED_POLICIES:
        supported = ", ".join(_SUPPORTED_POLICIES)
        raise ValueError(
            f"Unsupported duplicate policy '{duplicate_policy}'. Supported values: {supported}."
        )

    deadline = time.monotonic() + timeout_s if timeout_s is not None else None
    rows = parse_csv(content)
    column_mapping = map_columns(read_headers(content))

    session = audit_sink.create_session(
        ImportSession(
            filename=filename,
            file_size=len(content.encode("utf-8")),
            total_tests=len(rows),
            status="running",
            duplicate_policy=duplicate_policy,
            dry_run=dry_run,
            started_at=_utcnow(),
        )
    )
    set_session_id(str(session.id))
    run = _ImportRun(
        session=session,
        store=store,
        audit_sink=audit_sink,
        column_mapping=column_mapping,
        duplicate_policy=duplicate_policy,
        dry_run=dry_run,
        id_prefix=id_prefix,
    )
    log_event(
        component=_COMPONENT,
        event="import_session_started",
        details={
            "filename": filename,
            "rows": len(rows),
            "duplicate_policy": duplicate_policy,
            "dry_run": dry_run,
        },
    )

    header_errors: list[str] = []
    if not rows:
        header_errors.append(EMPTY_FILE_MESSAGE)
    else:
        missing = missing_required_columns(column_mapping)
        if missing:
            header_errors.append(f"Missing required headers: {', '.join(missing)}")

    abort_reason: str | None = None
    try:
        if rows:
            with store.batch():
                run.load_snapshot()
                for sequence, raw_row in enumerate(rows, start=1):
                    if abort_reason is None:
                        try:
                            _check_abort(cancel_event, deadline)
                        except ImportSessionAborted as aborted:
                            abort_reason = aborted.reason
                            log_event(
                                component=_COMPONENT,
                                event="import_session_aborted",
                                level="WARNING",
                                sequence=sequence,
                                details={"reason": abort_reason},
                            )
                    if abort_reason is not None:
                        run.abort_row(sequence, raw_row, abort_reason)
                    else:
                        run.process(sequence, raw_row)
    except Exception as err:
        log_event(
            component=_COMPONENT,
            event="import_session_crashed",
            level="ERROR",
            details={"error_type": type(err).__name__, "error": str(err)},
        )
        try:
            _finalize(run, len(rows), f"unexpected error: {err}", header_errors)
        finally:
            clear_log_context()
        raise

    try:
        final = _finalize(run, len(rows), abort_reason, header_errors)
    finally:
        clear_log_context()
    return ImportSessionResult(
        session=final,
        entries=run.entries,
        records=run.accepted,
        timings=run.timings,
    )
