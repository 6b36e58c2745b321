"""Shared error code mapping for import, store and export failures."""
from typing import Any, Mapping

IMPORT_ERROR_CODE_EMPTY_FILE = "IMPORT_EMPTY_FILE"
IMPORT_ERROR_CODE_ABORTED = "IMPORT_ABORTED"
IMPORT_ERROR_CODE_NO_ROWS = "IMPORT_NO_ROWS_ACCEPTED"
IMPORT_ERROR_CODE_SESSION_NOT_FOUND = "IMPORT_SESSION_NOT_FOUND"
IMPORT_ERROR_CODE_INVALID_UPLOAD = "IMPORT_INVALID_UPLOAD"
STORE_ERROR_CODE_CONSTRAINT = "STORE_CONSTRAINT_VIOLATION"
STORE_ERROR_CODE_GENERIC = "STORE_WRITE_FAILED"
EXPORT_ERROR_CODE_FORMAT = "EXPORT_FORMAT_UNSUPPORTED"
EXPORT_ERROR_CODE_FHIR_VALIDATION = "FHIR_VALIDATION_FAILED"
EXPORT_ERROR_CODE_GENERIC = "EXPORT_FAILED"

EMPTY_FILE_MESSAGE = "CSV file must contain at least a header row and one data row"


def classify_store_error_code(error_message: str) -> str:
    """Classify a store failure message into a stable error code."""
    lowered = error_message.lower()
    if "constraint" in lowered or "unique" in lowered or "already exists" in lowered:
        return STORE_ERROR_CODE_CONSTRAINT
    return STORE_ERROR_CODE_GENERIC


def build_error_payload(
    code: str,
    message: str,
    details: str | None = None,
) -> dict[str, Any]:
    """Build the standard error payload used in response envelopes."""
    payload: dict[str, Any] = {"code": code, "message": message}
    if details:
        payload["details"] = details
    return payload


def build_session_error_payload(session: Mapping[str, Any]) -> dict[str, Any] | None:
    """Build an error payload for a failed import session summary, if any."""
    if session.get("status") != "failed":
        return None
    validation_errors = list(session.get("validationErrors") or [])
    notes = str(session.get("notes") or "")
    if EMPTY_FILE_MESSAGE in validation_errors:
        return build_error_payload(IMPORT_ERROR_CODE_EMPTY_FILE, EMPTY_FILE_MESSAGE)
    if notes.lower().startswith("aborted"):
        return build_error_payload(IMPORT_ERROR_CODE_ABORTED, "Import session was aborted.", details=notes)
    return build_error_payload(
        IMPORT_ERROR_CODE_NO_ROWS if validation_errors else STORE_ERROR_CODE_GENERIC,
        "No rows were accepted by the import.",
        details="; ".join(validation_errors[:5]) or None,
    )