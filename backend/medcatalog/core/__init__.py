"""Core data model, shared types and logging for the catalog."""
from .types import (
    AuditOperation,
    AuditStatus,
    DuplicatePolicy,
    DuplicateReason,
    ExportFormat,
    RawRow,
    SessionStatus,
)
from .schemas import (
    TestRecord,
    ImportSession,
    ImportAuditLogEntry,
    ImportSessionResult,
    ImportRequest,
    ExportRequest,
    ImportResponse,
    FHIRExportResponse,
    StatusResponse,
)

__all__ = [
    # Types
    "AuditOperation",
    "AuditStatus",
    "DuplicatePolicy",
    "DuplicateReason",
    "ExportFormat",
    "RawRow",
    "SessionStatus",
    # Schemas
    "TestRecord",
    "ImportSession",
    "ImportAuditLogEntry",
    "ImportSessionResult",
    "ImportRequest",
    "ExportRequest",
    "ImportResponse",
    "FHIRExportResponse",
    "StatusResponse",
]
