"""Data model and API schemas for the test catalog."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from medcatalog.core.types import (
    AuditOperation,
    AuditStatus,
    DuplicatePolicy,
    DuplicateReason,
    ExportFormat,
    SessionStatus,
)


_CAMEL_FROZEN = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ============= Domain Models =============

class TestRecord(BaseModel):
    """A catalog entry for one medical test.

    Field names serialize in camelCase so exported rows line up with the
    CSV headers the importer expects.
    """
    __test__ = False  # keep pytest from collecting this as a test class

    id: Optional[str] = Field(
        default=None,
        description="PREFIX-CAT-SUBCAT-CODE identifier, assigned on import when absent",
    )
    name: str = Field(..., description="Test name")
    category: str = Field(..., description="Top-level category")
    sub_category: str = Field(..., description="Subcategory valid for the category")
    cpt_code: Optional[str] = None
    loinc_code: Optional[str] = None
    snomed_code: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    base_cpt_code: Optional[str] = Field(
        default=None,
        description="Base code of the CPT family; derived from cpt_code when unset",
    )
    cpt_suffix: Optional[str] = Field(
        default=None,
        description="Variant suffix within the CPT family",
    )
    model_config = _CAMEL_FROZEN

    def to_row(self) -> Dict[str, Any]:
        """Return a camelCase mapping of every field, None included."""
        return self.model_dump(by_alias=True)


class ImportSession(BaseModel):
    """One run of the import pipeline over one file."""

    id: Optional[int] = None
    filename: str
    file_size: int = 0
    total_tests: int = 0
    success_count: int = 0
    error_count: int = 0
    duplicate_count: int = 0
    validation_errors: List[str] = Field(default_factory=list)
    status: SessionStatus = "created"
    duplicate_policy: DuplicatePolicy = "skip"
    dry_run: bool = False
    started_at: datetime
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    model_config = _CAMEL_FROZEN


class ImportAuditLogEntry(BaseModel):
    """Append-only record of the decision made for one input row."""

    session_id: Optional[int] = None
    sequence: int = Field(..., description="1-based position of the row in the input")
    test_id: Optional[str] = None
    original_test_id: Optional[str] = None
    operation: AuditOperation
    status: AuditStatus
    error_message: Optional[str] = None
    validation_errors: Optional[Dict[str, str]] = None
    original_data: Dict[str, str] = Field(default_factory=dict)
    processed_data: Optional[Dict[str, Any]] = None
    duplicate_reason: Optional[DuplicateReason] = None
    processing_time: float = Field(0.0, description="Row processing time in milliseconds")
    timestamp: datetime
    model_config = _CAMEL_FROZEN


class ImportSessionResult(BaseModel):
    """Complete outcome of an import: final session, audit trail and accepted records."""

    session: ImportSession
    entries: List[ImportAuditLogEntry] = Field(default_factory=list)
    records: List[TestRecord] = Field(default_factory=list)
    timings: Dict[str, Any] = Field(
        default_factory=dict,
        description="Row processing times per stage and operation, in milliseconds",
    )
    model_config = _CAMEL_FROZEN


# ============= Request Schemas =============

class ImportRequest(BaseModel):
    """Request schema for /import."""

    filename: str = Field(default="import.csv", description="Name of the uploaded file")
    content: str = Field(..., description="Raw CSV text including the header row")
    duplicate_policy: Optional[DuplicatePolicy] = Field(
        default=None,
        description="Override for the configured duplicate policy",
    )
    dry_run: bool = Field(
        default=False,
        description="Classify rows without writing to the store",
    )
    model_config = ConfigDict(extra="forbid")


class ExportRequest(BaseModel):
    """Request schema for /export and /export/fhir."""

    format: ExportFormat = Field(default="standard", description="Output shape")
    records: Optional[List[TestRecord]] = Field(
        default=None,
        description="Records to export; the whole store when omitted",
    )
    categories: List[str] = Field(default_factory=list)
    subcategories: List[str] = Field(default_factory=list)
    include_base_cpt_code: bool = True
    include_cpt_suffixes: bool = True
    use_dual_resource_export: bool = True
    pretty: Optional[bool] = Field(
        default=None,
        description="Pretty-print JSON output; falls back to configuration",
    )
    model_config = ConfigDict(extra="forbid")


# ============= Response Schemas =============

class ImportResponse(BaseModel):
    """Envelope response from /import endpoints."""

    success: bool = Field(..., description="Whether at least the session was recorded")
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra="forbid")


class FHIRExportResponse(BaseModel):
    """Envelope response from /export/fhir."""

    success: bool = Field(..., description="Whether FHIR export succeeded")
    data: Dict[str, Any] = Field(
        default_factory=dict,
        description="FHIR export payload with bundle and warnings",
    )
    error: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(extra="forbid")


class StatusResponse(BaseModel):
    """Generic status response for health check endpoints."""
    status: str = Field(..., description="Service status")
    system: Optional[str] = Field(None, description="System identifier")
