"""Common type definitions for the catalog import/export core."""
from typing import Dict, Literal, Mapping

# Raw rows stay loosely typed until validation succeeds; header names vary by export.
RawRow = Mapping[str, str]
MutableRawRow = Dict[str, str]

DuplicatePolicy = Literal["skip", "update"]
AuditOperation = Literal["insert", "update", "skip", "error"]
AuditStatus = Literal["success", "failed", "duplicate", "validation_error"]
DuplicateReason = Literal["id_exists", "cpt_code_exists"]
SessionStatus = Literal["created", "running", "completed", "failed", "partial"]
ExportFormat = Literal["standard", "legacy", "consolidated", "fhir"]
