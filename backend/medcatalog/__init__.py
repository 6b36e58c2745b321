"""
Medical Test Catalog data-movement package.

This package imports, validates and exports a catalog of medical tests:
- CSV parsing with header synonym resolution
- Per-row validation, duplicate detection and audited import sessions
- Standard, legacy and CPT-family consolidated CSV exports
- FHIR R4 bundle export with paired ServiceRequest/ImagingStudy resources

Main entry points:
    run_import_session: audited CSV import against a store
    export_records: serialize records in any supported export format

Core components:
    - core: data model, shared types, structured logging, error codes
    - importing: parser, column mapping, validator, duplicate index
    - pipelines: import session orchestration
    - export: CSV generators and CPT family grouping
    - fhir: code-system mapping, bundle builder, structural validation
    - store: store and audit sink collaborators
    - config: environment settings and service factory
"""

# Main pipeline (primary public API)
from .pipelines import ImportSessionAborted, run_import_session

# Data model
from .core import (
    TestRecord,
    ImportSession,
    ImportAuditLogEntry,
    ImportSessionResult,
)

# Export
from .export import UnsupportedExportFormatError, export_records, filter_records
from .fhir import build_fhir_bundle, validate_fhir_bundle_structure

# Configuration (for service initialization)
from .config import get_services

__all__ = [
    # Main pipeline
    "run_import_session",
    "ImportSessionAborted",
    # Data model
    "TestRecord",
    "ImportSession",
    "ImportAuditLogEntry",
    "ImportSessionResult",
    # Export
    "export_records",
    "filter_records",
    "UnsupportedExportFormatError",
    "build_fhir_bundle",
    "validate_fhir_bundle_structure",
    # Config
    "get_services",
]

__version__ = "1.0.0"
