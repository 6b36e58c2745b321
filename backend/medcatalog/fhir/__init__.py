"""FHIR R4 export for catalog test records."""

from .mapping import (
    build_fhir_bundle,
    export_fhir_bundle,
    map_records_to_fhir_bundle,
    serialize_bundle,
)
from .validation import has_fatal_issue, validate_fhir_bundle_structure

__all__ = [
    "build_fhir_bundle",
    "export_fhir_bundle",
    "has_fatal_issue",
    "map_records_to_fhir_bundle",
    "serialize_bundle",
    "validate_fhir_bundle_structure",
]
