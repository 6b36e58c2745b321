"""Catalog export formats."""

from .cpt_family import CptFamily, CptVariation, consolidate_by_cpt_family, export_stats, split_cpt_code
from .csv_formats import (
    format_csv_value,
    generate_consolidated_csv,
    generate_legacy_csv,
    generate_standard_csv,
)
from .dispatch import (
    EXPORT_FORMATS,
    UnsupportedExportFormatError,
    export_filename,
    export_records,
    filter_records,
    media_type_for,
)

__all__ = [
    "CptFamily",
    "CptVariation",
    "EXPORT_FORMATS",
    "UnsupportedExportFormatError",
    "consolidate_by_cpt_family",
    "export_filename",
    "export_records",
    "export_stats",
    "filter_records",
    "format_csv_value",
    "generate_consolidated_csv",
    "generate_legacy_csv",
    "generate_standard_csv",
    "media_type_for",
    "split_cpt_code",
]
