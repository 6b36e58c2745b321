"""Export entry point: record filtering and format dispatch."""
from __future__ import annotations

from typing import Iterable, Sequence

from medcatalog.core.schemas import TestRecord
from medcatalog.fhir.mapping import export_fhir_bundle

from .csv_formats import generate_consolidated_csv, generate_legacy_csv, generate_standard_csv

EXPORT_FORMATS: tuple[str, ...] = ("standard", "legacy", "consolidated", "fhir")

_MEDIA_TYPES = {
    "standard": "text/csv",
    "legacy": "text/csv",
    "consolidated": "text/csv",
    "fhir": "application/fhir+json",
}

_FILE_SUFFIXES = {
    "standard": "csv",
    "legacy": "csv",
    "consolidated": "csv",
    "fhir": "json",
}


class UnsupportedExportFormatError(ValueError):
    def __init__(self, fmt: str):
        super().__init__(
            f"Unsupported export format '{fmt}'. Expected one of: {', '.join(EXPORT_FORMATS)}."
        )
        self.format = fmt


def _require_format(fmt: str) -> str:
    normalized = (fmt or "").strip().lower()
    if normalized not in EXPORT_FORMATS:
        raise UnsupportedExportFormatError(fmt)
    return normalized


def media_type_for(fmt: str) -> str:
    return _MEDIA_TYPES[_require_format(fmt)]


def export_filename(fmt: str, stem: str = "test-catalog") -> str:
    normalized = _require_format(fmt)
    suffix = "" if normalized == "standard" else f"-{normalized}"
    return f"{stem}{suffix}.{_FILE_SUFFIXES[normalized]}"


def filter_records(
    records: Iterable[TestRecord],
    categories: Sequence[str] | None = None,
    subcategories: Sequence[str] | None = None,
) -> list[TestRecord]:
    """Keep records whose category and subcategory are selected.

    An empty or missing selection does not filter on that field.
    """
    wanted_categories = set(categories or ())
    wanted_subcategories = set(subcategories or ())
    selected = []
    for record in records:
        if wanted_categories and record.category not in wanted_categories:
            continue
        if wanted_subcategories and record.sub_category not in wanted_subcategories:
            continue
        selected.append(record)
    return selected


def export_records(
    records: Iterable[TestRecord],
    fmt: str = "standard",
    *,
    include_base_cpt_code: bool = True,
    include_cpt_suffixes: bool = True,
    use_dual_resource_export: bool = True,
    pretty: bool = True,
) -> str:
    """Serialize records in one of the supported export formats."""
    normalized = _require_format(fmt)
    record_list = list(records)
    if normalized == "standard":
        return generate_standard_csv(
            record_list,
            include_base_cpt_code=include_base_cpt_code,
            include_cpt_suffixes=include_cpt_suffixes,
        )
    if normalized == "legacy":
        return generate_legacy_csv(record_list)
    if normalized == "consolidated":
        return generate_consolidated_csv(record_list)
    return export_fhir_bundle(
        record_list,
        use_dual_resource_export=use_dual_resource_export,
        pretty=pretty,
    )
