"""Standard, legacy and consolidated CSV serializers."""
from __future__ import annotations

from typing import Any, Iterable

from medcatalog.core.schemas import TestRecord

from .cpt_family import consolidate_by_cpt_family, split_cpt_code

ROW_SEPARATOR = "\n"

LEGACY_HEADERS: tuple[str, ...] = (
    "id",
    "name",
    "category",
    "subCategory",
    "cptCode",
    "loincCode",
    "snomedCode",
    "description",
    "notes",
)

CONSOLIDATED_HEADERS: tuple[str, ...] = (
    "baseCptCode",
    "familySize",
    "suffixVariations",
    "testNames",
    "testIds",
    "categories",
    "subCategories",
    "descriptions",
)

_NEEDS_QUOTING = (",", '"', "\n", "\r")


def format_csv_value(value: Any) -> str:
    """Render one field, quoting only when it holds a separator, a quote or a line break."""
    if value is None:
        return ""
    text = str(value)
    if any(marker in text for marker in _NEEDS_QUOTING):
        return '"' + text.replace('"', '""') + '"'
    return text


def _quote_always(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def _render(headers: Iterable[str], rows: Iterable[Iterable[str]]) -> str:
    lines = [",".join(headers)]
    lines.extend(",".join(row) for row in rows)
    return ROW_SEPARATOR.join(lines) + ROW_SEPARATOR


def standard_headers(include_base_cpt_code: bool = True, include_cpt_suffixes: bool = True) -> list[str]:
    headers = ["id", "name", "category", "subCategory", "cptCode"]
    if include_base_cpt_code:
        headers.append("baseCptCode")
    if include_cpt_suffixes:
        headers.append("cptSuffix")
    headers.extend(["loincCode", "snomedCode", "description", "notes"])
    return headers


def generate_standard_csv(
    records: Iterable[TestRecord],
    include_base_cpt_code: bool = True,
    include_cpt_suffixes: bool = True,
) -> str:
    """One row per record with optional base CPT / suffix split columns."""
    headers = standard_headers(include_base_cpt_code, include_cpt_suffixes)
    rows = []
    for record in records:
        values = record.to_row()
        base, suffix = split_cpt_code(record)
        values["baseCptCode"] = base
        values["cptSuffix"] = suffix
        rows.append([format_csv_value(values.get(header)) for header in headers])
    return _render(headers, rows)


def generate_legacy_csv(records: Iterable[TestRecord]) -> str:
    """Column layout consumed by older tools; keep byte-for-byte stable."""
    rows = []
    for record in records:
        values = record.to_row()
        rows.append([format_csv_value(values.get(header)) for header in LEGACY_HEADERS])
    return _render(LEGACY_HEADERS, rows)


def _unique_in_order(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


def generate_consolidated_csv(records: Iterable[TestRecord]) -> str:
    """One row per CPT family with pipe-joined variation columns."""
    rows = []
    for family in consolidate_by_cpt_family(records):
        variations = family.variations
        rows.append(
            [
                format_csv_value(family.base_cpt_code),
                str(family.total_count),
                _quote_always("|".join(v.suffix or "none" for v in variations)),
                _quote_always("|".join(v.test_name for v in variations)),
                _quote_always("|".join(v.test_id or "" for v in variations)),
                _quote_always("|".join(_unique_in_order(v.category for v in variations))),
                _quote_always("|".join(_unique_in_order(v.sub_category for v in variations))),
                _quote_always("|".join(v.description or "" for v in variations)),
            ]
        )
    return _render(CONSOLIDATED_HEADERS, rows)
