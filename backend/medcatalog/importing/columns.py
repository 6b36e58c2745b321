"""Header synonym resolution for imported CSV files.

Exports from different tools spell the same column differently
(`cpt_code`, `CPT Code`, `cptcode`). Headers are matched to canonical field
names exactly first, then ignoring case and separators, then by containment.
"""
from __future__ import annotations

import re
from typing import Iterable

from medcatalog.core.types import MutableRawRow, RawRow

CANONICAL_FIELDS: tuple[str, ...] = (
    "id",
    "name",
    "category",
    "subCategory",
    "cptCode",
    "baseCptCode",
    "cptSuffix",
    "loincCode",
    "snomedCode",
    "description",
    "notes",
)
REQUIRED_FIELDS: tuple[str, ...] = ("name", "category", "subCategory")

_SEPARATOR_RE = re.compile(r"[_\s\-]")
_MIN_FUZZY_LENGTH = 3


def _squash(value: str) -> str:
    return _SEPARATOR_RE.sub("", value.lower())


def _fuzzy_match(squashed: str, claimed: set[str]) -> str | None:
    # A header that embeds a field name wins over one that abbreviates it;
    # "testsubcategory" must resolve to subCategory, "cpt" to cptCode.
    unclaimed = [field for field in CANONICAL_FIELDS if field not in claimed]
    embedded = [field for field in unclaimed if _squash(field) in squashed]
    if embedded:
        return max(embedded, key=len)
    abbreviated = [field for field in unclaimed if squashed in _squash(field)]
    if abbreviated:
        return min(abbreviated, key=len)
    return None


def map_columns(headers: Iterable[str]) -> dict[str, str]:
    """Map input header names to canonical field names."""
    header_list = [header for header in headers if header]
    mapping: dict[str, str] = {}
    claimed: set[str] = set()

    for header in header_list:
        if header in CANONICAL_FIELDS and header not in claimed:
            mapping[header] = header
            claimed.add(header)

    for header in header_list:
        if header in mapping:
            continue
        squashed = _squash(header)
        for field in CANONICAL_FIELDS:
            if field not in claimed and _squash(field) == squashed:
                mapping[header] = field
                claimed.add(field)
                break

    for header in header_list:
        if header in mapping:
            continue
        squashed = _squash(header)
        if len(squashed) < _MIN_FUZZY_LENGTH:
            continue
        field = _fuzzy_match(squashed, claimed)
        if field is not None:
            mapping[header] = field
            claimed.add(field)

    return mapping


def missing_required_columns(mapping: dict[str, str]) -> list[str]:
    mapped = set(mapping.values())
    return [field for field in REQUIRED_FIELDS if field not in mapped]


def canonicalize_row(row: RawRow, mapping: dict[str, str]) -> MutableRawRow:
    """Re-key a raw row by canonical field names, dropping unmapped columns."""
    return {
        field: (row.get(header) or "")
        for header, field in mapping.items()
    }
