"""Field-level validation of raw import rows."""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from medcatalog.catalog.categories import is_valid_category, is_valid_subcategory
from medcatalog.core.schemas import TestRecord
from medcatalog.core.types import RawRow

CPT_CODE_RE = re.compile(r"^[0-9]{5}$")
LOINC_CODE_RE = re.compile(r"^[0-9]+-[0-9]+$")
SNOMED_CODE_RE = re.compile(r"^[0-9]+$")

_OPTIONAL_FIELDS = {
    "id": "id",
    "cptCode": "cpt_code",
    "loincCode": "loinc_code",
    "snomedCode": "snomed_code",
    "description": "description",
    "notes": "notes",
    "baseCptCode": "base_cpt_code",
    "cptSuffix": "cpt_suffix",
}


@dataclass(frozen=True)
class ValidationResult:
    """Either a normalized record or the complete field -> message error map."""

    record: TestRecord | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.record is not None and not self.errors


def _text(row: RawRow, key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    return str(value).strip()


def collect_errors(row: RawRow) -> dict[str, str]:
    """Return every rule violation for a row; empty when the row is valid."""
    errors: dict[str, str] = {}
    name = _text(row, "name")
    category = _text(row, "category")
    sub_category = _text(row, "subCategory")
    cpt_code = _text(row, "cptCode")
    loinc_code = _text(row, "loincCode")
    snomed_code = _text(row, "snomedCode")

    if not name:
        errors["name"] = "Test name is required"
    if not category:
        errors["category"] = "Category is required"
    elif not is_valid_category(category):
        errors["category"] = f"Category '{category}' is not recognized"
    if not sub_category:
        errors["subCategory"] = "Subcategory is required"
    elif category and not is_valid_subcategory(category, sub_category):
        errors["subCategory"] = (
            f"Subcategory '{sub_category}' is not valid for category '{category}'"
        )
    if cpt_code and not CPT_CODE_RE.match(cpt_code):
        errors["cptCode"] = "CPT code must be 5 digits"
    if loinc_code and not LOINC_CODE_RE.match(loinc_code):
        errors["loincCode"] = "LOINC code must be in format XXXXX-X"
    if snomed_code and not SNOMED_CODE_RE.match(snomed_code):
        errors["snomedCode"] = "SNOMED code must be numeric"
    return errors


def validate_row(row: RawRow) -> ValidationResult:
    """Validate a canonical-keyed row and normalize it into a TestRecord.

    All rules run; nothing short-circuits. Blank optional fields become None.
    """
    errors = collect_errors(row)
    if errors:
        return ValidationResult(errors=errors)

    optional = {
        attribute: (_text(row, key) or None)
        for key, attribute in _OPTIONAL_FIELDS.items()
    }
    record = TestRecord(
        name=_text(row, "name"),
        category=_text(row, "category"),
        sub_category=_text(row, "subCategory"),
        **optional,
    )
    return ValidationResult(record=record)


def format_row_errors(sequence: int, errors: dict[str, str]) -> str:
    """Session-level summary line for one rejected row."""
    return f"Row {sequence}: {', '.join(errors.values())}"
