"""CPT family grouping for consolidated exports."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from medcatalog.core.schemas import TestRecord


@dataclass(frozen=True)
class CptVariation:
    suffix: str | None
    test_name: str
    test_id: str | None
    category: str
    sub_category: str
    loinc_code: str | None
    snomed_code: str | None
    description: str | None


@dataclass
class CptFamily:
    """Records sharing one base CPT code, unsuffixed variation first."""

    base_cpt_code: str
    variations: list[CptVariation] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.variations)


def split_cpt_code(record: TestRecord) -> tuple[str | None, str | None]:
    """Return (base code, suffix) for a record.

    Explicit base/suffix fields win. Otherwise ``70100-26`` splits on the
    hyphen and a plain code is its own base with no suffix.
    """
    if record.base_cpt_code:
        return record.base_cpt_code, record.cpt_suffix or None
    if not record.cpt_code:
        return None, None
    base, separator, suffix = record.cpt_code.partition("-")
    if separator and suffix:
        return base, suffix
    return record.cpt_code, record.cpt_suffix or None


def _variation_sort_key(variation: CptVariation) -> tuple[int, str]:
    if variation.suffix is None:
        return (0, "")
    return (1, variation.suffix)


def consolidate_by_cpt_family(records: Iterable[TestRecord]) -> list[CptFamily]:
    """Group records by base CPT code; records without one are left out."""
    families: dict[str, CptFamily] = {}
    for record in records:
        base, suffix = split_cpt_code(record)
        if not base:
            continue
        family = families.setdefault(base, CptFamily(base_cpt_code=base))
        family.variations.append(
            CptVariation(
                suffix=suffix,
                test_name=record.name,
                test_id=record.id,
                category=record.category,
                sub_category=record.sub_category,
                loinc_code=record.loinc_code,
                snomed_code=record.snomed_code,
                description=record.description,
            )
        )

    consolidated = []
    for base in sorted(families):
        family = families[base]
        family.variations.sort(key=_variation_sort_key)
        consolidated.append(family)
    return consolidated


def export_stats(records: Iterable[TestRecord]) -> dict[str, int]:
    """Preview counts shown before an export runs."""
    record_list = list(records)
    bases = set()
    with_suffix = 0
    for record in record_list:
        base, suffix = split_cpt_code(record)
        if base:
            bases.add(base)
        if suffix:
            with_suffix += 1
    return {
        "totalTests": len(record_list),
        "uniqueBaseCptCodes": len(bases),
        "testsWithSuffixes": with_suffix,
        "cptFamilies": len(consolidate_by_cpt_family(record_list)),
    }
