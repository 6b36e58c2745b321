"""Category tables and test id assignment."""
from __future__ import annotations

import re
from typing import Container, Iterable

from medcatalog.core.schemas import TestRecord

LABORATORY_TESTS = "Laboratory Tests"
IMAGING_STUDIES = "Imaging Studies"
CARDIOVASCULAR_TESTS = "Cardiovascular Tests"
NEUROLOGICAL_TESTS = "Neurological Tests"
PULMONARY_TESTS = "Pulmonary Tests"
GASTROINTESTINAL_TESTS = "Gastrointestinal Tests"
SPECIALTY_TESTS = "Specialty-Specific Tests"
FUNCTIONAL_TESTS = "Functional Tests"

DEFAULT_ID_PREFIX = "TTES"

VALID_SUBCATEGORIES: dict[str, tuple[str, ...]] = {
    LABORATORY_TESTS: (
        "Clinical Chemistry",
        "Hematology",
        "Immunology/Serology",
        "Molecular Diagnostics",
        "Microbiology",
        "Toxicology",
        "Urinalysis",
        "Endocrinology",
        "Genetic Testing",
        "Tumor Markers",
    ),
    IMAGING_STUDIES: (
        "Radiography (X-rays)",
        "Computed Tomography (CT)",
        "Magnetic Resonance Imaging (MRI)",
        "Ultrasound",
        "Nuclear Medicine",
        "Positron Emission Tomography (PET)",
        "Fluoroscopy",
        "Mammography",
        "Bone Densitometry",
    ),
    CARDIOVASCULAR_TESTS: (
        "Electrocardiography",
        "Echocardiography",
        "Stress Testing",
        "Cardiac Catheterization",
        "Electrophysiology Studies",
        "Vascular Studies",
    ),
    NEUROLOGICAL_TESTS: (
        "Electroencephalography (EEG)",
        "Electromyography (EMG)",
        "Nerve Conduction Studies",
        "Evoked Potentials",
        "Sleep Studies",
    ),
    PULMONARY_TESTS: (
        "Pulmonary Function Tests",
        "Bronchoscopy",
        "Arterial Blood Gas Analysis",
    ),
    GASTROINTESTINAL_TESTS: (
        "Endoscopic Procedures",
        "Manometry",
        "Breath Tests",
        "Motility Studies",
    ),
    SPECIALTY_TESTS: (
        "Women's Health/OB-GYN",
        "Ophthalmology",
        "Audiology",
        "Dermatology",
        "Allergology",
    ),
    FUNCTIONAL_TESTS: (
        "Exercise Tests",
        "Swallowing Studies",
        "Balance Testing",
    ),
}

CATEGORY_TAGS: dict[str, str] = {
    LABORATORY_TESTS: "LAB",
    IMAGING_STUDIES: "IMG",
    CARDIOVASCULAR_TESTS: "CAR",
    NEUROLOGICAL_TESTS: "NEU",
    PULMONARY_TESTS: "PUL",
    GASTROINTESTINAL_TESTS: "GAS",
    SPECIALTY_TESTS: "SPE",
    FUNCTIONAL_TESTS: "FUN",
}

_FIRST_WORD_RE = re.compile(r"^(\w+)")
_RUNNING_NUMBER_RE = re.compile(r"^[0-9]{5}$")


def is_valid_category(category: str) -> bool:
    return category in VALID_SUBCATEGORIES


def subcategories_for(category: str) -> tuple[str, ...]:
    """Return the allowed subcategories for a category; empty when unknown."""
    return VALID_SUBCATEGORIES.get(category, ())


def is_valid_subcategory(category: str, sub_category: str) -> bool:
    return sub_category in subcategories_for(category)


def is_imaging(category: str | None) -> bool:
    return category == IMAGING_STUDIES


def category_tag(category: str) -> str:
    """Three-letter tag for a category, falling back to its first letters."""
    tag = CATEGORY_TAGS.get(category)
    if tag:
        return tag
    return _word_tag(category)


def subcategory_tag(sub_category: str) -> str:
    return _word_tag(sub_category)


def _word_tag(value: str) -> str:
    match = _FIRST_WORD_RE.match(value.strip())
    if not match:
        return ""
    return match.group(1)[:3].upper()


class TestIdAllocator:
    """Assigns PREFIX-CAT-SUBCAT-CODE ids for records imported without one.

    CODE is the CPT code when present, otherwise a five-digit running number
    per rendered PREFIX-CAT-SUBCAT stem, so subcategories that share a tag
    share a counter. Counters resume after the highest running number in the
    store and skip taken ids; reruns against the same snapshot allocate the
    same ids.
    """
    __test__ = False

    def __init__(self, existing: Iterable[TestRecord] = (), prefix: str = DEFAULT_ID_PREFIX):
        self.prefix = prefix
        self._taken: set[str] = set()
        self._counters: dict[str, int] = {}
        for record in existing:
            self.reserve(record.id, record.cpt_code)

    def stem(self, category: str, sub_category: str) -> str:
        return f"{self.prefix}-{category_tag(category)}-{subcategory_tag(sub_category)}"

    def reserve(self, test_id: str | None, cpt_code: str | None = None) -> None:
        """Mark an id as used and move its stem counter past a running number."""
        if not test_id:
            return
        self._taken.add(test_id)
        stem, _, code = test_id.rpartition("-")
        if not stem or not _RUNNING_NUMBER_RE.match(code) or code == cpt_code:
            return
        self._counters[stem] = max(self._counters.get(stem, 0), int(code))

    def allocate(
        self,
        category: str,
        sub_category: str,
        cpt_code: str | None,
        taken: Container[str] = (),
    ) -> str:
        stem = self.stem(category, sub_category)
        if cpt_code:
            return f"{stem}-{cpt_code}"
        number = self._counters.get(stem, 0)
        while True:
            number += 1
            test_id = f"{stem}-{number:05d}"
            if test_id not in self._taken and test_id not in taken:
                break
        self._counters[stem] = number
        self._taken.add(test_id)
        return test_id
