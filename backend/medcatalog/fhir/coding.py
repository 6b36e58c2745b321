"""Code-system mapping for FHIR export: codings, DICOM modality, body site."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from medcatalog.catalog.categories import LABORATORY_TESTS
from medcatalog.core.schemas import TestRecord

CPT_SYSTEM = "http://www.ama-assn.org/go/cpt"
LOINC_SYSTEM = "http://loinc.org"
SNOMED_SYSTEM = "http://snomed.info/sct"
DICOM_SYSTEM = "http://dicom.nema.org/resources/ontology/DCM"
SERVICE_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/service-category"


@dataclass(frozen=True)
class Coding:
    system: str
    code: str
    display: str

    def as_fhir(self) -> dict[str, Any]:
        return {"system": self.system, "code": self.code, "display": self.display}


# Keys cover both the catalog's subcategory labels and their short forms.
MODALITY_BY_SUBCATEGORY: dict[str, tuple[str, str]] = {
    "Magnetic Resonance Imaging (MRI)": ("MR", "Magnetic Resonance"),
    "Magnetic Resonance Imaging": ("MR", "Magnetic Resonance"),
    "Computed Tomography (CT)": ("CT", "Computed Tomography"),
    "Computed Tomography": ("CT", "Computed Tomography"),
    "Ultrasound": ("US", "Ultrasound"),
    "Radiography (X-rays)": ("DX", "Digital Radiography"),
    "X-ray": ("DX", "Digital Radiography"),
    "Radiography": ("DX", "Digital Radiography"),
    "Nuclear Medicine": ("NM", "Nuclear Medicine"),
    "Positron Emission Tomography (PET)": ("PT", "Positron emission tomography (PET)"),
    "Positron Emission Tomography": ("PT", "Positron emission tomography (PET)"),
    "Fluoroscopy": ("RF", "Radio Fluoroscopy"),
    "Mammography": ("MG", "Mammography"),
    "Bone Densitometry": ("BMD", "Bone Mineral Densitometry"),
    "Angiography": ("XA", "X-Ray Angiography"),
}
OTHER_MODALITY = ("OT", "Other")

# Ordered; the first keyword found in the lower-cased test name wins.
BODY_SITE_KEYWORDS: tuple[tuple[tuple[str, ...], str, str], ...] = (
    (("chest", "thoracic"), "51185008", "Thoracic structure"),
    (("lumbar",), "122496007", "Lumbar spine structure"),
    (("cervical",), "122494005", "Cervical spine structure"),
    (("spine", "spinal"), "421060004", "Spinal structure"),
    (("abdomen", "abdominal"), "113345001", "Abdominal structure"),
    (("pelvis", "pelvic"), "12921003", "Pelvis structure"),
    (("brain",), "12738006", "Brain structure"),
    (("head", "skull"), "69536005", "Head structure"),
    (("neck",), "45048000", "Neck structure"),
    (("breast", "mammo"), "76752008", "Breast structure"),
    (("heart", "cardiac", "coronary"), "80891009", "Heart structure"),
    (("kidney", "renal"), "64033007", "Kidney structure"),
    (("liver", "hepatic"), "10200004", "Liver structure"),
    (("knee",), "72696002", "Knee region structure"),
    (("shoulder",), "16982005", "Shoulder region structure"),
    (("hip",), "29836001", "Hip region structure"),
    (("ankle",), "70258002", "Ankle joint structure"),
    (("wrist",), "74670003", "Wrist joint structure"),
)


def to_service_request_coding(record: TestRecord) -> list[Coding]:
    """CPT, then LOINC, then SNOMED; each only when the record carries it."""
    codings: list[Coding] = []
    if record.cpt_code:
        codings.append(Coding(CPT_SYSTEM, record.cpt_code, record.name))
    if record.loinc_code:
        codings.append(Coding(LOINC_SYSTEM, record.loinc_code, record.name))
    if record.snomed_code:
        codings.append(Coding(SNOMED_SYSTEM, record.snomed_code, record.name))
    return codings


def to_modality(sub_category: str | None) -> Coding:
    """DICOM modality for an imaging subcategory; unmapped ones are OT/Other."""
    code, display = MODALITY_BY_SUBCATEGORY.get((sub_category or "").strip(), OTHER_MODALITY)
    return Coding(DICOM_SYSTEM, code, display)


def extract_body_site(test_name: str | None) -> Coding | None:
    """Best-effort SNOMED body site from keywords in the test name."""
    lowered = (test_name or "").lower()
    if not lowered:
        return None
    for keywords, code, display in BODY_SITE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return Coding(SNOMED_SYSTEM, code, display)
    return None


def service_category(category: str) -> Coding:
    """Service-category coding: LAB for laboratory tests, RAD for everything else."""
    code = "LAB" if category == LABORATORY_TESTS else "RAD"
    return Coding(SERVICE_CATEGORY_SYSTEM, code, category)
