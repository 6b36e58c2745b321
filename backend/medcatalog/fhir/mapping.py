"""Deterministic mapping from catalog test records to a FHIR R4 bundle."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

from medcatalog.catalog.categories import is_imaging
from medcatalog.core.schemas import TestRecord

from .coding import (
    extract_body_site,
    service_category,
    to_modality,
    to_service_request_coding,
)

STUDY_ID_SUFFIX = "-study"


@dataclass(frozen=True)
class _ResourceRef:
    reference: str
    resource: dict[str, Any]


def _normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def study_id_for(service_request_id: str) -> str:
    return f"{service_request_id}{STUDY_ID_SUFFIX}"


def _series_uid(study_id: str) -> str:
    # DICOM UIDs derived from a UUID live under the 2.25 root.
    return f"2.25.{uuid.uuid5(uuid.NAMESPACE_URL, f'imaging-study/{study_id}').int}"


def _resource_id(record: TestRecord, position: int) -> str:
    return _normalize_text(record.id) or f"test-{position}"


def _build_service_request(
    record: TestRecord,
    resource_id: str,
    paired_study_id: str | None,
    warnings: list[str],
) -> _ResourceRef:
    imaging = is_imaging(record.category)
    codings = [coding.as_fhir() for coding in to_service_request_coding(record)]
    if not codings:
        warnings.append(
            f"Test '{resource_id}' has no CPT, LOINC or SNOMED code; ServiceRequest.code carries text only."
        )

    service_request: dict[str, Any] = {
        "resourceType": "ServiceRequest",
        "id": resource_id,
        "status": "completed" if imaging else "active",
        "intent": "original-order",
        "category": [
            {"coding": [service_category(record.category).as_fhir()]},
        ],
        "code": {
            "coding": codings,
            "text": record.name,
        },
    }
    sub_category = _normalize_text(record.sub_category)
    if sub_category:
        service_request["category"].append({"text": sub_category})

    notes = [
        {"text": text}
        for text in (_normalize_text(record.description), _normalize_text(record.notes))
        if text
    ]
    if notes:
        service_request["note"] = notes

    if paired_study_id is not None:
        service_request["supportingInfo"] = [{"reference": f"ImagingStudy/{paired_study_id}"}]

    return _ResourceRef(
        reference=f"ServiceRequest/{resource_id}",
        resource=service_request,
    )


def _build_imaging_study(
    record: TestRecord,
    study_id: str,
    service_request_ref: _ResourceRef,
    warnings: list[str],
) -> _ResourceRef:
    modality = to_modality(record.sub_category).as_fhir()
    procedure_coding = service_request_ref.resource["code"]["coding"]

    series: dict[str, Any] = {
        "uid": _series_uid(study_id),
        "number": 1,
        "modality": modality,
        "description": record.name,
    }
    body_site = extract_body_site(record.name)
    if body_site is not None:
        series["bodySite"] = body_site.as_fhir()
    else:
        warnings.append(f"No body site inferred for '{record.name}'; ImagingStudy series has no bodySite.")

    imaging_study = {
        "resourceType": "ImagingStudy",
        "id": study_id,
        "status": "available",
        "modality": [modality],
        "basedOn": [{"reference": service_request_ref.reference}],
        "procedureCode": [
            {
                "coding": [dict(coding) for coding in procedure_coding],
                "text": record.name,
            }
        ],
        "description": record.name,
        "numberOfSeries": 1,
        "series": [series],
    }

    return _ResourceRef(
        reference=f"ImagingStudy/{study_id}",
        resource=imaging_study,
    )


def map_records_to_fhir_bundle(
    records: Iterable[TestRecord],
    use_dual_resource_export: bool = True,
) -> tuple[dict[str, Any], list[str]]:
    """Map test records to a FHIR collection Bundle.

    With ``use_dual_resource_export`` each imaging record yields a
    ServiceRequest plus a paired ImagingStudy that point at each other.
    Without it the bundle holds ServiceRequests only.
    """
    warnings: list[str] = []
    entries: list[dict[str, Any]] = []

    for position, record in enumerate(records, start=1):
        resource_id = _resource_id(record, position)
        paired = use_dual_resource_export and is_imaging(record.category)
        study_id = study_id_for(resource_id) if paired else None

        service_request = _build_service_request(record, resource_id, study_id, warnings)
        entries.append({"resource": service_request.resource})
        if study_id is not None:
            study = _build_imaging_study(record, study_id, service_request, warnings)
            entries.append({"resource": study.resource})

    bundle = {
        "resourceType": "Bundle",
        "type": "collection",
        "entry": entries,
    }
    return bundle, warnings


def build_fhir_bundle(
    records: Iterable[TestRecord],
    use_dual_resource_export: bool = True,
) -> dict[str, Any]:
    bundle, _warnings = map_records_to_fhir_bundle(records, use_dual_resource_export)
    return bundle


def serialize_bundle(bundle: dict[str, Any], pretty: bool = True) -> str:
    if pretty:
        return json.dumps(bundle, indent=2, ensure_ascii=False)
    return json.dumps(bundle, separators=(",", ":"), ensure_ascii=False)


def export_fhir_bundle(
    records: Iterable[TestRecord],
    use_dual_resource_export: bool = True,
    pretty: bool = True,
) -> str:
    """Serialized FHIR Bundle for a record set."""
    return serialize_bundle(build_fhir_bundle(records, use_dual_resource_export), pretty=pretty)
