import asyncio
from contextlib import nullcontext
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from medcatalog.catalog import DEFAULT_ID_PREFIX
from medcatalog.config import get_services
from medcatalog.core import (
    ExportRequest,
    FHIRExportResponse,
    ImportRequest,
    ImportResponse,
    ImportSessionResult,
    StatusResponse,
)
from medcatalog.core.error_mapping import (
    EXPORT_ERROR_CODE_FHIR_VALIDATION,
    EXPORT_ERROR_CODE_FORMAT,
    EXPORT_ERROR_CODE_GENERIC,
    IMPORT_ERROR_CODE_INVALID_UPLOAD,
    IMPORT_ERROR_CODE_SESSION_NOT_FOUND,
    build_error_payload,
    build_session_error_payload,
)
from medcatalog.core.logging_utils import log_event
from medcatalog.export import (
    UnsupportedExportFormatError,
    export_filename,
    export_records,
    export_stats,
    filter_records,
    media_type_for,
)
from medcatalog.fhir import (
    has_fatal_issue,
    map_records_to_fhir_bundle,
    validate_fhir_bundle_structure,
)
from medcatalog.pipelines import run_import_session

router = APIRouter()


def get_catalog_services():
    return get_services()


def _settings(services: dict) -> dict:
    return services.get("settings", {})


def _lock_context(lock: Any):
    if lock is None:
        return nullcontext()
    return lock


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


def _import_envelope(result: ImportSessionResult) -> dict:
    session = _dump(result.session)
    return {
        "success": session["status"] != "failed",
        "data": {
            "session": session,
            "entries": [_dump(entry) for entry in result.entries],
            "records": [_dump(record) for record in result.records],
            "timings": result.timings,
        },
        "error": build_session_error_payload(session),
    }


def _run_import(
    services: dict,
    content: str,
    filename: str,
    duplicate_policy: Optional[str],
    dry_run: bool,
) -> dict:
    settings = _settings(services)
    with _lock_context(services.get("import_lock")):
        result = run_import_session(
            content,
            store=services["store"],
            audit_sink=services["audit_sink"],
            filename=filename,
            duplicate_policy=duplicate_policy or settings.get("duplicate_policy", "skip"),
            dry_run=dry_run,
            id_prefix=settings.get("id_prefix", DEFAULT_ID_PREFIX),
            timeout_s=settings.get("import_timeout_s"),
        )
    return _import_envelope(result)


def _selected_records(request: ExportRequest, services: dict) -> list:
    records = request.records if request.records is not None else services["store"].snapshot()
    return filter_records(records, request.categories, request.subcategories)


@router.get("/", response_model=StatusResponse)
def read_root():
    return {"status": "online", "system": "Medical Test Catalog"}


@router.get("/health", response_model=StatusResponse)
def health():
    return {"status": "ok"}


@router.get("/tests")
def list_tests(
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    services: dict = Depends(get_catalog_services),
):
    records = filter_records(
        services["store"].snapshot(),
        [category] if category else None,
        [sub_category] if sub_category else None,
    )
    return {
        "success": True,
        "data": {
            "tests": [_dump(record) for record in records],
            "stats": export_stats(records),
        },
        "error": None,
    }


@router.post("/import", response_model=ImportResponse)
def import_tests(request: ImportRequest, services: dict = Depends(get_catalog_services)):
    return _run_import(
        services,
        request.content,
        request.filename,
        request.duplicate_policy,
        request.dry_run,
    )


@router.post("/import/upload", response_model=ImportResponse)
async def import_upload(
    file: UploadFile = File(...),
    duplicate_policy: Optional[str] = Form(None),
    dry_run: bool = Form(False),
    services: dict = Depends(get_catalog_services),
):
    raw = await file.read()
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError as err:
        return {
            "success": False,
            "data": {},
            "error": build_error_payload(
                IMPORT_ERROR_CODE_INVALID_UPLOAD,
                "Uploaded file is not valid UTF-8 text.",
                details=str(err),
            ),
        }
    if duplicate_policy is not None and duplicate_policy not in ("skip", "update"):
        return {
            "success": False,
            "data": {},
            "error": build_error_payload(
                IMPORT_ERROR_CODE_INVALID_UPLOAD,
                f"Unsupported duplicate policy '{duplicate_policy}'.",
            ),
        }
    return await asyncio.to_thread(
        _run_import,
        services,
        content,
        file.filename or "import.csv",
        duplicate_policy,
        dry_run,
    )


@router.get("/import-sessions")
def list_import_sessions(services: dict = Depends(get_catalog_services)):
    sessions = services["audit_sink"].list_sessions()
    return {
        "success": True,
        "data": {"sessions": [_dump(session) for session in sessions]},
        "error": None,
    }


@router.get("/import-sessions/{session_id}")
def get_import_session(session_id: int, services: dict = Depends(get_catalog_services)):
    audit_sink = services["audit_sink"]
    session = audit_sink.get_session(session_id)
    if session is None:
        return {
            "success": False,
            "data": {},
            "error": build_error_payload(
                IMPORT_ERROR_CODE_SESSION_NOT_FOUND,
                f"Import session {session_id} does not exist.",
            ),
        }
    return {
        "success": True,
        "data": {
            "session": _dump(session),
            "entries": [_dump(entry) for entry in audit_sink.entries_for(session_id)],
        },
        "error": None,
    }


@router.post("/export")
def export_catalog(request: ExportRequest, services: dict = Depends(get_catalog_services)):
    records = _selected_records(request, services)
    pretty = request.pretty if request.pretty is not None else _settings(services).get("export_pretty", True)
    try:
        body = export_records(
            records,
            request.format,
            include_base_cpt_code=request.include_base_cpt_code,
            include_cpt_suffixes=request.include_cpt_suffixes,
            use_dual_resource_export=request.use_dual_resource_export,
            pretty=pretty,
        )
    except UnsupportedExportFormatError as err:
        return Response(
            content=str(err),
            status_code=400,
            media_type="text/plain",
            headers={"X-Error-Code": EXPORT_ERROR_CODE_FORMAT},
        )
    log_event(
        component="export",
        event="export_generated",
        details={"format": request.format, "records": len(records)},
    )
    return Response(
        content=body,
        media_type=media_type_for(request.format),
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename(request.format)}"',
        },
    )


@router.post("/export/fhir", response_model=FHIRExportResponse)
def export_catalog_fhir(request: ExportRequest, services: dict = Depends(get_catalog_services)):
    records = _selected_records(request, services)
    try:
        bundle, warnings = map_records_to_fhir_bundle(
            records,
            use_dual_resource_export=request.use_dual_resource_export,
        )
    except Exception as err:
        log_event(
            component="export",
            event="fhir_export_failed",
            level="ERROR",
            details={"error_type": type(err).__name__, "error": str(err)},
        )
        return {
            "success": False,
            "data": {},
            "error": build_error_payload(
                EXPORT_ERROR_CODE_GENERIC,
                "Unexpected failure during FHIR export.",
                details=str(err),
            ),
        }

    validation_issues = validate_fhir_bundle_structure(bundle)
    if has_fatal_issue(validation_issues):
        return {
            "success": False,
            "data": {
                "bundle": bundle,
                "warnings": validation_issues,
            },
            "error": build_error_payload(
                EXPORT_ERROR_CODE_FHIR_VALIDATION,
                "Generated bundle failed FHIR structural validation.",
            ),
        }

    return {
        "success": True,
        "data": {
            "bundle": bundle,
            "warnings": [*warnings, *validation_issues],
        },
        "error": None,
    }
