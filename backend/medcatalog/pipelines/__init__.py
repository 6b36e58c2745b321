"""Pipeline orchestration for catalog imports."""
from .import_pipeline import (
    ImportSessionAborted,
    derive_session_status,
    run_import_session,
)

__all__ = [
    "ImportSessionAborted",
    "derive_session_status",
    "run_import_session",
]
