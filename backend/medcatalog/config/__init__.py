"""Configuration module for the catalog backend."""
from .settings import (
    get_audit_sink,
    get_services,
    get_store,
    reset_services,
)

__all__ = [
    "get_audit_sink",
    "get_services",
    "get_store",
    "reset_services",
]
