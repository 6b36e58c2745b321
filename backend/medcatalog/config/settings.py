"""Configuration and service factory for the catalog backend."""
import os
import threading
from typing import Any, Dict, Optional

from ..catalog.categories import DEFAULT_ID_PREFIX
from ..core.logging_utils import log_event
from ..store import BaseAuditSink, BaseTestStore, InMemoryAuditSink, InMemoryTestStore


# Singleton service instances
_services: Dict[str, Any] = None
_SUPPORTED_DUPLICATE_POLICIES = ("skip", "update")
_SUPPORTED_STORE_BACKENDS = ("memory",)
_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _normalize_choice(env_name: str, supported: tuple[str, ...], default: str) -> str:
    raw = os.environ.get(env_name, default).strip().lower()
    if raw in supported:
        return raw
    supported_values = ", ".join(supported)
    raise ValueError(
        f"Unsupported {env_name} value '{raw}'. Supported values: {supported_values}."
    )


def _normalize_flag(env_name: str, default: bool) -> bool:
    raw = os.environ.get(env_name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"Unsupported {env_name} value '{raw}'. Expected a boolean.")


def resolve_duplicate_policy() -> str:
    return _normalize_choice("MEDCATALOG_DUPLICATE_POLICY", _SUPPORTED_DUPLICATE_POLICIES, "skip")


def resolve_id_prefix() -> str:
    prefix = os.environ.get("MEDCATALOG_ID_PREFIX", "").strip().upper()
    return prefix or DEFAULT_ID_PREFIX


def resolve_export_pretty() -> bool:
    return _normalize_flag("MEDCATALOG_EXPORT_PRETTY", True)


def resolve_import_timeout() -> Optional[float]:
    raw = os.environ.get("MEDCATALOG_IMPORT_TIMEOUT_S", "").strip()
    if not raw:
        return None
    try:
        timeout = float(raw)
    except ValueError:
        raise ValueError(
            f"Unsupported MEDCATALOG_IMPORT_TIMEOUT_S value '{raw}'. Expected a positive number."
        ) from None
    if timeout <= 0:
        raise ValueError(
            f"Unsupported MEDCATALOG_IMPORT_TIMEOUT_S value '{raw}'. Expected a positive number."
        )
    return timeout


def _build_store(backend_name: str) -> BaseTestStore:
    if backend_name == "memory":
        return InMemoryTestStore()
    raise ValueError(f"Unsupported store backend: {backend_name}")


def _build_audit_sink(backend_name: str) -> BaseAuditSink:
    if backend_name == "memory":
        return InMemoryAuditSink()
    raise ValueError(f"Unsupported audit backend: {backend_name}")


def get_services() -> Dict[str, Any]:
    """
    Factory function to get or initialize service instances.

    Returns a dictionary with:
        - 'store': test catalog store
        - 'audit_sink': import session and audit log sink
        - 'import_lock': serializes import sessions against the store
        - 'settings': resolved environment settings
    """
    global _services
    if _services is None:
        backend = _normalize_choice("MEDCATALOG_STORE_BACKEND", _SUPPORTED_STORE_BACKENDS, "memory")
        settings = {
            "duplicate_policy": resolve_duplicate_policy(),
            "id_prefix": resolve_id_prefix(),
            "export_pretty": resolve_export_pretty(),
            "import_timeout_s": resolve_import_timeout(),
        }
        log_event(
            component="config",
            event="services_initialized",
            details={"store_backend": backend, **settings},
        )
        _services = {
            "store": _build_store(backend),
            "audit_sink": _build_audit_sink(backend),
            "import_lock": threading.RLock(),
            "settings": settings,
        }
    return _services


def reset_services() -> None:
    """Drop the cached services so the next call rebuilds them from the environment."""
    global _services
    _services = None


def get_store() -> BaseTestStore:
    """Get the catalog store instance."""
    return get_services()["store"]


def get_audit_sink() -> BaseAuditSink:
    """Get the audit sink instance."""
    return get_services()["audit_sink"]
