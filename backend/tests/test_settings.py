import pytest

from medcatalog.config import get_services, reset_services
from medcatalog.config.settings import (
    resolve_duplicate_policy,
    resolve_export_pretty,
    resolve_id_prefix,
    resolve_import_timeout,
)
from medcatalog.store import InMemoryAuditSink, InMemoryTestStore

_ENV_NAMES = (
    "MEDCATALOG_DUPLICATE_POLICY",
    "MEDCATALOG_ID_PREFIX",
    "MEDCATALOG_EXPORT_PRETTY",
    "MEDCATALOG_IMPORT_TIMEOUT_S",
    "MEDCATALOG_STORE_BACKEND",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    reset_services()
    yield
    reset_services()


def test_defaults():
    assert resolve_duplicate_policy() == "skip"
    assert resolve_id_prefix() == "TTES"
    assert resolve_export_pretty() is True
    assert resolve_import_timeout() is None


def test_values_are_normalized(monkeypatch):
    monkeypatch.setenv("MEDCATALOG_DUPLICATE_POLICY", " Update ")
    monkeypatch.setenv("MEDCATALOG_ID_PREFIX", "acme")
    monkeypatch.setenv("MEDCATALOG_EXPORT_PRETTY", "off")
    monkeypatch.setenv("MEDCATALOG_IMPORT_TIMEOUT_S", "2.5")

    assert resolve_duplicate_policy() == "update"
    assert resolve_id_prefix() == "ACME"
    assert resolve_export_pretty() is False
    assert resolve_import_timeout() == 2.5


@pytest.mark.parametrize(
    ("env_name", "value", "resolver"),
    [
        ("MEDCATALOG_DUPLICATE_POLICY", "merge", resolve_duplicate_policy),
        ("MEDCATALOG_EXPORT_PRETTY", "sometimes", resolve_export_pretty),
        ("MEDCATALOG_IMPORT_TIMEOUT_S", "0", resolve_import_timeout),
        ("MEDCATALOG_IMPORT_TIMEOUT_S", "soon", resolve_import_timeout),
    ],
)
def test_invalid_values_raise(monkeypatch, env_name, value, resolver):
    monkeypatch.setenv(env_name, value)

    with pytest.raises(ValueError, match=env_name):
        resolver()


def test_get_services_builds_singletons_once(monkeypatch):
    monkeypatch.setenv("MEDCATALOG_DUPLICATE_POLICY", "update")

    services = get_services()

    assert isinstance(services["store"], InMemoryTestStore)
    assert isinstance(services["audit_sink"], InMemoryAuditSink)
    assert services["settings"]["duplicate_policy"] == "update"
    assert get_services() is services

    reset_services()
    assert get_services() is not services


def test_unknown_store_backend_fails_fast(monkeypatch):
    monkeypatch.setenv("MEDCATALOG_STORE_BACKEND", "postgres")

    with pytest.raises(ValueError, match="MEDCATALOG_STORE_BACKEND"):
        get_services()
