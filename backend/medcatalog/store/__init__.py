"""Store and audit sink collaborators."""
from .base import (
    BaseAuditSink,
    BaseTestStore,
    RecordNotFoundError,
    StoreConstraintError,
    StoreError,
)
from .memory import InMemoryAuditSink, InMemoryTestStore

__all__ = [
    "BaseAuditSink",
    "BaseTestStore",
    "StoreError",
    "StoreConstraintError",
    "RecordNotFoundError",
    "InMemoryAuditSink",
    "InMemoryTestStore",
]
