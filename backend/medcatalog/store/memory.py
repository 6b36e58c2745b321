"""In-memory store and audit sink used by the service and tests."""
import itertools
import threading
from typing import Sequence

from medcatalog.core.schemas import ImportAuditLogEntry, ImportSession, TestRecord

from .base import (
    BaseAuditSink,
    BaseTestStore,
    RecordNotFoundError,
    StoreConstraintError,
    StoreError,
)

_FINAL_STATUSES = ("completed", "failed", "partial")


class InMemoryTestStore(BaseTestStore):
    """Dict-backed store enforcing unique ids and unique CPT codes."""
    __test__ = False

    def __init__(self, records: Sequence[TestRecord] = ()):
        self._lock = threading.RLock()
        self._records: dict[str, TestRecord] = {}
        for record in records:
            self.insert(record)

    def __len__(self) -> int:
        return len(self._records)

    def snapshot(self) -> list[TestRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, record_id: str) -> TestRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def _cpt_owner(self, cpt_code: str | None) -> str | None:
        if not cpt_code:
            return None
        for record in self._records.values():
            if record.cpt_code == cpt_code:
                return record.id
        return None

    def insert(self, record: TestRecord) -> TestRecord:
        if not record.id:
            raise StoreError("Record id is required for insert")
        with self._lock:
            if record.id in self._records:
                raise StoreConstraintError(f"Test id '{record.id}' already exists")
            owner = self._cpt_owner(record.cpt_code)
            if owner is not None:
                raise StoreConstraintError(
                    f"Unique constraint violated: CPT code '{record.cpt_code}' belongs to '{owner}'"
                )
            self._records[record.id] = record
        return record

    def update(self, record: TestRecord) -> TestRecord:
        if not record.id:
            raise StoreError("Record id is required for update")
        with self._lock:
            if record.id not in self._records:
                raise RecordNotFoundError(f"Test id '{record.id}' does not exist")
            owner = self._cpt_owner(record.cpt_code)
            if owner is not None and owner != record.id:
                raise StoreConstraintError(
                    f"Unique constraint violated: CPT code '{record.cpt_code}' belongs to '{owner}'"
                )
            self._records[record.id] = record
        return record


class InMemoryAuditSink(BaseAuditSink):
    """Keeps sessions and their audit entries in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._sessions: dict[int, ImportSession] = {}
        self._entries: dict[int, list[ImportAuditLogEntry]] = {}

    def create_session(self, session: ImportSession) -> ImportSession:
        with self._lock:
            created = session.model_copy(update={"id": next(self._ids)})
            self._sessions[created.id] = created
            self._entries[created.id] = []
        return created

    def append_entry(self, entry: ImportAuditLogEntry) -> None:
        with self._lock:
            session = self._sessions.get(entry.session_id)
            if session is None:
                raise KeyError(f"Unknown import session {entry.session_id}")
            if session.status in _FINAL_STATUSES:
                raise RuntimeError(f"Import session {entry.session_id} is already finalized")
            self._entries[entry.session_id].append(entry)

    def finalize_session(self, session: ImportSession) -> ImportSession:
        with self._lock:
            current = self._sessions.get(session.id)
            if current is None:
                raise KeyError(f"Unknown import session {session.id}")
            if current.status in _FINAL_STATUSES:
                raise RuntimeError(f"Import session {session.id} is already finalized")
            self._sessions[session.id] = session
        return session

    def get_session(self, session_id: int) -> ImportSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self) -> list[ImportSession]:
        with self._lock:
            return list(self._sessions.values())

    def entries_for(self, session_id: int) -> list[ImportAuditLogEntry]:
        with self._lock:
            return list(self._entries.get(session_id, []))
