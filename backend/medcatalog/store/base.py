"""Base classes for the test store and import audit sink collaborators."""
import abc
from contextlib import contextmanager
from typing import Iterator, Sequence

from medcatalog.core.schemas import ImportAuditLogEntry, ImportSession, TestRecord


class StoreError(RuntimeError):
    """Base error for a failed store read or write."""


class StoreConstraintError(StoreError):
    """Raised when a write would break a uniqueness or integrity constraint."""


class RecordNotFoundError(StoreError):
    """Raised when an update targets a record the store does not hold."""


class BaseTestStore(abc.ABC):
    """Abstract store holding catalog test records."""
    __test__ = False

    @abc.abstractmethod
    def snapshot(self) -> Sequence[TestRecord]:
        """
        Return every existing record, used to build duplicate indices.

        :return: Records in a stable order
        """
        pass

    @abc.abstractmethod
    def insert(self, record: TestRecord) -> TestRecord:
        """
        Insert a new record.

        :param record: Record with an assigned id
        :raises StoreError: When the record cannot be written
        """
        pass

    @abc.abstractmethod
    def update(self, record: TestRecord) -> TestRecord:
        """
        Replace the record with the same id.

        :param record: Record carrying the id of an existing entry
        :raises StoreError: When the record cannot be written
        """
        pass

    @abc.abstractmethod
    def get(self, record_id: str) -> TestRecord | None:
        pass

    @contextmanager
    def batch(self) -> Iterator["BaseTestStore"]:
        """Scope a run of writes; implementations flush or release on exit."""
        yield self


class BaseAuditSink(abc.ABC):
    """Abstract append-only sink for import sessions and their audit entries."""

    @abc.abstractmethod
    def create_session(self, session: ImportSession) -> ImportSession:
        """Persist a provisional session and return it with its id assigned."""
        pass

    @abc.abstractmethod
    def append_entry(self, entry: ImportAuditLogEntry) -> None:
        """Append one audit entry; entries are never edited afterwards."""
        pass

    @abc.abstractmethod
    def finalize_session(self, session: ImportSession) -> ImportSession:
        """Record the final session summary; allowed exactly once per session."""
        pass

    @abc.abstractmethod
    def get_session(self, session_id: int) -> ImportSession | None:
        pass

    @abc.abstractmethod
    def list_sessions(self) -> list[ImportSession]:
        pass

    @abc.abstractmethod
    def entries_for(self, session_id: int) -> list[ImportAuditLogEntry]:
        pass
