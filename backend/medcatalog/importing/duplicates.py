"""Duplicate detection against an existing-record snapshot."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from medcatalog.core.schemas import TestRecord
from medcatalog.core.types import DuplicateReason

Classification = Literal["unique", "duplicate-by-id", "duplicate-by-cpt-code"]


@dataclass(frozen=True)
class DuplicateCheck:
    """Independent id and CPT code collision flags for one candidate."""

    by_id: bool = False
    by_cpt_code: bool = False
    id_owner: str | None = None
    cpt_code_owner: str | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.by_id or self.by_cpt_code

    @property
    def classification(self) -> Classification:
        if self.by_id:
            return "duplicate-by-id"
        if self.by_cpt_code:
            return "duplicate-by-cpt-code"
        return "unique"

    @property
    def reasons(self) -> list[DuplicateReason]:
        reasons: list[DuplicateReason] = []
        if self.by_id:
            reasons.append("id_exists")
        if self.by_cpt_code:
            reasons.append("cpt_code_exists")
        return reasons

    @property
    def primary_reason(self) -> DuplicateReason | None:
        reasons = self.reasons
        return reasons[0] if reasons else None

    @property
    def target_id(self) -> str | None:
        """Id of the existing record an update should be applied to."""
        return self.id_owner if self.by_id else self.cpt_code_owner


class DuplicateIndex:
    """Id and CPT code lookups built once per import session.

    The pre-import snapshot is copied into the index and never read again.
    Records accepted during the session are registered so later rows in the
    same batch collide with them as well.
    """

    def __init__(self, existing: Iterable[TestRecord] = ()):
        self._ids: set[str] = set()
        self._cpt_owners: dict[str, str] = {}
        for record in existing:
            self.register(record)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, test_id: object) -> bool:
        return test_id in self._ids

    def register(self, record: TestRecord) -> None:
        if record.id:
            self._ids.add(record.id)
        if record.cpt_code and record.cpt_code not in self._cpt_owners:
            self._cpt_owners[record.cpt_code] = record.id or ""

    def check(self, record: TestRecord) -> DuplicateCheck:
        by_id = bool(record.id) and record.id in self._ids
        cpt_owner = self._cpt_owners.get(record.cpt_code) if record.cpt_code else None
        return DuplicateCheck(
            by_id=by_id,
            by_cpt_code=cpt_owner is not None,
            id_owner=record.id if by_id else None,
            cpt_code_owner=cpt_owner or None,
        )
