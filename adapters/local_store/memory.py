"""
In-memory record store.

Holds records in an insertion-ordered dict. Used by tests and demos, and
as the default backend when no on-device path is configured.
"""

from collections.abc import Iterable

from clinical.domain.errors import NotFoundError, StoreError
from clinical.domain.models import AnyRecord, EntityKind
from clinical.services.record_store import Result, logger


class InMemoryRecordStore:
    """LocalRecordStore backed by a plain dict."""

    def __init__(self, records: Iterable[AnyRecord] = ()) -> None:
        self._records: dict[str, AnyRecord] = {}
        for record in records:
            self._records[record.id] = record
        self.logger = logger.bind(component="memory_store")

    def __len__(self) -> int:
        return len(self._records)

    async def find(self, record_id: str) -> Result[AnyRecord, NotFoundError | StoreError]:
        record = self._records.get(record_id)
        if record is None:
            return Result.err(NotFoundError(record_id))
        return Result.ok(record)

    async def query_by_patient(
        self, patient_id: str, kind: EntityKind
    ) -> Result[list[AnyRecord], StoreError]:
        matches = [
            r for r in self._records.values() if r.patient_id == patient_id and r.kind == kind.value
        ]
        return Result.ok(matches)

    async def save(self, record: AnyRecord) -> Result[AnyRecord, StoreError]:
        inserted = record.id not in self._records
        self._records[record.id] = record
        self.logger.debug("record_saved", record_id=record.id, kind=record.kind, inserted=inserted)
        return Result.ok(record)

    async def delete(self, record_id: str) -> Result[AnyRecord, NotFoundError | StoreError]:
        record = self._records.pop(record_id, None)
        if record is None:
            return Result.err(NotFoundError(record_id))
        self.logger.debug("record_deleted", record_id=record_id, kind=record.kind)
        return Result.ok(record)
