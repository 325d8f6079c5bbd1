"""
On-device record store persisted as a single JSON document.

Records are encoded through the discriminated ``Record`` union, so both
insurance cards and measurements share one keyspace and decode back to
their own model. File I/O runs in a worker thread; an asyncio.Lock keeps
load/modify/write sequences from interleaving within one process.
"""

import asyncio
import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from clinical.domain.errors import NotFoundError, StoreError
from clinical.domain.models import AnyRecord, EntityKind, Record
from clinical.services.record_store import Result, logger

STORE_FORMAT_VERSION = 1


class _StoreDocument(BaseModel):
    version: int = STORE_FORMAT_VERSION
    records: list[Record] = Field(default_factory=list)


class JsonFileRecordStore:
    """LocalRecordStore persisted to a JSON file on local disk."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._records: dict[str, AnyRecord] | None = None
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="json_file_store", path=str(self.path))

    def _read_file(self) -> dict[str, AnyRecord]:
        if not self.path.exists():
            return {}
        document = _StoreDocument.model_validate_json(self.path.read_bytes())
        if document.version != STORE_FORMAT_VERSION:
            raise ValueError(f"unsupported store format version {document.version}")
        return {record.id: record for record in document.records}

    def _write_file(self, records: list[AnyRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = _StoreDocument(records=records).model_dump_json(indent=2)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

    async def _load(self) -> Result[dict[str, AnyRecord], StoreError]:
        if self._records is not None:
            return Result.ok(self._records)
        try:
            self._records = await asyncio.to_thread(self._read_file)
        except (OSError, ValueError, PydanticValidationError) as e:
            self.logger.error("record_store_load_failed", error=str(e))
            return Result.err(StoreError(f"Cannot read record store {self.path}", cause=e))
        self.logger.info("record_store_loaded", count=len(self._records))
        return Result.ok(self._records)

    async def _persist(self, records: dict[str, AnyRecord]) -> StoreError | None:
        try:
            await asyncio.to_thread(self._write_file, list(records.values()))
        except OSError as e:
            self.logger.error("record_store_write_failed", error=str(e))
            return StoreError(f"Cannot write record store {self.path}", cause=e)
        return None

    async def find(self, record_id: str) -> Result[AnyRecord, NotFoundError | StoreError]:
        async with self._lock:
            loaded = await self._load()
        if loaded.is_err():
            return Result.err(loaded.unwrap_err())

        record = loaded.unwrap().get(record_id)
        if record is None:
            return Result.err(NotFoundError(record_id))
        return Result.ok(record)

    async def query_by_patient(
        self, patient_id: str, kind: EntityKind
    ) -> Result[list[AnyRecord], StoreError]:
        async with self._lock:
            loaded = await self._load()
        if loaded.is_err():
            return Result.err(loaded.unwrap_err())

        return Result.ok(
            [
                r
                for r in loaded.unwrap().values()
                if r.patient_id == patient_id and r.kind == kind.value
            ]
        )

    async def save(self, record: AnyRecord) -> Result[AnyRecord, StoreError]:
        async with self._lock:
            loaded = await self._load()
            if loaded.is_err():
                return Result.err(loaded.unwrap_err())

            records = dict(loaded.unwrap())
            records[record.id] = record
            error = await self._persist(records)
            if error is not None:
                return Result.err(error)
            self._records = records

        self.logger.debug("record_saved", record_id=record.id, kind=record.kind)
        return Result.ok(record)

    async def delete(self, record_id: str) -> Result[AnyRecord, NotFoundError | StoreError]:
        async with self._lock:
            loaded = await self._load()
            if loaded.is_err():
                return Result.err(loaded.unwrap_err())

            records = dict(loaded.unwrap())
            record = records.pop(record_id, None)
            if record is None:
                return Result.err(NotFoundError(record_id))
            error = await self._persist(records)
            if error is not None:
                return Result.err(error)
            self._records = records

        self.logger.debug("record_deleted", record_id=record_id, kind=record.kind)
        return Result.ok(record)
