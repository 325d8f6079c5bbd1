"""
Measurement history aggregation.

Loads every ROM/MMT measurement of a patient with a single store read and
groups them by (type, target, side). Readings superseded by a correction in
the same group are dropped. Each group is exposed as a lazy, restartable
sequence ordered by ``recorded_at``.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator, Sequence
from typing import overload

from clinical.domain.errors import StoreError
from clinical.domain.models import EntityKind, GroupKey, Measurement
from clinical.services.record_store import LocalRecordStore, logger


class MeasurementHistory(Sequence[Measurement]):
    """
    Chronological history of one trend group.

    Ordering is computed on first access and cached, so the history can be
    enumerated any number of times without touching the store again. Ties on
    ``recorded_at`` keep the order the store returned them in.
    """

    def __init__(self, key: GroupKey, entries: Iterable[tuple[int, Measurement]]) -> None:
        self.key = key
        self._entries = list(entries)
        self._ordered: tuple[Measurement, ...] | None = None

    def _materialize(self) -> tuple[Measurement, ...]:
        if self._ordered is None:
            ranked = sorted(self._entries, key=lambda entry: (entry[1].recorded_at, entry[0]))
            self._ordered = tuple(measurement for _, measurement in ranked)
        return self._ordered

    @overload
    def __getitem__(self, index: int) -> Measurement: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[Measurement]: ...

    def __getitem__(self, index: int | slice) -> Measurement | Sequence[Measurement]:
        return self._materialize()[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Measurement]:
        return iter(self._materialize())

    @property
    def latest(self) -> Measurement | None:
        ordered = self._materialize()
        return ordered[-1] if ordered else None

    def values(self) -> list[float]:
        return [m.value for m in self._materialize()]

    def __repr__(self) -> str:
        return (
            f"MeasurementHistory({self.key.type.value}/{self.key.target}/"
            f"{self.key.side.value}, n={len(self)})"
        )


class MeasurementHistoryAggregator:
    """Groups a patient's measurements into per-(type, target, side) histories."""

    def __init__(self, store: LocalRecordStore) -> None:
        self.store = store
        self.logger = logger.bind(component="measurement_history")

    async def aggregate(self, patient_id: str) -> dict[GroupKey, MeasurementHistory]:
        """
        Build the trend groups for a patient.

        Raises:
            StoreError: the store could not be read. There is no degraded
                result here, an empty history would look like a new patient.
        """
        result = await self.store.query_by_patient(patient_id, EntityKind.MEASUREMENT)
        if result.is_err():
            error = result.unwrap_err()
            self.logger.error("measurement_query_failed", patient_id=patient_id, error=str(error))
            if isinstance(error, StoreError):
                raise error
            raise StoreError("Measurement query failed", cause=error)

        buckets: defaultdict[GroupKey, list[tuple[int, Measurement]]] = defaultdict(list)
        skipped = 0
        for index, record in enumerate(result.unwrap()):
            if not isinstance(record, Measurement) or record.patient_id != patient_id:
                skipped += 1
                continue
            buckets[record.group_key].append((index, record))

        histories: dict[GroupKey, MeasurementHistory] = {}
        superseded = 0
        for key, entries in buckets.items():
            corrected = {m.corrects_id for _, m in entries if m.corrects_id is not None}
            current = [(i, m) for i, m in entries if m.id not in corrected]
            superseded += len(entries) - len(current)
            histories[key] = MeasurementHistory(key, current)

        self.logger.info(
            "measurements_aggregated",
            patient_id=patient_id,
            groups=len(histories),
            measurements=sum(len(h) for h in histories.values()),
            skipped=skipped,
            superseded=superseded,
        )
        return histories
