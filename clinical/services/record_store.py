"""
Local record store contract.

Key patterns:
- Protocol-based dependency injection (stores are swapped, not subclassed)
- Generic Result type for expected failures (missing ids, unreadable storage)
- Async-first: every store operation may suspend while local I/O completes
"""

from typing import Generic, Protocol, TypeVar

import structlog

from clinical.domain.errors import NotFoundError, StoreError
from clinical.domain.models import AnyRecord, EntityKind
from clinical.observability import configure_logging

configure_logging()

logger = structlog.get_logger(__name__)

ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    A store lookup that misses is business as usual for an offline-first
    client, so it comes back as a value the caller must inspect.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error

    def __repr__(self) -> str:
        if self._error is not None:
            return f"Result.err({self._error!r})"
        return f"Result.ok({self._value!r})"


class LocalRecordStore(Protocol):
    """
    Asynchronous keyed store of clinical entities on the local device.

    Ids are unique across entity kinds. Implementations report expected
    failures through Result and never raise for them.
    """

    async def find(self, record_id: str) -> Result[AnyRecord, NotFoundError | StoreError]:
        """Look up a single record by id."""
        ...

    async def query_by_patient(
        self, patient_id: str, kind: EntityKind
    ) -> Result[list[AnyRecord], StoreError]:
        """All records of one kind for a patient, in insertion order."""
        ...

    async def save(self, record: AnyRecord) -> Result[AnyRecord, StoreError]:
        """Insert when the id is new, otherwise replace the stored record."""
        ...

    async def delete(self, record_id: str) -> Result[AnyRecord, NotFoundError | StoreError]:
        """Remove a record by id, returning what was removed."""
        ...
