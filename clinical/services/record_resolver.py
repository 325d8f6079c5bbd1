"""
Offline-first record resolution for edit/create forms.

A form opened with a record id edits that record; opened without one it
creates a new record. A dangling or unreadable id must never block the
form, so every lookup failure degrades to create mode instead of raising.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

from clinical.domain.models import AnyRecord, EntityKind
from clinical.services.record_store import LocalRecordStore, logger


class ResolutionStatus(str, Enum):
    """Lifecycle of a form's initial editing state."""

    PENDING = "pending"
    FOUND = "found"
    CREATE_MODE = "create_mode"
    ERROR = "error"  # internal only, never returned to callers


@dataclass(frozen=True)
class ResolvedState:
    status: ResolutionStatus
    record: AnyRecord | None = None

    @classmethod
    def pending(cls) -> "ResolvedState":
        return cls(ResolutionStatus.PENDING)

    @classmethod
    def create_mode(cls) -> "ResolvedState":
        return cls(ResolutionStatus.CREATE_MODE)

    @classmethod
    def found(cls, record: AnyRecord) -> "ResolvedState":
        return cls(ResolutionStatus.FOUND, record)

    @property
    def is_editing(self) -> bool:
        return self.status == ResolutionStatus.FOUND


class RecordResolver:
    """
    Resolve an optional record id to the form's initial state.

    Issues at most one store read per call and never mutates the store.
    """

    def __init__(self, store: LocalRecordStore, kind: EntityKind) -> None:
        self.store = store
        self.kind = kind
        self.logger = logger.bind(component="record_resolver", kind=kind.value)

    async def resolve(self, record_id: str | None) -> ResolvedState:
        if not record_id:
            return ResolvedState.create_mode()

        state = ResolvedState.pending()
        try:
            result = await self.store.find(record_id)
        except Exception as e:
            # A store that raises instead of returning a Result is still non-fatal here
            self.logger.exception("record_lookup_raised", record_id=record_id, error=str(e))
            state = ResolvedState(ResolutionStatus.ERROR)
        else:
            if result.is_err():
                error = result.unwrap_err()
                self.logger.warning(
                    "record_resolution_failed",
                    record_id=record_id,
                    error_type=type(error).__name__,
                    error=str(error),
                )
                state = ResolvedState(ResolutionStatus.ERROR)
            else:
                record = result.unwrap()
                if record.kind != self.kind.value:
                    self.logger.warning(
                        "record_kind_mismatch", record_id=record_id, found_kind=record.kind
                    )
                    state = ResolvedState(ResolutionStatus.ERROR)
                else:
                    state = ResolvedState.found(record)

        if state.status == ResolutionStatus.ERROR:
            return ResolvedState.create_mode()

        self.logger.info("record_resolved", record_id=record_id)
        return state


class FormSession:
    """
    Owns the editing state of one form instance.

    A generation counter guards every resolution: once the form is closed,
    or reopened for another id, results still in flight are discarded.
    """

    def __init__(self, resolver: RecordResolver) -> None:
        self.resolver = resolver
        self.state = ResolvedState.create_mode()
        self._generation = 0
        self._live = True
        self.logger = logger.bind(component="form_session", kind=resolver.kind.value)

    @property
    def is_live(self) -> bool:
        return self._live

    async def open(self, record_id: str | None) -> bool:
        """Resolve ``record_id`` into this session. Returns False if the result went stale."""
        if not self._live:
            raise RuntimeError("Form session is closed")

        self._generation += 1
        generation = self._generation
        self.state = ResolvedState.pending() if record_id else ResolvedState.create_mode()

        resolved = await self.resolver.resolve(record_id)

        if not self._live or generation != self._generation:
            self.logger.info(
                "stale_resolution_discarded",
                record_id=record_id,
                generation=generation,
                current_generation=self._generation,
            )
            return False

        self.state = resolved
        return True

    def mark_saved(self, record: AnyRecord) -> None:
        """After a successful save the form edits the persisted record."""
        if self._live:
            self._generation += 1
            self.state = ResolvedState.found(record)

    def close(self) -> None:
        self._live = False
        self._generation += 1


@asynccontextmanager
async def form_session(
    resolver: RecordResolver, record_id: str | None = None
) -> AsyncIterator[FormSession]:
    """Open a form session and close it when the screen goes away."""
    session = FormSession(resolver)
    try:
        await session.open(record_id)
        yield session
    finally:
        session.close()
