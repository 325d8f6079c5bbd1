"""
Error taxonomy for clinical record handling.

Store adapters hand these back inside a ``Result`` for expected failures;
services raise them when the caller has to react (invalid form input,
unreadable store).
"""


class RecordsError(Exception):
    """Base class for all record handling errors."""


class NotFoundError(RecordsError):
    """Requested record id does not exist in the local store."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record {record_id!r} not found")
        self.record_id = record_id


class StoreError(RecordsError):
    """Underlying local storage failed (I/O, decoding, corruption)."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ValidationError(RecordsError, ValueError):
    """A measurement or card value lies outside its valid domain."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) if errors else "Invalid record")
        self.errors = errors
