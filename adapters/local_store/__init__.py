"""
Local record store adapters.

Both adapters implement the LocalRecordStore protocol from
``clinical.services.record_store``.
"""

from clinical.config import StoreConfig
from clinical.services.record_store import LocalRecordStore

from .json_file import JsonFileRecordStore
from .memory import InMemoryRecordStore


def build_record_store(config: StoreConfig) -> LocalRecordStore:
    """Create the store backend selected in configuration."""
    if config.backend == "json":
        return JsonFileRecordStore(config.path)
    return InMemoryRecordStore()


__all__ = [
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "build_record_store",
]
