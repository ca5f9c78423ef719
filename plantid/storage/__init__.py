# Storage module
from plantid.storage.base import RecordStore, DEFAULT_HISTORY_LIMIT
from plantid.storage.sqlite_store import SQLiteRecordStore
from plantid.storage.memory_store import InMemoryRecordStore

__all__ = [
    "RecordStore",
    "DEFAULT_HISTORY_LIMIT",
    "SQLiteRecordStore",
    "InMemoryRecordStore",
]
