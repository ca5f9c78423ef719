"""In-memory record store, for tests and ephemeral sessions."""

import itertools
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from plantid.core.errors import StorageWriteError
from plantid.models.domain import HistoryRecord
from plantid.storage.base import DEFAULT_HISTORY_LIMIT, RecordStore, sort_recent, utc_now

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    """
    Record store kept in a Python list.

    Writes fail with StorageWriteError until ensure_schema() has been
    called, mirroring a database without its table.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utc_now
        self._records: list[HistoryRecord] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._schema_ready = False

    def ensure_schema(self) -> None:
        self._schema_ready = True

    def append(self, species_label: str, confidence: float) -> HistoryRecord:
        with self._lock:
            if not self._schema_ready:
                raise StorageWriteError("History storage is not initialized")
            record = HistoryRecord(
                id=next(self._ids),
                species_label=species_label,
                confidence=float(confidence),
                created_at=self.clock(),
            )
            self._records.append(record)
        logger.debug(f"Prediction saved in memory: #{record.id} {species_label}")
        return record

    def list_recent(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[HistoryRecord]:
        self._check_limit(limit)
        with self._lock:
            return sort_recent(self._records)[:limit]

    def purge_all(self) -> None:
        with self._lock:
            if not self._schema_ready:
                raise StorageWriteError("History storage is not initialized")
            self._records = []

    def count(self) -> int:
        with self._lock:
            return len(self._records)
