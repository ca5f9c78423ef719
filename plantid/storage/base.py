"""
RecordStore interface.

The record store exclusively owns the durable identification log. The
pipeline only appends to it; the screen model reads and purges it.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone

from plantid.models.domain import HistoryRecord

DEFAULT_HISTORY_LIMIT = 20


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sort_recent(records: list[HistoryRecord]) -> list[HistoryRecord]:
    """Most recent first; ties broken by id, highest first."""
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


class RecordStore(ABC):
    """
    Durable, ordered log of past identifications.

    Implementations must guarantee:
    - ids are assigned in strictly increasing order
    - list_recent() reflects every successful append() (read-after-write)
    - append() and purge_all() are each a single atomic transaction
    - ensure_schema() is idempotent
    """

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create the schema if it does not exist. Never fails if it does."""
        pass

    @abstractmethod
    def append(self, species_label: str, confidence: float) -> HistoryRecord:
        """
        Persist one identification.

        Raises:
            StorageWriteError: If the record could not be written. The
                caller must not treat the prediction as saved.
        """
        pass

    @abstractmethod
    def list_recent(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[HistoryRecord]:
        """Return up to ``limit`` records, newest first."""
        pass

    @abstractmethod
    def purge_all(self) -> None:
        """
        Delete every record, all-or-nothing.

        Raises:
            StorageWriteError: If nothing could be deleted
        """
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""
        pass

    def close(self) -> None:
        """Release underlying resources."""
        pass

    @staticmethod
    def _check_limit(limit: int) -> None:
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
