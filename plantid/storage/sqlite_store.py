"""SQLite-backed record store.

Physical schema::

    predictions(id INTEGER PRIMARY KEY AUTOINCREMENT,
                species TEXT NOT NULL,
                confidence REAL NOT NULL,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP)

Timestamps are written explicitly in UTC with microsecond precision so
records appended within the same second still order correctly; rows
written through the column default sort consistently with them.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional

from plantid.core.errors import StorageReadError, StorageWriteError
from plantid.models.domain import HistoryRecord
from plantid.storage.base import DEFAULT_HISTORY_LIMIT, RecordStore, utc_now

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS predictions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    species TEXT NOT NULL,
    confidence REAL NOT NULL,
    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_predictions_timestamp ON predictions(timestamp DESC);
"""


def format_timestamp(value: datetime) -> str:
    """Render a datetime as naive UTC text, matching CURRENT_TIMESTAMP."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse stored timestamp text back into an aware UTC datetime."""
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


class SQLiteRecordStore(RecordStore):
    """SQLite storage for the identification log.

    One connection is shared by all callers and serialized by a lock, so
    the store can be used from worker threads. Each write runs in its own
    transaction and is rolled back on failure.

    Example:
        >>> store = SQLiteRecordStore("./plantid.db")
        >>> store.ensure_schema()
        >>> record = store.append("Species_4", 0.91)
        >>> store.list_recent(20)[0].id == record.id
        True
    """

    def __init__(
        self,
        db_path: str | Path = MEMORY_DATABASE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize SQLite storage.

        Args:
            db_path: Database file path, or ":memory:"
            clock: Source of record timestamps; defaults to UTC now
        """
        self.db_path = str(db_path)
        self.clock = clock or utc_now
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.db_path != MEMORY_DATABASE:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            logger.debug(f"Opened database {self.db_path}")
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction: commit on success, else roll back."""
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def ensure_schema(self) -> None:
        try:
            with self._transaction() as conn:
                conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            logger.error(f"Schema creation failed: {e}")
            raise StorageWriteError(f"Could not prepare history storage: {e}") from e
        logger.info(f"History schema ready at {self.db_path}")

    def append(self, species_label: str, confidence: float) -> HistoryRecord:
        created_at = self.clock()
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO predictions (species, confidence, timestamp) VALUES (?, ?, ?)",
                    (species_label, float(confidence), format_timestamp(created_at)),
                )
                record_id = cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Save error: {e}")
            raise StorageWriteError(f"Failed to save prediction: {e}") from e

        record = HistoryRecord(
            id=record_id,
            species_label=species_label,
            confidence=float(confidence),
            created_at=parse_timestamp(format_timestamp(created_at)),
        )
        logger.info(f"Prediction saved: #{record.id} {species_label} ({confidence:.3f})")
        return record

    def list_recent(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[HistoryRecord]:
        self._check_limit(limit)
        try:
            with self._lock:
                rows = self._get_connection().execute(
                    "SELECT id, species, confidence, timestamp FROM predictions "
                    "ORDER BY timestamp DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Load history error: {e}")
            raise StorageReadError(f"Failed to load history: {e}") from e

        return [self._row_to_record(row) for row in rows]

    def purge_all(self) -> None:
        try:
            with self._transaction() as conn:
                deleted = conn.execute("DELETE FROM predictions").rowcount
        except sqlite3.Error as e:
            logger.error(f"Clear history error: {e}")
            raise StorageWriteError(f"Failed to clear history: {e}") from e
        logger.info(f"History cleared ({deleted} records)")

    def count(self) -> int:
        try:
            with self._lock:
                row = self._get_connection().execute("SELECT COUNT(*) FROM predictions").fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(f"Failed to count history: {e}") from e
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> HistoryRecord:
        return HistoryRecord(
            id=row["id"],
            species_label=row["species"],
            confidence=row["confidence"],
            created_at=parse_timestamp(row["timestamp"]),
        )
