"""DuckDB snapshot store for snowstatus.

One row per subject (upsert by subject id) plus a fetch log used for
monitoring provider health.
"""

import json
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional

import duckdb

from snowstatus.cache.models import Reading, utc_now
from snowstatus.errors import PersistenceReadFailed, PersistenceWriteFailed

logger = logging.getLogger(__name__)

# Default database path - use project root to ensure consistent path
_PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
DEFAULT_DB_PATH = _PROJECT_ROOT / "data" / "cache" / "snowstatus.duckdb"

# SQL schema - DuckDB uses sequences for auto-increment
SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS seq_fetch_log_id START 1;

-- Latest Reading per subject (weather or lift set of a resort)
CREATE TABLE IF NOT EXISTS reading_snapshots (
    subject_id VARCHAR PRIMARY KEY,
    kind VARCHAR NOT NULL,
    provider_id VARCHAR NOT NULL,
    origin VARCHAR NOT NULL,
    fallback BOOLEAN NOT NULL DEFAULT false,
    fallback_reason VARCHAR,
    payload VARCHAR NOT NULL,
    summary VARCHAR,
    fetched_at TIMESTAMP NOT NULL,
    expires_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_expires ON reading_snapshots(expires_at);

-- Fetch log for debugging/monitoring
CREATE TABLE IF NOT EXISTS fetch_log (
    id INTEGER DEFAULT nextval('seq_fetch_log_id') PRIMARY KEY,
    subject_id VARCHAR NOT NULL,
    source VARCHAR NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    status VARCHAR NOT NULL,
    duration_ms INTEGER,
    error_message VARCHAR
);

CREATE INDEX IF NOT EXISTS idx_fetch_log_time ON fetch_log(timestamp);
"""


def _to_db_time(value: datetime) -> datetime:
    """Aware datetime -> naive UTC for TIMESTAMP columns."""
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


class SnapshotDatabase:
    """DuckDB persistent snapshot store.

    Holds exactly one row per subject. ``upsert`` is idempotent and
    last-write-wins on ``fetched_at``: an older Reading never replaces a
    newer row. Every instance of the service may read the same file.

    Each operation opens its own short-lived connection (read-only for
    reads), so several processes can share the file and an unreachable
    store only fails the operation that touched it. Statements within one
    process run under one lock.

    Example:
        >>> db = SnapshotDatabase()
        >>> db.load("nozawa-onsen:weather")
        Reading(...)
    """

    def __init__(self, db_path: Optional[Path] = None, connect_retries: int = 3):
        """Initialize the store and try to create the schema.

        A store that cannot be opened here is logged, not raised; the
        schema is retried on the next write.

        Args:
            db_path: Path to DuckDB file. Creates if doesn't exist.
            connect_retries: Connection attempts while the file is locked
        """
        self.db_path = Path(db_path or DEFAULT_DB_PATH)
        self.connect_retries = max(1, connect_retries)

        self._schema_ready = False
        self._lock = threading.RLock()
        try:
            with self.connect():
                pass
        except (duckdb.Error, OSError) as e:
            logger.warning(f"Snapshot store at {self.db_path} unavailable: {e}")

    @contextmanager
    def connect(self, read_only: bool = False) -> Iterator[duckdb.DuckDBPyConnection]:
        """Open a connection for one operation and close it afterwards.

        Write connections create the schema the first time they succeed.

        Raises:
            duckdb.Error: The file cannot be opened (locked, unreachable)
            OSError: The parent directory cannot be created
        """
        with self._lock:
            if not read_only:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect_with_retry(read_only)
            try:
                if not read_only and not self._schema_ready:
                    self._init_schema(conn)
                yield conn
            finally:
                conn.close()

    def _connect_with_retry(self, read_only: bool) -> duckdb.DuckDBPyConnection:
        """Connect to database with retry logic for lock handling."""
        for attempt in range(self.connect_retries):
            try:
                return duckdb.connect(str(self.db_path), read_only=read_only)
            except duckdb.IOException as e:
                if "lock" in str(e).lower() and attempt < self.connect_retries - 1:
                    wait_time = 0.1 * (2 ** attempt)  # Exponential backoff
                    logger.warning(f"Database locked, retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    raise

    def _init_schema(self, conn: duckdb.DuckDBPyConnection) -> None:
        """Initialize database schema."""
        for statement in SCHEMA_SQL.split(";"):
            statement = statement.strip()
            if statement:
                conn.execute(statement)
        self._schema_ready = True
        logger.info(f"Snapshot database initialized at {self.db_path}")

    def close(self) -> None:
        """No-op: connections are closed after each operation."""

    # -------------------------------------------------------------------------
    # Snapshot Operations
    # -------------------------------------------------------------------------

    def load(self, subject_id: str) -> Optional[Reading]:
        """Load the stored Reading for a subject, regardless of age.

        Args:
            subject_id: Subject identifier

        Returns:
            Reading tagged as persistent-store origin, or None if absent

        Raises:
            PersistenceReadFailed: If the database cannot be opened or queried,
                or the row cannot be decoded
        """
        if not self.db_path.exists():
            return None
        try:
            with self.connect(read_only=True) as conn:
                row = conn.execute(
                    """
                    SELECT provider_id, fallback, fallback_reason, payload,
                           summary, fetched_at, expires_at
                    FROM reading_snapshots
                    WHERE subject_id = ?
                    """,
                    [subject_id],
                ).fetchone()
        except duckdb.Error as e:
            raise PersistenceReadFailed(f"Failed to load {subject_id}: {e}") from e

        if row is None:
            return None

        try:
            return Reading.from_dict({
                "subject_id": subject_id,
                "provider_id": row[0],
                "fallback": row[1],
                "fallback_reason": row[2],
                "payload": json.loads(row[3]),
                "summary": json.loads(row[4]) if row[4] else {},
                "fetched_at": _from_db_time(row[5]).isoformat(),
                "expires_at": _from_db_time(row[6]).isoformat(),
                "origin": "persistent-store",
            })
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceReadFailed(f"Stored row for {subject_id} is unreadable: {e}") from e

    def upsert(self, reading: Reading) -> bool:
        """Insert or replace the subject's row in one conditional statement.

        The update only applies when the incoming ``fetched_at`` is not older
        than the stored one, so concurrent writers in other processes cannot
        regress the row.

        Args:
            reading: Reading to store

        Returns:
            True if the row holds this Reading afterwards, False if a newer
            row was kept

        Raises:
            PersistenceWriteFailed: If the database cannot be opened or written
        """
        fetched_at = _to_db_time(reading.fetched_at)
        try:
            with self.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO reading_snapshots
                    (subject_id, kind, provider_id, origin, fallback, fallback_reason,
                     payload, summary, fetched_at, expires_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (subject_id)
                    DO UPDATE SET
                        kind = EXCLUDED.kind,
                        provider_id = EXCLUDED.provider_id,
                        origin = EXCLUDED.origin,
                        fallback = EXCLUDED.fallback,
                        fallback_reason = EXCLUDED.fallback_reason,
                        payload = EXCLUDED.payload,
                        summary = EXCLUDED.summary,
                        fetched_at = EXCLUDED.fetched_at,
                        expires_at = EXCLUDED.expires_at,
                        updated_at = EXCLUDED.updated_at
                    WHERE fetched_at <= EXCLUDED.fetched_at
                    """,
                    [
                        reading.subject_id,
                        reading.payload.kind,
                        reading.provider_id,
                        reading.origin.value,
                        reading.fallback,
                        reading.fallback_reason,
                        json.dumps(reading.payload.to_dict()),
                        json.dumps(reading.summary),
                        fetched_at,
                        _to_db_time(reading.expires_at),
                        _to_db_time(utc_now()),
                    ],
                )
                stored = conn.execute(
                    "SELECT fetched_at FROM reading_snapshots WHERE subject_id = ?",
                    [reading.subject_id],
                ).fetchone()
        except (duckdb.Error, OSError) as e:
            raise PersistenceWriteFailed(f"Failed to store {reading.subject_id}: {e}") from e

        if stored is not None and stored[0] > fetched_at:
            logger.info(
                f"Skipped upsert for {reading.subject_id}: stored row "
                f"is newer ({stored[0]} > {fetched_at})"
            )
            return False
        return True

    def delete(self, subject_id: str) -> None:
        """Remove a subject's row."""
        try:
            with self.connect() as conn:
                conn.execute("DELETE FROM reading_snapshots WHERE subject_id = ?", [subject_id])
        except (duckdb.Error, OSError) as e:
            raise PersistenceWriteFailed(f"Failed to delete {subject_id}: {e}") from e

    def count_snapshots(self) -> int:
        with self.connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM reading_snapshots").fetchone()[0]

    # -------------------------------------------------------------------------
    # Logging Operations
    # -------------------------------------------------------------------------

    def log_fetch(
        self,
        subject_id: str,
        source: str,
        status: str,
        duration_ms: int,
        error_message: Optional[str] = None,
    ) -> None:
        """Log a provider fetch attempt.

        Raises:
            PersistenceWriteFailed: If the log row cannot be written
        """
        try:
            with self.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO fetch_log (subject_id, source, timestamp, status, duration_ms, error_message)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        subject_id,
                        source,
                        _to_db_time(utc_now()),
                        status,
                        duration_ms,
                        error_message[:500] if error_message else None,  # Truncate long errors
                    ],
                )
        except (duckdb.Error, OSError) as e:
            raise PersistenceWriteFailed(f"Failed to log fetch for {subject_id}: {e}") from e

    def recent_fetches(self, subject_id: str, limit: int = 20) -> list[dict]:
        """Most recent fetch log entries for a subject, newest first."""
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT source, timestamp, status, duration_ms, error_message
                FROM fetch_log
                WHERE subject_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                [subject_id, limit],
            ).fetchall()
        return [
            {
                "source": row[0],
                "timestamp": _from_db_time(row[1]),
                "status": row[2],
                "duration_ms": row[3],
                "error_message": row[4],
            }
            for row in rows
        ]

    def cleanup_old_fetch_logs(self, keep_days: float = 7, now: Optional[datetime] = None) -> int:
        """Remove fetch log entries older than keep_days.

        Args:
            keep_days: Age limit in days
            now: Reference time (default: now)

        Returns:
            Number of rows deleted

        Raises:
            PersistenceWriteFailed: If the log cannot be cleaned
        """
        cutoff = _to_db_time((now or utc_now()) - timedelta(days=keep_days))
        try:
            with self.connect() as conn:
                deleted = conn.execute(
                    "SELECT COUNT(*) FROM fetch_log WHERE timestamp < ?", [cutoff]
                ).fetchone()[0]
                conn.execute("DELETE FROM fetch_log WHERE timestamp < ?", [cutoff])
        except (duckdb.Error, OSError) as e:
            raise PersistenceWriteFailed(f"Failed to clean up fetch log: {e}") from e
        logger.info(f"Cleaned up {deleted} old fetch log records")
        return deleted

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Get store statistics.

        Raises:
            PersistenceReadFailed: If the database cannot be opened or queried
        """
        try:
            with self.connect() as conn:
                snapshot_count = conn.execute(
                    "SELECT COUNT(*) FROM reading_snapshots"
                ).fetchone()[0]
                fetch_count = conn.execute("SELECT COUNT(*) FROM fetch_log").fetchone()[0]
                failed_count = conn.execute(
                    "SELECT COUNT(*) FROM fetch_log WHERE status = 'error'"
                ).fetchone()[0]
                latest = conn.execute(
                    "SELECT MAX(fetched_at) FROM reading_snapshots"
                ).fetchone()[0]
        except (duckdb.Error, OSError) as e:
            raise PersistenceReadFailed(f"Failed to read store statistics: {e}") from e

        return {
            "snapshot_count": snapshot_count,
            "fetch_count": fetch_count,
            "failed_fetch_count": failed_count,
            "latest_fetched_at": _from_db_time(latest) if latest else None,
            "db_path": str(self.db_path),
        }
