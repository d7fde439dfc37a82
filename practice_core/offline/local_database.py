# =============================================================================
# practice_core/offline/local_database.py
# Local SQLite Store for Offline Operations
# =============================================================================
"""
LocalDatabase - device-local durable storage for the offline write path.

Three regions live in one SQLite file:
- pending_mutations: the log of writes waiting to be replayed (FIFO by seq)
- cached_data: last known-good rows per logical table (last writer wins)
- sync_metadata: timestamps of sync-completion markers

Every operation is best-effort. If the platform refuses the database file the
store stays "not ready" and each call returns its empty default, so the app
keeps working without durability.
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union
import logging

import numpy as np
import pandas as pd

from practice_core.errors import LocalStorageError, MutationValidationError, error_boundary
from practice_core.offline.models import MutationOperation, QueuedMutation

logger = logging.getLogger(__name__)


# =============================================================================
# PAYLOAD CODEC
# =============================================================================

def _json_default(value: Any) -> Any:
    """Convert the non-JSON types that turn up in form rows and DataFrames."""
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_payload(payload: Any) -> str:
    """
    Serialize a payload for the pending log.

    Raises:
        MutationValidationError: if the payload can never be stored
    """
    try:
        return json.dumps(payload, default=_json_default)
    except (TypeError, ValueError) as e:
        raise MutationValidationError(f"Payload is not serializable: {e}") from e


def decode_payload(payload_json: Optional[str]) -> Any:
    """Inverse of encode_payload."""
    if payload_json is None:
        return None
    return json.loads(payload_json)


class LocalDatabase:
    """
    SQLite-backed store for pending mutations, cached rows and sync markers.

    One connection is shared across threads and serialised with a lock.
    """

    DEFAULT_DB_PATH = Path("local_data") / "practice_offline.db"

    SCHEMA = {
        "pending_mutations": """
            CREATE TABLE IF NOT EXISTS pending_mutations (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                table_name TEXT NOT NULL,
                operation TEXT NOT NULL,
                payload_json TEXT,
                enqueued_at INTEGER NOT NULL,
                attempts INTEGER DEFAULT 0,
                last_error TEXT,
                last_attempt_at INTEGER
            )
        """,
        "cached_data": """
            CREATE TABLE IF NOT EXISTS cached_data (
                table_name TEXT PRIMARY KEY,
                rows_json TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
        "sync_metadata": """
            CREATE TABLE IF NOT EXISTS sync_metadata (
                key TEXT PRIMARY KEY,
                timestamp INTEGER NOT NULL
            )
        """,
    }

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """
        Initialize local store (no I/O happens until initialize()).

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = Path(db_path) if db_path is not None else self.DEFAULT_DB_PATH
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._initialized = False
        self._ready = False

    @property
    def is_ready(self) -> bool:
        """True when the database file is open and the schema exists."""
        return self._ready

    def initialize(self) -> bool:
        """
        Open the database and create the schema.

        Safe to call repeatedly and from several threads; only the first call
        does any work. A failure leaves the store in "not ready" mode.

        Returns:
            True if the store is usable
        """
        with self._lock:
            if self._initialized:
                return self._ready
            self._initialized = True

            try:
                if str(self.db_path) != ":memory:":
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
                conn.row_factory = sqlite3.Row
                for table_name, schema in self.SCHEMA.items():
                    conn.execute(schema)
                    logger.debug(f"Created/verified table: {table_name}")
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                logger.warning(f"Local store unavailable at {self.db_path}, continuing without durability: {e}")
                self._ready = False
                return False

            self._connection = conn
            self._ready = True
            logger.info(f"Local store initialized at: {self.db_path}")
            return True

    def _ensure_ready(self) -> bool:
        if not self._initialized:
            self.initialize()
        return self._ready

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a committed-or-rolled-back write."""
        with self._lock:
            if not self._ensure_ready() or self._connection is None:
                raise LocalStorageError("Local store is not available", db_path=str(self.db_path))
            conn = self._connection
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _query(self, sql: str, params: Optional[List] = None) -> List[sqlite3.Row]:
        with self._lock:
            if self._connection is None:
                return []
            return self._connection.execute(sql, params or []).fetchall()

    # =========================================================================
    # CACHED SNAPSHOTS
    # =========================================================================

    @error_boundary(default_return=None)
    def set_cached_data(self, table: str, rows: Union[List[Any], pd.DataFrame]) -> None:
        """Replace the cached snapshot for a table."""
        if not self._ensure_ready():
            return
        if isinstance(rows, pd.DataFrame):
            rows = rows.to_dict(orient="records")

        rows_json = json.dumps(list(rows), default=_json_default)
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cached_data (table_name, rows_json, updated_at)
                VALUES (?, ?, ?)
                """,
                [table, rows_json, datetime.now().isoformat()]
            )

    @error_boundary(default_return=list)
    def get_cached_data(self, table: str) -> List[Any]:
        """Get the most recent snapshot for a table (empty when none)."""
        if not self._ensure_ready():
            return []
        rows = self._query("SELECT rows_json FROM cached_data WHERE table_name = ?", [table])
        if not rows:
            return []
        return json.loads(rows[0]["rows_json"])

    def get_cached_dataframe(self, table: str) -> pd.DataFrame:
        """Load a cached snapshot into a pandas DataFrame."""
        return pd.DataFrame(self.get_cached_data(table))

    # =========================================================================
    # SYNC METADATA
    # =========================================================================

    @error_boundary(default_return=None)
    def get_last_sync_time(self, key: str) -> Optional[int]:
        """Get a stored sync timestamp (ms since epoch) or None."""
        if not self._ensure_ready():
            return None
        rows = self._query("SELECT timestamp FROM sync_metadata WHERE key = ?", [key])
        return int(rows[0]["timestamp"]) if rows else None

    @error_boundary(default_return=None)
    def set_last_sync_time(self, key: str, timestamp: int) -> None:
        """Persist the timestamp for a sync-completion marker."""
        if not self._ensure_ready():
            return
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_metadata (key, timestamp) VALUES (?, ?)",
                [key, int(timestamp)]
            )

    # =========================================================================
    # PENDING MUTATION LOG
    # =========================================================================

    @error_boundary(default_return=False)
    def add_pending_mutation(
        self,
        mutation: QueuedMutation,
        payload_json: Optional[str] = None,
    ) -> bool:
        """
        Append a mutation to the pending log.

        Returns:
            True once the row is committed, False if it could not be stored
        """
        if not self._ensure_ready():
            return False
        if payload_json is None:
            payload_json = encode_payload(mutation.payload)

        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO pending_mutations
                    (id, table_name, operation, payload_json, enqueued_at, attempts)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    mutation.id,
                    mutation.table,
                    mutation.operation.value,
                    payload_json,
                    mutation.enqueued_at,
                    mutation.attempts,
                ]
            )
        return True

    @error_boundary(default_return=list)
    def get_pending_mutations(self) -> List[QueuedMutation]:
        """Get the pending log in enqueue order."""
        if not self._ensure_ready():
            return []
        rows = self._query("SELECT * FROM pending_mutations ORDER BY seq ASC")

        mutations = []
        for row in rows:
            try:
                operation = MutationOperation(row["operation"])
            except ValueError:
                logger.warning(f"Skipping pending mutation {row['id']} with unknown operation {row['operation']!r}")
                continue
            try:
                payload = decode_payload(row["payload_json"])
            except json.JSONDecodeError as e:
                logger.warning(f"Pending mutation {row['id']} has an unreadable payload: {e}")
                payload = row["payload_json"]
            mutations.append(QueuedMutation(
                id=row["id"],
                table=row["table_name"],
                operation=operation,
                payload=payload,
                enqueued_at=row["enqueued_at"],
                attempts=row["attempts"] or 0,
                last_error=row["last_error"],
            ))
        return mutations

    @error_boundary(default_return=False)
    def remove_pending_mutation(self, mutation_id: str) -> bool:
        """Delete a mutation from the log after it was applied."""
        if not self._ensure_ready():
            return False
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM pending_mutations WHERE id = ?", [mutation_id])
            return cursor.rowcount > 0

    @error_boundary(default_return=None)
    def record_failed_attempt(self, mutation_id: str, error: str, attempted_at: int) -> None:
        """Bump the attempt counter of a mutation that failed to apply."""
        if not self._ensure_ready():
            return
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE pending_mutations
                SET attempts = attempts + 1, last_error = ?, last_attempt_at = ?
                WHERE id = ?
                """,
                [error, attempted_at, mutation_id]
            )

    @error_boundary(default_return=0)
    def get_pending_count(self) -> int:
        """Count of mutations still waiting in the log."""
        if not self._ensure_ready():
            return 0
        rows = self._query("SELECT COUNT(*) AS count FROM pending_mutations")
        return rows[0]["count"] if rows else 0

    # =========================================================================
    # HOUSEKEEPING
    # =========================================================================

    @error_boundary(default_return=None)
    def clear_all(self) -> None:
        """Remove every cached snapshot, pending mutation and sync marker."""
        if not self._ensure_ready():
            return
        with self.transaction() as conn:
            for table_name in self.SCHEMA:
                conn.execute(f"DELETE FROM {table_name}")
        logger.info("Local store cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Get store information for UI display."""
        return {
            "db_path": str(self.db_path),
            "ready": self.is_ready,
            "pending": self.get_pending_count(),
        }

    def close(self) -> None:
        """Close the database connection; a later call reopens it."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
            self._initialized = False
            self._ready = False
