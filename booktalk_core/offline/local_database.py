# =============================================================================
# booktalk_core/offline/local_database.py
# Local SQLite Key-Value Database for Offline Operations
# =============================================================================
"""
LocalDatabase - SQLite-backed key-value storage for on-device data.

Features:
- Automatic schema creation
- JSON-encoded values
- Multi-key writes in a single transaction
"""

from __future__ import annotations
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from booktalk_core.errors import LocalStorageError
from booktalk_core.logging import get_logger

logger = get_logger(__name__)

IN_MEMORY = ":memory:"


class LocalDatabase:
    """
    Local SQLite database holding one JSON document per key.
    """

    SCHEMA = {
        "kv_store": """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    def __init__(self, db_path: Union[str, Path] = IN_MEMORY):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path if db_path == IN_MEMORY else Path(db_path)
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            except sqlite3.Error as e:
                raise LocalStorageError(f"Cannot open local database: {e}", details={"path": str(self.db_path)})
            self._connection.row_factory = sqlite3.Row
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise LocalStorageError(f"Local database write failed: {e}")
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")

        self._initialized = True
        logger.info(f"Local database initialized at: {self.db_path}")

    # =========================================================================
    # KEY-VALUE OPERATIONS
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read and decode the value stored under ``key``.

        Undecodable JSON is logged and reported as ``default`` so a single
        corrupt entry never locks the reader out of the rest of the journal.
        """
        self.initialize()
        try:
            row = self._get_connection().execute(
                "SELECT value FROM kv_store WHERE key = ?", [key]
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Local database read failed: {e}", key=key)

        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.error(f"Failed to decode local value for {key}: {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        """Encode and store ``value`` under ``key`` (full overwrite)."""
        self.write_batch({key: value})

    def write_batch(self, items: Dict[str, Any], delete_keys: Optional[List[str]] = None) -> None:
        """Store and delete keys in one transaction."""
        self.initialize()
        now = datetime.now().isoformat()
        with self.transaction() as conn:
            if items:
                conn.executemany(
                    "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                    [(k, json.dumps(v, ensure_ascii=False), now) for k, v in items.items()],
                )
            for key in delete_keys or []:
                conn.execute("DELETE FROM kv_store WHERE key = ?", [key])

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""
        self.initialize()
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", [key])
            return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys, optionally filtered by prefix."""
        self.initialize()
        try:
            rows = self._get_connection().execute(
                "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                [len(prefix), prefix],
            ).fetchall()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Local database read failed: {e}")
        return [row["key"] for row in rows]

    def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            self._initialized = False
