# =============================================================================
# records_core/offline/local_database.py
# Local SQLite Key-Value Store for Offline Operation
# =============================================================================
"""
LocalDatabase - durable client-side cache backing the patient mirror.

Features:
- Single key-value table, created on first use
- JSON helpers for whole-document reads and writes
- Thread-local connections
- Transaction support
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union
import logging

from records_core.errors import CacheError

logger = logging.getLogger(__name__)


class LocalDatabase:
    """
    Local SQLite key-value store for offline data.

    Each value is a text blob; writes overwrite the whole entry.
    """

    # Default database location
    DEFAULT_DB_PATH = Path("local_data") / "clinic_records.db"

    SCHEMA = {
        "kv_store": """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._local = threading.local()
        self._initialized = False

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._ensure_directory()
            self._local.connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        try:
            with self.transaction() as conn:
                for table_name, schema in self.SCHEMA.items():
                    conn.execute(schema)
                    logger.debug(f"Created/verified table: {table_name}")
        except (sqlite3.Error, OSError) as e:
            raise CacheError(f"Cannot initialize local cache: {e}", path=str(self.db_path)) from e

        self._initialized = True
        logger.info(f"Local cache initialized at: {self.db_path}")

    # =========================================================================
    # KEY-VALUE OPERATIONS
    # =========================================================================

    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get the raw text stored under a key."""
        self.initialize()
        try:
            row = self._get_connection().execute(
                "SELECT value FROM kv_store WHERE key = ?", [key]
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheError(f"Error reading '{key}' from local cache: {e}", key=key) from e

        return row["value"] if row else default

    def set_value(self, key: str, value: str) -> None:
        """Store text under a key, replacing any previous value."""
        self.initialize()
        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    [key, value, datetime.now().isoformat()],
                )
        except sqlite3.Error as e:
            raise CacheError(f"Error writing '{key}' to local cache: {e}", key=key) from e

    def delete_value(self, key: str) -> bool:
        """Remove a key. Returns True if something was deleted."""
        self.initialize()
        try:
            with self.transaction() as conn:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", [key])
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise CacheError(f"Error deleting '{key}' from local cache: {e}", key=key) from e

    def keys(self) -> List[str]:
        """List stored keys."""
        self.initialize()
        try:
            rows = self._get_connection().execute(
                "SELECT key FROM kv_store ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise CacheError(f"Error listing local cache keys: {e}") from e
        return [row["key"] for row in rows]

    # =========================================================================
    # JSON DOCUMENTS
    # =========================================================================

    def save_json(self, key: str, value: Any) -> None:
        """Serialize a value to JSON and store it under a key."""
        self.set_value(key, json.dumps(value))

    def load_json(self, key: str, default: Any = None) -> Any:
        """
        Load a JSON document.

        Returns:
            The decoded value, or default when the key is absent

        Raises:
            CacheError: stored text is not valid JSON
        """
        raw = self.get_value(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise CacheError(f"Corrupt JSON stored under '{key}': {e}", key=key) from e

    def close(self) -> None:
        """Close database connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None
