"""
SQLite connection management for mailcache.

This module provides:
- Per-thread connections so readers never share a cursor with the writer
- Context managers for transactions
- Connection configuration (WAL mode, foreign keys, cache and mmap limits)
- Explicit cleanup owned by the caller

SQLite settings applied to every connection:
1. WAL (Write-Ahead Logging) so reads proceed while a write is in flight
2. Foreign key enforcement for cascading deletes
3. Busy timeout so concurrent writers queue instead of failing
4. Bounded page cache and memory-mapped reads
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from ..config import StorageSettings
from ..exceptions import InitializationError

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Thread-safe SQLite connection pool.

    Each thread gets its own connection. SQLite serializes writers with
    ``BEGIN IMMEDIATE`` while WAL lets the other threads keep reading.
    A connection lives until its thread calls ``close_current_thread``
    or the pool is closed with ``close_all``.
    """

    def __init__(self, db_path: str, settings: StorageSettings):
        """
        Initialize the connection pool.

        Args:
            db_path: Path to the SQLite database file.
            settings: Storage settings used to configure each connection.
        """
        self._db_path = db_path
        self._settings = settings
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def get_connection(self) -> sqlite3.Connection:
        """
        Get a connection for the current thread.

        Returns:
            SQLite connection configured for the cache.
        """
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            return conn

        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.get(thread_id)
            if conn is None:
                conn = self._create_connection()
                self._connections[thread_id] = conn

        self._local.connection = conn
        return conn

    def _create_connection(self) -> sqlite3.Connection:
        """
        Create and configure a new SQLite connection.

        Returns:
            Configured SQLite connection.
        """
        settings = self._settings
        conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,  # one connection per thread, see get_connection
            isolation_level=None,  # autocommit; explicit transactions via transaction()
            timeout=settings.busy_timeout_ms / 1000,
        )

        conn.row_factory = sqlite3.Row

        try:
            # Only takes effect before the first table exists
            conn.execute("PRAGMA auto_vacuum = INCREMENTAL")

            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute(f"PRAGMA busy_timeout = {int(settings.busy_timeout_ms)}")
            conn.execute(f"PRAGMA mmap_size = {int(settings.mmap_size_bytes)}")
            conn.execute(f"PRAGMA synchronous = {settings.synchronous}")

            # Negative = KiB
            conn.execute(f"PRAGMA cache_size = -{int(settings.cache_size_kb)}")
        except sqlite3.Error:
            conn.close()
            raise

        logger.debug(f"Created new SQLite connection for thread {threading.get_ident()}")
        return conn

    def close_current_thread(self) -> None:
        """Close the connection for the current thread."""
        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.pop(thread_id, None)
            if conn is not None:
                try:
                    conn.close()
                    logger.debug(f"Closed connection for thread {thread_id}")
                except sqlite3.Error as e:
                    logger.warning(f"Error closing thread connection: {e}")

        self._local.connection = None

    @property
    def open_connections(self) -> int:
        """Number of connections currently held by the pool."""
        with self._lock:
            return len(self._connections)

    def close_all(self) -> None:
        """Close all connections in the pool."""
        with self._lock:
            for thread_id, conn in self._connections.items():
                try:
                    conn.close()
                    logger.debug(f"Closed connection for thread {thread_id}")
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection: {e}")
            self._connections.clear()

        self._local.connection = None


class DatabaseConnection:
    """
    High-level database connection manager.

    Provides context managers for connections and transactions. Each
    instance is owned by the caller that created it; there is no shared
    process-wide instance.
    """

    def __init__(self, db_path: str | Path, settings: Optional[StorageSettings] = None):
        """
        Initialize the database connection manager.

        Args:
            db_path: Path to the database file.
            settings: Storage settings; defaults are used when omitted.

        Raises:
            InitializationError: If the database file cannot be opened.
        """
        self._db_path = str(db_path)
        self._settings = settings or StorageSettings()
        try:
            self._pool = ConnectionPool(self._db_path, self._settings)
            # Open eagerly so a bad path fails here, not on first query
            self._pool.get_connection()
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Cannot open database {self._db_path}: {e}")
            raise InitializationError(
                f"Cannot open database at {self._db_path}",
                details={"error": str(e)},
            ) from e
        logger.info(f"Database connection manager initialized: {self._db_path}")

    @property
    def db_path(self) -> str:
        """Get the database file path."""
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        """Get a connection for the current thread."""
        return self._pool.get_connection()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database transactions.

        Commits on success and rolls back on exception. Nested use joins
        the outer transaction, so a base write and its aggregate refresh
        always commit together.

        Yields:
            SQLite connection within a transaction.

        Example:
            with db.transaction() as conn:
                conn.execute("INSERT INTO ...")
                conn.execute("UPDATE ...")
            # Auto-commits here
        """
        conn = self.connection
        in_transaction = conn.in_transaction
        if not in_transaction:
            conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            if not in_transaction:
                conn.commit()
        except Exception:
            if not in_transaction:
                conn.rollback()
            raise

    @contextmanager
    def snapshot(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for a consistent multi-statement read.

        Opens a deferred transaction so every statement inside sees the
        same committed state. Inside an open transaction it is a no-op.
        """
        conn = self.connection
        in_transaction = conn.in_transaction
        if not in_transaction:
            conn.execute("BEGIN")
        try:
            yield conn
        finally:
            if not in_transaction and conn.in_transaction:
                conn.rollback()

    def execute(
        self,
        sql: str,
        params: tuple = (),
    ) -> sqlite3.Cursor:
        """
        Execute a SQL statement.

        Args:
            sql: SQL statement to execute.
            params: Parameters for the statement.

        Returns:
            Cursor with results.
        """
        return self.connection.execute(sql, params)

    def fetchone(
        self,
        sql: str,
        params: tuple = (),
    ) -> Optional[sqlite3.Row]:
        """
        Execute and fetch one row.

        Args:
            sql: SQL query to execute.
            params: Query parameters.

        Returns:
            Single row or None.
        """
        return self.execute(sql, params).fetchone()

    def fetchall(
        self,
        sql: str,
        params: tuple = (),
    ) -> list[sqlite3.Row]:
        """
        Execute and fetch all rows.

        Args:
            sql: SQL query to execute.
            params: Query parameters.

        Returns:
            List of rows.
        """
        return self.execute(sql, params).fetchall()

    def scalar(self, sql: str, params: tuple = (), default: int = 0):
        """Execute and return the first column of the first row."""
        row = self.fetchone(sql, params)
        if row is None or row[0] is None:
            return default
        return row[0]

    def close_current_thread(self) -> None:
        """Close the connection of the calling thread only."""
        self._pool.close_current_thread()

    @property
    def open_connections(self) -> int:
        """Number of per-thread connections currently open."""
        return self._pool.open_connections

    def close(self) -> None:
        """Close all database connections."""
        self._pool.close_all()
        logger.info("All database connections closed")
