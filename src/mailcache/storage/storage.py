"""
Main mail cache class for mailcache.

This module provides the MailCache class, the single entry point the
sync adapters and the UI/search layer talk to. It owns one database
handle and wires together:

- the write pipeline (accounts and messages, with derived state)
- the query engine (searches and lookups)
- the maintenance service (vacuum, optimize, statistics)

Example:
    with MailCache("/tmp/mail.db") as cache:
        cache.upsert_account({"id": "a1", "email": "me@example.com", "provider": "imap"})
        cache.insert_message({...})
        unread = cache.search_messages({"accountId": "a1", "isUnread": True})
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

from ..config import Settings, get_settings
from ..exceptions import InitializationError, RecordNotFoundError
from ..models import (
    Account,
    CacheStatistics,
    Folder,
    Message,
    MessageUpdate,
    SearchOptions,
    Thread,
)
from . import aggregates
from .connection import DatabaseConnection
from .maintenance import MaintenanceService
from .migrations import run_migrations
from .query import QueryEngine
from .writer import WritePipeline

logger = logging.getLogger(__name__)


class MailCache:
    """
    SQLite-backed mail cache with full-text search.

    Each instance is independent and owned by its creator; call
    :meth:`close` (or use it as a context manager) when done.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Open (or create) the store and bring its schema up to date.

        Args:
            db_path: Path to the database file. Defaults to the
                configured per-profile location.
            settings: Settings to use; loaded from the environment when omitted.

        Raises:
            InitializationError: If the store cannot be opened or migrated.
        """
        self._settings = settings or get_settings()
        if db_path is None:
            db_path = self._settings.storage.db_path

        self._db = DatabaseConnection(db_path, self._settings.storage)
        try:
            self._schema_version = run_migrations(self._db)
        except InitializationError:
            self._db.close()
            raise

        self._writer = WritePipeline(self._db)
        self._query = QueryEngine(self._db, self._settings.search)
        self._maintenance = MaintenanceService(self._db)

        logger.info(f"Mail cache initialized: {self._db.db_path}")

    def __enter__(self) -> "MailCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def db_path(self) -> str:
        return self._db.db_path

    @property
    def schema_version(self) -> int:
        return self._schema_version

    def close(self) -> None:
        """Close every connection held by this cache."""
        self._db.close()

    def release_thread(self) -> None:
        """
        Close the calling thread's connection.

        Worker threads that are about to exit call this so their
        connection is not held until :meth:`close`. The next call from
        the same thread opens a fresh connection.
        """
        self._db.close_current_thread()

    # =========================================================================
    # Account Operations
    # =========================================================================

    def upsert_account(self, account: Union[Account, dict[str, Any]]) -> Account:
        """Insert or update an account and return the stored record."""
        account_id = self._writer.upsert_account(account)
        return self._query.get_account(account_id)

    def delete_account(self, account_id: str) -> bool:
        """Delete an account with all of its messages, threads and folders."""
        return self._writer.delete_account(account_id)

    def get_account(self, account_id: str) -> Optional[Account]:
        return self._query.get_account(account_id)

    def list_accounts(self) -> list[Account]:
        return self._query.list_accounts()

    # =========================================================================
    # Message Operations
    # =========================================================================

    def insert_message(self, message: Union[Message, dict[str, Any]]) -> Message:
        """
        Insert or wholesale-replace a message.

        Returns:
            The stored message as it now reads back.

        Raises:
            WriteError: If nothing was written.
        """
        message_id = self._writer.insert_message(message)
        return self._query.get_message(message_id)

    def update_message(
        self, message_id: str, updates: Union[MessageUpdate, dict[str, Any]]
    ) -> int:
        """Apply a partial update; returns the number of messages changed (0 or 1)."""
        return self._writer.update_message(message_id, updates)

    def delete_message(self, message_id: str) -> int:
        """Delete a message; returns the number of messages removed (0 or 1)."""
        return self._writer.delete_message(message_id)

    def delete_messages_by_account(self, account_id: str) -> int:
        """Delete all messages of an account; the account row stays."""
        return self._writer.delete_messages_by_account(account_id)

    def get_message(self, message_id: str) -> Optional[Message]:
        return self._query.get_message(message_id)

    def get_messages_by_thread(self, thread_id: str) -> list[Message]:
        return self._query.get_messages_by_thread(thread_id)

    def search_messages(
        self, options: Union[SearchOptions, dict[str, Any], None] = None
    ) -> list[Message]:
        """
        Search messages.

        Raises:
            QueryError: If the options are invalid.
        """
        return self._query.search(options)

    # =========================================================================
    # Thread and Folder Operations
    # =========================================================================

    def get_thread(self, thread_id: str) -> Optional[Thread]:
        return self._query.get_thread(thread_id)

    def get_threads(self, account_id: str, limit: int = 50, offset: int = 0) -> list[Thread]:
        return self._query.get_threads(account_id, limit, offset)

    def get_folder(self, account_id: str, path: str) -> Optional[Folder]:
        return self._query.get_folder(account_id, path)

    def get_folders(self, account_id: str) -> list[Folder]:
        return self._query.get_folders(account_id)

    def recompute_thread(self, thread_id: str) -> Thread:
        """
        Recompute one thread from its messages.

        Raises:
            RecordNotFoundError: If neither the thread nor any of its
                messages exist.
        """
        with self._db.transaction() as conn:
            aggregates.refresh_thread(conn, thread_id)
        thread = self._query.get_thread(thread_id)
        if thread is None:
            raise RecordNotFoundError("threads", thread_id)
        return thread

    def recompute_folder(self, account_id: str, path: str) -> Folder:
        """
        Recompute one folder from its messages.

        Raises:
            RecordNotFoundError: If neither the folder nor any of its
                messages exist.
        """
        with self._db.transaction() as conn:
            aggregates.refresh_folder(conn, account_id, path)
        folder = self._query.get_folder(account_id, path)
        if folder is None:
            raise RecordNotFoundError("folders", f"{account_id}:{path}")
        return folder

    def recompute_all(self, account_id: Optional[str] = None) -> Optional[tuple[int, int]]:
        """Recompute every thread and folder; (threads, folders) or None on failure."""
        return self._maintenance.recompute_all(account_id)

    # =========================================================================
    # Maintenance Operations
    # =========================================================================

    def vacuum(self) -> bool:
        return self._maintenance.vacuum()

    def optimize(self) -> bool:
        return self._maintenance.optimize()

    def get_statistics(self) -> CacheStatistics:
        return self._maintenance.get_statistics()

    def check_integrity(self) -> bool:
        return self._maintenance.check_integrity()

    def rebuild_fulltext_index(self) -> Optional[int]:
        return self._maintenance.rebuild_fulltext_index()
