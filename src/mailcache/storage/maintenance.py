"""
Maintenance service for mailcache.

Compaction, planner statistics and read-only cache statistics. Maintenance
failures never raise: they are logged as ``MaintenanceWarning`` and the
operation reports ``False``.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from ..exceptions import MaintenanceWarning
from ..models import CacheStatistics, FolderCount
from . import aggregates, fulltext
from .connection import DatabaseConnection
from .migrations import get_schema_version

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Housekeeping operations on an open store."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def _warn(self, operation: str, error: Exception) -> None:
        warning = MaintenanceWarning(
            f"{operation} failed", details={"error": str(error)}
        )
        logger.warning(str(warning))

    def vacuum(self) -> bool:
        """
        Compact the store file.

        Needs exclusive access; when another connection holds a
        transaction this fails and reports False.
        """
        try:
            self._db.execute("VACUUM")
            self._db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except sqlite3.Error as e:
            self._warn("VACUUM", e)
            return False
        logger.info("Database vacuumed")
        return True

    def optimize(self) -> bool:
        """Refresh planner statistics and merge the full-text index."""
        try:
            self._db.execute("ANALYZE")
            fulltext.optimize(self._db.connection)
            self._db.execute("PRAGMA optimize")
        except sqlite3.Error as e:
            self._warn("Optimize", e)
            return False
        logger.info("Database optimized")
        return True

    def check_integrity(self) -> bool:
        """Run SQLite's integrity check and the full-text integrity check."""
        try:
            result = self._db.scalar("PRAGMA integrity_check", default="")
            if result != "ok":
                self._warn("Integrity check", RuntimeError(result))
                return False
            self._db.execute(
                "INSERT INTO messages_fts(messages_fts) VALUES('integrity-check')"
            )
        except sqlite3.Error as e:
            self._warn("Integrity check", e)
            return False
        return True

    def rebuild_fulltext_index(self) -> Optional[int]:
        """
        Rebuild the full-text index from the message rows.

        Returns:
            Number of indexed messages, or None on failure.
        """
        try:
            with self._db.transaction() as conn:
                return fulltext.rebuild(conn)
        except sqlite3.Error as e:
            self._warn("Full-text rebuild", e)
            return None

    def recompute_all(self, account_id: Optional[str] = None) -> Optional[tuple[int, int]]:
        """
        Recompute every thread and folder aggregate.

        Returns:
            (threads, folders) refreshed, or None on failure.
        """
        try:
            with self._db.transaction() as conn:
                return aggregates.refresh_all(conn, account_id)
        except sqlite3.Error as e:
            self._warn("Aggregate recompute", e)
            return None

    def get_statistics(self) -> CacheStatistics:
        """Collect counts and sizes in one consistent read."""
        with self._db.snapshot() as conn:

            def count(sql: str) -> int:
                value = conn.execute(sql).fetchone()[0]
                return value or 0

            by_account = {
                row["account_id"]: row["n"]
                for row in conn.execute(
                    "SELECT account_id, COUNT(*) AS n FROM messages GROUP BY account_id"
                )
            }
            by_folder = [
                FolderCount(
                    account_id=row["account_id"],
                    path=row["folder"],
                    message_count=row["n"],
                )
                for row in conn.execute(
                    """
                    SELECT account_id, folder, COUNT(*) AS n FROM messages
                    GROUP BY account_id, folder
                    ORDER BY account_id, folder
                    """
                )
            ]

            stats = CacheStatistics(
                total_accounts=count("SELECT COUNT(*) FROM accounts"),
                total_messages=count("SELECT COUNT(*) FROM messages"),
                unread_messages=count("SELECT COUNT(*) FROM messages WHERE is_read = 0"),
                total_threads=count("SELECT COUNT(*) FROM threads WHERE message_count > 0"),
                total_attachments=count("SELECT COUNT(*) FROM attachments"),
                attachment_size_bytes=count("SELECT SUM(size) FROM attachments"),
                storage_size_bytes=(
                    count("PRAGMA page_count") * count("PRAGMA page_size")
                    + self._wal_size()
                ),
                schema_version=get_schema_version(self._db),
                messages_by_account=by_account,
                messages_by_folder=by_folder,
            )
        return stats

    def _wal_size(self) -> int:
        """Bytes in the write-ahead log not yet checkpointed into the main file."""
        wal_path = Path(f"{self._db.db_path}-wal")
        return wal_path.stat().st_size if wal_path.exists() else 0
