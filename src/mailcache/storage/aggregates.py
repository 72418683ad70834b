"""
Derived-state maintenance for threads and folders.

Thread and folder rows never hold authoritative data: every counter and
flag is recomputed from the message rows. The functions here take the
connection of an open transaction and are called by the write path after
the base write, so the aggregates commit (or roll back) together with it.

Recomputation reads the current message rows and writes absolute values,
which makes it idempotent: running it again without an intervening write
leaves every aggregate unchanged.

Threads and folders whose last message is gone are kept with zeroed
counters; they are never deleted here.
"""

import logging
import sqlite3
from typing import NamedTuple, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


class MessageLocation(NamedTuple):
    """The fields of a message that decide which aggregates it feeds."""

    thread_id: str
    account_id: str
    folder: str


def locate_message(conn: sqlite3.Connection, message_id: str) -> Optional[MessageLocation]:
    """Return where a stored message currently contributes, or None."""
    row = conn.execute(
        "SELECT thread_id, account_id, folder FROM messages WHERE id = ?",
        (message_id,),
    ).fetchone()
    if row is None:
        return None
    return MessageLocation(row["thread_id"], row["account_id"], row["folder"])


def folder_name(path: str) -> str:
    """Last segment of a folder path, e.g. ``[Gmail]/Sent Mail`` -> ``Sent Mail``."""
    return path.rstrip("/").rsplit("/", 1)[-1] or path


def refresh_thread(conn: sqlite3.Connection, thread_id: str) -> None:
    """Recompute one thread's flags, count and last message date."""
    stats = conn.execute(
        """
        SELECT
            COUNT(*) AS message_count,
            MIN(account_id) AS account_id,
            COALESCE(MAX(is_read = 0), 0) AS has_unread,
            COALESCE(MAX(is_starred), 0) AS has_starred,
            COALESCE(MAX(is_important), 0) AS has_important,
            COALESCE(MAX(has_attachments), 0) AS has_attachments,
            MAX(date) AS last_message_at,
            (
                SELECT subject FROM messages
                WHERE thread_id = ?
                ORDER BY date, id
                LIMIT 1
            ) AS subject
        FROM messages
        WHERE thread_id = ?
        """,
        (thread_id, thread_id),
    ).fetchone()

    if stats["message_count"] == 0:
        conn.execute(
            """
            UPDATE threads SET
                has_unread = 0,
                has_starred = 0,
                has_important = 0,
                has_attachments = 0,
                message_count = 0,
                last_message_at = NULL
            WHERE id = ?
            """,
            (thread_id,),
        )
        return

    conn.execute(
        """
        INSERT INTO threads (
            id, account_id, subject, has_unread, has_starred,
            has_important, has_attachments, message_count, last_message_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            account_id = excluded.account_id,
            subject = excluded.subject,
            has_unread = excluded.has_unread,
            has_starred = excluded.has_starred,
            has_important = excluded.has_important,
            has_attachments = excluded.has_attachments,
            message_count = excluded.message_count,
            last_message_at = excluded.last_message_at
        """,
        (
            thread_id,
            stats["account_id"],
            stats["subject"] or "",
            stats["has_unread"],
            stats["has_starred"],
            stats["has_important"],
            stats["has_attachments"],
            stats["message_count"],
            stats["last_message_at"],
        ),
    )


def refresh_folder(conn: sqlite3.Connection, account_id: str, path: str) -> None:
    """Recompute one folder's message and unread counts."""
    stats = conn.execute(
        """
        SELECT
            COUNT(*) AS message_count,
            COALESCE(SUM(is_read = 0), 0) AS unread_count
        FROM messages
        WHERE account_id = ? AND folder = ?
        """,
        (account_id, path),
    ).fetchone()

    if stats["message_count"] == 0:
        conn.execute(
            """
            UPDATE folders SET message_count = 0, unread_count = 0
            WHERE account_id = ? AND path = ?
            """,
            (account_id, path),
        )
        return

    conn.execute(
        """
        INSERT INTO folders (
            id, account_id, path, name, message_count, unread_count
        ) VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(account_id, path) DO UPDATE SET
            message_count = excluded.message_count,
            unread_count = excluded.unread_count
        """,
        (
            str(uuid4()),
            account_id,
            path,
            folder_name(path),
            stats["message_count"],
            stats["unread_count"],
        ),
    )


def refresh_after_change(
    conn: sqlite3.Connection,
    before: Optional[MessageLocation],
    after: Optional[MessageLocation],
) -> None:
    """
    Refresh every thread and folder a message fed before or after a write.

    A move between threads or folders refreshes both sides.
    """
    locations = [loc for loc in (before, after) if loc is not None]
    for thread_id in dict.fromkeys(loc.thread_id for loc in locations):
        refresh_thread(conn, thread_id)
    for account_id, path in dict.fromkeys((loc.account_id, loc.folder) for loc in locations):
        refresh_folder(conn, account_id, path)


def refresh_many(
    conn: sqlite3.Connection,
    thread_ids: list[str],
    folders: list[tuple[str, str]],
) -> None:
    for thread_id in thread_ids:
        refresh_thread(conn, thread_id)
    for account_id, path in folders:
        refresh_folder(conn, account_id, path)


def refresh_all(
    conn: sqlite3.Connection, account_id: Optional[str] = None
) -> tuple[int, int]:
    """
    Recompute every thread and folder, optionally for one account.

    Covers rows that exist only as messages and rows that exist only as
    (now empty) thread/folder records.

    Returns:
        (threads refreshed, folders refreshed)
    """
    if account_id is None:
        thread_rows = conn.execute(
            "SELECT thread_id FROM messages UNION SELECT id FROM threads"
        ).fetchall()
        folder_rows = conn.execute(
            """
            SELECT account_id, folder FROM messages
            UNION SELECT account_id, path FROM folders
            """
        ).fetchall()
    else:
        thread_rows = conn.execute(
            """
            SELECT thread_id FROM messages WHERE account_id = ?
            UNION SELECT id FROM threads WHERE account_id = ?
            """,
            (account_id, account_id),
        ).fetchall()
        folder_rows = conn.execute(
            """
            SELECT account_id, folder FROM messages WHERE account_id = ?
            UNION SELECT account_id, path FROM folders WHERE account_id = ?
            """,
            (account_id, account_id),
        ).fetchall()

    thread_ids = [row[0] for row in thread_rows]
    folders = [(row[0], row[1]) for row in folder_rows]
    refresh_many(conn, thread_ids, folders)
    logger.debug(
        f"Recomputed {len(thread_ids)} threads and {len(folders)} folders"
    )
    return len(thread_ids), len(folders)
