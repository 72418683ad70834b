"""
Write pipeline for mailcache.

Every public write runs in a single ``BEGIN IMMEDIATE`` transaction that
covers the base rows, the child rows, the full-text entry and the thread
and folder aggregates. A failure anywhere rolls all of it back.
"""

import json
import logging
import sqlite3
from typing import Any, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from ..exceptions import WriteError
from ..models import Account, Message, MessageUpdate
from . import aggregates, fulltext
from .aggregates import MessageLocation
from .connection import DatabaseConnection
from .rows import FLAG_COLUMNS, to_db_timestamp, utc_now
from .schema import MESSAGE_CHILD_TABLES

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_MESSAGE_COLUMNS = (
    "id",
    "account_id",
    "provider_id",
    "thread_id",
    "folder",
    "subject",
    "body_text",
    "body_html",
    "snippet",
    "from_name",
    "from_address",
    "date",
    "size",
    "importance",
    "priority",
    "message_id",
    "in_reply_to",
    "reference_ids",
    "headers",
    *FLAG_COLUMNS,
    "created_at",
    "updated_at",
)

# created_at survives a re-insert; everything else is replaced
_MESSAGE_UPSERT_SQL = f"""
    INSERT INTO messages ({", ".join(_MESSAGE_COLUMNS)})
    VALUES ({", ".join("?" for _ in _MESSAGE_COLUMNS)})
    ON CONFLICT(id) DO UPDATE SET
        {", ".join(f"{c} = excluded.{c}" for c in _MESSAGE_COLUMNS if c not in ("id", "created_at"))}
"""


def _coerce(model_cls: Type[ModelT], value: Union[ModelT, dict[str, Any]], operation: str) -> ModelT:
    """Accept a model instance or a camelCase/snake_case dict."""
    if isinstance(value, model_cls):
        return value
    try:
        return model_cls.model_validate(value)
    except ValidationError as e:
        raise WriteError(
            f"Invalid {model_cls.__name__} input",
            operation=operation,
            details={"errors": e.errors(include_url=False)},
        ) from e


class WritePipeline:
    """Applies account and message writes together with their derived state."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def upsert_account(self, account: Union[Account, dict[str, Any]]) -> str:
        """
        Insert or update an account.

        Updating an existing account never touches the rows it owns.

        Returns:
            The account ID.
        """
        acct = _coerce(Account, account, "upsert_account")
        now = utc_now()
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO accounts (id, email, provider, name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        email = excluded.email,
                        provider = excluded.provider,
                        name = excluded.name,
                        updated_at = excluded.updated_at
                    """,
                    (acct.id, acct.email, acct.provider, acct.name, now, now),
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to upsert account {acct.id}: {e}")
            raise WriteError(
                f"Failed to upsert account {acct.id}",
                operation="upsert_account",
                details={"error": str(e)},
            ) from e

        logger.debug(f"Upserted account {acct.id}")
        return acct.id

    def delete_account(self, account_id: str) -> bool:
        """
        Delete an account and, by cascade, everything it owns.

        Returns:
            True if an account was deleted.
        """
        try:
            with self._db.transaction() as conn:
                fulltext.unindex_account(conn, account_id)
                cursor = conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Failed to delete account {account_id}: {e}")
            raise WriteError(
                f"Failed to delete account {account_id}",
                operation="delete_account",
                details={"error": str(e)},
            ) from e

        if deleted:
            logger.info(f"Deleted account {account_id}")
        return deleted

    def insert_message(self, message: Union[Message, dict[str, Any]]) -> str:
        """
        Insert a message, or replace it wholesale if the ID exists.

        Recipients, labels and attachments are replaced, never merged.
        The full-text entry and the aggregates of the previous and new
        thread/folder are refreshed in the same transaction.

        Returns:
            The message ID.

        Raises:
            WriteError: On invalid input, unknown account or any SQL failure.
        """
        msg = _coerce(Message, message, "insert_message")
        now = utc_now()
        row = (
            msg.id,
            msg.account_id,
            msg.provider_id,
            msg.thread_id,
            msg.folder,
            msg.subject,
            msg.body_text,
            msg.body_html,
            msg.snippet,
            msg.sender.name,
            msg.sender.address,
            to_db_timestamp(msg.date),
            msg.size,
            msg.importance,
            msg.priority,
            msg.message_id,
            msg.in_reply_to,
            json.dumps(msg.references),
            json.dumps(msg.headers),
            *(int(getattr(msg.flags, name)) for name in FLAG_COLUMNS),
            now,
            now,
        )

        try:
            with self._db.transaction() as conn:
                before = aggregates.locate_message(conn, msg.id)

                conn.execute(_MESSAGE_UPSERT_SQL, row)
                for table in MESSAGE_CHILD_TABLES:
                    conn.execute(f"DELETE FROM {table} WHERE message_id = ?", (msg.id,))
                self._insert_children(conn, msg)

                fulltext.index_message(conn, msg.id)
                aggregates.refresh_after_change(
                    conn,
                    before,
                    MessageLocation(msg.thread_id, msg.account_id, msg.folder),
                )
        except sqlite3.IntegrityError as e:
            logger.error(f"Rejected message {msg.id}: {e}")
            raise WriteError(
                f"Message {msg.id} violates a constraint",
                operation="insert_message",
                details={"account_id": msg.account_id, "error": str(e)},
            ) from e
        except sqlite3.Error as e:
            logger.error(f"Failed to insert message {msg.id}: {e}")
            raise WriteError(
                f"Failed to insert message {msg.id}",
                operation="insert_message",
                details={"error": str(e)},
            ) from e

        logger.debug(
            f"{'Replaced' if before else 'Inserted'} message {msg.id} "
            f"in {msg.account_id}:{msg.folder}"
        )
        return msg.id

    def _insert_children(self, conn: sqlite3.Connection, msg: Message) -> None:
        conn.executemany(
            """
            INSERT INTO recipients (message_id, type, address, name, position)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (msg.id, rtype, addr.address, addr.name, position)
                for position, (rtype, addr) in enumerate(msg.recipients())
            ],
        )
        self._insert_labels(conn, msg.id, msg.labels)
        conn.executemany(
            """
            INSERT INTO attachments (
                id, message_id, filename, mime_type, size,
                content_id, is_inline, local_path, position
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    att.id,
                    msg.id,
                    att.filename,
                    att.mime_type,
                    att.size,
                    att.content_id,
                    int(att.is_inline),
                    att.local_path,
                    position,
                )
                for position, att in enumerate(msg.attachments)
            ],
        )

    @staticmethod
    def _insert_labels(conn: sqlite3.Connection, message_id: str, labels: list[str]) -> None:
        conn.executemany(
            "INSERT INTO labels (message_id, label, position) VALUES (?, ?, ?)",
            [(message_id, label, position) for position, label in enumerate(labels)],
        )

    def update_message(
        self, message_id: str, updates: Union[MessageUpdate, dict[str, Any]]
    ) -> int:
        """
        Apply a partial update to a stored message.

        Only supplied flags change; ``labels`` replaces the whole label set;
        ``folder`` moves the message. Aggregates of both the old and new
        folder are refreshed.

        Returns:
            1 if the message was updated, 0 if it does not exist or the
            update is empty.
        """
        upd = _coerce(MessageUpdate, updates, "update_message")
        if upd.is_empty():
            return 0

        flag_changes = upd.flags.changes() if upd.flags is not None else {}
        assignments = [f"{name} = ?" for name in flag_changes]
        params: list[Any] = [int(value) for value in flag_changes.values()]
        if upd.folder is not None:
            assignments.append("folder = ?")
            params.append(upd.folder)
        assignments.append("updated_at = ?")
        params.append(utc_now())

        try:
            with self._db.transaction() as conn:
                before = aggregates.locate_message(conn, message_id)
                if before is None:
                    return 0

                conn.execute(
                    f"UPDATE messages SET {', '.join(assignments)} WHERE id = ?",
                    (*params, message_id),
                )
                if upd.labels is not None:
                    conn.execute("DELETE FROM labels WHERE message_id = ?", (message_id,))
                    self._insert_labels(conn, message_id, upd.labels)

                if flag_changes or upd.folder is not None:
                    fulltext.index_message(conn, message_id)
                    after = before._replace(folder=upd.folder or before.folder)
                    aggregates.refresh_after_change(conn, before, after)
        except sqlite3.Error as e:
            logger.error(f"Failed to update message {message_id}: {e}")
            raise WriteError(
                f"Failed to update message {message_id}",
                operation="update_message",
                details={"error": str(e)},
            ) from e

        logger.debug(f"Updated message {message_id}")
        return 1

    def delete_message(self, message_id: str) -> int:
        """
        Delete one message with its children and full-text entry.

        Returns:
            1 if the message was deleted, 0 if it did not exist.
        """
        try:
            with self._db.transaction() as conn:
                before = aggregates.locate_message(conn, message_id)
                if before is None:
                    return 0

                fulltext.unindex_message(conn, message_id)
                conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
                aggregates.refresh_after_change(conn, before, None)
        except sqlite3.Error as e:
            logger.error(f"Failed to delete message {message_id}: {e}")
            raise WriteError(
                f"Failed to delete message {message_id}",
                operation="delete_message",
                details={"error": str(e)},
            ) from e

        logger.debug(f"Deleted message {message_id}")
        return 1

    def delete_messages_by_account(self, account_id: str) -> int:
        """
        Delete every message of an account, keeping the account row.

        Returns:
            Number of deleted messages.
        """
        try:
            with self._db.transaction() as conn:
                thread_ids = [
                    r[0]
                    for r in conn.execute(
                        "SELECT DISTINCT thread_id FROM messages WHERE account_id = ?",
                        (account_id,),
                    )
                ]
                folders = [
                    (account_id, r[0])
                    for r in conn.execute(
                        "SELECT DISTINCT folder FROM messages WHERE account_id = ?",
                        (account_id,),
                    )
                ]

                fulltext.unindex_account(conn, account_id)
                cursor = conn.execute(
                    "DELETE FROM messages WHERE account_id = ?", (account_id,)
                )
                deleted = cursor.rowcount
                aggregates.refresh_many(conn, thread_ids, folders)
        except sqlite3.Error as e:
            logger.error(f"Failed to delete messages of account {account_id}: {e}")
            raise WriteError(
                f"Failed to delete messages of account {account_id}",
                operation="delete_messages_by_account",
                details={"error": str(e)},
            ) from e

        logger.info(f"Deleted {deleted} messages of account {account_id}")
        return deleted
