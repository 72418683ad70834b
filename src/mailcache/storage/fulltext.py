"""
Full-text index maintenance and query parsing.

The FTS5 table is maintained by explicit calls from every write path,
inside the same transaction as the base write, rather than by triggers.
A message's entry is keyed by ``messages.doc_id``.
"""

import logging
import re
import sqlite3

from ..exceptions import QueryError
from .schema import FTS_COLUMNS

logger = logging.getLogger(__name__)

_FTS_COLUMN_LIST = ", ".join(FTS_COLUMNS)
_SOURCE_COLUMN_LIST = ", ".join(f"COALESCE({c}, '')" for c in FTS_COLUMNS)

_TERM_RE = re.compile(r"\w+", re.UNICODE)


def index_message(conn: sqlite3.Connection, message_id: str) -> None:
    """Replace the full-text entry of one message with its current text."""
    row = conn.execute(
        "SELECT doc_id FROM messages WHERE id = ?", (message_id,)
    ).fetchone()
    if row is None:
        return
    conn.execute("DELETE FROM messages_fts WHERE rowid = ?", (row["doc_id"],))
    conn.execute(
        f"""
        INSERT INTO messages_fts (rowid, {_FTS_COLUMN_LIST})
        SELECT doc_id, {_SOURCE_COLUMN_LIST} FROM messages WHERE doc_id = ?
        """,
        (row["doc_id"],),
    )


def unindex_message(conn: sqlite3.Connection, message_id: str) -> None:
    """Drop the full-text entry of a message that is about to be deleted."""
    conn.execute(
        """
        DELETE FROM messages_fts WHERE rowid IN (
            SELECT doc_id FROM messages WHERE id = ?
        )
        """,
        (message_id,),
    )


def unindex_account(conn: sqlite3.Connection, account_id: str) -> None:
    """Drop the full-text entries of all messages of an account."""
    conn.execute(
        """
        DELETE FROM messages_fts WHERE rowid IN (
            SELECT doc_id FROM messages WHERE account_id = ?
        )
        """,
        (account_id,),
    )


def rebuild(conn: sqlite3.Connection) -> int:
    """
    Repopulate the whole index from the message table.

    Returns:
        Number of indexed messages.
    """
    conn.execute("DELETE FROM messages_fts")
    conn.execute(
        f"""
        INSERT INTO messages_fts (rowid, {_FTS_COLUMN_LIST})
        SELECT doc_id, {_SOURCE_COLUMN_LIST} FROM messages
        """
    )
    indexed = conn.execute("SELECT COUNT(*) FROM messages_fts").fetchone()[0]
    logger.info(f"Rebuilt full-text index ({indexed} messages)")
    return indexed


def optimize(conn: sqlite3.Connection) -> None:
    """Merge the FTS b-trees."""
    conn.execute("INSERT INTO messages_fts(messages_fts) VALUES('optimize')")


def build_match_expression(query: str) -> str:
    """
    Turn free text into an FTS5 MATCH expression.

    Every word becomes a quoted prefix term and all terms must match, so
    user input can never inject FTS operators.

    Raises:
        QueryError: If the text contains no searchable terms.
    """
    terms = _TERM_RE.findall(query)
    if not terms:
        raise QueryError("Search query has no searchable terms", query=query)
    return " ".join(f'"{term}"*' for term in terms)
