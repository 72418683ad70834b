"""
Query engine for mailcache.

This module turns ``SearchOptions`` into a single parameterized SELECT,
runs it, and rehydrates the matching messages with their recipients,
labels and attachments. All filters combine with AND. Free-text queries
are matched against the FTS5 index and ranked by bm25.
"""

import logging
import sqlite3
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError

from ..config import SearchSettings
from ..exceptions import QueryError
from ..models import (
    Account,
    Folder,
    Message,
    SearchOptions,
    SortDirection,
    SortField,
    Thread,
)
from . import fulltext
from .connection import DatabaseConnection
from .rows import (
    row_to_account,
    row_to_folder,
    row_to_message,
    row_to_thread,
    to_db_timestamp,
)

logger = logging.getLogger(__name__)

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on old builds
_HYDRATE_BATCH = 500

_SORT_COLUMNS = {
    SortField.DATE.value: "m.date",
    SortField.FROM.value: "COALESCE(NULLIF(m.from_name, ''), m.from_address) COLLATE NOCASE",
    SortField.SUBJECT.value: "m.subject COLLATE NOCASE",
    SortField.SIZE.value: "m.size",
}


def escape_like(value: str) -> str:
    """Wrap a literal substring for ``LIKE ... ESCAPE '\\'``."""
    escaped = (
        value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


class MessageQuery:
    """
    Builds the SQL for one search.

    Validation happens up front so a rejected search never reaches SQLite.
    """

    def __init__(self, options: SearchOptions, settings: SearchSettings):
        self.options = options
        self.settings = settings
        self.conditions: list[str] = []
        self.params: list[Any] = []
        self.match: Optional[str] = None
        # None runs the search uncapped
        self.limit = settings.default_limit if options.limit is None else options.limit

    def validate(self) -> None:
        """
        Reject contradictory or out-of-range options.

        Raises:
            QueryError: Describing the first problem found.
        """
        opts = self.options
        if self.limit is not None and (self.limit < 1 or self.limit > self.settings.max_limit):
            raise QueryError(
                f"limit must be between 1 and {self.settings.max_limit}",
                details={"limit": self.limit},
            )
        if opts.offset < 0:
            raise QueryError("offset must not be negative", details={"offset": opts.offset})
        if opts.date_from and opts.date_to and opts.date_from > opts.date_to:
            raise QueryError(
                "dateFrom is later than dateTo",
                details={
                    "date_from": opts.date_from.isoformat(),
                    "date_to": opts.date_to.isoformat(),
                },
            )
        if opts.query is not None and opts.query.strip():
            self.match = fulltext.build_match_expression(opts.query)
        if opts.sort_by == SortField.RELEVANCE.value and self.match is None:
            raise QueryError("Relevance sort requires a search query")

    def _add(self, condition: str, *params: Any) -> None:
        self.conditions.append(condition)
        self.params.extend(params)

    def _filters(self) -> None:
        opts = self.options

        if opts.account_id is not None:
            self._add("m.account_id = ?", opts.account_id)

        if opts.folder_id is not None:
            self._add(
                """EXISTS (
                    SELECT 1 FROM folders f
                    WHERE f.id = ? AND f.account_id = m.account_id AND f.path = m.folder
                )""",
                opts.folder_id,
            )

        if opts.folder is not None:
            self._add("m.folder = ?", opts.folder)

        if opts.sender:
            pattern = escape_like(opts.sender)
            self._add(
                "(m.from_address LIKE ? ESCAPE '\\' OR m.from_name LIKE ? ESCAPE '\\')",
                pattern,
                pattern,
            )

        if opts.recipient:
            pattern = escape_like(opts.recipient)
            self._add(
                """EXISTS (
                    SELECT 1 FROM recipients r
                    WHERE r.message_id = m.id AND r.type = 'to'
                    AND (r.address LIKE ? ESCAPE '\\' OR r.name LIKE ? ESCAPE '\\')
                )""",
                pattern,
                pattern,
            )

        if opts.subject:
            self._add("m.subject LIKE ? ESCAPE '\\'", escape_like(opts.subject))

        if opts.label is not None:
            self._add(
                "EXISTS (SELECT 1 FROM labels l WHERE l.message_id = m.id AND l.label = ?)",
                opts.label,
            )

        if opts.has_attachments is not None:
            self._add("m.has_attachments = ?", int(opts.has_attachments))

        if opts.is_unread is not None:
            self._add("m.is_read = ?", 0 if opts.is_unread else 1)

        if opts.is_starred is not None:
            self._add("m.is_starred = ?", int(opts.is_starred))

        if opts.date_from is not None:
            self._add("m.date >= ?", to_db_timestamp(opts.date_from))

        if opts.date_to is not None:
            self._add("m.date <= ?", to_db_timestamp(opts.date_to))

    def _order_by(self) -> str:
        opts = self.options
        sort_by = opts.sort_by
        if sort_by is None:
            sort_by = SortField.RELEVANCE.value if self.match else SortField.DATE.value

        if sort_by == SortField.RELEVANCE.value:
            # bm25 rank: smaller is better
            return "hits.rank, m.date DESC, m.id"

        direction = "ASC" if opts.sort_order == SortDirection.ASC.value else "DESC"
        return f"{_SORT_COLUMNS[sort_by]} {direction}, m.id {direction}"

    def build(self) -> tuple[str, tuple]:
        """
        Build the SELECT statement and its parameters.

        Returns:
            (sql, params)
        """
        self.validate()
        self._filters()

        prefix = ""
        join = ""
        params: list[Any] = []
        if self.match is not None:
            prefix = (
                "WITH hits AS (SELECT rowid AS doc_id, rank FROM messages_fts "
                "WHERE messages_fts MATCH ?) "
            )
            join = "JOIN hits ON hits.doc_id = m.doc_id"
            params.append(self.match)

        where_clause = ""
        if self.conditions:
            where_clause = "WHERE " + " AND ".join(self.conditions)
        params.extend(self.params)
        params.extend([-1 if self.limit is None else self.limit, self.options.offset])

        sql = f"""
            {prefix}SELECT m.* FROM messages m
            {join}
            {where_clause}
            ORDER BY {self._order_by()}
            LIMIT ? OFFSET ?
        """
        return sql, tuple(params)


class QueryEngine:
    """Read side of the cache: searches and lookups."""

    def __init__(self, db: DatabaseConnection, settings: Optional[SearchSettings] = None):
        self._db = db
        self._settings = settings or SearchSettings()

    def search(self, options: Union[SearchOptions, dict[str, Any], None] = None) -> list[Message]:
        """
        Run a search and return fully populated messages.

        Raises:
            QueryError: If the options are invalid or the full-text
                engine rejects the query.
        """
        if options is None:
            options = SearchOptions()
        elif not isinstance(options, SearchOptions):
            try:
                options = SearchOptions.model_validate(options)
            except ValidationError as e:
                raise QueryError(
                    "Invalid search options",
                    details={"errors": e.errors(include_url=False)},
                ) from e

        sql, params = MessageQuery(options, self._settings).build()

        try:
            with self._db.snapshot() as conn:
                rows = conn.execute(sql, params).fetchall()
                messages = self._hydrate(conn, rows)
        except sqlite3.OperationalError as e:
            logger.warning(f"Search rejected by SQLite: {e}")
            raise QueryError(
                "Search could not be executed",
                query=options.query,
                details={"error": str(e)},
            ) from e

        logger.debug(f"Search returned {len(messages)} messages")
        return messages

    def get_message(self, message_id: str) -> Optional[Message]:
        """Get a message by ID."""
        with self._db.snapshot() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE id = ?", (message_id,)
            ).fetchone()
            if row is None:
                return None
            return self._hydrate(conn, [row])[0]

    def get_messages_by_thread(self, thread_id: str) -> list[Message]:
        """Get every message of a thread, oldest first."""
        with self._db.snapshot() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE thread_id = ? ORDER BY date ASC, id ASC",
                (thread_id,),
            ).fetchall()
            return self._hydrate(conn, rows)

    def _hydrate(self, conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[Message]:
        """Attach child rows to message rows, preserving row order."""
        ids = [row["id"] for row in rows]
        recipients: dict[str, list[sqlite3.Row]] = {i: [] for i in ids}
        labels: dict[str, list[str]] = {i: [] for i in ids}
        attachments: dict[str, list[sqlite3.Row]] = {i: [] for i in ids}

        for batch in _batches(ids, _HYDRATE_BATCH):
            placeholders = ", ".join("?" for _ in batch)
            for r in conn.execute(
                f"SELECT * FROM recipients WHERE message_id IN ({placeholders}) "
                "ORDER BY message_id, position",
                batch,
            ):
                recipients[r["message_id"]].append(r)
            for r in conn.execute(
                f"SELECT message_id, label FROM labels WHERE message_id IN ({placeholders}) "
                "ORDER BY message_id, position",
                batch,
            ):
                labels[r["message_id"]].append(r["label"])
            for r in conn.execute(
                f"SELECT * FROM attachments WHERE message_id IN ({placeholders}) "
                "ORDER BY message_id, position",
                batch,
            ):
                attachments[r["message_id"]].append(r)

        return [
            row_to_message(row, recipients[row["id"]], labels[row["id"]], attachments[row["id"]])
            for row in rows
        ]

    # =========================================================================
    # Accounts, threads and folders
    # =========================================================================

    def get_account(self, account_id: str) -> Optional[Account]:
        row = self._db.fetchone("SELECT * FROM accounts WHERE id = ?", (account_id,))
        return row_to_account(row) if row else None

    def list_accounts(self) -> list[Account]:
        rows = self._db.fetchall("SELECT * FROM accounts ORDER BY email, id")
        return [row_to_account(row) for row in rows]

    def get_thread(self, thread_id: str) -> Optional[Thread]:
        row = self._db.fetchone("SELECT * FROM threads WHERE id = ?", (thread_id,))
        return row_to_thread(row) if row else None

    def get_threads(self, account_id: str, limit: int = 50, offset: int = 0) -> list[Thread]:
        """
        Get non-empty threads of an account, most recent first.

        Raises:
            QueryError: If limit or offset is out of range.
        """
        if limit < 1 or limit > self._settings.max_limit:
            raise QueryError(
                f"limit must be between 1 and {self._settings.max_limit}",
                details={"limit": limit},
            )
        if offset < 0:
            raise QueryError("offset must not be negative", details={"offset": offset})
        rows = self._db.fetchall(
            """
            SELECT * FROM threads
            WHERE account_id = ? AND message_count > 0
            ORDER BY last_message_at DESC, id
            LIMIT ? OFFSET ?
            """,
            (account_id, limit, offset),
        )
        return [row_to_thread(row) for row in rows]

    def get_folder(self, account_id: str, path: str) -> Optional[Folder]:
        row = self._db.fetchone(
            "SELECT * FROM folders WHERE account_id = ? AND path = ?",
            (account_id, path),
        )
        return row_to_folder(row) if row else None

    def get_folders(self, account_id: str) -> list[Folder]:
        """Get all folders of an account ordered by path."""
        rows = self._db.fetchall(
            "SELECT * FROM folders WHERE account_id = ? ORDER BY path",
            (account_id,),
        )
        return [row_to_folder(row) for row in rows]


def _batches(items: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
