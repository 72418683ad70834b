"""
Conversion between SQLite rows and mailcache models.
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from ..models import (
    Account,
    Attachment,
    EmailAddress,
    Folder,
    Message,
    MessageFlags,
    RecipientType,
    Thread,
    ensure_utc,
)

FLAG_COLUMNS = tuple(MessageFlags.model_fields)


def to_db_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO-8601, so text order equals time order."""
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value).astimezone(timezone.utc)


def utc_now() -> str:
    return to_db_timestamp(datetime.now(timezone.utc))


def row_to_account(row: sqlite3.Row) -> Account:
    """Convert a database row to an Account."""
    return Account(
        id=row["id"],
        email=row["email"],
        provider=row["provider"],
        name=row["name"],
        created_at=from_db_timestamp(row["created_at"]),
        updated_at=from_db_timestamp(row["updated_at"]),
    )


def row_to_folder(row: sqlite3.Row) -> Folder:
    """Convert a database row to a Folder."""
    return Folder(
        id=row["id"],
        account_id=row["account_id"],
        path=row["path"],
        name=row["name"],
        message_count=row["message_count"],
        unread_count=row["unread_count"],
    )


def row_to_thread(row: sqlite3.Row) -> Thread:
    """Convert a database row to a Thread."""
    return Thread(
        id=row["id"],
        account_id=row["account_id"],
        subject=row["subject"],
        has_unread=bool(row["has_unread"]),
        has_starred=bool(row["has_starred"]),
        has_important=bool(row["has_important"]),
        has_attachments=bool(row["has_attachments"]),
        message_count=row["message_count"],
        last_message_at=from_db_timestamp(row["last_message_at"]),
    )


def row_to_message(
    row: sqlite3.Row,
    recipients: list[sqlite3.Row],
    labels: list[str],
    attachments: list[sqlite3.Row],
) -> Message:
    """
    Convert a message row and its child rows to a Message.

    Child rows must already be in stored order (by position).
    """
    by_type: dict[str, list[EmailAddress]] = {t.value: [] for t in RecipientType}
    for r in recipients:
        by_type[r["type"]].append(EmailAddress(name=r["name"], address=r["address"]))

    return Message(
        id=row["id"],
        account_id=row["account_id"],
        provider_id=row["provider_id"],
        thread_id=row["thread_id"],
        subject=row["subject"],
        body_html=row["body_html"],
        body_text=row["body_text"],
        snippet=row["snippet"],
        sender=EmailAddress(name=row["from_name"], address=row["from_address"]),
        to=by_type[RecipientType.TO.value],
        cc=by_type[RecipientType.CC.value],
        bcc=by_type[RecipientType.BCC.value],
        reply_to=by_type[RecipientType.REPLY_TO.value],
        date=from_db_timestamp(row["date"]),
        folder=row["folder"],
        importance=row["importance"],
        priority=row["priority"],
        size=row["size"],
        message_id=row["message_id"],
        in_reply_to=row["in_reply_to"],
        references=json.loads(row["reference_ids"] or "[]"),
        headers=json.loads(row["headers"] or "{}"),
        labels=labels,
        attachments=[
            Attachment(
                id=a["id"],
                filename=a["filename"],
                mime_type=a["mime_type"],
                size=a["size"],
                content_id=a["content_id"],
                is_inline=bool(a["is_inline"]),
                local_path=a["local_path"],
            )
            for a in attachments
        ],
        flags=MessageFlags(**{name: bool(row[name]) for name in FLAG_COLUMNS}),
        created_at=from_db_timestamp(row["created_at"]),
        updated_at=from_db_timestamp(row["updated_at"]),
    )
