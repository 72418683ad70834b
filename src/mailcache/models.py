"""
Pydantic models for mailcache entities.

These models describe the records handed in by the sync adapters and the
objects handed back to the UI/search layer. Every model accepts both the
camelCase wire shape produced by the adapters (``accountId``, ``isRead``)
and snake_case field names.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class Importance(str, Enum):
    """Importance/priority level of a message."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class RecipientType(str, Enum):
    """Recipient header a stored address came from."""

    TO = "to"
    CC = "cc"
    BCC = "bcc"
    REPLY_TO = "replyTo"


class SortField(str, Enum):
    """Columns a search can be ordered by."""

    DATE = "date"
    FROM = "from"
    SUBJECT = "subject"
    SIZE = "size"
    RELEVANCE = "relevance"


class SortDirection(str, Enum):
    """Sort direction for search results."""

    ASC = "asc"
    DESC = "desc"


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CacheModel(BaseModel):
    """Base model for all cache entities."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to a camelCase dictionary for the UI layer."""
        return self.model_dump(mode="json", by_alias=True)


class EmailAddress(CacheModel):
    """A mailbox address with optional display name."""

    name: Optional[str] = Field(None, description="Display name")
    address: str = Field(..., min_length=1, description="Email address")

    @field_validator("address")
    @classmethod
    def strip_address(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Address must not be blank")
        return v


class MessageFlags(CacheModel):
    """Flags bundle carried by every message."""

    is_read: bool = False
    is_starred: bool = False
    is_trashed: bool = False
    is_spam: bool = False
    is_important: bool = False
    is_archived: bool = False
    is_draft: bool = False
    is_sent: bool = False
    has_attachments: bool = False


class MessageFlagsUpdate(CacheModel):
    """Partial flags update: only fields that are set are applied."""

    is_read: Optional[bool] = None
    is_starred: Optional[bool] = None
    is_trashed: Optional[bool] = None
    is_spam: Optional[bool] = None
    is_important: Optional[bool] = None
    is_archived: Optional[bool] = None
    is_draft: Optional[bool] = None
    is_sent: Optional[bool] = None
    has_attachments: Optional[bool] = None

    def changes(self) -> dict[str, bool]:
        """Return the flag fields that were supplied."""
        return self.model_dump(exclude_none=True)


class Attachment(CacheModel):
    """Attachment metadata. Content lives outside the cache."""

    id: str = Field(..., min_length=1, description="Attachment ID")
    filename: str = Field(..., description="Filename")
    mime_type: str = Field(
        default="application/octet-stream", description="MIME type"
    )
    size: int = Field(default=0, ge=0, description="Size in bytes")
    content_id: Optional[str] = Field(
        None, description="Content-ID for inline attachments"
    )
    is_inline: bool = Field(default=False, description="Inline attachment")
    local_path: Optional[str] = Field(
        None, description="Local file path if downloaded"
    )


def _dedupe_addresses(addresses: list[EmailAddress]) -> list[EmailAddress]:
    seen: set[str] = set()
    unique = []
    for addr in addresses:
        if addr.address not in seen:
            seen.add(addr.address)
            unique.append(addr)
    return unique


def _dedupe_labels(labels: list[str]) -> list[str]:
    if any(not label for label in labels):
        raise ValueError("Labels must be non-empty strings")
    return list(dict.fromkeys(labels))


class Message(CacheModel):
    """
    A normalized message record.

    This is both the input shape consumed from the sync adapters and the
    fully rehydrated object returned by lookups and searches.
    """

    id: str = Field(..., min_length=1, description="Globally unique message ID")
    account_id: str = Field(..., min_length=1, description="Owning account ID")
    provider_id: str = Field(default="", description="Provider-specific ID")
    thread_id: str = Field(..., min_length=1, description="Conversation ID")
    subject: str = Field(default="", description="Message subject")
    body_html: Optional[str] = Field(None, description="HTML body")
    body_text: Optional[str] = Field(None, description="Plain text body")
    snippet: str = Field(default="", description="Preview text")
    sender: EmailAddress = Field(..., alias="from", description="From address")
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    bcc: list[EmailAddress] = Field(default_factory=list)
    reply_to: list[EmailAddress] = Field(default_factory=list)
    date: datetime = Field(..., description="Message date")
    folder: str = Field(..., min_length=1, description="Folder path")
    importance: Importance = Field(default=Importance.NORMAL)
    priority: Importance = Field(default=Importance.NORMAL)
    size: int = Field(default=0, ge=0, description="Size in bytes")
    message_id: str = Field(default="", description="Message-ID header")
    in_reply_to: Optional[str] = Field(None, description="In-Reply-To header")
    references: list[str] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    labels: list[str] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    flags: MessageFlags = Field(default_factory=MessageFlags)
    created_at: Optional[datetime] = Field(
        None, description="First stored in the cache"
    )
    updated_at: Optional[datetime] = Field(
        None, description="Last written in the cache"
    )

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("to", "cc", "bcc", "reply_to")
    @classmethod
    def dedupe_recipients(cls, v: list[EmailAddress]) -> list[EmailAddress]:
        """One row per (type, address): later duplicates are dropped."""
        return _dedupe_addresses(v)

    @field_validator("labels")
    @classmethod
    def dedupe_labels(cls, v: list[str]) -> list[str]:
        return _dedupe_labels(v)

    def recipients(self) -> list[tuple[str, EmailAddress]]:
        """Flatten all recipient lists into (type, address) pairs."""
        pairs = []
        for rtype, addresses in (
            (RecipientType.TO.value, self.to),
            (RecipientType.CC.value, self.cc),
            (RecipientType.BCC.value, self.bcc),
            (RecipientType.REPLY_TO.value, self.reply_to),
        ):
            pairs.extend((rtype, addr) for addr in addresses)
        return pairs


class MessageUpdate(CacheModel):
    """Partial message update applied by ``update_message``."""

    flags: Optional[MessageFlagsUpdate] = None
    folder: Optional[str] = Field(None, min_length=1)
    labels: Optional[list[str]] = None

    @field_validator("labels")
    @classmethod
    def dedupe_labels(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        return _dedupe_labels(v)

    def is_empty(self) -> bool:
        """True when the update would not change anything."""
        return (
            (self.flags is None or not self.flags.changes())
            and self.folder is None
            and self.labels is None
        )


class Account(CacheModel):
    """A mail account mirrored by the cache."""

    id: str = Field(..., min_length=1, description="Account ID")
    email: EmailStr = Field(..., description="Account email address")
    provider: str = Field(..., min_length=1, description="Provider name")
    name: str = Field(default="", description="Display name")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Folder(CacheModel):
    """A folder with its derived message counters."""

    id: str
    account_id: str
    path: str
    name: str
    message_count: int = 0
    unread_count: int = 0


class Thread(CacheModel):
    """A conversation: a materialized aggregate over its messages."""

    id: str
    account_id: str
    subject: str = ""
    has_unread: bool = False
    has_starred: bool = False
    has_important: bool = False
    has_attachments: bool = False
    message_count: int = 0
    last_message_at: Optional[datetime] = None


class SearchOptions(CacheModel):
    """
    Conjunctive search filters plus sort and pagination.

    Attributes:
        query: Free-text query, ranked against the full-text index.
        account_id: Restrict to one account.
        folder_id: Restrict to the folder row with this ID.
        folder: Restrict to this folder path.
        sender: Substring of the sender address or display name.
        recipient: Substring of a ``to`` recipient address or name.
        subject: Substring of the subject.
        label: Message carries this label.
        has_attachments: Filter by attachment presence.
        is_unread: Filter by unread status.
        is_starred: Filter by starred status.
        date_from: Earliest message date (inclusive).
        date_to: Latest message date (inclusive).
        sort_by: Sort column; relevance when unset and ``query`` is given.
        sort_order: Sort direction.
        limit: Page size; when unset the configured default applies, and
            with no configured default every match is returned.
        offset: Rows to skip after filtering and sorting.
    """

    query: Optional[str] = None
    account_id: Optional[str] = None
    folder_id: Optional[str] = None
    folder: Optional[str] = None
    sender: Optional[str] = Field(None, alias="from")
    recipient: Optional[str] = Field(None, alias="to")
    subject: Optional[str] = None
    label: Optional[str] = None
    has_attachments: Optional[bool] = None
    is_unread: Optional[bool] = None
    is_starred: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: Optional[SortField] = None
    sort_order: SortDirection = SortDirection.DESC
    limit: Optional[int] = None
    offset: int = 0

    @field_validator("date_from", "date_to")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else v


class FolderCount(CacheModel):
    """Message count for one (account, folder) pair."""

    account_id: str
    path: str
    message_count: int


class CacheStatistics(CacheModel):
    """Read-only snapshot of cache contents and size."""

    total_accounts: int = 0
    total_messages: int = 0
    unread_messages: int = 0
    total_threads: int = 0
    total_attachments: int = 0
    attachment_size_bytes: int = 0
    storage_size_bytes: int = 0
    schema_version: int = 0
    messages_by_account: dict[str, int] = Field(default_factory=dict)
    messages_by_folder: list[FolderCount] = Field(default_factory=list)
