"""mailcache - Local mail cache and search engine backed by SQLite."""

from mailcache.__version__ import (
    __author__,
    __copyright__,
    __description__,
    __license__,
    __title__,
    __version__,
    __version_info__,
    get_version,
    get_version_info,
)
from mailcache.exceptions import (
    DatabaseError,
    InitializationError,
    MailCacheError,
    MaintenanceWarning,
    QueryError,
    RecordNotFoundError,
    WriteError,
)
from mailcache.models import (
    Account,
    Attachment,
    CacheStatistics,
    EmailAddress,
    Folder,
    Message,
    MessageFlags,
    MessageUpdate,
    SearchOptions,
    Thread,
)
from mailcache.storage import MailCache

__all__ = [
    "__version__",
    "__version_info__",
    "__title__",
    "__description__",
    "__author__",
    "__license__",
    "__copyright__",
    "get_version",
    "get_version_info",
    # Cache
    "MailCache",
    # Models
    "Account",
    "Attachment",
    "CacheStatistics",
    "EmailAddress",
    "Folder",
    "Message",
    "MessageFlags",
    "MessageUpdate",
    "SearchOptions",
    "Thread",
    # Errors
    "MailCacheError",
    "DatabaseError",
    "InitializationError",
    "WriteError",
    "QueryError",
    "RecordNotFoundError",
    "MaintenanceWarning",
]
