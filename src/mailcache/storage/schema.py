"""
SQLite database schema definitions for mailcache.

This module defines the database schema including:
- Base tables for accounts, folders, threads, messages and their
  recipients, labels and attachments
- The FTS5 full-text table over message text fields
- Indexes for the hot query paths, including partial indexes for
  unread-only and starred-only lookups

Schema Design Principles:
1. Every owned row cascades from its owner (account -> message -> parts)
2. Threads and folders hold derived counters only; messages are authoritative
3. The FTS table is keyed by messages.doc_id and maintained explicitly
   by the write path (see fulltext.py), never by triggers
4. Timestamps are stored as fixed-width UTC ISO-8601 text so that string
   order equals time order
"""

# Current schema version
SCHEMA_VERSION = 1

# Tables created atomically by the v1 migration. A failure here is fatal.
SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now')),
    description TEXT
);

-- Accounts own everything else
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    provider TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Folders: derived counters over messages with the same (account_id, path)
CREATE TABLE IF NOT EXISTS folders (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    path TEXT NOT NULL,
    name TEXT NOT NULL,
    message_count INTEGER NOT NULL DEFAULT 0,
    unread_count INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE,
    UNIQUE (account_id, path)
);

-- Threads: derived aggregates over messages with the same thread_id
CREATE TABLE IF NOT EXISTS threads (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    subject TEXT NOT NULL DEFAULT '',
    has_unread INTEGER NOT NULL DEFAULT 0,
    has_starred INTEGER NOT NULL DEFAULT 0,
    has_important INTEGER NOT NULL DEFAULT 0,
    has_attachments INTEGER NOT NULL DEFAULT 0,
    message_count INTEGER NOT NULL DEFAULT 0,
    last_message_at TEXT,
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
);

-- Messages (authoritative rows). doc_id aliases the rowid so it is stable
-- across VACUUM and can key the full-text table.
CREATE TABLE IF NOT EXISTS messages (
    doc_id INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    account_id TEXT NOT NULL,
    provider_id TEXT NOT NULL DEFAULT '',
    thread_id TEXT NOT NULL,
    folder TEXT NOT NULL,
    subject TEXT NOT NULL DEFAULT '',
    body_text TEXT,
    body_html TEXT,
    snippet TEXT NOT NULL DEFAULT '',
    from_name TEXT,
    from_address TEXT NOT NULL,
    date TEXT NOT NULL,
    size INTEGER NOT NULL DEFAULT 0,
    importance TEXT NOT NULL DEFAULT 'normal',
    priority TEXT NOT NULL DEFAULT 'normal',
    message_id TEXT NOT NULL DEFAULT '',  -- RFC 5322 Message-ID header
    in_reply_to TEXT,
    reference_ids TEXT NOT NULL DEFAULT '[]',  -- JSON array of Message-IDs
    headers TEXT NOT NULL DEFAULT '{}',  -- JSON object
    is_read INTEGER NOT NULL DEFAULT 0,
    is_starred INTEGER NOT NULL DEFAULT 0,
    is_trashed INTEGER NOT NULL DEFAULT 0,
    is_spam INTEGER NOT NULL DEFAULT 0,
    is_important INTEGER NOT NULL DEFAULT 0,
    is_archived INTEGER NOT NULL DEFAULT 0,
    is_draft INTEGER NOT NULL DEFAULT 0,
    is_sent INTEGER NOT NULL DEFAULT 0,
    has_attachments INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
);

-- Recipients, one row per (message, header, address)
CREATE TABLE IF NOT EXISTS recipients (
    message_id TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('to', 'cc', 'bcc', 'replyTo')),
    address TEXT NOT NULL,
    name TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE,
    UNIQUE (message_id, type, address)
);

-- Labels
CREATE TABLE IF NOT EXISTS labels (
    message_id TEXT NOT NULL,
    label TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE,
    PRIMARY KEY (message_id, label)
);

-- Attachment metadata (content is stored outside the cache)
CREATE TABLE IF NOT EXISTS attachments (
    id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    filename TEXT NOT NULL,
    mime_type TEXT NOT NULL DEFAULT 'application/octet-stream',
    size INTEGER NOT NULL DEFAULT 0,
    content_id TEXT,
    is_inline INTEGER NOT NULL DEFAULT 0,
    local_path TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE,
    PRIMARY KEY (message_id, id)
);

-- Full-text index, rowid = messages.doc_id
CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
    subject,
    body_text,
    from_name,
    from_address,
    snippet,
    tokenize='porter unicode61'
);
"""

# Indexes are created one statement at a time; a failure only costs speed.
INDEX_STATEMENTS = [
    # Folder and thread listings
    "CREATE INDEX IF NOT EXISTS idx_folders_account_id ON folders(account_id)",
    "CREATE INDEX IF NOT EXISTS idx_threads_account_last_message"
    " ON threads(account_id, last_message_at DESC)",
    # Message indexes (critical for listing and aggregate refresh)
    "CREATE INDEX IF NOT EXISTS idx_messages_account_folder"
    " ON messages(account_id, folder, date DESC)",
    "CREATE INDEX IF NOT EXISTS idx_messages_thread_date ON messages(thread_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_messages_date ON messages(date DESC)",
    "CREATE INDEX IF NOT EXISTS idx_messages_from_address ON messages(from_address)",
    "CREATE INDEX IF NOT EXISTS idx_messages_subject ON messages(subject COLLATE NOCASE)",
    "CREATE INDEX IF NOT EXISTS idx_messages_size ON messages(size)",
    # Partial index for the unread counter and "unread only" views
    "CREATE INDEX IF NOT EXISTS idx_messages_folder_unread"
    " ON messages(account_id, folder) WHERE is_read = 0",
    # Partial index for starred messages by date
    "CREATE INDEX IF NOT EXISTS idx_messages_starred_date"
    " ON messages(date DESC) WHERE is_starred = 1",
    # Child tables
    "CREATE INDEX IF NOT EXISTS idx_recipients_message ON recipients(message_id, type)",
    "CREATE INDEX IF NOT EXISTS idx_recipients_address ON recipients(address)",
    "CREATE INDEX IF NOT EXISTS idx_labels_label ON labels(label)",
    "CREATE INDEX IF NOT EXISTS idx_attachments_message_id ON attachments(message_id)",
]

# Columns mirrored into messages_fts, in FTS column order
FTS_COLUMNS = ("subject", "body_text", "from_name", "from_address", "snippet")

# Tables owned by a message, deleted wholesale on re-insert
MESSAGE_CHILD_TABLES = ("recipients", "labels", "attachments")
