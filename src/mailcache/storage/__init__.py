"""
SQLite mail storage for mailcache.

This package provides the local SQLite store behind the mail cache,
with full-text search and derived thread/folder aggregates.

Modules:
    schema: Database schema definitions and table structures
    connection: Per-thread connections and transactions
    migrations: Schema versioning and migrations
    fulltext: Full-text index maintenance and query parsing
    aggregates: Thread and folder recomputation
    writer: Write pipeline for accounts and messages
    query: Search and lookup engine
    maintenance: Vacuum, optimize and statistics
    storage: MailCache, the entry point wiring them together
"""

from .connection import DatabaseConnection
from .migrations import get_schema_version, run_migrations
from .schema import SCHEMA_VERSION
from .storage import MailCache

__all__ = [
    # Main cache
    "MailCache",
    "DatabaseConnection",
    # Migrations
    "SCHEMA_VERSION",
    "run_migrations",
    "get_schema_version",
]
