"""
Database migration system for mailcache.

This module handles:
- Schema versioning
- Incremental migrations
- Index creation, retried on every start

Migration Philosophy:
1. Forward-only migrations (no automatic rollback)
2. Running the migrations against an up-to-date store is a no-op
3. Table migrations are atomic (all-or-nothing) and fatal on failure
4. Index creation is best-effort: a failed index is logged, not raised
"""

import logging
import sqlite3
from typing import Optional

from ..exceptions import InitializationError, MaintenanceWarning
from .connection import DatabaseConnection
from .schema import INDEX_STATEMENTS, SCHEMA_SQL, SCHEMA_VERSION

logger = logging.getLogger(__name__)


def split_statements(script: str) -> list[str]:
    """
    Split a SQL script into complete statements.

    ``executescript`` commits any open transaction first, so scripts
    are run statement by statement inside our own transaction instead.
    """
    statements = []
    buffer = ""
    for line in script.splitlines(keepends=True):
        buffer += line
        if sqlite3.complete_statement(buffer):
            statement = buffer.strip()
            if statement:
                statements.append(statement)
            buffer = ""
    if buffer.strip():
        statements.append(buffer.strip())
    return statements


def get_schema_version(db: DatabaseConnection) -> int:
    """
    Get the current schema version from the database.

    Returns:
        Current schema version, or 0 if not initialized.
    """
    try:
        return db.scalar("SELECT MAX(version) FROM schema_version")
    except sqlite3.OperationalError:
        return 0


def run_migrations(
    db: DatabaseConnection, target_version: Optional[int] = None
) -> int:
    """
    Run all pending migrations up to target version, then ensure indexes.

    Args:
        db: Connection manager for the store.
        target_version: Target schema version. Defaults to latest.

    Returns:
        The schema version after migrating.

    Raises:
        InitializationError: If a migration cannot be applied.
    """
    if target_version is None:
        target_version = SCHEMA_VERSION

    current_version = get_schema_version(db)

    if current_version >= target_version:
        logger.info(
            f"Database schema is up to date (version {current_version})"
        )
    else:
        logger.info(
            f"Running migrations from version {current_version} to {target_version}"
        )
        try:
            # Migration 0 -> 1: Initial schema
            if current_version < 1 <= target_version:
                _migrate_v0_to_v1(db)

            # Add future migrations here:
            # if current_version < 2 <= target_version:
            #     _migrate_v1_to_v2(db)
        except sqlite3.Error as e:
            logger.error(f"Migration failed: {e}")
            raise InitializationError(
                "Cannot apply database schema",
                details={"from_version": current_version, "error": str(e)},
            ) from e

        logger.info(
            f"Migrations completed successfully (now at version {target_version})"
        )

    ensure_indexes(db)
    return get_schema_version(db)


def _migrate_v0_to_v1(db: DatabaseConnection) -> None:
    """
    Initial schema creation (v0 -> v1).

    Creates all tables and the full-text index in one transaction.
    """
    logger.info("Running migration: v0 -> v1 (initial schema)")

    with db.transaction() as conn:
        for statement in split_statements(SCHEMA_SQL):
            conn.execute(statement)
        logger.info("Created database tables")

        conn.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (1, "Initial schema creation"),
        )


def ensure_indexes(db: DatabaseConnection) -> int:
    """
    Create any missing indexes.

    Each index is created on its own; a failure is reported as a
    MaintenanceWarning in the log and the remaining indexes still run.

    Returns:
        Number of index statements that failed.
    """
    failures = 0
    for statement in INDEX_STATEMENTS:
        try:
            db.execute(statement)
        except sqlite3.Error as e:
            failures += 1
            warning = MaintenanceWarning(
                "Index creation failed",
                details={"statement": statement, "error": str(e)},
            )
            logger.warning(str(warning))
    if failures == 0:
        logger.debug("Database indexes present")
    return failures
