"""
Custom exceptions for mailcache.

This module defines all custom exceptions raised by the mail cache
so callers can tell fatal storage failures from retryable write
failures and rejected queries.
"""

from typing import Any, Optional


class MailCacheError(Exception):
    """Base exception for all mailcache errors."""

    def __init__(self, message: str,
                 details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


# Database Exceptions
class DatabaseError(MailCacheError):
    """Base exception for database-related errors."""


class InitializationError(DatabaseError):
    """
    Raised when the store cannot be opened or its schema cannot be applied.

    This is fatal: callers must not continue as if caching were available.
    """


class WriteError(DatabaseError):
    """
    Raised when a write fails as a whole.

    The enclosing transaction has been rolled back, so no partial state is
    visible. The caller may retry.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize write error.

        Args:
            message: Human-readable error message.
            operation: Name of the write operation that failed.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message, details)
        self.operation = operation


class QueryError(DatabaseError):
    """Raised when search options are malformed or contradictory."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize query error.

        Args:
            message: Human-readable error message.
            query: The query that failed.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message, details)
        self.query = query


class RecordNotFoundError(DatabaseError):
    """Raised when a requested record is not found."""

    def __init__(
        self,
        table: str,
        record_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize record not found error.

        Args:
            table: The table where the record was expected.
            record_id: The ID of the missing record.
            details: Optional dictionary with additional error details.
        """
        message = f"Record not found in table '{table}'"
        if record_id:
            message += f" with ID '{record_id}'"
        super().__init__(message, details)
        self.table = table
        self.record_id = record_id


class MaintenanceWarning(DatabaseError):
    """
    Non-fatal failure during index creation, vacuum or optimize.

    Never propagated to callers: it is logged and swallowed at the
    maintenance boundary because it affects performance, not correctness.
    """


# Configuration Exceptions
class ConfigurationError(MailCacheError):
    """Base exception for configuration-related errors."""


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration value is missing."""

    def __init__(
        self, config_key: str, details: Optional[dict[str, Any]] = None
    ) -> None:
        """
        Initialize missing config error.

        Args:
            config_key: The missing configuration key.
            details: Optional dictionary with additional error details.
        """
        super().__init__(
            f"Missing required configuration: '{config_key}'", details)
        self.config_key = config_key


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""

    def __init__(
        self,
        config_key: str,
        value: Any,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize invalid config error.

        Args:
            config_key: The configuration key with invalid value.
            value: The invalid value.
            reason: Optional reason why the value is invalid.
            details: Optional dictionary with additional error details.
        """
        message = f"Invalid configuration value for '{config_key}': {value}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, details)
        self.config_key = config_key
        self.value = value
        self.reason = reason
