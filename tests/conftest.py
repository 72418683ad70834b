"""
Pytest fixtures for mailcache tests.

This module provides a fresh file-backed cache per test plus factories
for account and message records in the sync-adapter wire shape.
"""

import itertools
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from mailcache.config import SearchSettings, Settings, StorageSettings  # noqa: E402
from mailcache.storage import MailCache  # noqa: E402

BASE_DATE = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

_counter = itertools.count(1)


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and home directory."""
    return Settings(
        storage=StorageSettings(data_dir=str(tmp_path / "data"), profile="test"),
        search=SearchSettings(max_limit=1000),
    )


@pytest.fixture
def cache(tmp_path, settings):
    """A freshly created cache that is closed after the test."""
    with MailCache(tmp_path / "mail.db", settings) as mail_cache:
        yield mail_cache


@pytest.fixture
def account(cache):
    """A stored account with ID ``acct-1``."""
    return cache.upsert_account(make_account("acct-1"))


def make_account(account_id="acct-1", email=None, **overrides):
    """Build an account record."""
    record = {
        "id": account_id,
        "email": email or f"{account_id}@example.com",
        "provider": "imap",
        "name": f"Account {account_id}",
    }
    record.update(overrides)
    return record


def make_message(message_id=None, account_id="acct-1", thread_id="thread-1", **overrides):
    """
    Build a message record in camelCase wire shape.

    ``flags`` overrides are merged into the default flags; ``minutes``
    offsets the date from BASE_DATE.
    """
    message_id = message_id or f"msg-{next(_counter)}"
    flags = {
        "isRead": False,
        "isStarred": False,
        "isTrashed": False,
        "isSpam": False,
        "isImportant": False,
        "isArchived": False,
        "isDraft": False,
        "isSent": False,
        "hasAttachments": False,
    }
    flags.update(overrides.pop("flags", {}))
    minutes = overrides.pop("minutes", 0)

    record = {
        "id": message_id,
        "accountId": account_id,
        "providerId": f"provider-{message_id}",
        "threadId": thread_id,
        "subject": f"Subject of {message_id}",
        "bodyText": f"Plain body of {message_id}",
        "bodyHtml": f"<p>Body of {message_id}</p>",
        "snippet": f"Snippet of {message_id}",
        "from": {"name": "Alice Sender", "address": "alice@example.com"},
        "to": [{"name": "Bob", "address": "bob@example.com"}],
        "cc": [],
        "bcc": [],
        "replyTo": [],
        "date": (BASE_DATE + timedelta(minutes=minutes)).isoformat(),
        "folder": "INBOX",
        "size": 1024,
        "labels": [],
        "attachments": [],
        "flags": flags,
    }
    record.update(overrides)
    return record
