"""
Tests for schema setup and the maintenance service.
"""

import sqlite3
import threading
from pathlib import Path

import pytest

from conftest import make_account, make_message
from mailcache.exceptions import InitializationError
from mailcache.storage import (
    SCHEMA_VERSION,
    DatabaseConnection,
    MailCache,
    get_schema_version,
)
from mailcache.storage.migrations import ensure_indexes, split_statements


def test_new_store_is_at_current_schema(cache):
    assert cache.schema_version == SCHEMA_VERSION


def test_reopening_is_idempotent(tmp_path, settings):
    """Opening an existing store again applies nothing and loses nothing."""
    path = tmp_path / "mail.db"
    with MailCache(path, settings) as first:
        first.upsert_account(make_account("acct-1"))
        first.insert_message(make_message("msg-1"))

    with MailCache(path, settings) as second:
        assert second.schema_version == SCHEMA_VERSION
        assert second.get_message("msg-1") is not None
        assert second.search_messages({"query": "Plain"})[0].id == "msg-1"

    conn = sqlite3.connect(path)
    try:
        versions = conn.execute("SELECT version FROM schema_version").fetchall()
    finally:
        conn.close()
    assert versions == [(1,)]


def test_connection_pragmas(cache):
    conn = sqlite3.connect(cache.db_path)
    try:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        # 2 = incremental
        assert conn.execute("PRAGMA auto_vacuum").fetchone()[0] == 2
    finally:
        conn.close()


def test_indexes_are_created(cache):
    conn = sqlite3.connect(cache.db_path)
    try:
        names = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")
        }
    finally:
        conn.close()

    assert "idx_messages_folder_unread" in names
    assert "idx_messages_starred_date" in names
    assert "idx_messages_account_folder" in names


def test_index_failure_is_not_fatal(cache, monkeypatch, caplog):
    """A broken index statement is logged and the rest still run."""
    from mailcache.storage import migrations

    monkeypatch.setattr(
        migrations,
        "INDEX_STATEMENTS",
        ["CREATE INDEX idx_broken ON no_such_table(x)", *migrations.INDEX_STATEMENTS],
    )
    with caplog.at_level("WARNING"):
        failures = ensure_indexes(cache._db)

    assert failures == 1
    assert "Index creation failed" in caplog.text


def test_unopenable_path_raises_initialization_error(tmp_path, settings):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(InitializationError):
        MailCache(blocker / "nested" / "mail.db", settings)


def test_corrupt_file_raises_initialization_error(tmp_path, settings):
    path = tmp_path / "garbage.db"
    path.write_bytes(b"this is definitely not a sqlite database" * 100)

    with pytest.raises(InitializationError):
        MailCache(path, settings)


def test_split_statements_keeps_semicolons_in_literals():
    script = "CREATE TABLE a (x TEXT DEFAULT ';');\n-- comment\nCREATE TABLE b (y INT);\n"
    assert split_statements(script) == [
        "CREATE TABLE a (x TEXT DEFAULT ';');",
        "-- comment\nCREATE TABLE b (y INT);",
    ]


def test_get_schema_version(cache):
    assert get_schema_version(cache._db) == SCHEMA_VERSION


def test_vacuum_and_optimize(cache, account):
    for i in range(20):
        cache.insert_message(make_message(f"m{i}", bodyText="filler " * 200))
    for i in range(15):
        cache.delete_message(f"m{i}")

    assert cache.vacuum() is True
    assert cache.optimize() is True
    assert len(cache.search_messages({"query": "filler"})) == 5


def test_vacuum_failure_is_reported_not_raised(cache, caplog):
    conn = cache._db.connection
    conn.execute("BEGIN")
    try:
        with caplog.at_level("WARNING"):
            assert cache.vacuum() is False
    finally:
        conn.rollback()
    assert "VACUUM failed" in caplog.text


def test_statistics(cache, account):
    cache.upsert_account(make_account("acct-2"))
    cache.insert_message(
        make_message(
            "m1",
            attachments=[
                {"id": "a1", "filename": "a.bin", "size": 100},
                {"id": "a2", "filename": "b.bin", "size": 250},
            ],
        )
    )
    cache.insert_message(make_message("m2", thread_id="t2", folder="Sent", flags={"isRead": True}))
    cache.insert_message(make_message("m3", account_id="acct-2", thread_id="t3"))

    stats = cache.get_statistics()

    assert stats.total_accounts == 2
    assert stats.total_messages == 3
    assert stats.unread_messages == 2
    assert stats.total_threads == 3
    assert stats.total_attachments == 2
    assert stats.attachment_size_bytes == 350
    assert stats.storage_size_bytes > 0
    assert stats.schema_version == SCHEMA_VERSION
    assert stats.messages_by_account == {"acct-1": 2, "acct-2": 1}
    assert [(f.account_id, f.path, f.message_count) for f in stats.messages_by_folder] == [
        ("acct-1", "INBOX", 1),
        ("acct-1", "Sent", 1),
        ("acct-2", "INBOX", 1),
    ]


def test_statistics_on_empty_store(cache):
    stats = cache.get_statistics()

    assert stats.total_messages == 0
    assert stats.attachment_size_bytes == 0
    assert stats.messages_by_account == {}
    assert stats.to_dict()["totalMessages"] == 0


def test_rebuild_fulltext_index(cache, account):
    cache.insert_message(make_message("m1", subject="albatross"))
    cache.insert_message(make_message("m2", subject="cormorant"))

    conn = sqlite3.connect(cache.db_path)
    try:
        conn.execute("DELETE FROM messages_fts")
        conn.commit()
    finally:
        conn.close()
    assert cache.search_messages({"query": "albatross"}) == []

    assert cache.rebuild_fulltext_index() == 2
    assert [m.id for m in cache.search_messages({"query": "albatross"})] == ["m1"]


def test_check_integrity(cache, account):
    cache.insert_message(make_message("m1"))
    assert cache.check_integrity() is True


def test_caches_are_independent(tmp_path, settings):
    """Two handles on different files never see each other's data."""
    with MailCache(tmp_path / "one.db", settings) as one, MailCache(tmp_path / "two.db", settings) as two:
        one.upsert_account(make_account("acct-1"))
        one.insert_message(make_message("m1"))

        assert two.get_message("m1") is None
        assert two.list_accounts() == []


def test_storage_size_includes_write_ahead_log(cache, account):
    """Uncheckpointed WAL pages count toward the reported size."""
    for i in range(5):
        cache.insert_message(make_message(f"m{i}", minutes=i))

    wal = Path(f"{cache.db_path}-wal")
    assert wal.exists() and wal.stat().st_size > 0

    stats = cache.get_statistics()

    assert stats.storage_size_bytes > wal.stat().st_size


def test_released_thread_connections_are_closed(tmp_path, settings):
    """Worker threads can hand their connection back before exiting."""
    db = DatabaseConnection(tmp_path / "pool.db", settings.storage)

    def work(release):
        db.scalar("SELECT 1")
        if release:
            db.close_current_thread()

    try:
        assert db.open_connections == 1
        for release in (True, True, False):
            worker = threading.Thread(target=work, args=(release,))
            worker.start()
            worker.join()

        assert db.open_connections == 2

        db.close_current_thread()
        assert db.open_connections == 1
        assert db.scalar("SELECT 1") == 1
        assert db.open_connections == 2
    finally:
        db.close()

    assert db.open_connections == 0


def test_cache_release_thread(cache, account):
    """A worker that releases its connection leaves the cache usable."""
    def work():
        cache.insert_message(make_message("w1"))
        cache.release_thread()

    worker = threading.Thread(target=work)
    worker.start()
    worker.join()

    assert cache.get_message("w1") is not None
