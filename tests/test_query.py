"""
Tests for the mailcache query engine.

Covers each filter on its own and in combination, sorting, pagination,
full-text ranking and the rejection of malformed search options.
"""

from datetime import timedelta

import pytest

from conftest import BASE_DATE, make_account, make_message
from mailcache.exceptions import QueryError
from mailcache.models import SearchOptions


@pytest.fixture
def mailbox(cache, account):
    """A small mailbox spread over two accounts, folders and threads."""
    cache.upsert_account(make_account("acct-2"))
    records = [
        make_message(
            "m1",
            subject="Budget meeting",
            bodyText="Let us review the budget spreadsheet",
            flags={"isRead": False, "isStarred": True},
            labels=["work"],
            size=300,
            minutes=0,
        ),
        make_message(
            "m2",
            subject="Lunch plans",
            bodyText="Tacos on friday?",
            **{"from": {"name": "Zed Friend", "address": "zed@friends.org"}},
            to=[{"name": "Carol", "address": "carol@example.com"}],
            flags={"isRead": True},
            labels=["personal"],
            size=100,
            minutes=10,
            thread_id="thread-2",
        ),
        make_message(
            "m3",
            subject="Re: Budget meeting",
            bodyText="Budget numbers attached",
            attachments=[{"id": "a1", "filename": "budget.xlsx", "size": 4000}],
            flags={"isRead": False, "hasAttachments": True},
            labels=["work", "finance"],
            size=5000,
            minutes=20,
        ),
        make_message(
            "m4",
            subject="Newsletter 50% off_sale",
            bodyText="Big discounts this week",
            folder="Promotions",
            flags={"isRead": True},
            size=200,
            minutes=30,
            thread_id="thread-4",
        ),
        make_message(
            "m5",
            account_id="acct-2",
            subject="Budget for acct two",
            bodyText="Separate account budget",
            flags={"isRead": False},
            minutes=40,
            thread_id="thread-5",
        ),
    ]
    for record in records:
        cache.insert_message(record)
    return cache


def _ids(messages):
    return [m.id for m in messages]


def test_default_search_is_date_descending(mailbox):
    assert _ids(mailbox.search_messages()) == ["m5", "m4", "m3", "m2", "m1"]
    assert _ids(mailbox.search_messages({})) == ["m5", "m4", "m3", "m2", "m1"]


def test_is_unread_returns_exactly_unread(mailbox):
    """isUnread: true matches exactly the messages with isRead false."""
    unread = mailbox.search_messages({"isUnread": True})
    read = mailbox.search_messages({"isUnread": False})

    assert set(_ids(unread)) == {"m1", "m3", "m5"}
    assert set(_ids(read)) == {"m2", "m4"}
    assert all(not m.flags.is_read for m in unread)


def test_is_unread_tracks_updates(mailbox):
    mailbox.update_message("m1", {"flags": {"isRead": True}})
    mailbox.update_message("m4", {"flags": {"isRead": False}})

    assert set(_ids(mailbox.search_messages({"isUnread": True}))) == {"m3", "m4", "m5"}


def test_account_and_folder_filters(mailbox):
    assert set(_ids(mailbox.search_messages({"accountId": "acct-2"}))) == {"m5"}
    assert _ids(mailbox.search_messages({"folder": "Promotions"})) == ["m4"]

    promotions = mailbox.get_folder("acct-1", "Promotions")
    assert _ids(mailbox.search_messages({"folderId": promotions.id})) == ["m4"]

    inbox = mailbox.get_folder("acct-1", "INBOX")
    assert set(_ids(mailbox.search_messages({"folderId": inbox.id}))) == {"m1", "m2", "m3"}


def test_unknown_folder_id_matches_nothing(mailbox):
    assert mailbox.search_messages({"folderId": "no-such-folder"}) == []


def test_sender_filter_matches_address_or_name(mailbox):
    assert _ids(mailbox.search_messages({"from": "friends.org"})) == ["m2"]
    assert _ids(mailbox.search_messages({"from": "zed friend"})) == ["m2"]


def test_recipient_filter_uses_to_header(mailbox):
    assert _ids(mailbox.search_messages({"to": "carol@"})) == ["m2"]
    assert len(mailbox.search_messages({"to": "bob@example.com"})) == 4


def test_subject_filter_is_literal_substring(mailbox):
    """LIKE wildcards in the filter value match literally."""
    assert set(_ids(mailbox.search_messages({"subject": "budget"}))) == {"m1", "m3", "m5"}
    assert _ids(mailbox.search_messages({"subject": "50%"})) == ["m4"]
    assert _ids(mailbox.search_messages({"subject": "off_sale"})) == ["m4"]
    assert mailbox.search_messages({"subject": "5_%"}) == []


def test_label_attachment_and_starred_filters(mailbox):
    assert set(_ids(mailbox.search_messages({"label": "work"}))) == {"m1", "m3"}
    assert _ids(mailbox.search_messages({"hasAttachments": True})) == ["m3"]
    assert _ids(mailbox.search_messages({"isStarred": True})) == ["m1"]


def test_date_range_is_inclusive(mailbox):
    options = {
        "dateFrom": (BASE_DATE + timedelta(minutes=10)).isoformat(),
        "dateTo": (BASE_DATE + timedelta(minutes=30)).isoformat(),
    }
    assert _ids(mailbox.search_messages(options)) == ["m4", "m3", "m2"]


def test_date_range_accepts_other_timezones(mailbox):
    """Bounds in another offset compare as UTC instants."""
    options = {"dateFrom": "2024-03-01T10:20:00+01:00", "dateTo": "2024-03-01T10:20:00+01:00"}
    assert _ids(mailbox.search_messages(options)) == ["m3"]


def test_filters_combine_with_and(mailbox):
    options = {"accountId": "acct-1", "isUnread": True, "label": "work", "hasAttachments": False}
    assert _ids(mailbox.search_messages(options)) == ["m1"]


def test_fulltext_query_matches_body_and_subject(mailbox):
    assert set(_ids(mailbox.search_messages({"query": "budget"}))) == {"m1", "m3", "m5"}
    assert _ids(mailbox.search_messages({"query": "tacos"})) == ["m2"]


def test_fulltext_query_matches_prefixes_and_sender(mailbox):
    assert _ids(mailbox.search_messages({"query": "spread"})) == ["m1"]
    assert _ids(mailbox.search_messages({"query": "zed"})) == ["m2"]


def test_fulltext_terms_all_required(mailbox):
    assert _ids(mailbox.search_messages({"query": "budget spreadsheet"})) == ["m1"]


def test_fulltext_query_with_operator_characters(mailbox):
    """FTS operators in user text are treated as plain words."""
    assert _ids(mailbox.search_messages({"query": '"budget" (spreadsheet'})) == ["m1"]
    assert _ids(mailbox.search_messages({"query": "budget -spreadsheet*"})) == ["m1"]


def test_fulltext_combines_with_filters(mailbox):
    options = {"query": "budget", "accountId": "acct-1", "hasAttachments": True}
    assert _ids(mailbox.search_messages(options)) == ["m3"]


def test_relevance_ranks_better_matches_first(cache, account):
    cache.insert_message(
        make_message("weak", subject="Status", bodyText="one mention of kayak among many other words here")
    )
    cache.insert_message(
        make_message("strong", subject="Kayak kayak", bodyText="kayak trip, kayak rental, kayak")
    )

    assert _ids(cache.search_messages({"query": "kayak"})) == ["strong", "weak"]
    assert _ids(cache.search_messages({"query": "kayak", "sortBy": "relevance"})) == ["strong", "weak"]


def test_query_with_explicit_sort_uses_that_sort(mailbox):
    results = mailbox.search_messages({"query": "budget", "sortBy": "date", "sortOrder": "asc"})
    assert _ids(results) == ["m1", "m3", "m5"]


def test_sort_fields(mailbox):
    assert _ids(mailbox.search_messages({"sortBy": "size", "sortOrder": "desc", "accountId": "acct-1"})) == [
        "m3",
        "m1",
        "m4",
        "m2",
    ]
    by_subject = mailbox.search_messages({"sortBy": "subject", "sortOrder": "asc"})
    assert _ids(by_subject) == ["m5", "m1", "m2", "m4", "m3"]

    by_sender = mailbox.search_messages({"sortBy": "from", "sortOrder": "desc"})
    assert _ids(by_sender)[0] == "m2"


def test_pagination(mailbox):
    page_one = mailbox.search_messages({"limit": 2})
    page_two = mailbox.search_messages({"limit": 2, "offset": 2})
    page_three = mailbox.search_messages({"limit": 2, "offset": 4})

    assert _ids(page_one) == ["m5", "m4"]
    assert _ids(page_two) == ["m3", "m2"]
    assert _ids(page_three) == ["m1"]
    assert mailbox.search_messages({"offset": 50}) == []


def test_default_limit_comes_from_settings(tmp_path, settings):
    from mailcache.config import SearchSettings
    from mailcache.storage import MailCache

    settings.search = SearchSettings(default_limit=2, max_limit=10)
    with MailCache(tmp_path / "small.db", settings) as small:
        small.upsert_account(make_account("acct-1"))
        for i in range(4):
            small.insert_message(make_message(f"m{i}", minutes=i))

        assert len(small.search_messages()) == 2
        with pytest.raises(QueryError):
            small.search_messages({"limit": 11})


def test_search_without_limit_returns_every_match(cache, account):
    """With no default configured, an unpaged filter is never cut short."""
    for i in range(60):
        cache.insert_message(make_message(f"u{i}", minutes=i))
    cache.insert_message(make_message("read", flags={"isRead": True}))

    unread = cache.search_messages({"isUnread": True})

    assert len(unread) == 60
    assert "read" not in _ids(unread)
    assert len(cache.search_messages()) == 61


def test_search_results_are_fully_populated(mailbox):
    (message,) = mailbox.search_messages({"hasAttachments": True})

    assert message.labels == ["work", "finance"]
    assert [a.filename for a in message.attachments] == ["budget.xlsx"]
    assert [r.address for r in message.to] == ["bob@example.com"]


def test_search_accepts_options_model(mailbox):
    options = SearchOptions(account_id="acct-1", is_unread=True)
    assert set(_ids(mailbox.search_messages(options))) == {"m1", "m3"}


def test_get_messages_by_thread_is_chronological(mailbox):
    assert _ids(mailbox.get_messages_by_thread("thread-1")) == ["m1", "m3"]
    assert mailbox.get_messages_by_thread("missing") == []


def test_get_message_missing(mailbox):
    assert mailbox.get_message("missing") is None


@pytest.mark.parametrize(
    "options",
    [
        {"dateFrom": "2024-03-02T00:00:00+00:00", "dateTo": "2024-03-01T00:00:00+00:00"},
        {"limit": 0},
        {"limit": 1001},
        {"offset": -1},
        {"query": "!!! ???"},
        {"sortBy": "relevance"},
        {"sortBy": "popularity"},
        {"sortOrder": "sideways"},
        {"dateFrom": "not a date"},
    ],
)
def test_malformed_options_raise_query_error(mailbox, options):
    with pytest.raises(QueryError):
        mailbox.search_messages(options)


def test_blank_query_means_no_text_filter(mailbox):
    assert len(mailbox.search_messages({"query": "   "})) == 5
