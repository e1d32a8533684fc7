from __future__ import annotations

from datetime import UTC, datetime

import pytest

from mcp_pinboard_sync.errors import DateParseError
from mcp_pinboard_sync.models import (
    RemoteBookmark,
    RemotePost,
    format_date,
    join_tags,
    parse_date,
    split_tags,
)


def _post(**overrides) -> RemotePost:
    fields = {
        "href": "https://example.com/a",
        "description": "Example",
        "extended": "Long note",
        "meta": "m",
        "hash": "abc123",
        "time": "2026-01-22T10:15:00Z",
        "shared": "no",
        "toread": "yes",
        "tags": "python  web",
    }
    fields.update(overrides)
    return RemotePost(**fields)


def test_split_tags_collapses_whitespace() -> None:
    assert split_tags("foo bar  baz") == ["foo", "bar", "baz"]


def test_split_tags_empty_string_yields_no_tags() -> None:
    assert split_tags("") == []
    assert split_tags("   ") == []


def test_joined_tags_reparse_to_same_list() -> None:
    tags = split_tags("foo bar  baz")
    joined = join_tags(tags)
    assert joined == "foo bar baz"
    assert split_tags(joined) == tags


def test_parse_date_returns_aware_utc() -> None:
    assert parse_date("2026-01-22T10:15:00Z") == datetime(2026, 1, 22, 10, 15, tzinfo=UTC)
    assert parse_date("2026-01-22T11:15:00+01:00") == datetime(2026, 1, 22, 10, 15, tzinfo=UTC)


@pytest.mark.parametrize("value", ["", "yesterday-ish", "2026-13-45T00:00:00Z"])
def test_parse_date_rejects_garbage(value: str) -> None:
    with pytest.raises(DateParseError):
        parse_date(value)


def test_format_date_is_pinboard_style() -> None:
    assert format_date(datetime(2026, 1, 22, 10, 15, tzinfo=UTC)) == "2026-01-22T10:15:00Z"


def test_remote_bookmark_maps_pinboard_fields() -> None:
    bookmark = RemoteBookmark.from_post(_post())
    assert bookmark.remote_id == "abc123"
    assert bookmark.url == "https://example.com/a"
    assert bookmark.title == "Example"
    assert bookmark.note == "Long note"
    assert bookmark.tags == ["python", "web"]
    assert bookmark.created_at == datetime(2026, 1, 22, 10, 15, tzinfo=UTC)
    assert bookmark.is_private is True
    assert bookmark.is_unread is True


def test_shared_yes_means_public_and_toread_no_means_read() -> None:
    bookmark = RemoteBookmark.from_post(_post(shared="yes", toread="no"))
    assert bookmark.is_private is False
    assert bookmark.is_unread is False


def test_unparseable_time_falls_back_to_now() -> None:
    before = datetime.now(UTC)
    bookmark = RemoteBookmark.from_post(_post(time="not a date"))
    assert before <= bookmark.created_at <= datetime.now(UTC)
