from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import pytest

from mcp_pinboard_sync.models import RemoteBookmark
from mcp_pinboard_sync.store import CacheStore

BASE_TIME = datetime(2020, 1, 22, 12, 0, tzinfo=UTC)


def make_remote(n: int, **overrides) -> RemoteBookmark:
    """Remote bookmark ``n``; higher ``n`` is newer."""
    fields = {
        "remote_id": f"hash{n:04d}",
        "url": f"https://example.com/{n}",
        "title": f"Bookmark {n}",
        "note": "",
        "tag_string": "python sync",
        "created_at": BASE_TIME + timedelta(minutes=n),
        "is_private": False,
        "is_unread": False,
    }
    fields.update(overrides)
    return RemoteBookmark(**fields)


class FakeSource:
    """In-memory stand-in for the Pinboard client, newest first."""

    def __init__(self, bookmarks: list[RemoteBookmark] | None = None) -> None:
        self.bookmarks = list(bookmarks or [])
        self.tags: dict[str, int] = {}
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None

    def _ordered(self, tag: str | None) -> list[RemoteBookmark]:
        items = sorted(self.bookmarks, key=lambda b: b.created_at, reverse=True)
        if tag:
            items = [b for b in items if tag in b.tags]
        return items

    async def fetch_page(
        self, offset: int, page_size: int, tag: str | None = None
    ) -> list[RemoteBookmark]:
        self.calls.append(("page", offset, page_size, tag))
        if self.fail_with is not None:
            raise self.fail_with
        return self._ordered(tag)[offset : offset + page_size]

    async def fetch_recent(self, count: int) -> list[RemoteBookmark]:
        self.calls.append(("recent", count))
        if self.fail_with is not None:
            raise self.fail_with
        return self._ordered(None)[:count]

    async def fetch_tags(self) -> dict[str, int]:
        self.calls.append(("tags",))
        if self.fail_with is not None:
            raise self.fail_with
        return dict(self.tags)


@pytest.fixture
def store(tmp_path) -> Iterator[CacheStore]:
    cache = CacheStore(f"sqlite:///{tmp_path / 'cache.db'}")
    yield cache
    cache.close()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()
