"""User-initiated bookmark mutations: remote first, cache only on success."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Protocol

from .errors import BookmarkNotFound
from .models import Bookmark, join_tags, split_tags
from .store import CacheStore
from .sync import SyncEngine

logger = logging.getLogger(__name__)


class BookmarkWriter(Protocol):
    async def add_post(
        self,
        *,
        url: str,
        title: str,
        note: str = "",
        tags: list[str] | None = None,
        is_private: bool = False,
        is_unread: bool = False,
    ) -> None: ...

    async def delete_post(self, url: str) -> None: ...


def normalize_tags(tags: list[str]) -> list[str]:
    """Flatten entries that themselves contain whitespace."""
    return split_tags(join_tags(tags))


class BookmarkService:
    def __init__(self, writer: BookmarkWriter, store: CacheStore, engine: SyncEngine) -> None:
        self.writer = writer
        self.store = store
        self.engine = engine

    def _require(self, remote_id: str) -> Bookmark:
        bookmark = self.store.get_bookmark(remote_id)
        if bookmark is None:
            raise BookmarkNotFound(remote_id)
        return bookmark

    async def add(
        self,
        *,
        url: str,
        title: str,
        note: str = "",
        tags: list[str] | None = None,
        is_private: bool = False,
        is_unread: bool = True,
    ) -> None:
        """Create a post remotely. It reaches the cache with the next refresh."""
        if not url.strip() or not title.strip():
            raise ValueError("Both 'url' and 'title' are required")
        await self.writer.add_post(
            url=url.strip(),
            title=title.strip(),
            note=note,
            tags=normalize_tags(tags or []),
            is_private=is_private,
            is_unread=is_unread,
        )
        logger.info("Added bookmark for %s", url)

    async def update(
        self,
        remote_id: str,
        *,
        title: str | None = None,
        note: str | None = None,
        tags: list[str] | None = None,
        is_private: bool | None = None,
        is_unread: bool | None = None,
    ) -> Bookmark:
        current = self._require(remote_id)
        changes: dict[str, Any] = {}
        if title is not None:
            if not title.strip():
                raise ValueError("'title' must not be empty")
            changes["title"] = title.strip()
        if note is not None:
            changes["note"] = note
        if tags is not None:
            changes["tags"] = normalize_tags(tags)
        if is_private is not None:
            changes["is_private"] = is_private
        if is_unread is not None:
            changes["is_unread"] = is_unread
        if not changes:
            return current

        changes["updated_at"] = datetime.now(UTC)
        updated = current.model_copy(update=changes)
        await self.writer.add_post(
            url=updated.url,
            title=updated.title,
            note=updated.note,
            tags=updated.tags,
            is_private=updated.is_private,
            is_unread=updated.is_unread,
        )
        self.store.upsert_bookmark(updated)
        self.engine.notify("update")
        return updated

    async def toggle_read(self, remote_id: str) -> Bookmark:
        current = self._require(remote_id)
        return await self.update(remote_id, is_unread=not current.is_unread)

    async def delete(self, remote_id: str) -> None:
        current = self._require(remote_id)
        await self.writer.delete_post(current.url)
        self.store.delete_bookmark(remote_id)
        logger.info("Deleted bookmark %s", remote_id)
        self.engine.notify("delete")
