"""Reconciliation of the Pinboard feed into the local cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from .cursor import PaginationCursor
from .models import Bookmark, RemoteBookmark, SyncResult, Tag, TagSyncResult
from .pinboard_client import MAX_PAGE_SIZE
from .store import CacheStore

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


class BookmarkSource(Protocol):
    async def fetch_page(
        self, offset: int, page_size: int, tag: str | None = None
    ) -> list[RemoteBookmark]: ...

    async def fetch_recent(self, count: int) -> list[RemoteBookmark]: ...

    async def fetch_tags(self) -> dict[str, int]: ...


def to_local(remote: RemoteBookmark) -> Bookmark:
    """Cache representation of a fetched post; ``updated_at`` mirrors ``created_at``."""
    return Bookmark(
        remote_id=remote.remote_id,
        url=remote.url,
        title=remote.title,
        note=remote.note,
        tags=remote.tags,
        created_at=remote.created_at,
        updated_at=remote.created_at,
        is_private=remote.is_private,
        is_unread=remote.is_unread,
    )


@dataclass(slots=True)
class Listing:
    """Pagination state for one view: the global list or a single tag."""

    tag: str | None = None
    cursor: PaginationCursor = field(default_factory=PaginationCursor)
    closed: bool = False
    generation: int = 0
    refresh_task: asyncio.Task[SyncResult] | None = None
    loading_more: bool = False

    @property
    def refreshing(self) -> bool:
        return self.refresh_task is not None and not self.refresh_task.done()


class SyncEngine:
    """Diffs fetched batches against the cache and applies the result.

    Fetches are awaited before anything is written, so a failed request leaves
    the cache and the cursor untouched. The apply phase never awaits, which keeps
    every pass a single uninterrupted writer on the event loop.
    """

    def __init__(
        self,
        source: BookmarkSource,
        store: CacheStore,
        *,
        page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self.source = source
        self.store = store
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        self._listings: dict[str | None, Listing] = {}
        self._listeners: list[ChangeListener] = []
        self._tags_task: asyncio.Task[TagSyncResult] | None = None
        # Bumped whenever the cache is wiped; passes started before a wipe discard
        # their batch.
        self._epoch = 0

    # Listings

    def listing(self, tag: str | None = None) -> Listing:
        current = self._listings.get(tag)
        if current is None or current.closed:
            current = Listing(tag=tag)
            self._listings[tag] = current
        return current

    def close_listing(self, tag: str | None = None) -> None:
        """Forget a view; a fetch still in flight for it is discarded on arrival."""
        listing = self._listings.pop(tag, None)
        if listing is not None:
            listing.closed = True

    def reset_listings(self) -> None:
        """Close every listing and orphan in-flight recent and tag passes."""
        for tag in list(self._listings):
            self.close_listing(tag)
        self._epoch += 1
        self._tags_task = None

    # Change notification

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        self._listeners.remove(listener)

    def notify(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Cache change listener failed for %s", event)

    # Bookmark passes

    async def refresh(self, tag: str | None = None) -> SyncResult:
        """Full refresh from the newest page; concurrent calls share one pass."""
        listing = self.listing(tag)
        if listing.refreshing:
            logger.debug("Refresh already running for %s; joining it", tag or "all")
        else:
            listing.refresh_task = asyncio.ensure_future(self._full_refresh(listing))
        return await asyncio.shield(listing.refresh_task)

    async def _full_refresh(self, listing: Listing) -> SyncResult:
        logger.info("Starting full refresh (tag=%s)", listing.tag)
        batch = await self.source.fetch_page(0, self.page_size, tag=listing.tag)
        if listing.closed:
            logger.debug("Listing %s closed during refresh; discarding batch", listing.tag)
            return SyncResult(mode="refresh", fetched=len(batch), tag=listing.tag, skipped=True)

        deleted = 0
        # Absence from a tag-filtered page only proves the tag is gone, not the post.
        if listing.tag is None:
            deleted = self._delete_absent(batch)
        inserted, updated = self._upsert(batch)

        listing.cursor.reset()
        listing.cursor.advance(len(batch), self.page_size)
        listing.generation += 1

        result = SyncResult(
            mode="refresh",
            fetched=len(batch),
            inserted=inserted,
            updated=updated,
            deleted=deleted,
            offset=listing.cursor.offset,
            has_more=listing.cursor.has_more,
            tag=listing.tag,
        )
        logger.info(
            "Full refresh complete: %d fetched, %d inserted, %d updated, %d deleted",
            result.fetched,
            inserted,
            updated,
            deleted,
        )
        self.notify("refresh")
        return result

    async def load_more(self, tag: str | None = None) -> SyncResult:
        """Append the next page. Rejected while this listing is already fetching."""
        listing = self.listing(tag)
        if listing.refreshing or listing.loading_more or not listing.cursor.has_more:
            return self._skipped("load_more", listing)

        generation = listing.generation
        offset = listing.cursor.offset
        listing.loading_more = True
        try:
            batch = await self.source.fetch_page(offset, self.page_size, tag=listing.tag)
        finally:
            listing.loading_more = False

        if listing.closed or listing.generation != generation:
            logger.debug("Listing %s changed during load more; discarding batch", listing.tag)
            return self._skipped("load_more", listing, fetched=len(batch))

        inserted, updated = self._upsert(batch)
        listing.cursor.advance(len(batch), self.page_size)

        logger.info(
            "Loaded %d more bookmarks at offset %d (tag=%s)", len(batch), offset, listing.tag
        )
        self.notify("load_more")
        return SyncResult(
            mode="load_more",
            fetched=len(batch),
            inserted=inserted,
            updated=updated,
            offset=listing.cursor.offset,
            has_more=listing.cursor.has_more,
            tag=listing.tag,
        )

    async def sync_recent(self, count: int) -> SyncResult:
        """Upsert the recent feed without touching any cursor or deleting anything."""
        epoch = self._epoch
        batch = await self.source.fetch_recent(count)
        if epoch != self._epoch:
            logger.debug("Cache reset during recent sync; discarding batch")
            return SyncResult(mode="recent", fetched=len(batch), skipped=True)

        inserted, updated = self._upsert(batch)
        logger.info("Recent sync: %d fetched, %d inserted", len(batch), inserted)
        self.notify("recent")
        return SyncResult(mode="recent", fetched=len(batch), inserted=inserted, updated=updated)

    @staticmethod
    def _skipped(mode: str, listing: Listing, *, fetched: int = 0) -> SyncResult:
        return SyncResult(
            mode=mode,
            fetched=fetched,
            offset=listing.cursor.offset,
            has_more=listing.cursor.has_more,
            tag=listing.tag,
            skipped=True,
        )

    def _delete_absent(self, batch: list[RemoteBookmark]) -> int:
        """Delete cached posts inside the batch window, or newer than it, that it lacks."""
        if not batch:
            return 0
        oldest = min(remote.created_at for remote in batch)
        seen = {remote.remote_id for remote in batch}
        deleted = 0
        for cached in self.store.list_created_since(oldest):
            if cached.remote_id in seen:
                continue
            if self.store.delete_bookmark(cached.remote_id):
                logger.debug("Deleted %s: missing from refreshed window", cached.remote_id)
                deleted += 1
        return deleted

    def _upsert(self, batch: Iterable[RemoteBookmark]) -> tuple[int, int]:
        inserted = updated = 0
        for remote in batch:
            if self.store.upsert_bookmark(to_local(remote)):
                inserted += 1
            else:
                updated += 1
        return inserted, updated

    # Tags

    async def refresh_tags(self) -> TagSyncResult:
        """Mirror the complete remote tag set."""
        if self._tags_task is None or self._tags_task.done():
            self._tags_task = asyncio.ensure_future(self._mirror_tags())
        return await asyncio.shield(self._tags_task)

    async def ensure_tags(self) -> list[Tag]:
        """Cached tags, fetching them first when the cache has none."""
        if self.store.count_tags() == 0:
            await self.refresh_tags()
        return self.store.list_tags()

    async def _mirror_tags(self) -> TagSyncResult:
        epoch = self._epoch
        remote = await self.source.fetch_tags()
        if epoch != self._epoch:
            logger.debug("Cache reset during tag sync; discarding %d tags", len(remote))
            return TagSyncResult(fetched=len(remote), skipped=True)

        deleted = 0
        for tag in self.store.list_tags():
            if tag.name not in remote and self.store.delete_tag(tag.name):
                deleted += 1
        inserted = updated = 0
        for name, count in remote.items():
            if self.store.upsert_tag(name, count):
                inserted += 1
            else:
                updated += 1

        logger.info(
            "Tag sync complete: %d tags, %d inserted, %d deleted", len(remote), inserted, deleted
        )
        self.notify("tags")
        return TagSyncResult(
            fetched=len(remote), inserted=inserted, updated=updated, deleted=deleted
        )
