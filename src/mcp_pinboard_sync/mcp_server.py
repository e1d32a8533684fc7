"""FastMCP server definition (tools + resources)."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from .bookmarks import BookmarkService
from .credentials import CredentialStore, is_valid_token, username_of
from .errors import BookmarkNotFound, CredentialError
from .models import (
    AccountInfo,
    Bookmark,
    PagedResult,
    SyncResult,
    Tag,
    TagSyncResult,
    format_date,
)
from .pinboard_client import PinboardClient
from .settings import Settings
from .store import CacheStore
from .sync import SyncEngine

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    settings: Settings
    store: CacheStore
    credentials: CredentialStore
    pinboard: PinboardClient | None = None
    engine: SyncEngine | None = None
    bookmarks: BookmarkService | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> AppContext:
        app = cls(
            settings=settings,
            store=CacheStore(settings.database_url),
            credentials=CredentialStore(
                settings.credentials_path, settings.shared_credentials_path
            ),
        )
        token = settings.pinboard_token or app.credentials.load()
        if is_valid_token(token):
            app.connect(token)
        return app

    def make_client(self, token: str) -> PinboardClient:
        return PinboardClient(
            base_url=str(self.settings.pinboard_base_url),
            token=token,
            timeout_seconds=self.settings.http_timeout_seconds,
        )

    def connect(self, token: str, client: PinboardClient | None = None) -> None:
        self.pinboard = client or self.make_client(token)
        self.engine = SyncEngine(self.pinboard, self.store, page_size=self.settings.page_size)
        self.bookmarks = BookmarkService(self.pinboard, self.store, self.engine)

    async def disconnect(self) -> None:
        if self.engine is not None:
            self.engine.reset_listings()
        if self.pinboard is not None:
            await self.pinboard.aclose()
        self.pinboard = self.engine = self.bookmarks = None

    async def aclose(self) -> None:
        await self.disconnect()
        self.store.close()

    @property
    def logged_in(self) -> bool:
        return self.pinboard is not None

    def require_engine(self) -> SyncEngine:
        if self.engine is None:
            raise CredentialError("Not logged in: call 'login' with a username:secret token")
        return self.engine

    def require_bookmarks(self) -> BookmarkService:
        if self.bookmarks is None:
            raise CredentialError("Not logged in: call 'login' with a username:secret token")
        return self.bookmarks


def _page(items: list[Bookmark], *, offset: int, limit: int) -> PagedResult:
    window = items[offset : offset + limit]
    return PagedResult(
        items=window,
        offset=offset,
        limit=limit,
        total=len(items),
        has_more=offset + len(window) < len(items),
    )


def _render_bookmark(bookmark: Bookmark) -> str:
    lines = [f"# {bookmark.title or bookmark.url}", "", bookmark.url, ""]
    if bookmark.note:
        lines += [bookmark.note, ""]
    if bookmark.tags:
        lines.append("Tags: " + ", ".join(bookmark.tags))
    lines.append(f"Created: {format_date(bookmark.created_at)}")
    lines.append(f"Private: {'yes' if bookmark.is_private else 'no'}")
    lines.append(f"Unread: {'yes' if bookmark.is_unread else 'no'}")
    return "\n".join(lines) + "\n"


def create_mcp_server(settings: Settings, app_ctx: AppContext | None = None) -> FastMCP:
    # Streamable HTTP in stateless mode enters the lifespan once per request, so the
    # cache, cursors and client live outside it.
    app_ctx = app_ctx or AppContext.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_: FastMCP) -> AsyncIterator[AppContext]:
        yield app_ctx

    mcp = FastMCP(
        "Pinboard",
        instructions=(
            "Browse and manage Pinboard bookmarks through a local cache. "
            "Listing tools read the cache; refresh/load_more tools sync it with Pinboard."
        ),
        lifespan=lifespan,
        stateless_http=True,
        json_response=True,
    )

    @mcp.resource("pinboard-bookmark://{remote_id}")
    async def read_bookmark_resource(remote_id: str, ctx: Context) -> str:
        """Render one cached bookmark as Markdown."""
        app: AppContext = ctx.request_context.lifespan_context
        bookmark = app.store.get_bookmark(remote_id)
        if bookmark is None:
            raise BookmarkNotFound(remote_id)
        return _render_bookmark(bookmark)

    @mcp.tool()
    async def bookmarks_list(
        ctx: Context,
        unread_only: bool = False,
        tag: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> PagedResult:
        """List cached bookmarks, newest first. An empty cache is filled from Pinboard."""
        app: AppContext = ctx.request_context.lifespan_context
        if app.engine is not None and tag is None and app.store.count_bookmarks() == 0:
            await app.engine.refresh()

        if tag:
            items = app.store.list_by_tag(tag, unread_only=unread_only)
        elif unread_only:
            items = app.store.list_unread()
        else:
            items = app.store.list_bookmarks()
        return _page(items, offset=max(0, offset), limit=max(1, min(limit, 1000)))

    @mcp.tool()
    async def bookmarks_get(remote_id: str, ctx: Context) -> Bookmark:
        """Get a single cached bookmark by its Pinboard hash."""
        app: AppContext = ctx.request_context.lifespan_context
        bookmark = app.store.get_bookmark(remote_id)
        if bookmark is None:
            raise BookmarkNotFound(remote_id)
        return bookmark

    @mcp.tool()
    async def bookmarks_refresh(ctx: Context, tag: str | None = None) -> SyncResult:
        """Re-sync the newest page from Pinboard (deleting posts removed remotely)."""
        app: AppContext = ctx.request_context.lifespan_context
        return await app.require_engine().refresh(tag or None)

    @mcp.tool()
    async def bookmarks_load_more(ctx: Context, tag: str | None = None) -> SyncResult:
        """Fetch the next page for the global or a tag listing."""
        app: AppContext = ctx.request_context.lifespan_context
        return await app.require_engine().load_more(tag or None)

    @mcp.tool()
    async def bookmarks_recent(ctx: Context, count: int | None = None) -> SyncResult:
        """Pull Pinboard's recent feed into the cache."""
        app: AppContext = ctx.request_context.lifespan_context
        return await app.require_engine().sync_recent(count or app.settings.recent_count)

    @mcp.tool()
    async def bookmarks_add(
        url: str,
        title: str,
        ctx: Context,
        note: str = "",
        tags: list[str] | None = None,
        is_private: bool = False,
        is_unread: bool = True,
    ) -> SyncResult:
        """Create a bookmark on Pinboard, then refresh the cache."""
        app: AppContext = ctx.request_context.lifespan_context
        await app.require_bookmarks().add(
            url=url,
            title=title,
            note=note,
            tags=tags,
            is_private=is_private,
            is_unread=is_unread,
        )
        return await app.require_engine().refresh()

    @mcp.tool()
    async def bookmarks_update(
        remote_id: str,
        ctx: Context,
        title: str | None = None,
        note: str | None = None,
        tags: list[str] | None = None,
        is_private: bool | None = None,
        is_unread: bool | None = None,
    ) -> Bookmark:
        """Update fields of an existing bookmark (Pinboard first, then the cache)."""
        app: AppContext = ctx.request_context.lifespan_context
        return await app.require_bookmarks().update(
            remote_id,
            title=title,
            note=note,
            tags=tags,
            is_private=is_private,
            is_unread=is_unread,
        )

    @mcp.tool()
    async def bookmarks_toggle_read(remote_id: str, ctx: Context) -> Bookmark:
        """Flip a bookmark between read and unread."""
        app: AppContext = ctx.request_context.lifespan_context
        return await app.require_bookmarks().toggle_read(remote_id)

    @mcp.tool()
    async def bookmarks_delete(
        remote_id: str, ctx: Context, confirm: bool = False
    ) -> dict[str, Any]:
        """Delete a bookmark on Pinboard and in the cache. Requires confirm=true."""
        app: AppContext = ctx.request_context.lifespan_context
        if not confirm:
            raise ValueError("Deleting a bookmark cannot be undone; pass confirm=true")
        await app.require_bookmarks().delete(remote_id)
        return {"deleted": True, "remote_id": remote_id}

    @mcp.tool()
    async def tags_list(ctx: Context, refresh: bool = False) -> list[Tag]:
        """List cached tags with counts (fetched from Pinboard when none are cached)."""
        app: AppContext = ctx.request_context.lifespan_context
        if app.engine is None:
            return app.store.list_tags()
        if refresh:
            await app.engine.refresh_tags()
            return app.store.list_tags()
        return await app.engine.ensure_tags()

    @mcp.tool()
    async def tags_refresh(ctx: Context) -> TagSyncResult:
        """Mirror the full tag list from Pinboard."""
        app: AppContext = ctx.request_context.lifespan_context
        return await app.require_engine().refresh_tags()

    @mcp.tool()
    async def account_info(ctx: Context) -> AccountInfo:
        """Current user and cache sizes."""
        app: AppContext = ctx.request_context.lifespan_context
        return AccountInfo(
            username=username_of(app.pinboard.token) if app.pinboard else "",
            logged_in=app.logged_in,
            bookmarks_cached=app.store.count_bookmarks(),
            tags_cached=app.store.count_tags(),
        )

    @mcp.tool()
    async def local_data_delete(ctx: Context) -> dict[str, Any]:
        """Delete every cached bookmark and tag. Pinboard itself is not touched."""
        app: AppContext = ctx.request_context.lifespan_context
        app.store.clear()
        if app.engine is not None:
            app.engine.reset_listings()
            app.engine.notify("clear")
        return {"cleared": True}

    @mcp.tool()
    async def login(token: str, ctx: Context) -> AccountInfo:
        """Verify a Pinboard API token (username:secret) and store it."""
        app: AppContext = ctx.request_context.lifespan_context
        token = token.strip()
        if not is_valid_token(token):
            raise CredentialError("Token must look like 'username:secret'")
        client = app.make_client(token)
        try:
            await client.verify_token()
        except BaseException:
            await client.aclose()
            raise
        app.credentials.save(token)
        await app.disconnect()
        app.connect(token, client)
        logger.info("Logged in as %s", username_of(token))
        return AccountInfo(
            username=username_of(token),
            logged_in=True,
            bookmarks_cached=app.store.count_bookmarks(),
            tags_cached=app.store.count_tags(),
        )

    @mcp.tool()
    async def logout(ctx: Context) -> dict[str, Any]:
        """Forget the token and delete all local data."""
        app: AppContext = ctx.request_context.lifespan_context
        app.store.clear()
        app.credentials.clear()
        await app.disconnect()
        return {"logged_out": True}

    return mcp
