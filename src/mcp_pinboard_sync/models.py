"""Wire models for the Pinboard API and structured models returned by MCP tools."""

from __future__ import annotations

from datetime import UTC, datetime

from dateutil import parser as dt_parser
from pydantic import BaseModel, ConfigDict, Field

from .errors import DateParseError


def split_tags(raw: str | None) -> list[str]:
    """Split a raw Pinboard tag string on any run of whitespace."""
    if not raw:
        return []
    return raw.split()


def join_tags(tags: list[str]) -> str:
    return " ".join(t for t in (tag.strip() for tag in tags) if t)


def parse_date(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if not value:
        raise DateParseError("empty timestamp")
    try:
        parsed = dt_parser.isoparse(value)
    except (ValueError, OverflowError) as exc:
        raise DateParseError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class RemotePost(BaseModel):
    """A post exactly as Pinboard serialises it."""

    model_config = ConfigDict(extra="ignore")

    href: str
    description: str = ""
    extended: str = ""
    meta: str = ""
    hash: str = Field(min_length=1)
    time: str
    shared: str = "yes"
    toread: str = "no"
    tags: str = ""


class RecentPosts(BaseModel):
    date: str | None = None
    user: str | None = None
    posts: list[RemotePost]


class RemoteBookmark(BaseModel):
    """A fetched bookmark in local terms. Immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    remote_id: str
    url: str
    title: str
    note: str
    tag_string: str
    created_at: datetime
    is_private: bool
    is_unread: bool

    @property
    def tags(self) -> list[str]:
        return split_tags(self.tag_string)

    @classmethod
    def from_post(cls, post: RemotePost) -> RemoteBookmark:
        try:
            created_at = parse_date(post.time)
        except DateParseError:
            # A missing or garbled timestamp sorts the post as brand new.
            created_at = datetime.now(UTC)
        return cls(
            remote_id=post.hash,
            url=post.href,
            title=post.description,
            note=post.extended,
            tag_string=post.tags,
            created_at=created_at,
            is_private=post.shared == "no",
            is_unread=post.toread == "yes",
        )


class Bookmark(BaseModel):
    """A cached bookmark."""

    model_config = ConfigDict(from_attributes=True)

    remote_id: str
    url: str
    title: str
    note: str
    tags: list[str]
    created_at: datetime
    updated_at: datetime
    is_private: bool
    is_unread: bool


class Tag(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    count: int


class PagedResult(BaseModel):
    items: list[Bookmark]
    offset: int = Field(ge=0)
    limit: int = Field(ge=1, le=1000)
    total: int = Field(ge=0)
    has_more: bool


class SyncResult(BaseModel):
    """Outcome of one reconciliation pass."""

    mode: str
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    offset: int = 0
    has_more: bool = False
    tag: str | None = None
    skipped: bool = False


class TagSyncResult(BaseModel):
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: bool = False


class AccountInfo(BaseModel):
    username: str
    logged_in: bool
    bookmarks_cached: int
    tags_cached: int
