"""SQLite-backed cache of bookmarks and tag counts."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    DateTime,
    String,
    Text,
    create_engine,
    delete,
    exists,
    func,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from .models import Bookmark, Tag


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC (SQLite drops tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    pass


class CachedBookmark(Base):
    __tablename__ = "bookmarks"

    remote_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_private: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_unread: Mapped[bool] = mapped_column(nullable=False, default=False, index=True)


class CachedTag(Base):
    __tablename__ = "tags"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    count: Mapped[int] = mapped_column(nullable=False, default=0)


_BOOKMARK_FIELDS = (
    "url",
    "title",
    "note",
    "tags",
    "created_at",
    "updated_at",
    "is_private",
    "is_unread",
)


class CacheStore:
    """The only writer of durable state.

    Every method runs in its own transaction, so an interrupted sync pass keeps
    whatever was applied before the interruption.
    """

    def __init__(self, database_url: str) -> None:
        kwargs: dict = {}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(database_url, **kwargs)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._session_factory.begin() as session:
            yield session

    # Bookmarks

    def upsert_bookmark(self, bookmark: Bookmark) -> bool:
        """Insert or overwrite every field; returns True when the row is new."""
        with self._session() as session:
            row = session.get(CachedBookmark, bookmark.remote_id)
            if row is None:
                session.add(
                    CachedBookmark(
                        remote_id=bookmark.remote_id,
                        **{field: getattr(bookmark, field) for field in _BOOKMARK_FIELDS},
                    )
                )
                return True
            for field in _BOOKMARK_FIELDS:
                setattr(row, field, getattr(bookmark, field))
            return False

    def delete_bookmark(self, remote_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(CachedBookmark).where(CachedBookmark.remote_id == remote_id)
            )
            return result.rowcount > 0

    def get_bookmark(self, remote_id: str) -> Bookmark | None:
        with self._session() as session:
            row = session.get(CachedBookmark, remote_id)
            return Bookmark.model_validate(row) if row is not None else None

    def list_bookmarks(self, *, limit: int | None = None, offset: int = 0) -> list[Bookmark]:
        """All bookmarks, newest first."""
        stmt = select(CachedBookmark).order_by(
            CachedBookmark.created_at.desc(), CachedBookmark.remote_id
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session() as session:
            return [Bookmark.model_validate(row) for row in session.scalars(stmt)]

    def list_unread(self, *, unread: bool = True) -> list[Bookmark]:
        stmt = (
            select(CachedBookmark)
            .where(CachedBookmark.is_unread == unread)
            .order_by(CachedBookmark.created_at.desc(), CachedBookmark.remote_id)
        )
        with self._session() as session:
            return [Bookmark.model_validate(row) for row in session.scalars(stmt)]

    def list_by_tag(self, tag: str, *, unread_only: bool = False) -> list[Bookmark]:
        """Bookmarks carrying ``tag`` (exact match), newest first."""
        if self._engine.dialect.name != "sqlite":
            items = [b for b in self.list_bookmarks() if tag in b.tags]
            return [b for b in items if b.is_unread] if unread_only else items

        tag_values = func.json_each(CachedBookmark.tags).table_valued("value")
        stmt = (
            select(CachedBookmark)
            .where(exists(select(1).select_from(tag_values).where(tag_values.c.value == tag)))
            .order_by(CachedBookmark.created_at.desc(), CachedBookmark.remote_id)
        )
        if unread_only:
            stmt = stmt.where(CachedBookmark.is_unread.is_(True))
        with self._session() as session:
            return [Bookmark.model_validate(row) for row in session.scalars(stmt)]

    def list_created_since(self, oldest: datetime) -> list[Bookmark]:
        """Bookmarks created at or after ``oldest``, newest first."""
        stmt = (
            select(CachedBookmark)
            .where(CachedBookmark.created_at >= oldest)
            .order_by(CachedBookmark.created_at.desc(), CachedBookmark.remote_id)
        )
        with self._session() as session:
            return [Bookmark.model_validate(row) for row in session.scalars(stmt)]

    def count_bookmarks(self) -> int:
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(CachedBookmark)) or 0

    # Tags

    def upsert_tag(self, name: str, count: int) -> bool:
        with self._session() as session:
            row = session.get(CachedTag, name)
            if row is None:
                session.add(CachedTag(name=name, count=count))
                return True
            row.count = count
            return False

    def delete_tag(self, name: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(CachedTag).where(CachedTag.name == name))
            return result.rowcount > 0

    def list_tags(self) -> list[Tag]:
        stmt = select(CachedTag).order_by(CachedTag.name)
        with self._session() as session:
            return [Tag.model_validate(row) for row in session.scalars(stmt)]

    def count_tags(self) -> int:
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(CachedTag)) or 0

    def clear(self) -> None:
        """Drop every cached bookmark and tag."""
        with self._session() as session:
            session.execute(delete(CachedBookmark))
            session.execute(delete(CachedTag))
