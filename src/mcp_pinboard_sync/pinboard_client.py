"""Async client for the Pinboard v1 API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from .errors import AuthError, DecodeError, LogicalFailure, NetworkError, ServerError
from .models import RecentPosts, RemoteBookmark, RemotePost, join_tags

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_RECENT_COUNT = 100

_posts_adapter = TypeAdapter(list[RemotePost])
_tags_adapter = TypeAdapter(dict[str, int])


def _redacted(url: httpx.URL) -> str:
    return str(url.copy_remove_param("auth_token"))


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


class PinboardClient:
    """Thin wrapper around Pinboard's REST API.

    Every call authenticates with ``auth_token`` as a query parameter. Failures
    surface as :class:`~mcp_pinboard_sync.errors.PinboardError` subclasses; nothing
    is retried here.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @property
    def token(self) -> str:
        return self._token

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_json(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        url_path = path if path.startswith("/") else f"/{path}"
        q = {k: v for k, v in (params or {}).items() if v is not None}
        q.setdefault("auth_token", self._token)
        q.setdefault("format", "json")

        try:
            resp = await self._client.get(url_path, params=q)
        except httpx.TimeoutException as exc:
            raise NetworkError(method="GET", url=url_path, reason="timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                method="GET", url=url_path, reason=str(exc) or type(exc).__name__
            ) from exc

        url = _redacted(resp.request.url)
        if resp.status_code in (401, 403):
            raise AuthError(status_code=resp.status_code, url=url)
        if resp.status_code != 200:
            raise ServerError(
                status_code=resp.status_code,
                method="GET",
                url=url,
                response_text=(resp.text or "").strip(),
            )

        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("Undecodable JSON from %s", url)
            raise DecodeError(url=url, detail=str(exc)) from exc

    async def _request_result(self, path: str, *, params: dict[str, Any]) -> None:
        data = await self.request_json(path, params=params)
        if not isinstance(data, dict):
            raise DecodeError(url=path, detail=f"Unexpected JSON type: {type(data).__name__}")
        result_code = str(data.get("result_code") or "")
        if result_code != "done":
            raise LogicalFailure(
                status_code=200,
                method="GET",
                url=path,
                response_text=result_code,
                result_code=result_code,
            )

    @staticmethod
    def _decode_posts(raw: Any, *, path: str) -> list[RemoteBookmark]:
        try:
            posts = _posts_adapter.validate_python(raw)
        except ValidationError as exc:
            logger.warning("Unexpected post payload from %s: %s", path, exc.error_count())
            raise DecodeError(url=path, detail=str(exc)) from exc
        return [RemoteBookmark.from_post(post) for post in posts]

    async def fetch_page(
        self,
        offset: int,
        page_size: int,
        tag: str | None = None,
    ) -> list[RemoteBookmark]:
        """Fetch one page of ``posts/all``, newest first."""
        if offset < 0:
            raise ValueError("offset must be >= 0")
        results = max(1, min(page_size, MAX_PAGE_SIZE))
        raw = await self.request_json(
            "/posts/all",
            params={"start": offset, "results": results, "tag": tag or None},
        )
        return self._decode_posts(raw, path="/posts/all")

    async def fetch_recent(self, count: int = MAX_RECENT_COUNT) -> list[RemoteBookmark]:
        """Fetch the most recent posts (no offset)."""
        raw = await self.request_json(
            "/posts/recent",
            params={"count": max(1, min(count, MAX_RECENT_COUNT))},
        )
        try:
            recent = RecentPosts.model_validate(raw)
        except ValidationError as exc:
            raise DecodeError(url="/posts/recent", detail=str(exc)) from exc
        return [RemoteBookmark.from_post(post) for post in recent.posts]

    async def fetch_tags(self) -> dict[str, int]:
        """Return the complete ``tag -> count`` mapping in one call."""
        raw = await self.request_json("/tags/get")
        # An account without tags comes back as an empty list.
        if raw == []:
            return {}
        try:
            return _tags_adapter.validate_python(raw)
        except ValidationError as exc:
            raise DecodeError(url="/tags/get", detail=str(exc)) from exc

    async def add_post(
        self,
        *,
        url: str,
        title: str,
        note: str = "",
        tags: list[str] | None = None,
        is_private: bool = False,
        is_unread: bool = False,
    ) -> None:
        """Create or replace the post for ``url``."""
        await self._request_result(
            "/posts/add",
            params={
                "url": url,
                "description": title,
                "extended": note,
                "tags": join_tags(tags or []),
                "shared": _yes_no(not is_private),
                "toread": _yes_no(is_unread),
                "replace": "yes",
            },
        )

    async def delete_post(self, url: str) -> None:
        await self._request_result("/posts/delete", params={"url": url})

    async def verify_token(self) -> None:
        """Raise unless the token can read the account."""
        await self.fetch_recent(1)
