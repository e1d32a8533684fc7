"""Tests for the Pinboard API client."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import httpx
import pytest
import pytest_asyncio
import respx
from httpx import Response

from mcp_pinboard_sync.errors import (
    AuthError,
    DecodeError,
    LogicalFailure,
    NetworkError,
    ServerError,
)
from mcp_pinboard_sync.pinboard_client import MAX_PAGE_SIZE, PinboardClient

BASE_URL = "https://api.pinboard.test/v1"
TOKEN = "alice:SECRET"


def _post(n: int, **overrides) -> dict:
    post = {
        "href": f"https://example.com/{n}",
        "description": f"Bookmark {n}",
        "extended": "",
        "meta": "m",
        "hash": f"hash{n}",
        "time": f"2026-01-22T10:{n:02d}:00Z",
        "shared": "yes",
        "toread": "no",
        "tags": "python",
    }
    post.update(overrides)
    return post


@pytest.fixture
def mock_api() -> Iterator[respx.MockRouter]:
    with respx.mock(base_url=BASE_URL) as respx_mock:
        yield respx_mock


@pytest_asyncio.fixture
async def client() -> AsyncIterator[PinboardClient]:
    pinboard = PinboardClient(base_url=BASE_URL, token=TOKEN, timeout_seconds=10)
    yield pinboard
    await pinboard.aclose()


@pytest.mark.asyncio
async def test__fetch_page__sends_auth_and_paging(mock_api, client) -> None:
    route = mock_api.get("/posts/all").mock(
        return_value=Response(200, json=[_post(2), _post(1)])
    )

    page = await client.fetch_page(200, 50, tag="python")

    params = route.calls[0].request.url.params
    assert params["auth_token"] == TOKEN
    assert params["format"] == "json"
    assert params["start"] == "200"
    assert params["results"] == "50"
    assert params["tag"] == "python"
    assert [b.remote_id for b in page] == ["hash2", "hash1"]


@pytest.mark.asyncio
async def test__fetch_page__caps_page_size_and_omits_empty_tag(mock_api, client) -> None:
    route = mock_api.get("/posts/all").mock(return_value=Response(200, json=[]))

    assert await client.fetch_page(0, 5000) == []

    params = route.calls[0].request.url.params
    assert params["results"] == str(MAX_PAGE_SIZE)
    assert "tag" not in params


@pytest.mark.asyncio
async def test__fetch_recent__unwraps_posts(mock_api, client) -> None:
    route = mock_api.get("/posts/recent").mock(
        return_value=Response(
            200, json={"date": "2026-01-22T10:00:00Z", "user": "alice", "posts": [_post(1)]}
        )
    )

    recent = await client.fetch_recent(500)

    assert route.calls[0].request.url.params["count"] == "100"
    assert recent[0].url == "https://example.com/1"


@pytest.mark.asyncio
async def test__fetch_tags__returns_counts(mock_api, client) -> None:
    mock_api.get("/tags/get").mock(return_value=Response(200, json={"python": 3, "go": "2"}))
    assert await client.fetch_tags() == {"python": 3, "go": 2}


@pytest.mark.asyncio
async def test__fetch_tags__empty_account(mock_api, client) -> None:
    mock_api.get("/tags/get").mock(return_value=Response(200, json=[]))
    assert await client.fetch_tags() == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test__auth_failures(mock_api, client, status: int) -> None:
    mock_api.get("/posts/all").mock(return_value=Response(status, text="nope"))
    with pytest.raises(AuthError) as exc_info:
        await client.fetch_page(0, 10)
    assert "SECRET" not in str(exc_info.value)


@pytest.mark.asyncio
async def test__server_error_keeps_status(mock_api, client) -> None:
    mock_api.get("/posts/all").mock(return_value=Response(429, text="Too Many Requests"))
    with pytest.raises(ServerError) as exc_info:
        await client.fetch_page(0, 10)
    assert exc_info.value.status_code == 429
    assert exc_info.value.response_text == "Too Many Requests"
    assert "SECRET" not in exc_info.value.url


@pytest.mark.asyncio
async def test__malformed_json_is_decode_error(mock_api, client) -> None:
    mock_api.get("/posts/all").mock(return_value=Response(200, text="<html>oops"))
    with pytest.raises(DecodeError):
        await client.fetch_page(0, 10)


@pytest.mark.asyncio
async def test__schema_mismatch_is_decode_error(mock_api, client) -> None:
    mock_api.get("/posts/all").mock(return_value=Response(200, json=[{"href": "x"}]))
    with pytest.raises(DecodeError):
        await client.fetch_page(0, 10)


@pytest.mark.asyncio
async def test__timeout_is_network_error(mock_api, client) -> None:
    mock_api.get("/posts/recent").mock(side_effect=httpx.ReadTimeout("slow"))
    with pytest.raises(NetworkError) as exc_info:
        await client.fetch_recent(1)
    assert exc_info.value.reason == "timed out"


@pytest.mark.asyncio
async def test__connect_error_is_network_error(mock_api, client) -> None:
    mock_api.get("/tags/get").mock(side_effect=httpx.ConnectError("refused"))
    with pytest.raises(NetworkError):
        await client.fetch_tags()


@pytest.mark.asyncio
async def test__add_post__maps_fields(mock_api, client) -> None:
    route = mock_api.get("/posts/add").mock(
        return_value=Response(200, json={"result_code": "done"})
    )

    await client.add_post(
        url="https://example.com/a",
        title="A",
        note="note",
        tags=["python", "web dev"],
        is_private=True,
        is_unread=True,
    )

    params = route.calls[0].request.url.params
    assert params["url"] == "https://example.com/a"
    assert params["description"] == "A"
    assert params["extended"] == "note"
    assert params["tags"] == "python web dev"
    assert params["shared"] == "no"
    assert params["toread"] == "yes"
    assert params["replace"] == "yes"


@pytest.mark.asyncio
async def test__result_code_other_than_done_is_logical_failure(mock_api, client) -> None:
    mock_api.get("/posts/delete").mock(
        return_value=Response(200, json={"result_code": "item not found"})
    )
    with pytest.raises(LogicalFailure) as exc_info:
        await client.delete_post("https://example.com/a")
    assert exc_info.value.result_code == "item not found"
    assert isinstance(exc_info.value, ServerError)
