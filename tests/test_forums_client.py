"""
Tests for the forum API client (src/pipeline/forums.py).

Covers:
- Client initialization and configuration
- list_threads / list_posts: params, auth header, parsing
- update_*_extended_data: PUT body
- Retry logic: 429 rate-limiting, 500 server error, transport errors
- Non-retryable 4xx
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from src.config import settings
from src.pipeline.forums import ForumsAPIError, ForumsClient

BASE = "https://forum.test"
API = f"{BASE}/api/v1"


def _client(**overrides) -> ForumsClient:
    params = {"api_key": "secret-key", "base_url": BASE, "base_backoff": 0.0, "max_retries": 2}
    params.update(overrides)
    return ForumsClient(**params)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_client_init_defaults() -> None:
    """Client uses settings defaults when no overrides are given."""
    client = ForumsClient()

    assert client._api_key == settings.FORUMS_API_KEY
    assert client._base_url == settings.FORUMS_BASE_URL
    assert client._max_retries == settings.FORUMS_MAX_RETRIES
    assert client._client is None


def test_client_strips_trailing_slash() -> None:
    assert ForumsClient(base_url="https://forum.test/")._base_url == BASE


async def test_request_outside_context_manager_fails() -> None:
    with pytest.raises(AssertionError):
        await _client().list_threads()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@respx.mock
async def test_list_threads() -> None:
    route = respx.get(f"{API}/threads").mock(
        return_value=httpx.Response(
            200,
            json={
                "threads": [
                    {"id": "t1", "title": "Pedang", "extendedData": {"market": {"marketEnabled": True}}},
                    {"id": "t2", "title": "Chat"},
                ],
                "nextThreadCursor": None,
            },
        )
    )

    async with _client() as client:
        page = await client.list_threads(limit=20)

    assert [t.id for t in page.threads] == ["t1", "t2"]
    request = route.calls.last.request
    assert request.url.params["filter"] == "newest"
    assert request.url.params["limit"] == "20"
    assert request.headers["Authorization"] == "Bearer secret-key"


@respx.mock
async def test_list_posts_with_cursor() -> None:
    route = respx.get(f"{API}/thread/t1/posts").mock(
        return_value=httpx.Response(
            200,
            json={
                "posts": [
                    {
                        "id": "p2",
                        "body": "WTS pedang 50rb",
                        "createdAt": "2026-10-17T10:00:00.000Z",
                        "extendedData": None,
                    }
                ],
                "nextPostCursor": "c2",
            },
        )
    )

    async with _client() as client:
        page = await client.list_posts("t1", cursor="c1")

    assert page.posts[0].id == "p2"
    assert page.posts[0].created_at.year == 2026
    assert page.next_post_cursor == "c2"
    assert route.calls.last.request.url.params["cursor"] == "c1"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@respx.mock
async def test_update_thread_extended_data() -> None:
    route = respx.put(f"{API}/thread/t1").mock(return_value=httpx.Response(200, json={"id": "t1"}))

    async with _client() as client:
        await client.update_thread_extended_data("t1", {"market": {"validCount": 3}})

    body = json.loads(route.calls.last.request.content)
    assert body == {"extendedData": {"market": {"validCount": 3}}}


@respx.mock
async def test_update_post_extended_data_empty_response() -> None:
    route = respx.put(f"{API}/post/p1").mock(return_value=httpx.Response(204))

    async with _client() as client:
        await client.update_post_extended_data("p1", {"trade": {"isTrade": True}})

    assert json.loads(route.calls.last.request.content) == {"extendedData": {"trade": {"isTrade": True}}}


# ---------------------------------------------------------------------------
# Retries and errors
# ---------------------------------------------------------------------------


@respx.mock
async def test_retries_on_429_then_succeeds() -> None:
    route = respx.get(f"{API}/threads").mock(
        side_effect=[
            httpx.Response(429),
            httpx.Response(200, json={"threads": []}),
        ]
    )

    async with _client() as client:
        page = await client.list_threads()

    assert page.threads == []
    assert route.call_count == 2


@respx.mock
async def test_server_error_exhausts_retries() -> None:
    route = respx.get(f"{API}/thread/t1/posts").mock(return_value=httpx.Response(500))

    async with _client(max_retries=2) as client:
        with pytest.raises(ForumsAPIError) as exc_info:
            await client.list_posts("t1")

    assert route.call_count == 3
    assert exc_info.value.status_code == 500


@respx.mock
async def test_transport_error_retried() -> None:
    route = respx.get(f"{API}/threads").mock(
        side_effect=[
            httpx.ConnectError("refused"),
            httpx.Response(200, json={"threads": []}),
        ]
    )

    async with _client() as client:
        await client.list_threads()

    assert route.call_count == 2


@respx.mock
async def test_client_error_not_retried() -> None:
    route = respx.put(f"{API}/thread/t9").mock(return_value=httpx.Response(404))

    async with _client() as client:
        with pytest.raises(ForumsAPIError) as exc_info:
            await client.update_thread_extended_data("t9", {"market": {}})

    assert route.call_count == 1
    assert exc_info.value.status_code == 404
    assert str(exc_info.value) == "Foru.ms API error: 404"
