"""
ONPOST Analytics — Forum API Client

Async client for the Foru.ms API, the analytics job's only data source and
sink. The job needs four operations:

    list threads            GET  /api/v1/threads?filter=newest&limit=N
    list posts in a thread  GET  /api/v1/thread/{id}/posts?filter=newest&cursor=C
    update thread data      PUT  /api/v1/thread/{id}  {"extendedData": {...}}
    update post data        PUT  /api/v1/post/{id}    {"extendedData": {...}}

Extended-data writes are partial merges on the server side.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx
import structlog

from src.config import settings
from src.models.market import PostPage, ThreadPage

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


class ForumsAPIError(Exception):
    """Non-2xx response (or exhausted retries) from the forum API."""

    def __init__(self, status_code: int | None, path: str, message: str | None = None):
        self.status_code = status_code
        self.path = path
        super().__init__(message or f"Foru.ms API error: {status_code}")


class ForumsGateway(Protocol):
    """The forum operations the analytics job depends on."""

    async def list_threads(
        self, filter: str = ..., limit: int | None = ..., cursor: str | None = ...
    ) -> ThreadPage:
        ...

    async def list_posts(
        self,
        thread_id: str,
        filter: str = ...,
        cursor: str | None = ...,
        limit: int | None = ...,
    ) -> PostPage:
        ...

    async def update_thread_extended_data(
        self, thread_id: str, extended_data: dict[str, Any]
    ) -> None:
        ...

    async def update_post_extended_data(
        self, post_id: str, extended_data: dict[str, Any]
    ) -> None:
        ...


class ForumsClient:
    """
    Async client for the forum API.

    Usage:
        async with ForumsClient() as forums:
            page = await forums.list_posts(thread_id)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_backoff: float | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.FORUMS_API_KEY
        self._base_url = (base_url or settings.FORUMS_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.FORUMS_TIMEOUT_SECONDS
        self._max_retries = (
            max_retries if max_retries is not None else settings.FORUMS_MAX_RETRIES
        )
        self._base_backoff = (
            base_backoff if base_backoff is not None else settings.FORUMS_BASE_BACKOFF_SECONDS
        )
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ForumsClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url + API_PREFIX,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Make an API request with retry logic and exponential backoff.

        429 and 5xx responses and transport errors are retried; any other
        non-2xx status raises ForumsAPIError immediately.
        """
        assert self._client is not None, "Client not initialized. Use 'async with'."

        last_status: int | None = None

        for attempt in range(self._max_retries + 1):
            wait_time = self._base_backoff * (2 ** attempt)
            try:
                response = await self._client.request(method, path, params=params, json=json)
            except httpx.RequestError as e:
                logger.error(
                    "forums_request_error",
                    error=str(e),
                    attempt=attempt + 1,
                    path=path,
                )
                last_status = None
                if attempt < self._max_retries:
                    await asyncio.sleep(wait_time)
                continue

            if response.is_success:
                return response.json() if response.content else {}

            last_status = response.status_code
            if response.status_code == 429 or response.status_code >= 500:
                logger.warning(
                    "forums_retryable_status",
                    status_code=response.status_code,
                    attempt=attempt + 1,
                    wait_seconds=wait_time,
                    path=path,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(wait_time)
                continue

            logger.error(
                "forums_http_error",
                status_code=response.status_code,
                path=path,
            )
            raise ForumsAPIError(response.status_code, path)

        raise ForumsAPIError(
            last_status,
            path,
            f"Foru.ms API request failed after {self._max_retries + 1} attempts"
            + (f" (last status {last_status})" if last_status else ""),
        )

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def list_threads(
        self,
        filter: str = "newest",
        limit: int | None = None,
        cursor: str | None = None,
    ) -> ThreadPage:
        """Fetch one page of threads."""
        params: dict[str, Any] = {
            "filter": filter,
            "limit": limit if limit is not None else settings.THREAD_LIST_LIMIT,
        }
        if cursor:
            params["cursor"] = cursor

        data = await self._request("GET", "/threads", params=params)
        page = ThreadPage.model_validate(data)

        logger.debug("forums_threads_listed", count=len(page.threads))
        return page

    async def list_posts(
        self,
        thread_id: str,
        filter: str = "newest",
        cursor: str | None = None,
        limit: int | None = None,
    ) -> PostPage:
        """Fetch one page of a thread's posts (newest first by default)."""
        params: dict[str, Any] = {"filter": filter}
        if cursor:
            params["cursor"] = cursor
        if limit is not None:
            params["limit"] = limit

        data = await self._request("GET", f"/thread/{thread_id}/posts", params=params)
        page = PostPage.model_validate(data)

        logger.debug(
            "forums_posts_listed",
            thread_id=thread_id,
            count=len(page.posts),
            has_next=page.next_post_cursor is not None,
        )
        return page

    async def update_thread_extended_data(
        self, thread_id: str, extended_data: dict[str, Any]
    ) -> None:
        await self._request(
            "PUT", f"/thread/{thread_id}", json={"extendedData": extended_data}
        )
        logger.info("forums_thread_updated", thread_id=thread_id, keys=sorted(extended_data))

    async def update_post_extended_data(
        self, post_id: str, extended_data: dict[str, Any]
    ) -> None:
        await self._request("PUT", f"/post/{post_id}", json={"extendedData": extended_data})
        logger.info("forums_post_updated", post_id=post_id, keys=sorted(extended_data))
