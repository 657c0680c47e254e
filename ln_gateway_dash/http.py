"""HTTP primitives shared by the local and remote gateway clients."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import math
from typing import Any, Awaitable, Mapping, TypeVar

import httpx

from .types import (
    HttpError,
    QueryValue,
    RequestCancelled,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ──────────────────────────────────────────────────────────────────────────────
# Cancellation
# ──────────────────────────────────────────────────────────────────────────────


class CancelToken:
    """Cancellation signal threaded through a request.

    Calling ``cancel()`` aborts whatever request is currently awaited through
    ``run()``; the awaiting caller gets ``RequestCancelled``.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelled("Request cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, httpx.HTTPError):
                await task
            raise
        finally:
            waiter.cancel()

        if self.cancelled:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, httpx.HTTPError):
                await task
            raise RequestCancelled("Request cancelled")
        return task.result()


# ──────────────────────────────────────────────────────────────────────────────
# URL + body helpers
# ──────────────────────────────────────────────────────────────────────────────


def _query_string(value: QueryValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def with_query(base_url: str, params: Mapping[str, QueryValue]) -> str:
    """Merge ``params`` into the query string of ``base_url``.

    Keys whose value is None or an empty string are skipped. A key already
    present in ``base_url`` is overwritten.

    Args:
        base_url: Absolute URL, possibly with an existing query string
        params: Query parameters to set

    Returns:
        New URL string; ``base_url`` itself is left untouched
    """
    try:
        url = httpx.URL(base_url)
    except httpx.InvalidURL as e:
        raise ValidationError(f"Invalid URL {base_url!r}: {e}") from e

    query = {
        key: _query_string(value)
        for key, value in params.items()
        if value is not None and value != ""
    }
    if not query:
        return str(url)
    return str(url.copy_merge_params(query))


def parse_maybe_json(text: str) -> Any:
    """Decode a response body: JSON if possible, else the trimmed text,
    else None for an empty body."""
    trimmed = text.strip()
    if not trimmed:
        return None
    try:
        return json.loads(trimmed)
    except (ValueError, RecursionError):
        return trimmed


def join_url(base_url: str, path: str) -> str:
    base = base_url.strip().rstrip("/")
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base}{path}"


# ──────────────────────────────────────────────────────────────────────────────
# Requests
# ──────────────────────────────────────────────────────────────────────────────


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    token: CancelToken | None = None,
) -> Any:
    """Issue ``method url`` and return the decoded body.

    Raises:
        HttpError: On a non-2xx status
        RequestCancelled: When ``token`` fired before the response arrived
        TransportError: When no usable response was received
    """
    method = method.upper()
    if token is not None:
        token.raise_if_cancelled()
    logger.debug("%s %s", method, url)
    try:
        if token is None:
            response = await client.request(method, url)
        else:
            response = await token.run(client.request(method, url))
    except httpx.InvalidURL as e:
        raise ValidationError(f"Invalid URL {url!r}: {e}") from e
    except httpx.HTTPError as e:
        # Connection failures, but also undecodable bodies and redirect loops
        raise TransportError(f"{method} {url} failed: {e}") from e

    body = parse_maybe_json(response.text)
    logger.debug("%s %s -> %s", method, url, response.status_code)

    if not response.is_success:
        error = HttpError(method, response.status_code, str(response.url), body)
        logger.info("%s", error)
        raise error

    return body


async def get_json(
    client: httpx.AsyncClient, url: str, *, token: CancelToken | None = None
) -> Any:
    return await request_json(client, "GET", url, token=token)


class GatewayHttpClient:
    """Base for clients bound to one gateway base URL."""

    def __init__(self, base_url: str, *, client: httpx.AsyncClient | None = None) -> None:
        # Normalize URL by removing trailing slashes
        self.base_url = base_url.strip().rstrip("/")
        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient()

    async def aclose(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _url(self, path: str) -> str:
        return join_url(self.base_url, path)

    async def _get(
        self,
        path: str,
        *,
        params: Mapping[str, QueryValue] | None = None,
        token: CancelToken | None = None,
    ) -> Any:
        url = self._url(path)
        if params:
            url = with_query(url, params)
        return await request_json(self.client, "GET", url, token=token)

    async def _delete(self, path: str, *, token: CancelToken | None = None) -> Any:
        return await request_json(self.client, "DELETE", self._url(path), token=token)
