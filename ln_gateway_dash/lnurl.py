"""LNURL request/callback client for a (possibly remote) gateway."""

from __future__ import annotations

from typing import Any, Mapping, cast

import httpx

from .http import CancelToken, GatewayHttpClient, get_json, with_query
from .types import GatewayError, LNURLRequest, QueryValue, ValidationError


class InvalidResponseError(GatewayError):
    """Raised when a 2xx response does not have the expected shape."""


def parse_lnurl_request(body: Any, source: str) -> LNURLRequest:
    """Check that ``body`` carries ``k1`` and ``callback``.

    Args:
        body: Decoded response body
        source: Endpoint path, used in the error message

    Raises:
        InvalidResponseError: If either field is missing or not a string
    """
    if not isinstance(body, dict):
        raise InvalidResponseError(f"{source} returned {body!r}, expected an object")

    for name in ("k1", "callback"):
        if not isinstance(body.get(name), str) or not body[name]:
            raise InvalidResponseError(f"{source} response missing '{name}'")

    if body.get("action") is not None and not isinstance(body["action"], str):
        raise InvalidResponseError(f"{source} response has a non-string 'action'")

    return cast(LNURLRequest, body)


class LNURLClient(GatewayHttpClient):
    """Create LNURL requests on one gateway and invoke their callbacks.

    One instance per normalized endpoint; a new endpoint needs a new client.
    No retries are made here.
    """

    def __init__(self, endpoint: str, *, client: httpx.AsyncClient | None = None) -> None:
        if not endpoint.strip():
            raise ValidationError("Remote endpoint is not set")
        super().__init__(endpoint, client=client)

    @property
    def endpoint(self) -> str:
        return self.base_url

    async def create_withdraw_request(
        self, *, token: CancelToken | None = None
    ) -> LNURLRequest:
        """GET /withdraw-request."""
        body = await self._get("/withdraw-request", token=token)
        return parse_lnurl_request(body, "/withdraw-request")

    async def create_channel_request(
        self, *, token: CancelToken | None = None
    ) -> LNURLRequest:
        """GET /channel-request."""
        body = await self._get("/channel-request", token=token)
        return parse_lnurl_request(body, "/channel-request")

    async def create_auth_request(
        self, action: str | None = None, *, token: CancelToken | None = None
    ) -> LNURLRequest:
        """GET /lnurl-auth-request, forwarding ``action`` when given."""
        body = await self._get(
            "/lnurl-auth-request", params={"action": action}, token=token
        )
        return parse_lnurl_request(body, "/lnurl-auth-request")

    async def invoke_callback(
        self,
        callback_url: str,
        params: Mapping[str, QueryValue],
        *,
        token: CancelToken | None = None,
    ) -> Any:
        """GET ``callback_url`` with ``params`` merged into its query string.

        Returns:
            The decoded response, uninterpreted
        """
        url = with_query(callback_url, params)
        return await get_json(self.client, url, token=token)
