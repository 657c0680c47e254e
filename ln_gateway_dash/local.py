"""Client for the gateway the dashboard is attached to."""

from __future__ import annotations

from typing import Any, cast

from .http import CancelToken, GatewayHttpClient
from .lnurl import InvalidResponseError
from .types import HealthSnapshot, RecentRequestEntry


def parse_health(body: Any) -> HealthSnapshot:
    """Check the top-level shape of a GET /health body."""
    if not isinstance(body, dict):
        raise InvalidResponseError(f"/health returned {body!r}, expected an object")
    for section in ("lightning", "bitcoin"):
        if not isinstance(body.get(section), dict):
            raise InvalidResponseError(f"/health response missing '{section}'")
        if "status" not in body[section]:
            raise InvalidResponseError(f"/health response missing '{section}.status'")
    return cast(HealthSnapshot, body)


class LocalApi(GatewayHttpClient):
    async def health(self, *, token: CancelToken | None = None) -> HealthSnapshot:
        return parse_health(await self._get("/health", token=token))

    async def recent_requests(
        self, limit: int = 15, *, token: CancelToken | None = None
    ) -> list[RecentRequestEntry]:
        body = await self._get("/recent-requests", params={"limit": limit}, token=token)
        if not isinstance(body, list):
            raise InvalidResponseError(
                f"/recent-requests returned {body!r}, expected a list"
            )
        return cast(list[RecentRequestEntry], body)

    async def clear_recent_requests(self, *, token: CancelToken | None = None) -> None:
        await self._delete("/recent-requests", token=token)
