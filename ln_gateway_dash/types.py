"""Type definitions for the ln-gateway dashboard and the gateway HTTP API."""

from __future__ import annotations

import json
from typing import Any, Literal, TypedDict, Union


# ──────────────────────────────────────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────────────────────────────────────


class GatewayError(Exception):
    """Base class for dashboard errors."""


class ValidationError(GatewayError):
    """Raised before any network call when operator input is missing or invalid."""


class ConfigError(GatewayError):
    """Raised when the environment holds an unusable setting."""


class TransportError(GatewayError):
    """Raised when a request never produced an HTTP response."""


class RequestCancelled(TransportError):
    """Raised when a request was aborted through its cancel token."""


HTTP_ERROR_TEXT_LIMIT = 1200


def _http_error_details(status: int, body: Any) -> str:
    if body is None:
        details = ""
    elif isinstance(body, dict) and body.get("error") is not None:
        details = str(body["error"])
    elif isinstance(body, str):
        trimmed = body.strip()
        if len(trimmed) > HTTP_ERROR_TEXT_LIMIT:
            trimmed = f"{trimmed[:HTTP_ERROR_TEXT_LIMIT]}…"
        details = trimmed
    else:
        try:
            details = json.dumps(body)
        except (TypeError, ValueError):
            details = str(body)

    if not details and status == 404:
        return "Not Found"
    return details


class HttpError(GatewayError):
    """Raised when the gateway (or a callback URL) answers with a non-2xx status.

    Attributes:
        method: Upper-cased HTTP method
        status: HTTP status code
        url: Requested URL
        body: Decoded response body (JSON value, text or None)
    """

    def __init__(self, method: str, status: int, url: str, body: Any = None) -> None:
        self.method = method.upper()
        self.status = status
        self.url = url
        self.body = body
        details = _http_error_details(status, body)
        if details:
            message = f"{self.method} {url} failed ({status}): {details}"
        else:
            message = f"{self.method} {url} failed ({status})"
        super().__init__(message)


# ──────────────────────────────────────────────────────────────────────────────
# LNURL
# ──────────────────────────────────────────────────────────────────────────────

QueryValue = Union[str, int, float, bool, None]


class _LNURLRequestOptional(TypedDict, total=False):
    action: str


class LNURLRequest(_LNURLRequestOptional):
    """One-time request issued by /withdraw-request, /channel-request or
    /lnurl-auth-request."""

    k1: str  # opaque one-time challenge
    callback: str  # absolute URL to invoke next


FlowName = Literal["withdraw", "channel", "auth"]


# ──────────────────────────────────────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────────────────────────────────────

BitcoinStatus = Literal["ok", "unreachable", "notconfigured"]
LightningStatus = Literal["ok", "syncing"]
ConnectionState = Literal["connecting", "online", "offline"]
StatusLabel = Literal["loading", "error", "refreshing", "ok"]


class BitcoinInfo(TypedDict, total=False):
    """bitcoind section of GET /health. Fields beyond ``status`` are only
    meaningful when ``status == "ok"``."""

    status: BitcoinStatus
    chain: str
    blocks: int
    headers: int
    connections: int
    verification_progress: float
    initial_block_download: bool
    version: int
    subversion: str
    warnings: str | None


class LightningInfo(TypedDict, total=False):
    """CoreLightning section of GET /health."""

    status: LightningStatus
    alias: str | None
    pubkey: str
    cln_version: str
    num_peers: int
    num_active_channels: int
    num_pending_channels: int


class HealthSnapshot(TypedDict, total=False):
    """Response from GET /health."""

    bitcoin: BitcoinInfo
    lightning: LightningInfo
    min_withdrawable_msat: int
    max_withdrawable_msat: int
    warning_bitcoind_sync: str | None
    warning_lightningd_sync: str | None


class RecentRequestEntry(TypedDict):
    """One item from GET /recent-requests."""

    ts_ms: int  # unix timestamp in milliseconds
    client_addr: str
    method: str
    path: str  # no query string
    status: int
    ok: bool  # status < 400
