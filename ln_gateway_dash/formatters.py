"""Display helpers for the status view."""

from __future__ import annotations

import json

from .types import BitcoinInfo, HealthSnapshot, HttpError

EMPTY = "—"
ERROR_DETAILS_LIMIT = 1600


def _group(value: float, max_fraction_digits: int = 3) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.{max_fraction_digits}f}".rstrip("0").rstrip(".")


def format_maybe_number(value: float | None) -> str:
    if value is None:
        return EMPTY
    return _group(value)


def format_maybe_percent(value: float | None) -> str:
    if value is None:
        return EMPTY
    return f"{value * 100:.0f}%"


def format_msat(msat: int | None) -> str:
    """``1500`` -> ``"1,500 msat (1.5 sat)"``."""
    if msat is None:
        return EMPTY
    return f"{_group(msat)} msat ({_group(msat / 1000)} sat)"


def format_age(ts_ms: int, now_ms: int) -> str:
    age_seconds = max(0, now_ms - ts_ms) // 1000
    if age_seconds < 60:
        return f"{age_seconds}s ago"
    age_minutes = age_seconds // 60
    if age_minutes < 60:
        return f"{age_minutes}m ago"
    return f"{age_minutes // 60}h ago"


def middle_ellipsis(text: str, tail_chars: int = 16) -> str:
    """Shorten long identifiers (pubkeys) keeping both ends visible."""
    if tail_chars <= 0 or len(text) <= tail_chars * 2 + 3:
        return text
    return f"{text[:tail_chars]}…{text[-tail_chars:]}"


def bitcoin_status_label(status: str | None) -> str:
    return {
        "ok": "OK",
        "unreachable": "Unreachable",
        "notconfigured": "Not configured",
    }.get(status or "", EMPTY)


def bitcoin_warnings(snapshot: HealthSnapshot | None) -> str | None:
    if snapshot is None or "bitcoin" not in snapshot:
        return None
    return snapshot.get("warning_bitcoind_sync") or snapshot["bitcoin"].get("warnings")


def header_lag(bitcoin: BitcoinInfo | None) -> int | None:
    if not bitcoin or bitcoin.get("status") != "ok":
        return None
    blocks = bitcoin.get("blocks")
    headers = bitcoin.get("headers")
    if blocks is None or headers is None:
        return None
    return headers - blocks


def compact_details(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) > ERROR_DETAILS_LIMIT:
        return f"{trimmed[:ERROR_DETAILS_LIMIT]}…"
    return trimmed


def describe_error(error: BaseException) -> tuple[int | None, str]:
    """Split an error into (HTTP status or None, compact details)."""
    if isinstance(error, HttpError):
        body = error.body
        if isinstance(body, dict) and "error" in body:
            details = str(body.get("error") or "")
        elif isinstance(body, str):
            details = body
        elif body is None:
            details = ""
        else:
            details = json.dumps(body, default=str)
        return error.status, compact_details(details or str(error))
    return None, compact_details(str(error))
