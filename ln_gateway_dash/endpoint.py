"""Remembered remote gateway endpoint."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .config import read_env_value, remove_env_value, write_env_value

logger = logging.getLogger(__name__)

REMOTE_BASE_URL_KEY = "LN_GATEWAY_REMOTE_BASE_URL"

_SCHEME_RE = re.compile(r"^(https?)://", re.IGNORECASE)
_TRAILING_RE = re.compile(r"[\s/]+$")


def normalize_endpoint(raw: str, default_scheme: str = "http") -> str:
    """Normalize an operator-typed base URL.

    ``"example.com"`` becomes ``"http://example.com"``, ``"//host"`` gets
    ``default_scheme``, trailing slashes are stripped and blank input gives
    ``""`` (unset). Applying it twice yields the same string.
    """
    trimmed = raw.strip()
    if not trimmed:
        return ""

    match = _SCHEME_RE.match(trimmed)
    if match:
        scheme = match.group(1)
        rest = trimmed[match.end():]
    elif trimmed.startswith("//"):
        scheme = default_scheme
        rest = trimmed[2:]
    else:
        scheme = default_scheme
        rest = trimmed

    rest = _TRAILING_RE.sub("", rest)
    if not rest:
        return ""
    return f"{scheme}://{rest}"


class EndpointStore:
    """Holds the remote endpoint and persists it to the .env file.

    Storage failures are never raised: an unreadable file means "unset" and
    an unwritable one only loses the remembered value.
    """

    def __init__(self, env_file: Path, *, default_scheme: str = "http") -> None:
        self.env_file = env_file
        self.default_scheme = default_scheme
        self._endpoint = ""
        self.load()

    def load(self) -> str:
        try:
            saved = read_env_value(self.env_file, REMOTE_BASE_URL_KEY)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Could not read %s: %s", self.env_file, e)
            saved = None
        self._endpoint = normalize_endpoint(saved or "", self.default_scheme)
        return self._endpoint

    def get(self) -> str:
        return self._endpoint

    @property
    def is_set(self) -> bool:
        return bool(self._endpoint)

    def set(self, raw: str) -> None:
        self._endpoint = normalize_endpoint(raw, self.default_scheme)
        if not self._endpoint:
            return
        try:
            write_env_value(self.env_file, REMOTE_BASE_URL_KEY, self._endpoint)
        except OSError as e:
            logger.debug("Could not write %s: %s", self.env_file, e)

    def clear(self) -> bool:
        """Forget the endpoint, in memory and on disk."""
        had_value = bool(self._endpoint)
        self._endpoint = ""
        try:
            removed = remove_env_value(self.env_file, REMOTE_BASE_URL_KEY)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Could not update %s: %s", self.env_file, e)
            removed = False
        return had_value or removed
