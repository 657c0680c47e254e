"""Dashboard configuration read from the environment and the .env file."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from .types import ConfigError

API_BASE_URL_ENV_VAR = "LN_GATEWAY_API_BASE_URL"
LEGACY_API_BASE_URL_ENV_VAR = "CLIENT_API_BASE_URL"
HEALTH_INTERVAL_ENV_VAR = "LN_GATEWAY_HEALTH_INTERVAL"
RECENT_INTERVAL_ENV_VAR = "LN_GATEWAY_RECENT_INTERVAL"
RECENT_LIMIT_ENV_VAR = "LN_GATEWAY_RECENT_LIMIT"
DEBUG_ENV_VAR = "LN_GATEWAY_DEBUG"
ENV_FILE_ENV_VAR = "LN_GATEWAY_ENV_FILE"

DEFAULT_API_BASE_URL = "http://127.0.0.1:3000"

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


# ──────────────────────────────────────────────────────────────────────────────
# .env file helpers
# ──────────────────────────────────────────────────────────────────────────────


def default_env_file() -> Path:
    override = os.getenv(ENV_FILE_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.cwd() / ".env"


def read_env_value(env_file: Path, key: str) -> str | None:
    """Read ``key`` from a .env file.

    Expected format: ``KEY="value"`` (quotes optional), one per line.

    Returns:
        The unquoted value, None if the file or key is missing

    Raises:
        OSError: If the file exists but cannot be read
    """
    if not env_file.exists():
        return None

    content = env_file.read_text()
    for line in content.splitlines():
        line = line.strip()
        if line.startswith(f"{key}="):
            # Extract value after the equals sign
            value = line.split("=", 1)[1]
            # Remove quotes if present
            value = value.strip("\"'")
            return value or None
    return None


def write_env_value(env_file: Path, key: str, value: str) -> None:
    """Set ``key`` in a .env file, replacing an existing line for it.

    Raises:
        OSError: If the file cannot be written
    """
    env_line = f'{key}="{value}"'

    if not env_file.exists():
        env_file.write_text(env_line + "\n")
        return

    lines = env_file.read_text().splitlines()

    # Look for existing line
    found = False
    new_lines = []
    for line in lines:
        if line.strip().startswith(f"{key}="):
            new_lines.append(env_line)
            found = True
        else:
            new_lines.append(line)

    if not found:
        new_lines.append(env_line)

    env_file.write_text("\n".join(new_lines) + "\n")


def remove_env_value(env_file: Path, key: str) -> bool:
    """Remove ``key`` from a .env file.

    Returns:
        True if a line was removed

    Raises:
        OSError: If the file cannot be rewritten
    """
    if not env_file.exists():
        return False

    lines = env_file.read_text().splitlines()
    new_lines = [line for line in lines if not line.strip().startswith(f"{key}=")]
    if len(new_lines) == len(lines):
        return False

    if new_lines:
        env_file.write_text("\n".join(new_lines) + "\n")
    else:
        # If file would be empty, remove it
        env_file.unlink()
    return True


def get_setting(env_file: Path, *keys: str) -> str | None:
    """Look ``keys`` up in the environment first, then in the .env file."""
    for key in keys:
        value = os.getenv(key)
        if value and value.strip():
            return value.strip()

    for key in keys:
        try:
            value = read_env_value(env_file, key)
        except OSError:
            value = None
        if value and value.strip():
            return value.strip()
    return None


# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────


def normalize_api_base_url(raw: str, default_scheme: str = "http") -> str:
    """Give a scheme-less gateway URL the default scheme and validate it."""
    raw = raw.strip()
    if not _SCHEME_RE.match(raw):
        if raw.startswith("//"):
            raw = f"{default_scheme}:{raw}"
        else:
            raw = f"{default_scheme}://{raw}"
    raw = raw.rstrip("/")

    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as e:
        raise ConfigError(f"Invalid gateway URL {raw!r}: {e}") from e
    if not url.host:
        raise ConfigError(f"Invalid gateway URL {raw!r}: missing host")
    return raw


def _parse_positive(name: str, raw: str | None, default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if not value > 0:
        raise ConfigError(f"{name} must be greater than zero, got {raw!r}")
    return value


@dataclass(frozen=True)
class GatewayConfig:
    """Settings for one dashboard process.

    Built once by ``from_env()`` and handed to whatever needs it.
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    health_interval: float = 5.0
    recent_interval: float = 3.0
    recent_limit: int = 15
    debug: bool = False
    env_file: Path = field(default_factory=default_env_file)

    @property
    def default_scheme(self) -> str:
        """Scheme given to remote endpoints typed without one."""
        return "https" if self.api_base_url.lower().startswith("https://") else "http"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "GatewayConfig":
        """Build the config from environment variables and the .env file.

        Priority order:
        1. Environment variable
        2. .env file (``LN_GATEWAY_ENV_FILE`` or ``./.env``)
        3. Built-in default

        Raises:
            ConfigError: If a setting is present but unusable
        """
        env_file = env_file or default_env_file()

        raw_url = get_setting(
            env_file, API_BASE_URL_ENV_VAR, LEGACY_API_BASE_URL_ENV_VAR
        )
        api_base_url = normalize_api_base_url(raw_url or DEFAULT_API_BASE_URL)

        health_interval = _parse_positive(
            HEALTH_INTERVAL_ENV_VAR,
            get_setting(env_file, HEALTH_INTERVAL_ENV_VAR),
            cls.health_interval,
        )
        recent_interval = _parse_positive(
            RECENT_INTERVAL_ENV_VAR,
            get_setting(env_file, RECENT_INTERVAL_ENV_VAR),
            cls.recent_interval,
        )
        recent_limit = _parse_positive(
            RECENT_LIMIT_ENV_VAR,
            get_setting(env_file, RECENT_LIMIT_ENV_VAR),
            cls.recent_limit,
        )
        if not float(recent_limit).is_integer():
            raise ConfigError(f"{RECENT_LIMIT_ENV_VAR} must be a whole number")

        debug = (get_setting(env_file, DEBUG_ENV_VAR) or "false").lower() in (
            "1",
            "true",
            "yes",
        )

        return cls(
            api_base_url=api_base_url,
            health_interval=health_interval,
            recent_interval=recent_interval,
            recent_limit=int(recent_limit),
            debug=debug,
            env_file=env_file,
        )
