"""Live health polling and connection-state derivation."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from .http import CancelToken
from .local import LocalApi
from .types import (
    ConnectionState,
    GatewayError,
    HealthSnapshot,
    RequestCancelled,
    StatusLabel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connection:
    state: ConnectionState
    detail: str | None = None


def connection_detail(snapshot: HealthSnapshot) -> str:
    """Human-readable ``cln:<status> · btc:<status> · <chain> @ height <n>``."""
    lightning = snapshot.get("lightning", {})
    bitcoin = snapshot.get("bitcoin", {})
    parts = [f"cln:{lightning.get('status')}", f"btc:{bitcoin.get('status')}"]
    if bitcoin.get("chain"):
        parts.append(f"{bitcoin['chain']} @ height {bitcoin.get('blocks')}")
    return " · ".join(parts)


@dataclass(frozen=True)
class HealthState:
    """One published view of the poller.

    ``snapshot`` is the last successful /health payload and is kept when a
    later poll fails; ``error`` describes the latest poll only.
    """

    snapshot: HealthSnapshot | None = None
    latency_ms: int | None = None
    updated_at: float | None = None  # wall-clock seconds of the last success
    error: Exception | None = None
    is_fetching: bool = False

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__

    @property
    def connection(self) -> Connection:
        if self.error is not None:
            return Connection("offline", self.error_message)
        if self.snapshot is None:
            return Connection("connecting", "Checking…")
        return Connection("online", connection_detail(self.snapshot))

    @property
    def is_operational(self) -> bool:
        if self.connection.state != "online" or self.snapshot is None:
            return False
        return (
            self.snapshot["lightning"].get("status") == "ok"
            and self.snapshot["bitcoin"].get("status") == "ok"
        )

    @property
    def is_refreshing(self) -> bool:
        """A poll is running while an earlier result is already shown."""
        return self.is_fetching and self.snapshot is not None

    @property
    def status_label(self) -> StatusLabel:
        if self.snapshot is None and self.error is None:
            return "loading"
        if self.error is not None:
            return "error"
        if self.is_fetching:
            return "refreshing"
        return "ok"

    def age_seconds(self, now: float | None = None) -> int | None:
        if self.updated_at is None:
            return None
        now = time.time() if now is None else now
        return max(0, round(now - self.updated_at))


HealthSubscriber = Callable[[HealthState], None]


class HealthPoller:
    """Polls GET /health on a fixed interval and publishes ``HealthState``.

    Polls never overlap: a tick waits for the previous one, and a poll that
    was cancelled by ``stop()`` cannot publish.
    """

    def __init__(
        self,
        api: LocalApi,
        *,
        interval: float = 5.0,
        clock: Callable[[], float] = time.perf_counter,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.api = api
        self.interval = interval
        self._clock = clock
        self._wall_clock = wall_clock
        self._state = HealthState()
        self._subscribers: list[HealthSubscriber] = []
        self._lock = asyncio.Lock()
        self._generation = 0
        self._token: CancelToken | None = None
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> HealthState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, callback: HealthSubscriber) -> Callable[[], None]:
        """Call ``callback`` with every new state. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, state: HealthState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("Health subscriber %r failed", callback)

    async def poll(self) -> HealthState:
        """Run one poll and return the resulting state."""
        async with self._lock:
            self._generation += 1
            generation = self._generation
            token = self._token = CancelToken()
            self._publish(replace(self._state, is_fetching=True))

            started = self._clock()
            try:
                snapshot = await self.api.health(token=token)
            except RequestCancelled:
                logger.debug("Health poll cancelled")
                return self._state
            except GatewayError as e:
                if generation == self._generation:
                    logger.warning("Health poll failed: %s", e)
                    # Keep the last good snapshot; only the fetch is marked failed
                    self._publish(replace(self._state, error=e, is_fetching=False))
                return self._state
            finally:
                if self._token is token:
                    self._token = None

            if generation == self._generation:
                latency_ms = max(0, round((self._clock() - started) * 1000))
                self._publish(
                    HealthState(
                        snapshot=snapshot,
                        latency_ms=latency_ms,
                        updated_at=self._wall_clock(),
                    )
                )
            return self._state

    async def refresh(self) -> HealthState:
        """Poll now, unless a poll is already running."""
        if self._lock.locked():
            return self._state
        return await self.poll()

    async def _run(self) -> None:
        while True:
            await self.poll()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._generation += 1
        if self._token is not None:
            self._token.cancel()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._state.is_fetching:
            self._publish(replace(self._state, is_fetching=False))

    async def __aenter__(self) -> "HealthPoller":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
