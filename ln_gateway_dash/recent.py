"""Recently observed gateway requests, with optimistic clearing."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable

from .local import LocalApi
from .types import GatewayError, RecentRequestEntry, RequestCancelled, TransportError

logger = logging.getLogger(__name__)

RecentSubscriber = Callable[[list[RecentRequestEntry]], None]


class RecentRequestsStore:
    """Holds the latest GET /recent-requests list.

    ``clear()`` empties the list right away, restores it if the DELETE
    fails, and always re-fetches afterwards. ``start()`` re-fetches every
    ``interval`` seconds until ``stop()``.
    """

    def __init__(
        self,
        api: LocalApi,
        *,
        limit: int = 15,
        interval: float = 3.0,
        retry_delay: float = 1.0,
    ) -> None:
        self.api = api
        self.limit = limit
        self.interval = interval
        self.retry_delay = retry_delay
        self.items: list[RecentRequestEntry] = []
        self.error: GatewayError | None = None
        self.loaded = False
        self.is_clearing = False
        self._generation = 0
        self._subscribers: list[RecentSubscriber] = []
        self._task: asyncio.Task | None = None

    def subscribe(self, callback: RecentSubscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, items: list[RecentRequestEntry]) -> None:
        self.items = items
        for callback in list(self._subscribers):
            try:
                callback(items)
            except Exception:
                logger.exception("Recent-requests subscriber %r failed", callback)

    async def refresh(self) -> list[RecentRequestEntry]:
        """Re-fetch the list. Failures are kept on ``self.error``."""
        self._generation += 1
        generation = self._generation
        try:
            items = await self.api.recent_requests(self.limit)
        except GatewayError as e:
            if generation == self._generation:
                logger.warning("Loading recent requests failed: %s", e)
                self.error = e
            return self.items

        if generation == self._generation:
            self.error = None
            self.loaded = True
            self._publish(items)
        return self.items

    async def _delete(self) -> None:
        try:
            await self.api.clear_recent_requests()
        except RequestCancelled:
            raise
        except TransportError as e:
            logger.info("Clearing recent requests failed (%s), retrying", e)
            await asyncio.sleep(self.retry_delay)
            await self.api.clear_recent_requests()

    async def clear(self) -> None:
        """DELETE /recent-requests.

        Raises:
            GatewayError: If the DELETE failed; the previous list is restored
        """
        previous = self.items
        # Drop any refresh started before the clear
        self._generation += 1
        self.is_clearing = True
        self._publish([])
        try:
            await self._delete()
        except GatewayError:
            self._publish(previous)
            raise
        finally:
            self.is_clearing = False
            await self.refresh()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
