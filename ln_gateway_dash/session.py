"""Remote gateway session: endpoint + client + flow controllers."""

from __future__ import annotations

import logging
from typing import Callable

from .endpoint import EndpointStore
from .flows import AuthFlow, ChannelFlow, WithdrawFlow
from .lnurl import LNURLClient
from .types import ValidationError

logger = logging.getLogger(__name__)


class RemoteSession:
    """Ties the flow controllers to the remembered endpoint.

    Changing the endpoint cancels everything tied to the old one and builds
    a fresh client and fresh controllers, so no request or result leaks
    across endpoints.
    """

    def __init__(
        self,
        store: EndpointStore,
        *,
        client_factory: Callable[[str], LNURLClient] = LNURLClient,
    ) -> None:
        self.store = store
        self._client_factory = client_factory
        self.client: LNURLClient | None = None
        self._withdraw: WithdrawFlow | None = None
        self._channel: ChannelFlow | None = None
        self._auth: AuthFlow | None = None
        self._build(store.get())

    @property
    def endpoint(self) -> str:
        return self.client.endpoint if self.client else ""

    @property
    def is_ready(self) -> bool:
        return self.client is not None

    def _require(self, flow):
        if flow is None:
            raise ValidationError("Set a remote endpoint first")
        return flow

    @property
    def withdraw(self) -> WithdrawFlow:
        return self._require(self._withdraw)

    @property
    def channel(self) -> ChannelFlow:
        return self._require(self._channel)

    @property
    def auth(self) -> AuthFlow:
        return self._require(self._auth)

    def _build(self, endpoint: str) -> None:
        if not endpoint:
            self.client = None
            self._withdraw = self._channel = self._auth = None
            return
        logger.debug("Using remote endpoint %s", endpoint)
        self.client = self._client_factory(endpoint)
        self._withdraw = WithdrawFlow(self.client)
        self._channel = ChannelFlow(self.client)
        self._auth = AuthFlow(self.client)

    async def _teardown(self) -> None:
        for flow in (self._withdraw, self._channel, self._auth):
            if flow is not None:
                flow.cancel()
        if self.client is not None:
            await self.client.aclose()

    async def set_endpoint(self, raw: str) -> str:
        """Normalize, remember and switch to ``raw``.

        Returns:
            The normalized endpoint ("" when unset)
        """
        previous = self.endpoint
        self.store.set(raw)
        endpoint = self.store.get()
        if endpoint != previous:
            await self._teardown()
            self._build(endpoint)
        return endpoint

    async def clear_endpoint(self) -> bool:
        cleared = self.store.clear()
        await self._teardown()
        self._build("")
        return cleared

    async def aclose(self) -> None:
        await self._teardown()

    async def __aenter__(self) -> "RemoteSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
