"""Withdraw, channel-open and LNURL-auth flow controllers.

Each flow has two operations. ``create_request()`` fetches a fresh
``{k1, callback}`` pair from the gateway, and ``invoke_callback()`` calls
that callback with the operator's fields plus ``k1``. Both record their
outcome on the controller so a view can render pending/error/result state.

Ordering rules:

- A new create supersedes any create still in flight (the older one is
  cancelled and can no longer touch state) and clears the previous
  callback outcome.
- An invoke is rejected while another is still in flight.
- Field validation happens before anything reaches the network.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Literal

from .http import CancelToken
from .lnurl import LNURLClient
from .types import (
    FlowName,
    GatewayError,
    LNURLRequest,
    QueryValue,
    RequestCancelled,
    ValidationError,
)

logger = logging.getLogger(__name__)

CreateStatus = Literal["idle", "requesting", "requested", "request_failed"]
InvokeStatus = Literal["idle", "invoking", "invoked", "invoke_failed"]


@dataclass(frozen=True)
class OperationState:
    """Outcome of the latest create or invoke attempt."""

    status: str = "idle"
    result: Any = None
    error: Exception | None = None

    @property
    def is_pending(self) -> bool:
        return self.status in ("requesting", "invoking")


# ──────────────────────────────────────────────────────────────────────────────
# Field validation
# ──────────────────────────────────────────────────────────────────────────────


def require_field(value: str | None, name: str) -> str:
    trimmed = (value or "").strip()
    if not trimmed:
        raise ValidationError(f"{name} is required")
    return trimmed


def optional_field(value: str | None) -> str | None:
    trimmed = (value or "").strip()
    return trimmed or None


def parse_amount(raw: str | None) -> int | None:
    """Parse an optional amount, floored to a whole number.

    Raises:
        ValidationError: If the value is not a finite, non-negative number
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return None
    if "_" in trimmed:
        raise ValidationError("Amount must be a positive number")
    try:
        amount = float(trimmed)
    except ValueError:
        raise ValidationError("Amount must be a positive number") from None
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError("Amount must be a positive number")
    return math.floor(amount)


def parse_announce(raw: str | None) -> bool | None:
    """Accept only ``true``/``false`` (any case)."""
    trimmed = (raw or "").strip().lower()
    if not trimmed:
        return None
    if trimmed == "true":
        return True
    if trimmed == "false":
        return False
    raise ValidationError("announce must be 'true' or 'false'")


# ──────────────────────────────────────────────────────────────────────────────
# Controllers
# ──────────────────────────────────────────────────────────────────────────────


class FlowController:
    """Shared create/invoke bookkeeping for one LNURL flow."""

    name: FlowName
    request_path: str

    def __init__(self, client: LNURLClient) -> None:
        self.client = client
        self.request: LNURLRequest | None = None
        self.create = OperationState()
        self.invoke = OperationState()
        self._create_generation = 0
        self._invoke_generation = 0
        self._create_token: CancelToken | None = None
        self._invoke_token: CancelToken | None = None

    @property
    def can_create(self) -> bool:
        return not self.create.is_pending

    @property
    def can_invoke(self) -> bool:
        return self.request is not None and not self.invoke.is_pending

    async def _fetch_request(self, token: CancelToken) -> LNURLRequest:
        raise NotImplementedError

    def _reset_invoke(self) -> None:
        self._invoke_generation += 1
        if self._invoke_token is not None:
            self._invoke_token.cancel()
            self._invoke_token = None
        self.invoke = OperationState()

    async def create_request(self) -> LNURLRequest:
        """Fetch a new request, replacing the held one.

        Raises:
            RequestCancelled: If a newer create or ``cancel()`` superseded this one
            GatewayError: If the gateway call failed (also kept on ``self.create``)
        """
        self._create_generation += 1
        generation = self._create_generation
        if self._create_token is not None:
            self._create_token.cancel()
        token = self._create_token = CancelToken()

        # A new request invalidates any earlier callback outcome
        self._reset_invoke()
        self.request = None
        self.create = OperationState(status="requesting")

        try:
            request = await self._fetch_request(token)
        except RequestCancelled:
            logger.debug("%s: superseded create request dropped", self.name)
            raise
        except GatewayError as e:
            if generation == self._create_generation:
                self.create = OperationState(status="request_failed", error=e)
                self._create_token = None
            raise

        if generation != self._create_generation:
            raise RequestCancelled(f"{self.request_path} superseded")

        self.request = request
        self.create = OperationState(status="requested", result=request)
        self._create_token = None
        return request

    async def _invoke(
        self, build_params: Callable[[LNURLRequest], dict[str, QueryValue]]
    ) -> Any:
        # A pending callback is never superseded
        if self.invoke.is_pending:
            raise ValidationError("A callback is already in flight")

        try:
            if self.request is None:
                raise ValidationError(f"Call {self.request_path} first")
            request = self.request
            params = build_params(request)
        except ValidationError as e:
            self.invoke = OperationState(status="invoke_failed", error=e)
            raise

        self._invoke_generation += 1
        generation = self._invoke_generation
        if self._invoke_token is not None:
            self._invoke_token.cancel()
        token = self._invoke_token = CancelToken()
        self.invoke = OperationState(status="invoking")

        try:
            response = await self.client.invoke_callback(
                request["callback"], params, token=token
            )
        except RequestCancelled:
            logger.debug("%s: superseded callback dropped", self.name)
            raise
        except GatewayError as e:
            if generation == self._invoke_generation:
                self.invoke = OperationState(status="invoke_failed", error=e)
                self._invoke_token = None
            raise

        if generation != self._invoke_generation:
            raise RequestCancelled(f"{self.name} callback superseded")

        self.invoke = OperationState(status="invoked", result=response)
        self._invoke_token = None
        return response

    def cancel(self) -> None:
        """Abort in-flight work; nothing already in flight may update state."""
        self._create_generation += 1
        if self._create_token is not None:
            self._create_token.cancel()
            self._create_token = None
        if self.create.is_pending:
            self.create = OperationState()
        self._reset_invoke()


class WithdrawFlow(FlowController):
    name: FlowName = "withdraw"
    request_path = "/withdraw-request"

    async def _fetch_request(self, token: CancelToken) -> LNURLRequest:
        return await self.client.create_withdraw_request(token=token)

    @staticmethod
    def build_params(
        request: LNURLRequest, destination: str | None, amount: str | None = None
    ) -> dict[str, QueryValue]:
        return {
            "k1": request["k1"],
            "destination": require_field(destination, "Destination"),
            "amount": parse_amount(amount),
        }

    async def invoke_callback(
        self, destination: str | None, amount: str | None = None
    ) -> Any:
        """Send ``destination`` (btc address) and an optional amount in sat."""
        return await self._invoke(
            lambda request: self.build_params(request, destination, amount)
        )


class ChannelFlow(FlowController):
    name: FlowName = "channel"
    request_path = "/channel-request"

    async def _fetch_request(self, token: CancelToken) -> LNURLRequest:
        return await self.client.create_channel_request(token=token)

    @staticmethod
    def build_params(
        request: LNURLRequest,
        remote_id: str | None,
        amount: str | None = None,
        announce: str | None = None,
    ) -> dict[str, QueryValue]:
        return {
            "k1": request["k1"],
            "remote_id": require_field(remote_id, "remote_id"),
            "amount": parse_amount(amount),
            "announce": parse_announce(announce),
        }

    async def invoke_callback(
        self,
        remote_id: str | None,
        amount: str | None = None,
        announce: str | None = None,
    ) -> Any:
        """Ask the gateway to open a channel to node ``remote_id``."""
        return await self._invoke(
            lambda request: self.build_params(request, remote_id, amount, announce)
        )


class AuthFlow(FlowController):
    name: FlowName = "auth"
    request_path = "/lnurl-auth-request"

    def __init__(self, client: LNURLClient) -> None:
        super().__init__(client)
        self.action: str | None = None

    async def create_request(self, action: str | None = None) -> LNURLRequest:
        self.action = optional_field(action)
        return await super().create_request()

    async def _fetch_request(self, token: CancelToken) -> LNURLRequest:
        return await self.client.create_auth_request(self.action, token=token)

    @staticmethod
    def build_params(
        request: LNURLRequest,
        key: str | None,
        sig: str | None,
        tag: str | None = None,
    ) -> dict[str, QueryValue]:
        return {
            "k1": request["k1"],
            "key": require_field(key, "key"),
            "sig": require_field(sig, "sig"),
            "action": request.get("action"),
            "tag": optional_field(tag),
        }

    async def invoke_callback(
        self, key: str | None, sig: str | None, tag: str | None = None
    ) -> Any:
        """Send the linking ``key`` and its ``sig`` over ``k1``. No signature
        checking is done here."""
        return await self._invoke(
            lambda request: self.build_params(request, key, sig, tag)
        )
