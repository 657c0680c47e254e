"""LN Gateway dashboard - live node health and LNURL request/callback flows.

Async client library plus the ``lngw`` operator CLI.
"""

from .config import GatewayConfig
from .endpoint import EndpointStore, normalize_endpoint
from .flows import AuthFlow, ChannelFlow, WithdrawFlow
from .health import HealthPoller, HealthState
from .lnurl import LNURLClient
from .local import LocalApi
from .session import RemoteSession

__all__ = [
    # Clients
    "LocalApi",
    "LNURLClient",
    # Flows
    "WithdrawFlow",
    "ChannelFlow",
    "AuthFlow",
    "RemoteSession",
    # Health
    "HealthPoller",
    "HealthState",
    # Settings
    "GatewayConfig",
    "EndpointStore",
    "normalize_endpoint",
]
