"""Tests for RemoteSession endpoint switching."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ln_gateway_dash.endpoint import EndpointStore
from ln_gateway_dash.lnurl import LNURLClient
from ln_gateway_dash.session import RemoteSession
from ln_gateway_dash.types import RequestCancelled, ValidationError

REQUEST = {"k1": "k1-value", "callback": "https://gw.example/cb"}


def fake_client(endpoint):
    client = AsyncMock(spec=LNURLClient)
    client.endpoint = endpoint
    client.create_withdraw_request.return_value = dict(REQUEST)
    return client


@pytest.fixture
def factory():
    created = []

    def build(endpoint):
        client = fake_client(endpoint)
        created.append(client)
        return client

    build.created = created
    return build


class TestRemoteSession:
    """Test the session lifecycle."""

    def test_unset_endpoint(self, tmp_path, factory):
        session = RemoteSession(EndpointStore(tmp_path / ".env"), client_factory=factory)
        assert not session.is_ready
        assert session.endpoint == ""
        with pytest.raises(ValidationError, match="Set a remote endpoint first"):
            session.withdraw
        assert factory.created == []

    def test_remembered_endpoint(self, tmp_path, factory):
        store = EndpointStore(tmp_path / ".env")
        store.set("gw.example")

        session = RemoteSession(EndpointStore(tmp_path / ".env"), client_factory=factory)
        assert session.is_ready
        assert session.endpoint == "http://gw.example"
        assert session.withdraw.client is factory.created[0]

    @pytest.mark.asyncio
    async def test_set_endpoint_normalizes(self, tmp_path, factory):
        session = RemoteSession(EndpointStore(tmp_path / ".env"), client_factory=factory)
        endpoint = await session.set_endpoint(" gw.example/ ")

        assert endpoint == "http://gw.example"
        assert [client.endpoint for client in factory.created] == ["http://gw.example"]

    @pytest.mark.asyncio
    async def test_same_endpoint_keeps_client(self, tmp_path, factory):
        session = RemoteSession(EndpointStore(tmp_path / ".env"), client_factory=factory)
        await session.set_endpoint("gw.example")
        await session.set_endpoint("http://gw.example/")

        assert len(factory.created) == 1
        factory.created[0].aclose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_switch_endpoint_resets_flows(self, tmp_path, factory):
        """Work started against the old endpoint never reaches the new flows."""
        session = RemoteSession(EndpointStore(tmp_path / ".env"), client_factory=factory)
        await session.set_endpoint("old.example")
        old_client = factory.created[0]
        old_flow = session.withdraw

        started = asyncio.Event()

        async def slow(*, token):
            started.set()
            return await token.run(asyncio.sleep(10, result=dict(REQUEST)))

        old_client.create_withdraw_request.side_effect = slow
        pending = asyncio.create_task(old_flow.create_request())
        await asyncio.wait_for(started.wait(), 1)

        await session.set_endpoint("new.example")

        with pytest.raises(RequestCancelled):
            await asyncio.wait_for(pending, 1)
        old_client.aclose.assert_awaited_once()

        new_flow = session.withdraw
        assert new_flow is not old_flow
        assert new_flow.client is factory.created[1]
        assert new_flow.request is None
        assert new_flow.create.status == "idle"
        assert session.endpoint == "http://new.example"

    @pytest.mark.asyncio
    async def test_clear_endpoint(self, tmp_path, factory):
        env_file = tmp_path / ".env"
        session = RemoteSession(EndpointStore(env_file), client_factory=factory)
        await session.set_endpoint("gw.example")

        assert await session.clear_endpoint()
        assert not session.is_ready
        factory.created[0].aclose.assert_awaited_once()
        assert EndpointStore(env_file).get() == ""

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, tmp_path, factory):
        store = EndpointStore(tmp_path / ".env")
        store.set("gw.example")

        async with RemoteSession(store, client_factory=factory):
            pass
        factory.created[0].aclose.assert_awaited_once()
