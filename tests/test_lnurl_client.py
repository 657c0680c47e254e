"""Tests for the LNURL client and the local gateway API against a fake transport."""

import asyncio

import httpx
import pytest

from ln_gateway_dash.flows import WithdrawFlow
from ln_gateway_dash.http import CancelToken
from ln_gateway_dash.lnurl import InvalidResponseError, LNURLClient
from ln_gateway_dash.local import LocalApi
from ln_gateway_dash.types import (
    HttpError,
    RequestCancelled,
    TransportError,
    ValidationError,
)

REQUEST = {"k1": "a" * 64, "callback": "https://gw.example/withdraw"}


def make_client(handler, endpoint="http://gw.example"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LNURLClient(endpoint, client=http), http


class TestCreateRequests:
    """Test the three create-request calls."""

    @pytest.mark.asyncio
    async def test_withdraw_request(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=REQUEST)

        client, http = make_client(handler, "http://gw.example/")
        async with http:
            request = await client.create_withdraw_request()

        assert request == REQUEST
        assert seen[0].method == "GET"
        assert str(seen[0].url) == "http://gw.example/withdraw-request"

    @pytest.mark.asyncio
    async def test_channel_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/channel-request"
            return httpx.Response(200, json=REQUEST)

        client, http = make_client(handler)
        async with http:
            assert (await client.create_channel_request())["k1"] == REQUEST["k1"]

    @pytest.mark.asyncio
    async def test_auth_request_forwards_action(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json={**REQUEST, "action": "login"})

        client, http = make_client(handler)
        async with http:
            request = await client.create_auth_request("login")
            await client.create_auth_request()

        assert request["action"] == "login"
        assert seen[0].path == "/lnurl-auth-request"
        assert seen[0].params["action"] == "login"
        assert "action" not in seen[1].params

    @pytest.mark.asyncio
    async def test_missing_fields(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"callback": "https://gw.example/cb"})

        client, http = make_client(handler)
        async with http:
            with pytest.raises(InvalidResponseError):
                await client.create_withdraw_request()

    @pytest.mark.asyncio
    async def test_text_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="not json")

        client, http = make_client(handler)
        async with http:
            with pytest.raises(InvalidResponseError):
                await client.create_channel_request()

    def test_empty_endpoint(self):
        with pytest.raises(ValidationError):
            LNURLClient("  ")


class TestErrors:
    """Test how failures surface."""

    @pytest.mark.asyncio
    async def test_http_error_with_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"status": "ERROR", "error": "k1 expired"})

        client, http = make_client(handler)
        async with http:
            with pytest.raises(HttpError) as exc_info:
                await client.create_withdraw_request()

        error = exc_info.value
        assert error.status == 400
        assert error.method == "GET"
        assert error.url == "http://gw.example/withdraw-request"
        assert str(error).endswith("failed (400): k1 expired")

    @pytest.mark.asyncio
    async def test_http_error_with_text_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        client, http = make_client(handler)
        async with http:
            with pytest.raises(HttpError) as exc_info:
                await client.create_withdraw_request()
        assert exc_info.value.body == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, http = make_client(handler)
        async with http:
            with pytest.raises(TransportError) as exc_info:
                await client.create_withdraw_request()
        assert not isinstance(exc_info.value, RequestCancelled)

    @pytest.mark.asyncio
    async def test_cancel_token(self):
        """Cancelling the token aborts the request with RequestCancelled."""
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json=REQUEST)

        client, http = make_client(handler)
        token = CancelToken()
        async with http:
            task = asyncio.create_task(client.create_withdraw_request(token=token))
            await asyncio.wait_for(started.wait(), 1)
            token.cancel()
            with pytest.raises(RequestCancelled):
                await asyncio.wait_for(task, 1)

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=REQUEST)

        client, http = make_client(handler)
        token = CancelToken()
        token.cancel()
        async with http:
            with pytest.raises(RequestCancelled):
                await client.create_withdraw_request(token=token)
        assert calls == []


class TestInvokeCallback:
    """Test callback invocation."""

    @pytest.mark.asyncio
    async def test_params_are_merged(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json={"status": "OK"})

        client, http = make_client(handler)
        async with http:
            response = await client.invoke_callback(
                "https://other.example/cb?tag=withdrawRequest",
                {"k1": "abc", "destination": "bcrt1qxyz", "amount": None},
            )

        assert response == {"status": "OK"}
        url = seen[0]
        assert url.host == "other.example"
        assert url.params["tag"] == "withdrawRequest"
        assert url.params["k1"] == "abc"
        assert url.params["destination"] == "bcrt1qxyz"
        assert "amount" not in url.params

    @pytest.mark.asyncio
    async def test_opaque_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="")

        client, http = make_client(handler)
        async with http:
            assert await client.invoke_callback("https://gw.example/cb", {"k1": "x"}) is None


class TestLocalApi:
    """Test the local gateway endpoints."""

    @pytest.mark.asyncio
    async def test_health(self):
        snapshot = {"lightning": {"status": "ok"}, "bitcoin": {"status": "ok"}}

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/health"
            return httpx.Response(200, json=snapshot)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with LocalApi("http://gw.example", client=http) as api:
            assert await api.health() == snapshot
        await http.aclose()

    @pytest.mark.asyncio
    async def test_health_shape_is_checked(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"lightning": {"status": "ok"}})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with http:
            with pytest.raises(InvalidResponseError):
                await LocalApi("http://gw.example", client=http).health()

    @pytest.mark.asyncio
    async def test_recent_requests_and_clear(self):
        seen = []
        entries = [
            {
                "ts_ms": 1,
                "client_addr": "10.0.0.1",
                "method": "GET",
                "path": "/health",
                "status": 200,
                "ok": True,
            }
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url))
            if request.method == "DELETE":
                return httpx.Response(204)
            return httpx.Response(200, json=entries)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with http:
            api = LocalApi("http://gw.example", client=http)
            assert await api.recent_requests(limit=15) == entries
            assert await api.clear_recent_requests() is None

        assert seen[0][1].params["limit"] == "15"
        assert seen[1][0] == "DELETE"
        assert seen[1][1].path == "/recent-requests"


class TestUnusableResponses:
    """Responses that cannot be decoded still surface as gateway errors."""

    @staticmethod
    def corrupt_gzip(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"Content-Encoding": "gzip"},
            stream=httpx.ByteStream(b"not gzip"),
        )

    @pytest.mark.asyncio
    async def test_corrupt_body_is_a_transport_error(self):
        client, http = make_client(self.corrupt_gzip)
        async with http:
            with pytest.raises(TransportError):
                await client.create_withdraw_request()

    @pytest.mark.asyncio
    async def test_corrupt_body_leaves_flow_retryable(self):
        client, http = make_client(self.corrupt_gzip)
        flow = WithdrawFlow(client)
        async with http:
            with pytest.raises(TransportError):
                await flow.create_request()

        assert flow.create.status == "request_failed"
        assert isinstance(flow.create.error, TransportError)
        assert flow.can_create

    @pytest.mark.asyncio
    async def test_deeply_nested_body_is_kept_as_text(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, content=b"[" * 200_000)

        client, http = make_client(handler)
        flow = WithdrawFlow(client)
        async with http:
            with pytest.raises(HttpError) as exc_info:
                await flow.create_request()

        assert exc_info.value.status == 502
        assert isinstance(exc_info.value.body, str)
        assert flow.create.status == "request_failed"


class TestCancelToken:
    @pytest.mark.asyncio
    async def test_outer_cancel_stops_the_request(self):
        """Cancelling the awaiting task also finishes the wrapped request."""
        started = asyncio.Event()
        stopped = asyncio.Event()

        async def request():
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                stopped.set()
                raise

        outer = asyncio.create_task(CancelToken().run(request()))
        await asyncio.wait_for(started.wait(), 1)
        outer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await outer
        # Already finished by the time the caller sees the cancellation
        assert stopped.is_set()
