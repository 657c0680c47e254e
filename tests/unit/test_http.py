"""Tests for the URL builder, body decoding and HttpError messages."""

import httpx
import pytest

from ln_gateway_dash.http import join_url, parse_maybe_json, with_query
from ln_gateway_dash.types import HttpError, ValidationError


class TestWithQuery:
    """Test query-string merging."""

    def test_absent_values_are_dropped(self):
        """None and empty strings never reach the query string."""
        url = with_query("https://h/cb", {"k1": "abc", "amount": None, "tag": ""})
        assert url == "https://h/cb?k1=abc"

    def test_no_params_leaves_url_alone(self):
        assert with_query("https://h/cb", {}) == "https://h/cb"
        assert with_query("https://h/cb", {"amount": None}) == "https://h/cb"

    def test_booleans_and_numbers(self):
        """Booleans are lower-case, whole floats lose their fraction."""
        url = httpx.URL(
            with_query(
                "https://h/cb", {"announce": True, "private": False, "amount": 10.0}
            )
        )
        assert url.params["announce"] == "true"
        assert url.params["private"] == "false"
        assert url.params["amount"] == "10"

    def test_existing_query_is_kept_and_overwritten(self):
        """Keys already on the callback survive unless set again."""
        base = "https://h/cb?tag=withdrawRequest&k1=stale"
        url = httpx.URL(with_query(base, {"k1": "fresh", "destination": "bc1q"}))
        assert url.params["tag"] == "withdrawRequest"
        assert url.params["k1"] == "fresh"
        assert url.params["destination"] == "bc1q"
        # The base string is untouched
        assert base == "https://h/cb?tag=withdrawRequest&k1=stale"

    def test_values_are_encoded(self):
        url = httpx.URL(with_query("https://h/cb", {"sig": "a b&c"}))
        assert url.params["sig"] == "a b&c"

    def test_invalid_url(self):
        with pytest.raises(ValidationError):
            with_query("http://example.com:notaport/cb", {"k1": "x"})


class TestParseMaybeJson:
    """Test lenient body decoding."""

    def test_json_object(self):
        assert parse_maybe_json('{"status": "OK"}') == {"status": "OK"}

    def test_plain_text(self):
        assert parse_maybe_json("  Bad Gateway \n") == "Bad Gateway"

    def test_empty_body(self):
        assert parse_maybe_json("") is None
        assert parse_maybe_json("   ") is None

    def test_too_deeply_nested(self):
        body = "[" * 200_000
        assert parse_maybe_json(body) == body


class TestJoinUrl:
    def test_join(self):
        assert join_url("http://gw/", "/health") == "http://gw/health"
        assert join_url("http://gw", "health") == "http://gw/health"


class TestHttpError:
    """Test message construction for non-2xx responses."""

    def test_error_field_preferred(self):
        error = HttpError("get", 500, "http://gw/x", {"error": "rpc down", "x": 1})
        assert str(error) == "GET http://gw/x failed (500): rpc down"
        assert error.method == "GET"
        assert error.status == 500
        assert error.body == {"error": "rpc down", "x": 1}

    def test_text_body(self):
        error = HttpError("GET", 502, "http://gw/x", "upstream unavailable")
        assert str(error) == "GET http://gw/x failed (502): upstream unavailable"

    def test_long_text_is_truncated(self):
        error = HttpError("GET", 500, "http://gw/x", "y" * 2000)
        details = str(error).split(": ", 1)[1]
        assert details == "y" * 1200 + "…"

    def test_other_json_is_dumped(self):
        error = HttpError("GET", 400, "http://gw/x", {"reason": "bad"})
        assert str(error) == 'GET http://gw/x failed (400): {"reason": "bad"}'

    def test_not_found_default(self):
        error = HttpError("GET", 404, "http://gw/x", None)
        assert str(error) == "GET http://gw/x failed (404): Not Found"

    def test_no_details(self):
        error = HttpError("DELETE", 500, "http://gw/x", None)
        assert str(error) == "DELETE http://gw/x failed (500)"
