"""
Tests for the shared HTTP transport: status mapping and read-only retries.
All HTTP traffic goes through httpx.MockTransport.

Run:
    python -m pytest tests/test_transport.py -v
"""

import asyncio

import httpx
import pytest

from src.registrars.exceptions import (
    AuthenticationError,
    ConflictError,
    DomainNotAvailableError,
    DomainNotFoundError,
    InsufficientFundsError,
    InvalidResponseError,
    NetworkError,
    RateLimitError,
    ServerError,
    ValidationError,
)
from src.registrars.transport import HttpTransport, parse_error_response


def _transport(handler, **kwargs) -> HttpTransport:
    return HttpTransport(
        "TestProvider",
        "https://api.test.local/v1/",
        retry_attempts=3,
        retry_wait_min=0,
        retry_wait_max=0,
        transport=httpx.MockTransport(handler),
        **kwargs
    )


def _run(coro):
    return asyncio.run(coro)


class TestStatusMapping:

    @pytest.mark.parametrize("status, body, exc", [
        (400, {"message": "bad field"}, ValidationError),
        (401, {}, AuthenticationError),
        (402, {"message": "no funds"}, InsufficientFundsError),
        (404, {"message": "missing"}, DomainNotFoundError),
        (409, {"message": "busy"}, ConflictError),
        (422, {"message": "Domain not available"}, DomainNotAvailableError),
        (429, {}, RateLimitError),
        (503, {"message": "down"}, ServerError),
    ])
    def test_error_status_raises(self, status, body, exc):
        transport = _transport(lambda request: httpx.Response(status, json=body))

        with pytest.raises(exc) as info:
            _run(transport.request("POST", "/things"))
        assert info.value.status_code == status

    def test_ok_statuses_are_returned(self):
        transport = _transport(lambda request: httpx.Response(404, text="not here"))

        response = _run(transport.request("GET", "/things", ok_statuses=(404,)))
        assert response.status_code == 404

    def test_vendor_code_is_kept(self):
        transport = _transport(
            lambda request: httpx.Response(400, json={"errors": [{"code": 1003, "message": "Invalid zone"}]})
        )

        with pytest.raises(ValidationError) as info:
            _run(transport.request_json("GET", "/zones"))
        assert info.value.error_code == "1003"
        assert info.value.message == "Invalid zone"

    def test_non_json_body_raises_invalid_response(self):
        transport = _transport(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(InvalidResponseError):
            _run(transport.request_json("GET", "/things"))

    def test_empty_body_decodes_to_dict(self):
        transport = _transport(lambda request: httpx.Response(204))
        assert _run(transport.request_json("DELETE", "/things/1")) == {}

    def test_connect_error_becomes_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            _run(_transport(handler).request("GET", "/things"))

    def test_signer_headers_are_added(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json={})

        transport = _transport(handler, signer=lambda method, endpoint: {"X-Signature": f"{method}:{endpoint}"})
        _run(transport.request("GET", "/things"))

        assert seen["x-signature"] == "GET:/things"


class TestReadRetries:

    def test_read_retries_transient_failures(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503, json={"message": "try later"})
            return httpx.Response(200, json={"ok": True})

        assert _run(_transport(handler).read_json("/things")) == {"ok": True}
        assert len(attempts) == 3

    def test_read_gives_up_after_attempts(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(502, json={"message": "bad gateway"})

        with pytest.raises(ServerError):
            _run(_transport(handler).read_json("/things"))
        assert len(attempts) == 3

    def test_read_does_not_retry_vendor_rejection(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(404, json={"message": "missing"})

        with pytest.raises(DomainNotFoundError):
            _run(_transport(handler).read_json("/things"))
        assert len(attempts) == 1

    def test_writes_are_sent_once(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(503, json={"message": "down"})

        with pytest.raises(ServerError):
            _run(_transport(handler).request_json("POST", "/purchase", json_data={"domain": "example.com"}))
        assert len(attempts) == 1


class TestParseErrorResponse:

    def test_nested_error_object(self):
        response = httpx.Response(400, json={"error": {"message": "nope", "code": "E1"}})
        data = parse_error_response(response)
        assert data["message"] == "nope"
        assert data["code"] == "E1"

    def test_plain_text_body(self):
        data = parse_error_response(httpx.Response(500, text="Internal failure"))
        assert data == {"message": "Internal failure", "code": None}
