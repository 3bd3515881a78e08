"""
Tests for the HMAC-signed registrar adapters (Domainbox, Regtons).

Run:
    python -m pytest tests/test_signed_registrars.py -v
"""

import asyncio
import base64
import hashlib
import hmac
import json

import httpx
import pytest

from src.registrars.domainbox_registrar import DomainboxRegistrar, domainbox_signature
from src.registrars.models import DnsRecordModel
from src.registrars.regtons_registrar import RegtonsRegistrar, regtons_signature, unwrap
from src.registrars.exceptions import ValidationError


NO_WAIT = {"retry_attempts": 2, "retry_wait_min": 0, "retry_wait_max": 0}


def _run(coro):
    return asyncio.run(coro)


# ===========================================================================
# 1. Domainbox
# ===========================================================================

class TestDomainboxSignature:

    def test_signature_is_base64_hmac_sha256(self):
        expected = base64.b64encode(
            hmac.new(b"secret", b"GET/domains/check?domain=example.com1700000000", hashlib.sha256).digest()
        ).decode("ascii")

        assert domainbox_signature("secret", "get", "/domains/check?domain=example.com", "1700000000") == expected


class TestDomainboxRegistrar:

    def _make(self, mock_transport, handler):
        transport, calls = mock_transport(handler)
        return DomainboxRegistrar("key", "secret", transport=transport, **NO_WAIT), calls

    def test_availability_request_is_signed(self, mock_transport):
        def handler(request):
            timestamp = request.headers["x-timestamp"]
            assert request.headers["x-api-key"] == "key"
            assert request.headers["x-signature"] == domainbox_signature(
                "secret", "GET", "/domains/check?domain=example.com", timestamp
            )
            return httpx.Response(200, json={"available": True, "premium": True, "price": "250.00"})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.check_availability("example.com"))

        assert result.is_available is True
        assert result.is_premium is True
        assert result.premium_price == result.price
        assert result.currency == "GBP"

    def test_register_sends_contacts_by_role(self, mock_transport, registration_request):
        def handler(request):
            body = json.loads(request.content)
            assert set(body["contacts"]) == {"registrant", "admin", "tech", "billing"}
            return httpx.Response(200, json={"order_id": "DBX-1", "expires_at": "2027-05-01T00:00:00Z"})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.register_domain(registration_request))

        assert result.success is True
        assert result.order_id == "DBX-1"
        assert result.expiration_date.year == 2027

    def test_delete_record_by_id(self, mock_transport):
        def handler(request):
            assert request.method == "DELETE"
            assert request.url.path == "/v1/dns/zones/example.com/records/42"
            return httpx.Response(204)

        registrar, _ = self._make(mock_transport, handler)
        assert _run(registrar.delete_dns_record("example.com", 42)).success is True

    def test_missing_domain_is_not_found(self, mock_transport):
        registrar, _ = self._make(mock_transport, lambda request: httpx.Response(404, json={"error": "no such domain"}))
        result = _run(registrar.get_domain_info("example.com"))

        assert result.success is False
        assert result.errors == ["no such domain"]


# ===========================================================================
# 2. Regtons
# ===========================================================================

class TestRegtonsRegistrar:

    def _make(self, mock_transport, handler):
        transport, calls = mock_transport(handler)
        return RegtonsRegistrar("key", "secret", "reseller", transport=transport, **NO_WAIT), calls

    def test_signature_is_hex_hmac(self):
        expected = hmac.new(b"secret", b"keyPOST/domains/register1700000000", hashlib.sha256).hexdigest()
        assert regtons_signature("key", "secret", "post", "/domains/register", "1700000000") == expected

    def test_unwrap_raises_on_failure(self):
        with pytest.raises(ValidationError) as info:
            unwrap({"success": False, "error": "Domain taken", "code": "E409"})
        assert info.value.message == "Domain taken"
        assert info.value.error_code == "E409"

    def test_availability_reads_data_member(self, mock_transport):
        def handler(request):
            assert request.headers["x-username"] == "reseller"
            assert request.headers["x-signature"] == regtons_signature(
                "key", "secret", "GET", "/domains/availability?domain=example.com", request.headers["x-timestamp"]
            )
            return httpx.Response(200, json={"success": True, "data": {"available": False}})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.check_availability("example.com"))

        assert result.success is True
        assert result.is_available is False

    def test_register_maps_tech_role_to_technical(self, mock_transport, registration_request):
        def handler(request):
            contacts = json.loads(request.content)["contacts"]
            assert set(contacts) == {"registrant", "admin", "technical", "billing"}
            return httpx.Response(200, json={"success": True, "data": {"order_id": "RG-9"}})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.register_domain(registration_request))

        assert result.order_id == "RG-9"

    def test_envelope_failure_on_http_200(self, mock_transport):
        registrar, _ = self._make(
            mock_transport,
            lambda request: httpx.Response(200, json={"success": False, "error": "Invalid record"})
        )
        result = _run(registrar.add_dns_record("example.com", DnsRecordModel(name="@", type="A", value="1.2.3.4")))

        assert result.success is False
        assert result.message == "Error adding DNS record: Invalid record"
