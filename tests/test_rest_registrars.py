"""
Tests for the JSON/REST registrar adapters (GoDaddy, Cloudflare, DNSimple, CentralNic).
All HTTP traffic is served by httpx.MockTransport; nothing leaves the process.

Run:
    python -m pytest tests/test_rest_registrars.py -v
"""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from src.registrars.centralnic_registrar import CentralNicRegistrar
from src.registrars.cloudflare_registrar import CloudflareRegistrar
from src.registrars.dnsimple_registrar import DNSimpleRegistrar
from src.registrars.godaddy_registrar import GoDaddyRegistrar
from src.registrars.models import DnsRecordModel, DnsZone, DomainRenewalRequest


NO_WAIT = {"retry_attempts": 2, "retry_wait_min": 0, "retry_wait_max": 0}


def _run(coro):
    return asyncio.run(coro)


# ===========================================================================
# 1. GoDaddy
# ===========================================================================

class TestGoDaddyRegistrar:

    def _make(self, mock_transport, handler):
        transport, calls = mock_transport(handler)
        return GoDaddyRegistrar("key", "secret", transport=transport, **NO_WAIT), calls

    def test_availability_converts_micro_units(self, mock_transport):
        def handler(request):
            assert request.url.path == "/v1/domains/available"
            assert request.url.params["domain"] == "example.com"
            assert request.headers["authorization"] == "sso-key key:secret"
            return httpx.Response(200, json={"available": True, "price": 11990000, "currency": "USD"})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.check_availability("Example.COM"))

        assert result.success is True
        assert result.is_available is True
        assert result.price == Decimal("11.99")
        assert result.currency == "USD"

    def test_availability_failure_is_envelope(self, mock_transport):
        registrar, _ = self._make(
            mock_transport, lambda request: httpx.Response(401, json={"message": "Unauthorized"})
        )
        result = _run(registrar.check_availability("example.com"))

        assert result.success is False
        assert result.error_code == "401"
        assert result.errors

    def test_empty_domain_raises(self, mock_transport):
        registrar, calls = self._make(mock_transport, lambda request: httpx.Response(200, json={}))
        with pytest.raises(ValueError):
            _run(registrar.check_availability(""))
        assert calls == []

    def test_register_sends_all_contact_roles(self, mock_transport, registration_request):
        def handler(request):
            body = json.loads(request.content)
            assert request.method == "POST"
            assert request.url.path == "/v1/domains/purchase"
            assert body["period"] == 2
            assert body["nameServers"] == ["ns1.example.net", "ns2.example.net"]
            for key in ("contactRegistrant", "contactAdmin", "contactTech", "contactBilling"):
                assert body[key]["email"] == "jane@example.com"
            assert body["consent"]["agreementKeys"] == ["DNRA"]
            return httpx.Response(200, json={"orderId": 12345, "total": 23980000})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.register_domain(registration_request))

        assert result.success is True
        assert result.order_id == "12345"
        assert result.total_cost == Decimal("23.98")
        assert result.expiration_date.year == result.registration_date.year + 2

    def test_register_is_not_retried(self, mock_transport, registration_request):
        registrar, calls = self._make(
            mock_transport, lambda request: httpx.Response(500, json={"message": "boom"})
        )
        result = _run(registrar.register_domain(registration_request))

        assert result.success is False
        assert len(calls) == 1

    def test_dns_zone_maps_records(self, mock_transport):
        records = [
            {"type": "A", "name": "@", "data": "1.2.3.4", "ttl": 600},
            {"type": "MX", "name": "@", "data": "mail.example.com", "ttl": 3600, "priority": 10},
        ]
        registrar, _ = self._make(mock_transport, lambda request: httpx.Response(200, json=records))
        result = _run(registrar.get_dns_zone("example.com"))

        assert result.success is True
        assert [r.type for r in result.zone.records] == ["A", "MX"]
        assert result.zone.records[1].priority == 10

    def test_update_zone_puts_every_record(self, mock_transport):
        def handler(request):
            assert request.method == "PUT"
            assert len(json.loads(request.content)) == 2
            return httpx.Response(200)

        registrar, _ = self._make(mock_transport, handler)
        zone = DnsZone(domain_name="example.com", records=[
            DnsRecordModel(name="@", type="A", value="1.2.3.4"),
            DnsRecordModel(name="www", type="CNAME", value="example.com"),
        ])
        result = _run(registrar.update_dns_zone("example.com", zone))

        assert result.success is True
        assert result.applied_records == 2

    def test_delete_by_id_not_supported(self, mock_transport):
        registrar, calls = self._make(mock_transport, lambda request: httpx.Response(200))
        result = _run(registrar.delete_dns_record("example.com", 1))

        assert result.success is False
        assert result.error_code == "NOT_SUPPORTED"
        assert calls == []

    def test_domain_info_normalizes_status(self, mock_transport):
        payload = {
            "domain": "example.com",
            "status": "ACTIVE",
            "createdAt": "2023-01-01T00:00:00Z",
            "expires": "2026-01-01T00:00:00Z",
            "renewAuto": True,
            "privacy": False,
            "locked": True,
            "nameServers": ["ns1.example.net"],
        }
        registrar, _ = self._make(mock_transport, lambda request: httpx.Response(200, json=payload))
        result = _run(registrar.get_domain_info("example.com"))

        assert result.status == "ACTIVE"
        assert result.auto_renew is True
        assert result.locked is True
        assert result.expiration_date.year == 2026

    def test_supported_tlds_filtered(self, mock_transport):
        tlds = [{"name": "com", "type": "GENERIC"}, {"name": "uk", "type": "COUNTRY_CODE"}, {"name": "net"}]
        registrar, _ = self._make(mock_transport, lambda request: httpx.Response(200, json=tlds))
        result = _run(registrar.get_supported_tlds([".UK", "com"]))

        assert result.success is True
        assert [t.name for t in result.tlds] == ["com", "uk"]
        assert result.tlds[1].is_country_code is True

    def test_renew_posts_period(self, mock_transport):
        def handler(request):
            assert request.url.path == "/v1/domains/example.com/renew"
            assert json.loads(request.content) == {"period": 3}
            return httpx.Response(200, json={"orderId": 9})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.renew_domain(DomainRenewalRequest(domain_name="example.com", years=3)))
        assert result.success is True
        assert result.order_id == "9"


# ===========================================================================
# 2. Cloudflare
# ===========================================================================

def _cf(result, success=True, errors=None):
    return httpx.Response(200, json={"success": success, "result": result, "errors": errors or [], "messages": []})


class TestCloudflareRegistrar:

    def _make(self, mock_transport, handler):
        transport, calls = mock_transport(handler)
        return CloudflareRegistrar("token", "acc-1", transport=transport, **NO_WAIT), calls

    def test_availability(self, mock_transport):
        def handler(request):
            assert request.url.path == "/client/v4/accounts/acc-1/registrar/domains/example.com/availability"
            assert request.headers["authorization"] == "Bearer token"
            return _cf({"available": True, "premium": False, "price": "9.15", "currency": "USD"})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.check_availability("example.com"))

        assert result.is_available is True
        assert result.price == Decimal("9.15")

    def test_success_false_becomes_failure(self, mock_transport):
        registrar, _ = self._make(
            mock_transport, lambda request: _cf(None, success=False, errors=[{"code": 1003, "message": "Invalid"}])
        )
        result = _run(registrar.check_availability("example.com"))

        assert result.success is False
        assert result.error_code == "1003"
        assert "Invalid" in result.errors

    def test_zone_id_is_cached(self, mock_transport):
        def handler(request):
            if request.url.path == "/client/v4/zones":
                return _cf([{"id": "zone-1", "name": "example.com"}])
            assert request.url.path == "/client/v4/zones/zone-1/dns_records"
            return _cf([{"id": "rec-1", "name": "example.com", "type": "A", "content": "1.2.3.4", "ttl": 1}])

        registrar, calls = self._make(mock_transport, handler)
        _run(registrar.get_dns_zone("example.com"))
        result = _run(registrar.get_dns_zone("example.com"))

        assert result.zone.records[0].id == "rec-1"
        zone_lookups = [c for c in calls if c.url.path == "/client/v4/zones"]
        assert len(zone_lookups) == 1

    def test_unknown_zone_is_not_found(self, mock_transport):
        registrar, _ = self._make(mock_transport, lambda request: _cf([]))
        result = _run(registrar.get_dns_zone("example.com"))

        assert result.success is False
        assert result.error_code == "NOT_FOUND"

    def test_update_zone_reports_partial_failure(self, mock_transport):
        def handler(request):
            if request.url.path == "/client/v4/zones":
                return _cf([{"id": "zone-1"}])
            if request.method == "PUT":
                return httpx.Response(400, json={"success": False, "errors": [{"code": 9005, "message": "bad ttl"}]})
            return _cf({"id": "new"})

        registrar, _ = self._make(mock_transport, handler)
        zone = DnsZone(domain_name="example.com", records=[
            DnsRecordModel(id="rec-1", name="@", type="A", value="1.2.3.4"),
            DnsRecordModel(name="www", type="CNAME", value="example.com"),
        ])
        result = _run(registrar.update_dns_zone("example.com", zone))

        assert result.success is False
        assert result.error_code == "PARTIAL_FAILURE"
        assert result.applied_records == 1
        assert len(result.errors) == 1
        assert "rec-1" in result.errors[0]

    def test_update_record_requires_id(self, mock_transport):
        registrar, _ = self._make(mock_transport, lambda request: _cf({}))
        with pytest.raises(ValueError):
            _run(registrar.update_dns_record("example.com", DnsRecordModel(name="@", type="A", value="1.2.3.4")))

    def test_auto_renew_patches_domain(self, mock_transport):
        def handler(request):
            assert request.method == "PATCH"
            assert json.loads(request.content) == {"auto_renew": True}
            return _cf({})

        registrar, _ = self._make(mock_transport, handler)
        assert _run(registrar.set_auto_renew("example.com", True)).success is True


# ===========================================================================
# 3. DNSimple
# ===========================================================================

class TestDNSimpleRegistrar:

    def _make(self, mock_transport, handler):
        transport, calls = mock_transport(handler)
        return DNSimpleRegistrar("token", "1010", transport=transport, **NO_WAIT), calls

    def test_available_domain_fetches_price(self, mock_transport):
        def handler(request):
            if request.url.path.endswith("/check"):
                return httpx.Response(200, json={"data": {"domain": "example.com", "available": True, "premium": False}})
            assert request.url.path == "/v2/1010/registrar/domains/example.com/prices"
            return httpx.Response(200, json={"data": {"registration_price": 14.0}})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.check_availability("example.com"))

        assert result.is_available is True
        assert result.price == Decimal("14.0")

    def test_taken_domain_skips_price(self, mock_transport):
        registrar, calls = self._make(
            mock_transport, lambda request: httpx.Response(200, json={"data": {"available": False}})
        )
        result = _run(registrar.check_availability("example.com"))

        assert result.is_available is False
        assert len(calls) == 1

    def test_register_creates_missing_contact(self, mock_transport, registration_request):
        def handler(request):
            path = request.url.path
            if path == "/v2/1010/contacts" and request.method == "GET":
                return httpx.Response(200, json={"data": [], "pagination": {"current_page": 1, "total_pages": 1}})
            if path == "/v2/1010/contacts" and request.method == "POST":
                assert json.loads(request.content)["email"] == "jane@example.com"
                return httpx.Response(201, json={"data": {"id": 77}})
            assert path == "/v2/1010/registrar/domains/example.com/registrations"
            body = json.loads(request.content)
            assert body["registrant_id"] == 77
            assert body["period"] == 2
            return httpx.Response(201, json={"data": {"id": 501, "period": 2, "state": "registered"}})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.register_domain(registration_request))

        assert result.success is True
        assert result.order_id == "501"

    def test_register_reuses_matching_contact(self, mock_transport, registration_request):
        existing = {"id": 5, "email": "JANE@example.com", "first_name": "Jane", "last_name": "Doe"}

        def handler(request):
            if request.url.path == "/v2/1010/contacts":
                assert request.method == "GET"
                return httpx.Response(200, json={"data": [existing]})
            assert json.loads(request.content)["registrant_id"] == 5
            return httpx.Response(201, json={"data": {"id": 502}})

        registrar, calls = self._make(mock_transport, handler)
        result = _run(registrar.register_domain(registration_request))

        assert result.success is True
        assert [c.method for c in calls] == ["GET", "POST"]

    def test_zone_follows_pagination(self, mock_transport):
        def handler(request):
            page = int(request.url.params["page"])
            record = {"id": page, "name": "" if page == 1 else "www", "type": "A", "content": f"10.0.0.{page}", "ttl": 60}
            return httpx.Response(200, json={"data": [record], "pagination": {"current_page": page, "total_pages": 2}})

        registrar, calls = self._make(mock_transport, handler)
        result = _run(registrar.get_dns_zone("example.com"))

        assert [r.id for r in result.zone.records] == [1, 2]
        assert result.zone.records[0].name == "@"
        assert len(calls) == 2

    def test_privacy_toggle_uses_put_and_delete(self, mock_transport):
        registrar, calls = self._make(mock_transport, lambda request: httpx.Response(204))
        _run(registrar.set_privacy_protection("example.com", True))
        _run(registrar.set_privacy_protection("example.com", False))

        assert [c.method for c in calls] == ["PUT", "DELETE"]
        assert calls[0].url.path.endswith("/whois_privacy")


# ===========================================================================
# 4. CentralNic
# ===========================================================================

class TestCentralNicRegistrar:

    ZONE = {"records": [
        {"type": "A", "name": "@", "content": "1.2.3.4", "ttl": 300},
        {"type": "CNAME", "name": "www", "content": "example.com", "ttl": 300},
    ]}

    def _make(self, mock_transport, handler):
        transport, calls = mock_transport(handler)
        return CentralNicRegistrar("user", "pass", transport=transport, **NO_WAIT), calls

    def test_uses_basic_auth(self, mock_transport):
        def handler(request):
            assert request.headers["authorization"].startswith("Basic ")
            return httpx.Response(200, json={"available": False})

        registrar, _ = self._make(mock_transport, handler)
        assert _run(registrar.check_availability("example.com")).is_available is False

    def test_zone_records_are_numbered(self, mock_transport):
        registrar, _ = self._make(mock_transport, lambda request: httpx.Response(200, json=self.ZONE))
        result = _run(registrar.get_dns_zone("example.com"))
        assert [r.id for r in result.zone.records] == [1, 2]

    def test_delete_record_rewrites_zone(self, mock_transport):
        written = []

        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json=self.ZONE)
            written.append(json.loads(request.content))
            return httpx.Response(200, json={})

        registrar, _ = self._make(mock_transport, handler)
        result = _run(registrar.delete_dns_record("example.com", 2))

        assert result.success is True
        assert result.message == "DNS record deleted successfully"
        assert written == [[{"type": "A", "name": "@", "content": "1.2.3.4", "ttl": 300}]]

    def test_delete_unknown_record_fails_without_write(self, mock_transport):
        registrar, calls = self._make(mock_transport, lambda request: httpx.Response(200, json=self.ZONE))
        result = _run(registrar.delete_dns_record("example.com", 9))

        assert result.success is False
        assert result.error_code == "NOT_FOUND"
        assert all(c.method == "GET" for c in calls)


# ===========================================================================
# 5. Unexpected bodies and transport failures
# ===========================================================================

class TestUnexpectedResponses:

    def test_godaddy_list_body_is_invalid_response(self, mock_transport):
        transport, _ = mock_transport(lambda request: httpx.Response(200, json=["unexpected"]))
        registrar = GoDaddyRegistrar("key", "secret", transport=transport, **NO_WAIT)

        result = _run(registrar.check_availability("example.com"))

        assert result.success is False
        assert result.error_code == "INVALID_RESPONSE"
        assert result.domain_name == "example.com"
        assert result.transport_failure is True

    def test_cloudflare_result_of_wrong_shape_is_invalid_response(self, mock_transport):
        transport, _ = mock_transport(
            lambda request: httpx.Response(200, json={"success": True, "result": ["example.com"]})
        )
        registrar = CloudflareRegistrar("token", "acc-1", transport=transport, **NO_WAIT)

        result = _run(registrar.check_availability("example.com"))

        assert result.success is False
        assert result.error_code == "INVALID_RESPONSE"

    def test_billed_call_server_error_is_flagged_and_sent_once(self, mock_transport, registration_request):
        transport, calls = mock_transport(lambda request: httpx.Response(503, json={"message": "Upstream down"}))
        registrar = GoDaddyRegistrar("key", "secret", transport=transport, **NO_WAIT)

        result = _run(registrar.register_domain(registration_request))

        assert result.success is False
        assert result.transport_failure is True
        assert len(calls) == 1

    def test_vendor_rejection_is_not_flagged(self, mock_transport, registration_request):
        transport, _ = mock_transport(
            lambda request: httpx.Response(422, json={"message": "Domain not available", "code": "UNAVAILABLE"})
        )
        registrar = GoDaddyRegistrar("key", "secret", transport=transport, **NO_WAIT)

        result = _run(registrar.register_domain(registration_request))

        assert result.success is False
        assert result.transport_failure is False
