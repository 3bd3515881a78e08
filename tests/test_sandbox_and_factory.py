"""
Tests for the sandbox registrar (RDAP availability, simulated writes) and
the registrar factory.

Run:
    python -m pytest tests/test_sandbox_and_factory.py -v
"""

import asyncio
from unittest.mock import patch

import httpx
import pytest

from src.registrars import (
    AwsRoute53Registrar,
    GoDaddyRegistrar,
    NamecheapRegistrar,
    OpenSrsRegistrar,
    RegistrarConfigurationError,
    SandboxRegistrar,
    get_registrar,
)
from src.registrars.models import DomainRenewalRequest
from src.utils.config import Settings


NO_WAIT = {"retry_attempts": 2, "retry_wait_min": 0, "retry_wait_max": 0}


def _run(coro):
    return asyncio.run(coro)


# ===========================================================================
# 1. Sandbox registrar
# ===========================================================================

class TestSandboxAvailability:

    def _make(self, mock_transport, handler):
        transport, calls = mock_transport(handler)
        return SandboxRegistrar(transport=transport, **NO_WAIT), calls

    def test_rdap_404_is_available(self, mock_transport):
        registrar, calls = self._make(mock_transport, lambda request: httpx.Response(404))
        result = _run(registrar.check_availability("brand-new-name.com"))

        assert result.success is True
        assert result.is_available is True
        assert calls[0].url.path == "/com/v1/domain/brand-new-name.com"

    def test_rdap_200_is_taken(self, mock_transport):
        registrar, _ = self._make(
            mock_transport, lambda request: httpx.Response(200, json={"ldhName": "GOOGLE.COM"})
        )
        result = _run(registrar.check_availability("google.com"))

        assert result.is_available is False
        assert "verified via RDAP" in result.message

    def test_unsupported_tld_makes_no_call(self, mock_transport):
        registrar, calls = self._make(mock_transport, lambda request: httpx.Response(500))
        result = _run(registrar.check_availability("example.io"))

        assert result.is_available is True
        assert result.is_tld_supported is False
        assert calls == []

    def test_rdap_outage_is_simulated_available(self, mock_transport):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        registrar, calls = self._make(mock_transport, handler)
        result = _run(registrar.check_availability("example.net"))

        assert result.success is True
        assert result.is_available is True
        assert len(calls) == 1


class TestSandboxWrites:

    def test_register_returns_sandbox_ids(self, registration_request):
        result = _run(SandboxRegistrar().register_domain(registration_request))

        assert result.success is True
        assert result.order_id.startswith("SBX-ORD-")
        assert result.transaction_id.startswith("SBX-TXN-")
        assert result.expiration_date.year == result.registration_date.year + 2

    def test_renew_and_dns_are_simulated(self):
        registrar = SandboxRegistrar()

        renewal = _run(registrar.renew_domain(DomainRenewalRequest(domain_name="example.com", years=1)))
        zone = _run(registrar.get_dns_zone("example.com"))

        assert renewal.order_id.startswith("SBX-REN-")
        assert [r.type for r in zone.zone.records] == ["A", "CNAME", "MX", "TXT"]

    def test_supported_tlds_subset(self):
        result = _run(SandboxRegistrar().get_supported_tlds(["IO", ".com", "zz"]))

        assert sorted(t.name for t in result.tlds) == ["com", "io"]
        io = next(t for t in result.tlds if t.name == "io")
        assert io.is_country_code is True

    def test_empty_domain_raises(self):
        with pytest.raises(ValueError):
            _run(SandboxRegistrar().get_domain_info(""))


# ===========================================================================
# 2. Factory
# ===========================================================================

class TestRegistrarFactory:

    def test_default_config_gives_sandbox(self, settings):
        assert isinstance(get_registrar(config=settings), SandboxRegistrar)

    def test_sandbox_mode_overrides_provider(self):
        config = Settings(_env_file=None, sandbox_mode=True, godaddy_api_key="k", godaddy_api_secret="s")
        registrar = get_registrar("GODADDY", config=config)

        assert isinstance(registrar, SandboxRegistrar)

    def test_unknown_provider(self, settings):
        with pytest.raises(RegistrarConfigurationError) as info:
            get_registrar("ACME", config=settings)
        assert "Unknown registrar provider" in str(info.value)

    def test_missing_credentials(self):
        config = Settings(_env_file=None, sandbox_mode=False)

        with pytest.raises(RegistrarConfigurationError) as info:
            get_registrar("godaddy", config=config)
        assert "GODADDY_API_KEY" in str(info.value)

    def test_configuration_error_is_value_error(self):
        assert issubclass(RegistrarConfigurationError, ValueError)

    def test_builds_configured_adapter(self):
        config = Settings(
            _env_file=None,
            sandbox_mode=False,
            registrar_provider="namecheap",
            namecheap_api_user="u",
            namecheap_api_key="k",
            namecheap_username="u",
            namecheap_client_ip="203.0.113.5",
        )
        registrar = get_registrar(config=config, transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        assert isinstance(registrar, NamecheapRegistrar)
        assert registrar.get_environment() == "SANDBOX"

    def test_godaddy_environment_follows_settings(self):
        config = Settings(
            _env_file=None, sandbox_mode=False, godaddy_api_key="k", godaddy_api_secret="s", godaddy_env="PRODUCTION"
        )
        registrar = get_registrar("GODADDY", config=config)

        assert isinstance(registrar, GoDaddyRegistrar)
        assert registrar.is_production() is True

    def test_opensrs_gets_tld_list(self):
        config = Settings(
            _env_file=None, sandbox_mode=False, opensrs_username="r", opensrs_api_key="k", opensrs_tlds="com,net"
        )
        registrar = get_registrar("OPENSRS", config=config)

        assert isinstance(registrar, OpenSrsRegistrar)
        assert registrar.tlds == ["com", "net"]

    def test_aws_uses_boto3(self):
        config = Settings(
            _env_file=None, sandbox_mode=False, aws_access_key_id="AKIA", aws_secret_access_key="secret"
        )
        with patch("src.registrars.aws_route53_registrar.boto3.client") as client:
            registrar = get_registrar("AWS", config=config)

        assert isinstance(registrar, AwsRoute53Registrar)
        assert client.call_count == 2
