"""
Registrar Factory
Creates registrar adapter instances based on configuration
"""

from typing import Any, Dict, Optional

import httpx

from src.registrars.aws_route53_registrar import AwsRoute53Registrar
from src.registrars.base_registrar import BaseRegistrar
from src.registrars.centralnic_registrar import CentralNicRegistrar
from src.registrars.cloudflare_registrar import CloudflareRegistrar
from src.registrars.dnsimple_registrar import DNSimpleRegistrar
from src.registrars.domainbox_registrar import DomainboxRegistrar
from src.registrars.domainnameapi_registrar import DomainNameApiRegistrar
from src.registrars.godaddy_registrar import GoDaddyRegistrar
from src.registrars.namecheap_registrar import NamecheapRegistrar
from src.registrars.opensrs_registrar import OpenSrsRegistrar
from src.registrars.oxxa_registrar import OxxaRegistrar
from src.registrars.regtons_registrar import RegtonsRegistrar
from src.registrars.sandbox_registrar import SandboxRegistrar
from src.utils.config import get_settings, Settings
from src.utils.logger import get_logger


logger = get_logger(__name__)

SUPPORTED_PROVIDERS = (
    "GODADDY",
    "CLOUDFLARE",
    "DNSIMPLE",
    "CENTRALNIC",
    "DOMAINBOX",
    "REGTONS",
    "DOMAINNAMEAPI",
    "NAMECHEAP",
    "OPENSRS",
    "OXXA",
    "AWS",
    "SANDBOX",
)


class RegistrarConfigurationError(ValueError):
    """Raised when a registrar cannot be built from the configuration"""
    pass


def _require_settings(config: Settings, label: str, *fields: str) -> None:
    missing = [f for f in fields if not getattr(config, f)]
    if missing:
        raise RegistrarConfigurationError(
            f"{label} settings are not configured (missing: {', '.join(f.upper() for f in missing)})"
        )


def _transport_options(config: Settings, transport: Optional[httpx.AsyncBaseTransport]) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "timeout": config.http_timeout_seconds,
        "retry_attempts": config.read_retry_attempts,
        "retry_wait_min": config.read_retry_wait_min,
        "retry_wait_max": config.read_retry_wait_max,
    }
    if transport is not None:
        options["transport"] = transport
    return options


def get_registrar(
    provider_name: Optional[str] = None,
    config: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> BaseRegistrar:
    """
    Factory function to create registrar adapter instances.

    Args:
        provider_name: Optional provider name (see SUPPORTED_PROVIDERS).
                      If None, reads ``registrar_provider`` from config.
        config: Optional Settings instance. Uses default if None.
        transport: Optional httpx transport handed to HTTP adapters
                   (tests use httpx.MockTransport)

    Returns:
        Registrar adapter instance. ``sandbox_mode`` always yields the
        SandboxRegistrar so nothing real is registered.

    Raises:
        RegistrarConfigurationError: If the provider is unknown or its
            credentials are missing

    Example:
        # Use configured provider
        registrar = get_registrar()

        # Explicitly use Namecheap
        registrar = get_registrar("NAMECHEAP")
    """
    if config is None:
        config = get_settings()

    if provider_name is None:
        provider_name = config.registrar_provider

    provider_name = provider_name.strip().upper()
    if provider_name not in SUPPORTED_PROVIDERS:
        raise RegistrarConfigurationError(
            f"Unknown registrar provider: {provider_name}. "
            f"Valid options are: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    options = _transport_options(config, transport)

    if config.sandbox_mode or provider_name == "SANDBOX":
        if provider_name != "SANDBOX":
            logger.warning(f"Sandbox mode is on - using SandboxRegistrar instead of {provider_name}")
        options["timeout"] = min(config.http_timeout_seconds, 10.0)
        return SandboxRegistrar(rdap_base_url=config.rdap_base_url, **options)

    logger.info(f"Creating registrar: {provider_name}")

    if provider_name == "GODADDY":
        _require_settings(config, "GoDaddy", "godaddy_api_key", "godaddy_api_secret")
        return GoDaddyRegistrar(
            config.godaddy_api_key,
            config.godaddy_api_secret,
            use_production=config.godaddy_env == "PRODUCTION",
            **options
        )

    if provider_name == "CLOUDFLARE":
        _require_settings(config, "Cloudflare", "cloudflare_api_token", "cloudflare_account_id")
        return CloudflareRegistrar(config.cloudflare_api_token, config.cloudflare_account_id, **options)

    if provider_name == "DNSIMPLE":
        _require_settings(config, "DNSimple", "dnsimple_api_token", "dnsimple_account_id")
        return DNSimpleRegistrar(
            config.dnsimple_api_token,
            config.dnsimple_account_id,
            use_sandbox=config.dnsimple_sandbox,
            **options
        )

    if provider_name == "CENTRALNIC":
        _require_settings(config, "CentralNic", "centralnic_username", "centralnic_password")
        return CentralNicRegistrar(
            config.centralnic_username,
            config.centralnic_password,
            use_live=config.centralnic_live,
            **options
        )

    if provider_name == "DOMAINBOX":
        _require_settings(config, "Domainbox", "domainbox_api_key", "domainbox_api_secret")
        return DomainboxRegistrar(
            config.domainbox_api_key,
            config.domainbox_api_secret,
            use_live=config.domainbox_live,
            **options
        )

    if provider_name == "REGTONS":
        _require_settings(config, "Regtons", "regtons_api_key", "regtons_api_secret", "regtons_username")
        return RegtonsRegistrar(
            config.regtons_api_key,
            config.regtons_api_secret,
            config.regtons_username,
            use_live=config.regtons_live,
            **options
        )

    if provider_name == "DOMAINNAMEAPI":
        _require_settings(config, "DomainNameApi", "domainnameapi_username", "domainnameapi_password")
        return DomainNameApiRegistrar(
            config.domainnameapi_username,
            config.domainnameapi_password,
            use_live=config.domainnameapi_live,
            **options
        )

    if provider_name == "NAMECHEAP":
        _require_settings(
            config, "Namecheap",
            "namecheap_api_user", "namecheap_api_key", "namecheap_username", "namecheap_client_ip"
        )
        return NamecheapRegistrar(
            config.namecheap_api_user,
            config.namecheap_api_key,
            config.namecheap_username,
            config.namecheap_client_ip,
            use_sandbox=config.namecheap_sandbox,
            **options
        )

    if provider_name == "OPENSRS":
        _require_settings(config, "OpenSRS", "opensrs_username", "opensrs_api_key")
        return OpenSrsRegistrar(
            config.opensrs_username,
            config.opensrs_api_key,
            domain=config.opensrs_domain,
            use_live=config.opensrs_live,
            tlds=config.opensrs_tld_list,
            **options
        )

    if provider_name == "OXXA":
        _require_settings(config, "Oxxa", "oxxa_username", "oxxa_password")
        return OxxaRegistrar(config.oxxa_username, config.oxxa_password, use_live=config.oxxa_live, **options)

    # AWS: boto3 owns its own HTTP stack, only the retry policy applies
    _require_settings(config, "AWS", "aws_access_key_id", "aws_secret_access_key")
    return AwsRoute53Registrar(
        config.aws_access_key_id,
        config.aws_secret_access_key,
        region=config.aws_region,
        retry_attempts=config.read_retry_attempts,
        retry_wait_min=config.read_retry_wait_min,
        retry_wait_max=config.read_retry_wait_max
    )
