"""
Registrar Layer - Domain Registrar Implementations
One provider-neutral contract, one adapter per registrar API
"""

# Contract
from src.registrars.base_registrar import BaseRegistrar

# Adapters
from src.registrars.aws_route53_registrar import AwsRoute53Registrar
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

# Factory
from src.registrars.registrar_factory import (
    RegistrarConfigurationError,
    SUPPORTED_PROVIDERS,
    get_registrar
)

# Exceptions (shared across adapters)
from src.registrars.exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    DomainNotAvailableError,
    DomainNotFoundError,
    InsufficientFundsError,
    InvalidResponseError,
    NetworkError,
    RateLimitError,
    ServerError,
    TransportFailure,
    UnsupportedOperation,
    ValidationError,
    VendorRejection
)

__all__ = [
    # Contract
    "BaseRegistrar",

    # Adapters
    "AwsRoute53Registrar",
    "CentralNicRegistrar",
    "CloudflareRegistrar",
    "DNSimpleRegistrar",
    "DomainboxRegistrar",
    "DomainNameApiRegistrar",
    "GoDaddyRegistrar",
    "NamecheapRegistrar",
    "OpenSrsRegistrar",
    "OxxaRegistrar",
    "RegtonsRegistrar",
    "SandboxRegistrar",

    # Factory
    "RegistrarConfigurationError",
    "SUPPORTED_PROVIDERS",
    "get_registrar",

    # Exceptions
    "APIError",
    "AuthenticationError",
    "ConflictError",
    "DomainNotAvailableError",
    "DomainNotFoundError",
    "InsufficientFundsError",
    "InvalidResponseError",
    "NetworkError",
    "RateLimitError",
    "ServerError",
    "TransportFailure",
    "UnsupportedOperation",
    "ValidationError",
    "VendorRejection"
]
