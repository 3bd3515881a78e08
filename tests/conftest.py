"""
Shared fixtures: a registrant contact, settings without a .env file and a
helper that wires an httpx.MockTransport to a request handler.
"""

import pytest
import httpx

from src.registrars.models import ContactInformation, DomainRegistrationRequest
from src.utils.config import Settings, reset_settings


@pytest.fixture
def contact():
    return ContactInformation(
        first_name="Jane",
        last_name="Doe",
        organization="Example Ltd",
        email="jane@example.com",
        phone="+1.5551234567",
        address1="123 Main St",
        city="Austin",
        state="TX",
        postal_code="78701",
        country="us",
    )


@pytest.fixture
def registration_request(contact):
    return DomainRegistrationRequest(
        domain_name="example.com",
        years=2,
        nameservers=["ns1.example.net", "ns2.example.net"],
        registrant_contact=contact,
    )


@pytest.fixture
def settings():
    """Settings built from defaults only, never from a developer .env file"""
    reset_settings()
    yield Settings(_env_file=None)
    reset_settings()


@pytest.fixture
def mock_transport():
    """
    Build an httpx.MockTransport around ``handler`` and record every request.

    Usage:
        transport, calls = mock_transport(handler)
    """
    def build(handler):
        calls = []

        def record(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        return httpx.MockTransport(record), calls

    return build
