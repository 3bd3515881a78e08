"""
Sandbox Registrar
Answers availability through public RDAP and simulates every mutating
operation, so workflows run end to end without touching a real registrar.
"""

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from src.registrars.base_registrar import BaseRegistrar, add_years, require, require_domain, utc_now
from src.registrars.exceptions import APIError
from src.registrars.models import (
    ContactInformation,
    DnsRecordModel,
    DnsUpdateResult,
    DnsZone,
    DnsZoneResult,
    DomainAvailabilityResult,
    DomainInfoResult,
    DomainRegistrationRequest,
    DomainRegistrationResult,
    DomainRenewalRequest,
    DomainRenewalResult,
    DomainTransferRequest,
    DomainTransferResult,
    DomainUpdateResult,
    RegisteredDomainInfo,
    RegisteredDomainsResult,
    TldInfo
)
from src.registrars.transport import HttpTransport
from src.utils.logger import get_logger
from src.utils.validators import DomainValidator


logger = get_logger(__name__)

RDAP_BASE_URL = "https://rdap.verisign.com"

# TLDs served by the VeriSign RDAP service
RDAP_TLDS = frozenset({"com", "net", "cc", "tv", "name"})

SANDBOX_NAMESERVERS = ["ns1.sandbox.local", "ns2.sandbox.local"]

SANDBOX_TLDS = [
    # name, registration, renewal, transfer, max years, country code
    ("com", "9.99", "12.99", "9.99", 10, False),
    ("net", "11.99", "14.99", "11.99", 10, False),
    ("org", "10.99", "13.99", "10.99", 10, False),
    ("io", "39.99", "49.99", "39.99", 5, True),
    ("dev", "14.99", "16.99", "14.99", 10, False),
    ("co", "24.99", "29.99", "24.99", 5, True),
    ("info", "3.99", "18.99", "12.99", 10, False),
    ("biz", "12.99", "16.99", "12.99", 10, False),
    ("xyz", "1.99", "12.99", "9.99", 10, False),
    ("app", "14.99", "18.99", "14.99", 10, False),
]


def sandbox_id(prefix: str) -> str:
    return f"SBX-{prefix}-{uuid.uuid4().hex}"


class SandboxRegistrar(BaseRegistrar):
    """
    Non-mutating registrar.

    Availability for com/net/cc/tv/name is looked up live over RDAP
    (404 = available, 200 = registered); anything the lookup cannot answer
    is reported as a simulated available result. Everything else succeeds
    without network I/O.
    """

    provider_code = "SANDBOX"

    def __init__(self, rdap_base_url: str = RDAP_BASE_URL, timeout: float = 10.0, **transport_options):
        super().__init__(use_live=False)
        self.transport = HttpTransport(
            "RDAP",
            rdap_base_url,
            headers={"Accept": "application/rdap+json"},
            timeout=timeout,
            **transport_options
        )
        logger.info("[SANDBOX] SandboxRegistrar initialized - all operations will be simulated")

    def get_provider_name(self) -> str:
        return "Sandbox"

    def get_environment(self) -> str:
        return "SANDBOX"

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        tld = DomainValidator.extract_tld(domain_name)
        logger.info(f"[SANDBOX] Checking domain availability for {domain_name} via RDAP")

        if tld not in RDAP_TLDS:
            logger.info(f"[SANDBOX] TLD '{tld}' is not served by RDAP - returning simulated available result")
            return DomainAvailabilityResult(
                success=True,
                domain_name=domain_name,
                is_available=True,
                is_tld_supported=False,
                message=f"[SANDBOX] TLD '.{tld}' is not supported by the RDAP lookup. Simulated as available."
            )

        try:
            response = await self.transport.request("GET", f"/{tld}/v1/domain/{domain_name}", ok_statuses=(404,))
        except APIError as e:
            logger.warning(f"[SANDBOX] RDAP lookup failed for {domain_name}: {e.message}")
            return DomainAvailabilityResult(
                success=True,
                domain_name=domain_name,
                is_available=True,
                message=f"[SANDBOX] RDAP lookup failed ({e.message}). Simulated as available."
            )

        if response.status_code == 404:
            logger.info(f"[SANDBOX] Domain {domain_name} is AVAILABLE (RDAP 404)")
            return DomainAvailabilityResult(
                success=True,
                domain_name=domain_name,
                is_available=True,
                message="[SANDBOX] Domain is available (verified via RDAP)"
            )

        if response.status_code == 200:
            logger.info(f"[SANDBOX] Domain {domain_name} is REGISTERED (RDAP 200)")
            return DomainAvailabilityResult(
                success=True,
                domain_name=domain_name,
                is_available=False,
                message="[SANDBOX] Domain is already registered (verified via RDAP)"
            )

        logger.warning(f"[SANDBOX] Unexpected RDAP response {response.status_code} for {domain_name}")
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=True,
            message=f"[SANDBOX] Unexpected RDAP status {response.status_code}. Simulated as available."
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"[SANDBOX] Simulating domain registration for {domain_name} ({request.years} year(s))")

        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="[SANDBOX] Domain registration simulated successfully",
            order_id=sandbox_id("ORD"),
            transaction_id=sandbox_id("TXN"),
            registration_date=now,
            expiration_date=add_years(now, request.years),
            total_cost=Decimal("0")
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"[SANDBOX] Simulating domain renewal for {domain_name} ({request.years} year(s))")

        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="[SANDBOX] Domain renewal simulated successfully",
            order_id=sandbox_id("REN"),
            transaction_id=sandbox_id("TXN"),
            new_expiration_date=add_years(utc_now(), request.years),
            total_cost=Decimal("0")
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"[SANDBOX] Simulating domain transfer for {domain_name}")

        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="[SANDBOX] Domain transfer simulated successfully",
            order_id=sandbox_id("TRF"),
            transaction_id=sandbox_id("TXN"),
            transfer_status="Pending",
            total_cost=Decimal("0")
        )

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        logger.info(f"[SANDBOX] Returning simulated DNS zone for {domain_name}")

        records = [
            DnsRecordModel(id=1, type="A", name="@", value="192.0.2.1"),
            DnsRecordModel(id=2, type="CNAME", name="www", value=domain_name),
            DnsRecordModel(id=3, type="MX", name="@", value="mail.sandbox.local", priority=10),
            DnsRecordModel(id=4, type="TXT", name="@", value="v=spf1 include:sandbox.local ~all"),
        ]
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message="[SANDBOX] DNS zone retrieved (simulated)",
            zone=DnsZone(domain_name=domain_name, records=records, nameservers=list(SANDBOX_NAMESERVERS))
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(zone, "zone")
        logger.info(f"[SANDBOX] Simulating DNS zone update for {domain_name} ({len(zone.records)} records)")
        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message="[SANDBOX] DNS zone update simulated successfully",
            applied_records=len(zone.records)
        )

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        logger.info(f"[SANDBOX] Simulating add DNS record {record.type} '{record.name}' for {domain_name}")
        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"[SANDBOX] DNS {record.type} record added (simulated)",
            applied_records=1
        )

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        logger.info(f"[SANDBOX] Simulating update DNS record {record.id} for {domain_name}")
        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"[SANDBOX] DNS record {record.id} updated (simulated)",
            applied_records=1
        )

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record_id, "record_id")
        logger.info(f"[SANDBOX] Simulating delete DNS record {record_id} for {domain_name}")
        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"[SANDBOX] DNS record {record_id} deleted (simulated)",
            applied_records=1
        )

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        logger.info(f"[SANDBOX] Returning simulated domain info for {domain_name}")

        now = utc_now()
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="[SANDBOX] Domain info retrieved (simulated)",
            status="ACTIVE",
            raw_status="ACTIVE",
            registration_date=add_years(now, -1),
            expiration_date=add_years(now, 1),
            updated_date=now,
            auto_renew=True,
            privacy_protection=True,
            locked=True,
            nameservers=list(SANDBOX_NAMESERVERS),
            registrant_contact=sandbox_contact()
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        logger.info(f"[SANDBOX] Simulating nameserver update for {domain_name}: {', '.join(nameservers)}")
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message="[SANDBOX] Nameservers updated (simulated)"
        )

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        action = "enabled" if enable else "disabled"
        logger.info(f"[SANDBOX] Simulating privacy protection {action} for {domain_name}")
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"[SANDBOX] Privacy protection {action} (simulated)"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        action = "enabled" if enable else "disabled"
        logger.info(f"[SANDBOX] Simulating auto-renew {action} for {domain_name}")
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"[SANDBOX] Auto-renewal {action} (simulated)"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        logger.info("[SANDBOX] Returning simulated supported TLD list")
        return [
            TldInfo(
                name=name,
                currency="USD",
                registration_price=Decimal(registration),
                renewal_price=Decimal(renewal),
                transfer_price=Decimal(transfer),
                min_registration_years=1,
                max_registration_years=max_years,
                supports_privacy=True,
                is_generic=not country_code,
                is_country_code=country_code,
                is_available=True
            )
            for name, registration, renewal, transfer, max_years, country_code in SANDBOX_TLDS
        ]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        logger.info("[SANDBOX] Returning simulated registered domains list")
        now = utc_now()
        domains = [
            RegisteredDomainInfo(
                domain_name="sandbox-example.com",
                status="ACTIVE",
                registration_date=add_years(now, -1),
                expiration_date=add_years(now, 1),
                auto_renew=True,
                locked=True,
                privacy_protection=True,
                nameservers=list(SANDBOX_NAMESERVERS)
            ),
            RegisteredDomainInfo(
                domain_name="sandbox-test.net",
                status="ACTIVE",
                registration_date=now - timedelta(days=182),
                expiration_date=now + timedelta(days=548),
                nameservers=list(SANDBOX_NAMESERVERS)
            ),
        ]
        return RegisteredDomainsResult(
            success=True,
            message="[SANDBOX] Registered domains retrieved (simulated)",
            domains=domains,
            total_count=len(domains)
        )


def sandbox_contact(email: Optional[str] = None) -> ContactInformation:
    return ContactInformation(
        first_name="Sandbox",
        last_name="User",
        organization="Sandbox Corp",
        email=email or "sandbox@sandbox.local",
        phone="+1.5555550100",
        address1="123 Sandbox Street",
        city="Sandbox City",
        state="SB",
        postal_code="00000",
        country="US"
    )
