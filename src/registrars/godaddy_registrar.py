"""
GoDaddy Domain API Registrar
Handles all interactions with the GoDaddy Domains API (REST/JSON, sso-key auth)
"""

import time
from typing import Any, Dict, List, Optional

from src.registrars.base_registrar import (
    BaseRegistrar,
    add_years,
    failure_result,
    parse_datetime,
    parse_decimal,
    require,
    require_domain,
    unsupported_result,
    utc_now
)
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
    TldInfo,
    normalize_status
)
from src.registrars.transport import HttpTransport
from src.utils.logger import get_logger


logger = get_logger(__name__)

PRODUCTION_URL = "https://api.godaddy.com"
OTE_URL = "https://api.ote-godaddy.com"

# GoDaddy quotes prices in micro-units of the currency
MICROS = 1_000_000


class GoDaddyRegistrar(BaseRegistrar):
    """
    GoDaddy registrar adapter.
    Supports both OTE (test) and Production environments.
    """

    provider_code = "GODADDY"

    def __init__(self, api_key: str, api_secret: str, use_production: bool = False, **transport_options):
        """
        Initialize GoDaddy adapter.

        Args:
            api_key: GoDaddy API key
            api_secret: GoDaddy API secret
            use_production: Talk to api.godaddy.com instead of the OTE sandbox
            **transport_options: Passed to HttpTransport (timeout, retries, transport)
        """
        super().__init__(use_live=use_production)
        self.base_url = PRODUCTION_URL if use_production else OTE_URL
        self.transport = HttpTransport(
            "GoDaddy",
            self.base_url,
            headers={
                "Authorization": f"sso-key {api_key}:{api_secret}",
                "Content-Type": "application/json",
                "Accept": "application/json"
            },
            **transport_options
        )

        logger.info(f"GoDaddy Registrar initialized - Environment: {self.get_environment()}")
        logger.info(f"Base URL: {self.base_url}")

    def get_environment(self) -> str:
        return "PRODUCTION" if self.use_live else "OTE"

    # ------------------------------------------------------------------
    # Availability / registration
    # ------------------------------------------------------------------

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        """
        Check if a domain is available for purchase.

        Args:
            domain_name: Domain name to check (e.g., 'example.com')

        Returns:
            DomainAvailabilityResult; price is converted from micro-units
        """
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        try:
            data = await self.transport.read_json("/v1/domains/available", params={"domain": domain_name})
        except APIError as e:
            logger.error(f"Availability check failed for {domain_name}: {e}")
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        available = bool(data.get("available", False))
        price = parse_decimal(data.get("price"))
        logger.info(f"Domain {domain_name} - Available: {available}")

        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            price=price / MICROS if price is not None else None,
            currency=data.get("currency"),
            message="Domain is available" if available else "Domain is not available"
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        """
        Purchase a domain.

        Args:
            request: Registration request, all four contact roles populated

        Returns:
            DomainRegistrationResult with the GoDaddy order id
        """
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain: {domain_name} for {request.years} year(s)")
        if self.use_live:
            logger.warning("REAL PURCHASE ATTEMPT on GoDaddy production")

        body = {
            "domain": domain_name,
            "period": request.years,
            "nameServers": request.nameservers,
            "renewAuto": request.auto_renew,
            "privacy": request.privacy_protection,
            "consent": self._consent("DNRA", request.registrant_contact),
            **self._contact_block(request.role_contacts())
        }

        try:
            data = await self.transport.request_json("POST", "/v1/domains/purchase", json_data=body)
        except APIError as e:
            logger.error(f"Registration failed for {domain_name}: {e}")
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        now = utc_now()
        total = parse_decimal(data.get("total"))
        logger.info(f"Domain {domain_name} purchased, order {data.get('orderId')}")

        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully",
            order_id=_str_or_none(data.get("orderId")),
            registration_date=now,
            expiration_date=add_years(now, request.years),
            total_cost=total / MICROS if total is not None else None
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Renewing domain: {domain_name} for {request.years} year(s)")

        try:
            data = await self.transport.request_json(
                "POST", f"/v1/domains/{domain_name}/renew", json_data={"period": request.years}
            )
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        total = parse_decimal(data.get("total"))
        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            order_id=_str_or_none(data.get("orderId")),
            total_cost=total / MICROS if total is not None else None
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Transferring domain: {domain_name}")

        body: Dict[str, Any] = {
            "authCode": request.auth_code,
            "period": request.years,
            "privacy": request.privacy_protection,
            "renewAuto": request.auto_renew,
            "consent": self._consent("DNTA", request.registrant_contact)
        }
        body.update(self._contact_block(request.role_contacts()))

        try:
            data = await self.transport.request_json(
                "POST", f"/v1/domains/{domain_name}/transfer", json_data=body
            )
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated",
            order_id=_str_or_none(data.get("orderId")),
            transfer_status="Pending"
        )

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Fetching DNS records for: {domain_name}")

        try:
            data = await self.transport.read_json(f"/v1/domains/{domain_name}/records")
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        records = [
            DnsRecordModel(
                name=item.get("name", "@"),
                type=item.get("type", ""),
                value=item.get("data", ""),
                ttl=item.get("ttl") or 3600,
                priority=item.get("priority")
            )
            for item in data or []
        ]
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        """Replace every record of the zone in a single PUT"""
        domain_name = require_domain(domain_name)
        require(zone, "zone")
        logger.info(f"Replacing DNS zone for {domain_name} with {len(zone.records)} records")

        body = [self._record_body(r, include_key=True) for r in zone.records]
        try:
            await self.transport.request("PUT", f"/v1/domains/{domain_name}/records", json_data=body)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message="DNS zone updated successfully",
            applied_records=len(body)
        )

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        logger.info(f"Adding {record.type} record '{record.name}' to {domain_name}")

        try:
            await self.transport.request(
                "PATCH",
                f"/v1/domains/{domain_name}/records",
                json_data=[self._record_body(record, include_key=True)]
            )
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error adding DNS record", e, domain_name=domain_name)

        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record added", applied_records=1)

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        """GoDaddy addresses records by type and name, not by id"""
        domain_name = require_domain(domain_name)
        require(record, "record")
        logger.info(f"Updating {record.type} record '{record.name}' on {domain_name}")

        try:
            await self.transport.request(
                "PUT",
                f"/v1/domains/{domain_name}/records/{record.type}/{record.name}",
                json_data=[self._record_body(record, include_key=False)]
            )
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS record", e, domain_name=domain_name)

        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record updated", applied_records=1)

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        return unsupported_result(
            DnsUpdateResult,
            "GoDaddy records have no ids; delete by ID not supported - use update_dns_zone instead",
            domain_name=domain_name
        )

    # ------------------------------------------------------------------
    # Domain settings
    # ------------------------------------------------------------------

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        """
        Get detailed information about a specific domain.

        Args:
            domain_name: Domain name

        Returns:
            DomainInfoResult with canonical status
        """
        domain_name = require_domain(domain_name)
        logger.info(f"Getting details for domain: {domain_name}")

        try:
            data = await self.transport.read_json(f"/v1/domains/{domain_name}")
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        registrant = data.get("contactRegistrant")
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain info retrieved",
            status=normalize_status(data.get("status")),
            raw_status=data.get("status"),
            registration_date=parse_datetime(data.get("createdAt")),
            expiration_date=parse_datetime(data.get("expires")),
            updated_date=parse_datetime(data.get("modifiedAt")),
            auto_renew=bool(data.get("renewAuto", False)),
            privacy_protection=bool(data.get("privacy", False)),
            locked=bool(data.get("locked", False)),
            nameservers=data.get("nameServers") or [],
            registrant_contact=self._parse_contact(registrant) if registrant else None
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        logger.info(f"Updating nameservers for {domain_name}: {', '.join(nameservers)}")

        try:
            await self.transport.request(
                "PATCH", f"/v1/domains/{domain_name}", json_data={"nameServers": nameservers}
            )
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error updating nameservers", e, domain_name=domain_name)

        return DomainUpdateResult(success=True, domain_name=domain_name, message="Nameservers updated successfully")

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        logger.info(f"{'Enabling' if enable else 'Disabling'} privacy for {domain_name}")

        try:
            if enable:
                await self.transport.request("POST", f"/v1/domains/{domain_name}/privacy/purchase", json_data={})
            else:
                await self.transport.request("DELETE", f"/v1/domains/{domain_name}/privacy")
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting privacy protection", e, domain_name=domain_name)

        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Privacy protection {'enabled' if enable else 'disabled'} successfully"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Setting auto-renew={enable} for {domain_name}")

        try:
            await self.transport.request("PATCH", f"/v1/domains/{domain_name}", json_data={"renewAuto": enable})
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting auto-renew", e, domain_name=domain_name)

        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Auto-renew {'enabled' if enable else 'disabled'} successfully"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        data = await self.transport.read_json("/v1/domains/tlds")
        return [
            TldInfo(
                name=item["name"],
                currency="USD",
                type=item.get("type"),
                is_generic=item.get("type") == "GENERIC",
                is_country_code=item.get("type") == "COUNTRY_CODE",
                min_registration_years=item.get("minRegistrationYears"),
                max_registration_years=item.get("maxRegistrationYears"),
                supports_privacy=bool(item.get("supportsPrivacy", False))
            )
            for item in data or []
            if item.get("name")
        ]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        logger.info("Fetching owned domains")

        try:
            data = await self.transport.read_json("/v1/domains")
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        domains = [
            RegisteredDomainInfo(
                domain_name=item.get("domain", ""),
                status=normalize_status(item.get("status")),
                registration_date=parse_datetime(item.get("createdAt")),
                expiration_date=parse_datetime(item.get("expires")),
                auto_renew=bool(item.get("renewAuto", False)),
                locked=bool(item.get("locked", False)),
                privacy_protection=bool(item.get("privacy", False)),
                nameservers=item.get("nameServers") or []
            )
            for item in (data if isinstance(data, list) else [])
        ]

        logger.info(f"Found {len(domains)} domains in account")
        return RegisteredDomainsResult(
            success=True,
            message=f"Retrieved {len(domains)} domains",
            domains=domains,
            total_count=len(domains)
        )

    # ------------------------------------------------------------------
    # Marshaling
    # ------------------------------------------------------------------

    @staticmethod
    def _consent(agreement: str, contact: Optional[ContactInformation]) -> Dict[str, Any]:
        return {
            "agreementKeys": [agreement],
            "agreedBy": contact.email if contact else "",
            "agreedAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }

    @classmethod
    def _contact_block(cls, contacts: Dict[str, ContactInformation]) -> Dict[str, Any]:
        keys = {
            "registrant": "contactRegistrant",
            "admin": "contactAdmin",
            "tech": "contactTech",
            "billing": "contactBilling",
        }
        return {keys[role]: cls._map_contact(contact) for role, contact in contacts.items()}

    @staticmethod
    def _map_contact(contact: ContactInformation) -> Dict[str, Any]:
        return {
            "nameFirst": contact.first_name,
            "nameLast": contact.last_name,
            "organization": contact.organization or "",
            "email": contact.email,
            "phone": contact.phone,
            "fax": contact.fax or "",
            "addressMailing": {
                "address1": contact.address1,
                "address2": contact.address2 or "",
                "city": contact.city,
                "state": contact.state,
                "postalCode": contact.postal_code,
                "country": contact.country
            }
        }

    @staticmethod
    def _parse_contact(data: Dict[str, Any]) -> Optional[ContactInformation]:
        address = data.get("addressMailing") or {}
        try:
            return ContactInformation(
                first_name=data.get("nameFirst", ""),
                last_name=data.get("nameLast", ""),
                organization=data.get("organization") or None,
                email=data.get("email", ""),
                phone=data.get("phone", ""),
                fax=data.get("fax") or None,
                address1=address.get("address1", ""),
                address2=address.get("address2") or None,
                city=address.get("city", ""),
                state=address.get("state", ""),
                postal_code=address.get("postalCode", ""),
                country=address.get("country", "")
            )
        except ValueError:
            return None

    @staticmethod
    def _record_body(record: DnsRecordModel, include_key: bool) -> Dict[str, Any]:
        body: Dict[str, Any] = {"data": record.value, "ttl": record.ttl}
        if include_key:
            body = {"type": record.type, "name": record.name, **body}
        if record.priority is not None:
            body["priority"] = record.priority
        return body


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None
