"""
DNSimple Registrar
Handles all interactions with the DNSimple v2 API

Documentation: https://developer.dnsimple.com/v2/
"""

from typing import Any, Dict, List, Optional

from src.registrars.base_registrar import (
    BaseRegistrar,
    add_years,
    failure_result,
    parse_datetime,
    parse_decimal,
    require,
    require_domain,
    utc_now
)
from src.registrars.exceptions import APIError, ValidationError
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

PRODUCTION_URL = "https://api.dnsimple.com/v2"
SANDBOX_URL = "https://api.sandbox.dnsimple.com/v2"

# DNSimple tld_type values
TLD_TYPES = {1: "generic", 2: "country code", 3: "new generic"}

PAGE_SIZE = 100


class DNSimpleRegistrar(BaseRegistrar):
    """
    DNSimple API adapter for domain and DNS operations.
    Registrations reference real DNSimple contacts, found or created by email.
    """

    provider_code = "DNSIMPLE"

    def __init__(self, api_token: str, account_id: str, use_sandbox: bool = True, **transport_options):
        """
        Initialize DNSimple adapter.

        Args:
            api_token: DNSimple OAuth/account token
            account_id: Numeric account id used in every path
            use_sandbox: Use api.sandbox.dnsimple.com
            **transport_options: Passed to HttpTransport
        """
        super().__init__(use_live=not use_sandbox)
        self.account_id = account_id
        self.base_url = SANDBOX_URL if use_sandbox else PRODUCTION_URL
        self.transport = HttpTransport(
            "DNSimple",
            self.base_url,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
                "Accept": "application/json"
            },
            **transport_options
        )

        logger.info(f"DNSimple Registrar initialized - Environment: {self.get_environment()}")
        logger.info(f"Base URL: {self.base_url}")
        logger.info(f"Account ID: {account_id}")

    def get_provider_name(self) -> str:
        return "DNSimple"

    def get_environment(self) -> str:
        return "PRODUCTION" if self.use_live else "SANDBOX"

    def _registrar(self, domain_name: str) -> str:
        return f"/{self.account_id}/registrar/domains/{domain_name}"

    async def _data(self, endpoint: str, **kwargs) -> Any:
        response = await self.transport.read_json(endpoint, **kwargs)
        return response.get("data") if isinstance(response, dict) else None

    async def _paginated(self, endpoint: str) -> List[Dict[str, Any]]:
        """Fetch every page of a list endpoint"""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self.transport.read_json(endpoint, params={"page": page, "per_page": PAGE_SIZE})
            data = response.get("data") or []
            if not data:
                break
            items.extend(data)

            pagination = response.get("pagination") or {}
            if pagination.get("current_page", page) >= pagination.get("total_pages", 1):
                break
            page += 1
        return items

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def _ensure_contact(self, contact: ContactInformation) -> int:
        """
        Return the id of a DNSimple contact matching ``contact``, creating it
        when the account has none with the same email and name.
        """
        for existing in await self._paginated(f"/{self.account_id}/contacts"):
            if (
                str(existing.get("email", "")).lower() == contact.email.lower()
                and existing.get("first_name") == contact.first_name
                and existing.get("last_name") == contact.last_name
            ):
                logger.info(f"Reusing DNSimple contact {existing.get('id')} for {contact.email}")
                return int(existing["id"])

        logger.info(f"Creating new contact in DNSimple for {contact.email}")
        response = await self.transport.request_json(
            "POST", f"/{self.account_id}/contacts", json_data=self._contact_payload(contact)
        )
        contact_id = (response.get("data") or {}).get("id")
        if contact_id is None:
            raise ValidationError("DNSimple did not return a contact id")
        logger.info(f"Created contact with ID: {contact_id}")
        return int(contact_id)

    async def _any_contact(self) -> int:
        contacts = await self._paginated(f"/{self.account_id}/contacts")
        if not contacts:
            raise ValidationError("DNSimple requires a registrant contact; the account has none")
        return int(contacts[0]["id"])

    @staticmethod
    def _contact_payload(contact: ContactInformation) -> Dict[str, Any]:
        payload = {
            "label": contact.full_name,
            "first_name": contact.first_name,
            "last_name": contact.last_name,
            "email": contact.email,
            "phone": contact.phone,
            "address1": contact.address1,
            "city": contact.city,
            "state_province": contact.state,
            "postal_code": contact.postal_code,
            "country": contact.country
        }
        if contact.organization:
            payload["organization_name"] = contact.organization
        if contact.address2:
            payload["address2"] = contact.address2
        if contact.fax:
            payload["fax"] = contact.fax
        return payload

    # ------------------------------------------------------------------
    # Registrar
    # ------------------------------------------------------------------

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        """
        Check domain availability. Registration price comes from the prices
        endpoint when the name is available.

        Args:
            domain_name: Domain name

        Returns:
            DomainAvailabilityResult
        """
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability: {domain_name}")

        try:
            data = await self._data(f"{self._registrar(domain_name)}/check") or {}
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        available = bool(data.get("available", False))
        price = None
        if available:
            try:
                prices = await self._data(f"{self._registrar(domain_name)}/prices") or {}
                price = parse_decimal(prices.get("registration_price"))
            except APIError as e:
                logger.warning(f"Failed to fetch prices for {domain_name}: {e}")

        logger.info(f"Domain {domain_name} - Available: {available} - Price: {price}")
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            is_premium=bool(data.get("premium", False)),
            price=price,
            currency="USD",
            message="Domain is available" if available else "Domain is not available"
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        if self.is_production():
            logger.warning("REAL PURCHASE IN PRODUCTION ENVIRONMENT")
        logger.info(f"Purchasing domain: {domain_name} for {request.years} year(s)")

        try:
            registrant_id = await self._ensure_contact(request.registrant_contact)
            payload = {
                "registrant_id": registrant_id,
                "period": request.years,
                "auto_renew": request.auto_renew,
                "whois_privacy": request.privacy_protection
            }
            response = await self.transport.request_json(
                "POST", f"{self._registrar(domain_name)}/registrations", json_data=payload
            )
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        data = response.get("data") or {}
        now = utc_now()
        logger.info(f"Domain {domain_name} purchased successfully")
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully",
            order_id=_optional_str(data.get("id")),
            registration_date=now,
            expiration_date=add_years(now, data.get("period") or request.years),
            total_cost=parse_decimal(data.get("price"))
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Renewing domain: {domain_name} for {request.years} year(s)")

        try:
            response = await self.transport.request_json(
                "POST", f"{self._registrar(domain_name)}/renewals", json_data={"period": request.years}
            )
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        data = response.get("data") or {}
        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            order_id=_optional_str(data.get("id")),
            total_cost=parse_decimal(data.get("price"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Transferring domain: {domain_name}")

        try:
            if request.registrant_contact is not None:
                registrant_id = await self._ensure_contact(request.registrant_contact)
            else:
                registrant_id = await self._any_contact()
            payload = {
                "registrant_id": registrant_id,
                "auth_code": request.auth_code,
                "auto_renew": request.auto_renew,
                "whois_privacy": request.privacy_protection
            }
            response = await self.transport.request_json(
                "POST", f"{self._registrar(domain_name)}/transfers", json_data=payload
            )
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        data = response.get("data") or {}
        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated",
            order_id=_optional_str(data.get("id")),
            transfer_status=data.get("state", "transferring")
        )

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Fetching DNS records for: {domain_name}")

        try:
            items = await self._paginated(f"/{self.account_id}/zones/{domain_name}/records")
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        records = [
            DnsRecordModel(
                id=item.get("id"),
                name=item.get("name") or "@",
                type=item.get("type", ""),
                value=item.get("content", ""),
                ttl=item.get("ttl") or 3600,
                priority=item.get("priority")
            )
            for item in items
        ]
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        """Update records that carry an id, create the rest; failures are listed per record"""
        domain_name = require_domain(domain_name)
        require(zone, "zone")
        logger.info(f"Applying {len(zone.records)} DNS records to {domain_name}")

        applied = 0
        errors: List[str] = []
        for record in zone.records:
            try:
                await self._write_record(domain_name, record, update=record.id is not None)
                applied += 1
            except APIError as e:
                errors.append(f"{record.type} {record.name}: {e.message}")

        if errors:
            return DnsUpdateResult(
                success=False,
                domain_name=domain_name,
                message=f"Applied {applied} of {len(zone.records)} DNS records",
                error_code="PARTIAL_FAILURE",
                errors=errors,
                applied_records=applied
            )
        return DnsUpdateResult(
            success=True, domain_name=domain_name, message="DNS zone updated successfully", applied_records=applied
        )

    async def _write_record(self, domain_name: str, record: DnsRecordModel, update: bool) -> None:
        body: Dict[str, Any] = {
            "name": "" if record.name == "@" else record.name,
            "content": record.value,
            "ttl": record.ttl
        }
        if record.priority is not None:
            body["priority"] = record.priority

        endpoint = f"/{self.account_id}/zones/{domain_name}/records"
        if update:
            await self.transport.request("PATCH", f"{endpoint}/{record.id}", json_data=body)
        else:
            await self.transport.request("POST", endpoint, json_data={"type": record.type, **body})

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        try:
            await self._write_record(domain_name, record, update=False)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error adding DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record added", applied_records=1)

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        require(record.id, "record.id")
        try:
            await self._write_record(domain_name, record, update=True)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record updated", applied_records=1)

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record_id, "record_id")
        try:
            await self.transport.request("DELETE", f"/{self.account_id}/zones/{domain_name}/records/{record_id}")
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error deleting DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record deleted", applied_records=1)

    # ------------------------------------------------------------------
    # Domain settings
    # ------------------------------------------------------------------

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Getting details for: {domain_name}")

        try:
            data = await self._data(f"/{self.account_id}/domains/{domain_name}") or {}
            delegation = await self._data(f"{self._registrar(domain_name)}/delegation") or []
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain info retrieved",
            status=normalize_status(data.get("state")),
            raw_status=data.get("state"),
            registration_date=parse_datetime(data.get("created_at")),
            expiration_date=parse_datetime(data.get("expires_at")),
            updated_date=parse_datetime(data.get("updated_at")),
            auto_renew=bool(data.get("auto_renew", False)),
            privacy_protection=bool(data.get("private_whois", False)),
            nameservers=list(delegation)
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        try:
            await self.transport.request("PUT", f"{self._registrar(domain_name)}/delegation", json_data=nameservers)
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error updating nameservers", e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message="Nameservers updated successfully")

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._toggle(
            domain_name, "whois_privacy", enable,
            f"Privacy protection {'enabled' if enable else 'disabled'} successfully"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._toggle(
            domain_name, "auto_renewal", enable,
            f"Auto-renew {'enabled' if enable else 'disabled'} successfully"
        )

    async def _toggle(self, domain_name: str, feature: str, enable: bool, message: str) -> DomainUpdateResult:
        """PUT enables a registrar feature, DELETE disables it"""
        domain_name = require_domain(domain_name)
        try:
            await self.transport.request("PUT" if enable else "DELETE", f"{self._registrar(domain_name)}/{feature}")
        except APIError as e:
            return failure_result(DomainUpdateResult, f"Error updating {feature}", e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message=message)

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        items = await self._paginated("/tlds")
        tlds = []
        for item in items:
            tld_type = TLD_TYPES.get(item.get("tld_type"))
            tlds.append(TldInfo(
                name=item.get("tld", ""),
                currency="USD",
                type=tld_type,
                is_generic=item.get("tld_type") in (1, 3),
                is_country_code=item.get("tld_type") == 2,
                min_registration_years=item.get("minimum_registration"),
                supports_privacy=bool(item.get("whois_privacy", False)),
                supports_dnssec=bool(item.get("dnssec_interface_enabled", False)),
                is_available=bool(item.get("registration_enabled", True))
            ))
        return [t for t in tlds if t.name]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        """
        Get list of owned domains.
        Handles pagination to fetch all domains.
        """
        logger.info("Fetching owned domains from DNSimple")
        try:
            items = await self._paginated(f"/{self.account_id}/domains")
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        domains = [
            RegisteredDomainInfo(
                domain_name=item.get("name", ""),
                status=normalize_status(item.get("state")),
                registration_date=parse_datetime(item.get("created_at")),
                expiration_date=parse_datetime(item.get("expires_at")),
                auto_renew=bool(item.get("auto_renew", False)),
                privacy_protection=bool(item.get("private_whois", False))
            )
            for item in items
        ]
        logger.info(f"Found {len(domains)} domains in DNSimple account")
        return RegisteredDomainsResult(
            success=True,
            message=f"Retrieved {len(domains)} domains",
            domains=domains,
            total_count=len(domains)
        )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
