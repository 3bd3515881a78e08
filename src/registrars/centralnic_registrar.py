"""
CentralNic Reseller Registrar
REST/JSON API with HTTP Basic auth. DNS is exchanged as whole zones only.
"""

from typing import Any, Dict, List

import httpx

from src.registrars.base_registrar import (
    BaseRegistrar,
    add_years,
    append_record,
    failure_result,
    number_records,
    parse_datetime,
    parse_decimal,
    remove_record,
    replace_record,
    require,
    require_domain,
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

LIVE_URL = "https://api.centralnic.com/v2"
OTE_URL = "https://api-ote.centralnic.com/v2"


class CentralNicRegistrar(BaseRegistrar):
    """CentralNic adapter; single-record DNS changes are read-modify-write of the zone"""

    provider_code = "CENTRALNIC"

    def __init__(self, username: str, password: str, use_live: bool = False, **transport_options):
        super().__init__(use_live=use_live)
        self.base_url = LIVE_URL if use_live else OTE_URL
        self.transport = HttpTransport(
            "CentralNic",
            self.base_url,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            auth=httpx.BasicAuth(username, password),
            **transport_options
        )
        logger.info(f"CentralNic Registrar initialized - Environment: {self.get_environment()}")

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        try:
            data = await self.transport.read_json(f"/domains/{domain_name}/check")
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        available = bool(data.get("available", False))
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            is_premium=bool(data.get("premium", False)),
            price=parse_decimal(data.get("price")),
            currency=data.get("currency"),
            message="Domain is available" if available else "Domain is not available"
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain: {domain_name} for {request.years} year(s)")

        payload = {
            "domain": domain_name,
            "period": request.years,
            "nameservers": request.nameservers,
            "autoRenew": request.auto_renew,
            "privacy": request.privacy_protection,
            "contacts": {role: self._map_contact(c) for role, c in request.role_contacts().items()}
        }
        try:
            data = await self.transport.request_json("POST", "/domains", json_data=payload)
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully via CentralNic",
            order_id=data.get("orderId"),
            registration_date=now,
            expiration_date=parse_datetime(data.get("expiryDate")) or add_years(now, request.years),
            total_cost=parse_decimal(data.get("price"))
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Renewing domain: {domain_name} for {request.years} year(s)")

        try:
            data = await self.transport.request_json(
                "POST", f"/domains/{domain_name}/renew", json_data={"period": request.years}
            )
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            order_id=data.get("orderId"),
            new_expiration_date=parse_datetime(data.get("expiryDate"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Transferring domain: {domain_name}")

        payload: Dict[str, Any] = {
            "domain": domain_name,
            "authCode": request.auth_code,
            "period": request.years,
            "autoRenew": request.auto_renew,
            "privacy": request.privacy_protection
        }
        contacts = request.role_contacts()
        if contacts:
            payload["contacts"] = {role: self._map_contact(c) for role, c in contacts.items()}

        try:
            data = await self.transport.request_json("POST", "/domains/transfer", json_data=payload)
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated successfully",
            order_id=data.get("orderId"),
            transfer_status=data.get("status", "Pending")
        )

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        """Records have no ids at CentralNic, so they are numbered by position"""
        domain_name = require_domain(domain_name)
        try:
            data = await self.transport.read_json(f"/domains/{domain_name}/dns")
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        items = data.get("records", []) if isinstance(data, dict) else data
        records = number_records([
            DnsRecordModel(
                name=item.get("name", "@"),
                type=item.get("type", ""),
                value=item.get("content", ""),
                ttl=item.get("ttl") or 3600,
                priority=item.get("priority")
            )
            for item in items or []
        ])
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(zone, "zone")

        records = []
        for r in zone.records:
            item: Dict[str, Any] = {"type": r.type, "name": r.name, "content": r.value, "ttl": r.ttl}
            if r.priority is not None:
                item["priority"] = r.priority
            records.append(item)

        try:
            await self.transport.request("PUT", f"/domains/{domain_name}/dns", json_data=records)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

        return DnsUpdateResult(
            success=True, domain_name=domain_name, message="DNS zone updated successfully", applied_records=len(records)
        )

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        require(record, "record")
        return await self._rewrite_zone(domain_name, append_record(record), "DNS record added successfully")

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        require(record, "record")
        require(record.id, "record.id")
        return await self._rewrite_zone(domain_name, replace_record(record), "DNS record updated successfully")

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        require(record_id, "record_id")
        return await self._rewrite_zone(domain_name, remove_record(record_id), "DNS record deleted successfully")

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        try:
            data = await self.transport.read_json(f"/domains/{domain_name}")
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        registrant = (data.get("contacts") or {}).get("registrant")
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=normalize_status(data.get("status")),
            raw_status=data.get("status"),
            registration_date=parse_datetime(data.get("createdDate")),
            expiration_date=parse_datetime(data.get("expiryDate")),
            updated_date=parse_datetime(data.get("updatedDate")),
            auto_renew=bool(data.get("autoRenew", False)),
            privacy_protection=bool(data.get("privacy", False)),
            locked=bool(data.get("locked", False)),
            nameservers=data.get("nameservers") or [],
            registrant_contact=self._parse_contact(registrant) if registrant else None
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        try:
            await self.transport.request(
                "PUT", f"/domains/{domain_name}/nameservers", json_data={"nameservers": nameservers}
            )
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error updating nameservers", e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message="Nameservers updated successfully")

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        try:
            await self.transport.request("PATCH", f"/domains/{domain_name}", json_data={"privacy": enable})
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting privacy protection", e, domain_name=domain_name)
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Privacy protection {'enabled' if enable else 'disabled'} successfully"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        try:
            await self.transport.request("PATCH", f"/domains/{domain_name}", json_data={"autoRenew": enable})
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting auto-renew", e, domain_name=domain_name)
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Auto-renew {'enabled' if enable else 'disabled'} successfully"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        data = await self.transport.read_json("/tlds")
        items = data.get("tlds", []) if isinstance(data, dict) else data
        return [
            TldInfo(
                name=item["name"],
                currency=item.get("currency") or "USD",
                registration_price=parse_decimal(item.get("registration_price")),
                renewal_price=parse_decimal(item.get("renewal_price")),
                transfer_price=parse_decimal(item.get("transfer_price")),
                type=item.get("type"),
                is_generic=item.get("type") == "generic",
                is_country_code=item.get("type") in ("country", "cctld", "country code")
            )
            for item in items or []
            if item.get("name")
        ]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        try:
            data = await self.transport.read_json("/domains")
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        items = data.get("domains", []) if isinstance(data, dict) else data
        domains = [
            RegisteredDomainInfo(
                domain_name=item.get("domain", ""),
                status=normalize_status(item.get("status")),
                registration_date=parse_datetime(item.get("createdDate")),
                expiration_date=parse_datetime(item.get("expiryDate")),
                auto_renew=bool(item.get("autoRenew", False)),
                locked=bool(item.get("locked", False)),
                privacy_protection=bool(item.get("privacy", False)),
                nameservers=item.get("nameservers") or []
            )
            for item in items or []
        ]
        return RegisteredDomainsResult(
            success=True, message=f"Retrieved {len(domains)} domains", domains=domains, total_count=len(domains)
        )

    @staticmethod
    def _map_contact(contact: ContactInformation) -> Dict[str, Any]:
        return {
            "type": contact.contact_type,
            "firstName": contact.first_name,
            "lastName": contact.last_name,
            "organization": contact.organization,
            "email": contact.email,
            "phone": contact.phone,
            "fax": contact.fax,
            "address": {
                "street1": contact.address1,
                "street2": contact.address2,
                "city": contact.city,
                "state": contact.state,
                "postalCode": contact.postal_code,
                "country": contact.country
            }
        }

    @staticmethod
    def _parse_contact(data: Dict[str, Any]):
        address = data.get("address") or {}
        try:
            return ContactInformation(
                first_name=data.get("firstName", ""),
                last_name=data.get("lastName", ""),
                organization=data.get("organization"),
                email=data.get("email", ""),
                phone=data.get("phone", ""),
                fax=data.get("fax"),
                address1=address.get("street1", ""),
                address2=address.get("street2"),
                city=address.get("city", ""),
                state=address.get("state", ""),
                postal_code=address.get("postalCode", ""),
                country=address.get("country", "")
            )
        except ValueError:
            return None
