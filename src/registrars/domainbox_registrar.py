"""
Domainbox Registrar
REST/JSON API; every request is signed with HMAC-SHA256 over method, path and timestamp
"""

import base64
import hashlib
import hmac
import time
from typing import Any, Dict, List
from urllib.parse import urlencode

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
from src.registrars.transport import HttpTransport, RequestSigner
from src.utils.logger import get_logger


logger = get_logger(__name__)

LIVE_URL = "https://api.domainbox.com/v1"
SANDBOX_URL = "https://sandbox.domainbox.com/v1"


def domainbox_signature(secret: str, method: str, endpoint: str, timestamp: str) -> str:
    """base64(HMAC-SHA256(secret, METHOD + endpoint + timestamp))"""
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{method.upper()}{endpoint}{timestamp}".encode("utf-8"),
        hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def make_signer(api_secret: str) -> RequestSigner:
    def sign(method: str, endpoint: str) -> Dict[str, str]:
        timestamp = str(int(time.time()))
        return {
            "X-Timestamp": timestamp,
            "X-Signature": domainbox_signature(api_secret, method, endpoint, timestamp)
        }
    return sign


class DomainboxRegistrar(BaseRegistrar):
    """Domainbox adapter with request signing"""

    provider_code = "DOMAINBOX"

    def __init__(self, api_key: str, api_secret: str, use_live: bool = False, **transport_options):
        super().__init__(use_live=use_live)
        self.base_url = LIVE_URL if use_live else SANDBOX_URL
        self.transport = HttpTransport(
            "Domainbox",
            self.base_url,
            headers={"X-API-Key": api_key, "Content-Type": "application/json", "Accept": "application/json"},
            signer=make_signer(api_secret),
            **transport_options
        )
        logger.info(f"Domainbox Registrar initialized - Environment: {self.get_environment()}")

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        # the query string is part of the signed path
        try:
            data = await self.transport.read_json(f"/domains/check?{urlencode({'domain': domain_name})}")
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        available = bool(data.get("available", False))
        premium = bool(data.get("premium", False))
        price = parse_decimal(data.get("price"))
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            is_premium=premium,
            premium_price=price if premium else None,
            price=price,
            currency=data.get("currency", "GBP"),
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
            "auto_renew": request.auto_renew,
            "privacy": request.privacy_protection,
            "contacts": {role: self._map_contact(c) for role, c in request.role_contacts().items()}
        }
        try:
            data = await self.transport.request_json("POST", "/domains/register", json_data=payload)
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully",
            order_id=data.get("order_id"),
            transaction_id=data.get("transaction_id"),
            registration_date=now,
            expiration_date=parse_datetime(data.get("expires_at")) or add_years(now, request.years),
            total_cost=parse_decimal(data.get("total"))
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        try:
            data = await self.transport.request_json(
                "POST", "/domains/renew", json_data={"domain": domain_name, "period": request.years}
            )
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            order_id=data.get("order_id"),
            new_expiration_date=parse_datetime(data.get("expires_at")),
            total_cost=parse_decimal(data.get("total"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        payload: Dict[str, Any] = {
            "domain": domain_name,
            "auth_code": request.auth_code,
            "period": request.years,
            "privacy": request.privacy_protection,
            "auto_renew": request.auto_renew
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
            order_id=data.get("order_id"),
            transfer_status=data.get("status", "pending")
        )

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        try:
            data = await self.transport.read_json(f"/dns/zones/{domain_name}/records")
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        records = [
            DnsRecordModel(
                id=item.get("id"),
                name=item.get("name", ""),
                type=item.get("type", ""),
                value=item.get("content", ""),
                ttl=item.get("ttl") or 3600,
                priority=item.get("priority")
            )
            for item in data.get("records") or []
        ]
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(zone, "zone")
        records = [self._record_body(r) for r in zone.records]
        try:
            await self.transport.request("PUT", f"/dns/zones/{domain_name}/records", json_data={"records": records})
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)
        return DnsUpdateResult(
            success=True, domain_name=domain_name, message="DNS zone updated successfully", applied_records=len(records)
        )

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        try:
            await self.transport.request(
                "POST", f"/dns/zones/{domain_name}/records", json_data=self._record_body(record)
            )
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error adding DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record added successfully", applied_records=1)

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        require(record.id, "record.id")
        try:
            await self.transport.request(
                "PUT", f"/dns/zones/{domain_name}/records/{record.id}", json_data=self._record_body(record)
            )
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record updated successfully", applied_records=1)

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record_id, "record_id")
        try:
            await self.transport.request("DELETE", f"/dns/zones/{domain_name}/records/{record_id}")
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error deleting DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record deleted successfully", applied_records=1)

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        try:
            data = await self.transport.read_json(f"/domains/{domain_name}")
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        domain = data.get("domain") or {}
        raw_status = domain.get("status") or "active"
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=normalize_status(raw_status),
            raw_status=raw_status,
            registration_date=parse_datetime(domain.get("created_at")),
            expiration_date=parse_datetime(domain.get("expires_at")),
            auto_renew=bool(domain.get("auto_renew", False)),
            privacy_protection=bool(domain.get("privacy", False)),
            locked=bool(domain.get("locked", False)),
            nameservers=domain.get("nameservers") or []
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
            await self.transport.request("PATCH", f"/domains/{domain_name}/privacy", json_data={"privacy": enable})
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
            await self.transport.request(
                "PATCH", f"/domains/{domain_name}/auto-renew", json_data={"auto_renew": enable}
            )
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting auto-renew", e, domain_name=domain_name)
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Auto-renew {'enabled' if enable else 'disabled'} successfully"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        data = await self.transport.read_json("/tlds")
        return [
            TldInfo(
                name=item["name"],
                currency=item.get("currency") or "GBP",
                registration_price=parse_decimal(item.get("registration_price")),
                renewal_price=parse_decimal(item.get("renewal_price")),
                transfer_price=parse_decimal(item.get("transfer_price")),
                type=item.get("type"),
                supports_privacy=bool(item.get("privacy_available", False))
            )
            for item in data.get("tlds") or []
            if item.get("name")
        ]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        try:
            data = await self.transport.read_json("/domains")
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        domains = [
            RegisteredDomainInfo(
                domain_name=item.get("domain") or item.get("name", ""),
                status=normalize_status(item.get("status")),
                registration_date=parse_datetime(item.get("created_at")),
                expiration_date=parse_datetime(item.get("expires_at")),
                auto_renew=bool(item.get("auto_renew", False)),
                locked=bool(item.get("locked", False)),
                privacy_protection=bool(item.get("privacy", False)),
                nameservers=item.get("nameservers") or []
            )
            for item in data.get("domains") or []
        ]
        return RegisteredDomainsResult(
            success=True, message=f"Retrieved {len(domains)} domains", domains=domains, total_count=len(domains)
        )

    @staticmethod
    def _record_body(record: DnsRecordModel) -> Dict[str, Any]:
        return {
            "name": record.name,
            "type": record.type,
            "content": record.value,
            "ttl": record.ttl,
            "priority": record.priority
        }

    @staticmethod
    def _map_contact(contact: ContactInformation) -> Dict[str, Any]:
        return {
            "first_name": contact.first_name,
            "last_name": contact.last_name,
            "organization": contact.organization,
            "email": contact.email,
            "phone": contact.phone,
            "fax": contact.fax,
            "address1": contact.address1,
            "address2": contact.address2,
            "city": contact.city,
            "state": contact.state,
            "postal_code": contact.postal_code,
            "country": contact.country
        }
