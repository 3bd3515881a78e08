"""
Regtons Registrar
REST/JSON API with ``{"success", "error", "data"}`` envelopes and HMAC request signing
"""

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
from src.registrars.transport import HttpTransport, RequestSigner
from src.utils.logger import get_logger


logger = get_logger(__name__)

LIVE_URL = "https://api.regtons.com/v1"
SANDBOX_URL = "https://sandbox.regtons.com/v1"

# Regtons names the tech role "technical"
CONTACT_ROLES = {"registrant": "registrant", "admin": "admin", "tech": "technical", "billing": "billing"}


def regtons_signature(api_key: str, api_secret: str, method: str, endpoint: str, timestamp: str) -> str:
    """lowercase hex HMAC-SHA256(secret, apiKey + METHOD + endpoint + timestamp)"""
    return hmac.new(
        api_secret.encode("utf-8"),
        f"{api_key}{method.upper()}{endpoint}{timestamp}".encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def make_signer(api_key: str, api_secret: str) -> RequestSigner:
    def sign(method: str, endpoint: str) -> Dict[str, str]:
        timestamp = str(int(time.time()))
        return {
            "X-Timestamp": timestamp,
            "X-Signature": regtons_signature(api_key, api_secret, method, endpoint, timestamp)
        }
    return sign


def unwrap(response: Any) -> Dict[str, Any]:
    """
    Return the ``data`` member of a Regtons envelope.

    Raises:
        ValidationError: When the envelope reports ``success: false``
    """
    if not isinstance(response, dict):
        return {}
    if response.get("success") is False:
        raise ValidationError(
            response.get("error") or response.get("message") or "Regtons reported failure",
            response_data=response,
            error_code=response.get("code")
        )
    data = response.get("data")
    return data if isinstance(data, dict) else response


class RegtonsRegistrar(BaseRegistrar):
    """Regtons adapter"""

    provider_code = "REGTONS"

    def __init__(self, api_key: str, api_secret: str, username: str, use_live: bool = False, **transport_options):
        super().__init__(use_live=use_live)
        self.base_url = LIVE_URL if use_live else SANDBOX_URL
        self.transport = HttpTransport(
            "Regtons",
            self.base_url,
            headers={
                "X-API-Key": api_key,
                "X-Username": username,
                "Content-Type": "application/json",
                "Accept": "application/json"
            },
            signer=make_signer(api_key, api_secret),
            **transport_options
        )
        logger.info(f"Regtons Registrar initialized - Environment: {self.get_environment()}")

    async def _read(self, endpoint: str) -> Dict[str, Any]:
        return unwrap(await self.transport.read_json(endpoint))

    async def _write(self, method: str, endpoint: str, payload: Any = None) -> Dict[str, Any]:
        return unwrap(await self.transport.request_json(method, endpoint, json_data=payload))

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        try:
            data = await self._read(f"/domains/availability?{urlencode({'domain': domain_name})}")
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
            currency=data.get("currency", "EUR"),
            message=data.get("message") or ("Domain is available" if available else "Domain is not available")
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
            "whois_privacy": request.privacy_protection,
            "contacts": self._contacts(request.role_contacts())
        }
        try:
            data = await self._write("POST", "/domains/register", payload)
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully",
            order_id=data.get("order_id"),
            registration_date=now,
            expiration_date=parse_datetime(data.get("expires_at")) or add_years(now, request.years),
            total_cost=parse_decimal(data.get("total"))
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        try:
            data = await self._write("POST", "/domains/renew", {"domain": domain_name, "period": request.years})
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            order_id=data.get("order_id"),
            new_expiration_date=parse_datetime(data.get("expires_at"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        payload: Dict[str, Any] = {
            "domain": domain_name,
            "auth_code": request.auth_code,
            "period": request.years,
            "auto_renew": request.auto_renew,
            "whois_privacy": request.privacy_protection
        }
        contacts = request.role_contacts()
        if contacts:
            payload["contacts"] = self._contacts(contacts)

        try:
            data = await self._write("POST", "/domains/transfer", payload)
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
            data = await self._read(f"/dns/zones/{domain_name}/records")
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
            await self._write("PUT", f"/dns/zones/{domain_name}/records", {"records": records})
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)
        return DnsUpdateResult(
            success=True, domain_name=domain_name, message="DNS zone updated successfully", applied_records=len(records)
        )

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        try:
            await self._write("POST", f"/dns/zones/{domain_name}/records", self._record_body(record))
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error adding DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record added successfully", applied_records=1)

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        require(record.id, "record.id")
        try:
            await self._write("PUT", f"/dns/zones/{domain_name}/records/{record.id}", self._record_body(record))
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record updated successfully", applied_records=1)

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record_id, "record_id")
        try:
            await self._write("DELETE", f"/dns/zones/{domain_name}/records/{record_id}")
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error deleting DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record deleted successfully", applied_records=1)

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        try:
            data = await self._read(f"/domains/{domain_name}")
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
            privacy_protection=bool(domain.get("whois_privacy", False)),
            locked=bool(domain.get("locked", False)),
            nameservers=domain.get("nameservers") or []
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        try:
            await self._write("PUT", f"/domains/{domain_name}/nameservers", {"nameservers": nameservers})
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error updating nameservers", e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message="Nameservers updated successfully")

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        try:
            await self._write("PATCH", f"/domains/{domain_name}/privacy", {"whois_privacy": enable})
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
            await self._write("PATCH", f"/domains/{domain_name}/auto-renew", {"auto_renew": enable})
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting auto-renew", e, domain_name=domain_name)
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Auto-renew {'enabled' if enable else 'disabled'} successfully"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        data = await self._read("/tlds")
        return [
            TldInfo(
                name=item["name"],
                currency=item.get("currency") or "EUR",
                registration_price=parse_decimal(item.get("registration_price")),
                renewal_price=parse_decimal(item.get("renewal_price")),
                transfer_price=parse_decimal(item.get("transfer_price")),
                type=item.get("type"),
                min_registration_years=item.get("min_years"),
                max_registration_years=item.get("max_years"),
                supports_privacy=bool(item.get("privacy_available", False)),
                supports_dnssec=bool(item.get("dnssec_available", False))
            )
            for item in data.get("tlds") or []
            if item.get("name")
        ]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        try:
            data = await self._read("/domains")
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
                privacy_protection=bool(item.get("whois_privacy", False)),
                nameservers=item.get("nameservers") or []
            )
            for item in data.get("domains") or []
        ]
        return RegisteredDomainsResult(
            success=True, message=f"Retrieved {len(domains)} domains", domains=domains, total_count=len(domains)
        )

    @classmethod
    def _contacts(cls, contacts: Dict[str, ContactInformation]) -> Dict[str, Any]:
        return {CONTACT_ROLES[role]: cls._map_contact(c) for role, c in contacts.items()}

    @staticmethod
    def _map_contact(contact: ContactInformation) -> Dict[str, Any]:
        return {
            "first_name": contact.first_name,
            "last_name": contact.last_name,
            "organization": contact.organization or "",
            "email": contact.email,
            "phone": contact.phone,
            "fax": contact.fax or "",
            "address_line_1": contact.address1,
            "address_line_2": contact.address2 or "",
            "city": contact.city,
            "state": contact.state,
            "postal_code": contact.postal_code,
            "country": contact.country
        }

    @staticmethod
    def _record_body(record: DnsRecordModel) -> Dict[str, Any]:
        return {
            "name": record.name,
            "type": record.type,
            "content": record.value,
            "ttl": record.ttl,
            "priority": record.priority
        }
