"""
Namecheap Registrar
XML API: every command is a GET on /xml.response with credentials in the query string
"""

import xml.etree.ElementTree as ET
from typing import Any, Dict, List

from src.registrars.base_registrar import (
    BaseRegistrar,
    add_years,
    append_record,
    failure_result,
    parse_datetime,
    parse_decimal,
    parse_int,
    remove_record,
    replace_record,
    require,
    require_domain,
    unsupported_result,
    utc_now
)
from src.registrars.exceptions import (
    APIError,
    AuthenticationError,
    DomainNotFoundError,
    ValidationError
)
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
from src.registrars.xml_utils import find_local, is_true, iter_local, parse_xml, texts_of, text_of
from src.utils.logger import get_logger
from src.utils.validators import DomainValidator


logger = get_logger(__name__)

PRODUCTION_URL = "https://api.namecheap.com"
SANDBOX_URL = "https://api.sandbox.namecheap.com"

# Error numbers with a more specific meaning than "request rejected"
ERROR_TYPES = {
    "1011102": AuthenticationError,
    "1011150": AuthenticationError,
    "2019166": DomainNotFoundError,
    "2016166": DomainNotFoundError,
}

CONTACT_ROLES = {"registrant": "Registrant", "admin": "Admin", "tech": "Tech", "billing": "AuxBilling"}


class NamecheapRegistrar(BaseRegistrar):
    """
    Namecheap adapter.

    DNS host records are only writable as a complete set (``setHosts``), so
    single-record changes rewrite the whole host list.
    """

    provider_code = "NAMECHEAP"

    def __init__(
        self,
        api_user: str,
        api_key: str,
        username: str,
        client_ip: str,
        use_sandbox: bool = True,
        **transport_options
    ):
        super().__init__(use_live=not use_sandbox)
        self.credentials = {
            "ApiUser": api_user,
            "ApiKey": api_key,
            "UserName": username,
            "ClientIp": client_ip
        }
        self.base_url = SANDBOX_URL if use_sandbox else PRODUCTION_URL
        self.transport = HttpTransport("Namecheap", self.base_url, **transport_options)
        logger.info(f"Namecheap Registrar initialized - Environment: {self.get_environment()}")

    def get_environment(self) -> str:
        return "PRODUCTION" if self.use_live else "SANDBOX"

    async def _command(self, command: str, params: Dict[str, Any], read: bool = False) -> ET.Element:
        """
        Run a Namecheap command and return the ``CommandResponse`` element.

        Raises:
            APIError subclass when ``ApiResponse Status`` is ERROR
        """
        query = {**self.credentials, "Command": command}
        query.update({k: str(v) for k, v in params.items() if v is not None})
        logger.debug(f"Namecheap command: {command}")

        if read:
            text = await self.transport.read_text("GET", "/xml.response", params=query)
        else:
            text = await self.transport.request_text("GET", "/xml.response", params=query)

        root = parse_xml(text, "Namecheap")
        if (root.get("Status") or "").upper() != "OK":
            error = find_local(root, "Error")
            number = error.get("Number") if error is not None else None
            message = (error.text or "").strip() if error is not None else ""
            error_cls = ERROR_TYPES.get(number or "", ValidationError)
            raise error_cls(message or f"{command} failed", error_code=number)

        response = find_local(root, "CommandResponse")
        return response if response is not None else root

    @staticmethod
    def _sld_tld(domain_name: str) -> Dict[str, str]:
        sld, tld = DomainValidator.split_domain(domain_name)
        return {"SLD": sld, "TLD": tld}

    @staticmethod
    def _contact_params(prefix: str, contact: ContactInformation) -> Dict[str, Any]:
        return {
            f"{prefix}FirstName": contact.first_name,
            f"{prefix}LastName": contact.last_name,
            f"{prefix}OrganizationName": contact.organization,
            f"{prefix}EmailAddress": contact.email,
            f"{prefix}Phone": contact.phone,
            f"{prefix}Fax": contact.fax,
            f"{prefix}Address1": contact.address1,
            f"{prefix}Address2": contact.address2,
            f"{prefix}City": contact.city,
            f"{prefix}StateProvince": contact.state,
            f"{prefix}PostalCode": contact.postal_code,
            f"{prefix}Country": contact.country
        }

    # ------------------------------------------------------------------
    # Registrar
    # ------------------------------------------------------------------

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        try:
            response = await self._command("namecheap.domains.check", {"DomainList": domain_name}, read=True)
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        result = find_local(response, "DomainCheckResult")
        attrs = result.attrib if result is not None else {}
        available = is_true(attrs.get("Available"))
        premium = is_true(attrs.get("IsPremiumName"))
        premium_price = parse_decimal(attrs.get("PremiumRegistrationPrice"))
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            is_premium=premium,
            premium_price=premium_price if premium else None,
            price=premium_price if premium else None,
            currency="USD",
            message="Domain is available" if available else "Domain is not available"
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain: {domain_name} for {request.years} year(s)")

        params: Dict[str, Any] = {
            "DomainName": domain_name,
            "Years": request.years,
            "AddFreeWhoisguard": "yes" if request.privacy_protection else "no",
            "WGEnabled": "yes" if request.privacy_protection else "no"
        }
        for role, contact in request.role_contacts().items():
            params.update(self._contact_params(CONTACT_ROLES[role], contact))
        if request.nameservers:
            params["Nameservers"] = ",".join(request.nameservers)

        try:
            response = await self._command("namecheap.domains.create", params)
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        result = find_local(response, "DomainCreateResult")
        attrs = result.attrib if result is not None else {}
        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully",
            order_id=attrs.get("OrderID"),
            transaction_id=attrs.get("TransactionID"),
            registration_date=now,
            expiration_date=add_years(now, request.years),
            total_cost=parse_decimal(attrs.get("ChargedAmount"))
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        try:
            response = await self._command(
                "namecheap.domains.renew", {"DomainName": domain_name, "Years": request.years}
            )
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        result = find_local(response, "DomainRenewResult")
        attrs = result.attrib if result is not None else {}
        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            order_id=attrs.get("OrderID"),
            transaction_id=attrs.get("TransactionID"),
            new_expiration_date=parse_datetime(text_of(result, "ExpiredDate")),
            total_cost=parse_decimal(attrs.get("ChargedAmount"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        params = {
            "DomainName": domain_name,
            "Years": request.years,
            "EPPCode": request.auth_code,
            "AddFreeWhoisguard": "yes" if request.privacy_protection else "no",
            "WGEnable": "yes" if request.privacy_protection else "no"
        }
        try:
            response = await self._command("namecheap.domains.transfer.create", params)
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        result = find_local(response, "DomainTransferCreateResult")
        attrs = result.attrib if result is not None else {}
        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated successfully",
            order_id=attrs.get("OrderID"),
            transaction_id=attrs.get("TransactionID"),
            transfer_status=attrs.get("StatusID") or "Pending",
            total_cost=parse_decimal(attrs.get("ChargedAmount"))
        )

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        try:
            response = await self._command(
                "namecheap.domains.dns.getHosts", self._sld_tld(domain_name), read=True
            )
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        records = []
        for host in iter_local(response, "host"):
            record_type = host.get("Type", "")
            records.append(DnsRecordModel(
                id=parse_int(host.get("HostId")),
                name=host.get("Name", "@"),
                type=record_type,
                value=host.get("Address", ""),
                ttl=parse_int(host.get("TTL")) or 1800,
                priority=parse_int(host.get("MXPref")) if record_type.upper() == "MX" else None
            ))
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        """Replace the host list; Namecheap drops every host not sent"""
        domain_name = require_domain(domain_name)
        require(zone, "zone")

        params: Dict[str, Any] = self._sld_tld(domain_name)
        for index, record in enumerate(zone.records, start=1):
            params[f"HostName{index}"] = record.name
            params[f"RecordType{index}"] = record.type
            params[f"Address{index}"] = record.value
            params[f"TTL{index}"] = record.ttl
            if record.priority is not None:
                params[f"MXPref{index}"] = record.priority

        try:
            response = await self._command("namecheap.domains.dns.setHosts", params)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

        result = find_local(response, "DomainDNSSetHostsResult")
        if result is not None and not is_true(result.get("IsSuccess", "true")):
            return failure_result(
                DnsUpdateResult, "Error updating DNS zone", ValidationError("Namecheap rejected the host list"),
                domain_name=domain_name
            )
        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message="DNS zone updated successfully",
            applied_records=len(zone.records)
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

    # ------------------------------------------------------------------
    # Domain settings
    # ------------------------------------------------------------------

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        try:
            response = await self._command("namecheap.domains.getInfo", {"DomainName": domain_name}, read=True)
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        result = find_local(response, "DomainGetInfoResult")
        raw_status = result.get("Status") if result is not None else None
        whoisguard = find_local(result, "Whoisguard")
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=normalize_status(raw_status),
            raw_status=raw_status,
            registration_date=parse_datetime(text_of(result, "CreatedDate")),
            expiration_date=parse_datetime(text_of(result, "ExpiredDate")),
            privacy_protection=whoisguard is not None and is_true(whoisguard.get("Enabled")),
            locked=is_true(text_of(result, "IsLocked")),
            nameservers=texts_of(find_local(result, "DnsDetails"), "Nameserver")
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        params = {**self._sld_tld(domain_name), "Nameservers": ",".join(nameservers)}
        try:
            await self._command("namecheap.domains.dns.setCustom", params)
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error updating nameservers", e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message="Nameservers updated successfully")

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        command = "namecheap.whoisguard.enable" if enable else "namecheap.whoisguard.disable"
        try:
            await self._command(command, {"DomainName": domain_name})
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting privacy protection", e, domain_name=domain_name)
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Privacy protection {'enabled' if enable else 'disabled'} successfully"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        return unsupported_result(
            DomainUpdateResult,
            "Namecheap has no API command for auto-renew; change it in the Namecheap dashboard",
            domain_name=domain_name
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        response = await self._command("namecheap.domains.getTldList", {}, read=True)
        tlds = []
        for node in iter_local(response, "Tld"):
            name = node.get("Name")
            if not name:
                continue
            tld_type = node.get("Type")
            tlds.append(TldInfo(
                name=name,
                currency="USD",
                type=tld_type,
                is_generic=is_true(node.get("IsGenericTld")) or (tld_type or "").upper() == "GTLD",
                is_country_code=is_true(node.get("IsCcTld")) or (tld_type or "").upper() == "CCTLD",
                min_registration_years=parse_int(node.get("MinRegisterYears") or node.get("MinRegYears")),
                max_registration_years=parse_int(node.get("MaxRegisterYears") or node.get("MaxRegYears")),
                supports_privacy=is_true(node.get("SupportsPrivacy") or node.get("IsSupportsWhoisguard")),
                is_available=is_true(node.get("IsApiRegisterable", "true"))
            ))
        return tlds

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        try:
            response = await self._command("namecheap.domains.getList", {"PageSize": 100}, read=True)
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        domains = []
        for node in iter_local(response, "Domain"):
            expired = is_true(node.get("IsExpired"))
            domains.append(RegisteredDomainInfo(
                domain_name=node.get("Name", ""),
                status="EXPIRED" if expired else "ACTIVE",
                registration_date=parse_datetime(node.get("Created")),
                expiration_date=parse_datetime(node.get("Expires")),
                auto_renew=is_true(node.get("AutoRenew")),
                locked=is_true(node.get("IsLocked")),
                privacy_protection=(node.get("WhoisGuard") or "").upper() == "ENABLED"
            ))
        return RegisteredDomainsResult(
            success=True, message=f"Retrieved {len(domains)} domains", domains=domains, total_count=len(domains)
        )
