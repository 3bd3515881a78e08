"""
Domain Name API Reseller Registrar
SOAP 1.1 over HTTP POST /service with username/password in the SOAP header
"""

import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

from src.registrars.base_registrar import (
    BaseRegistrar,
    add_years,
    failure_result,
    parse_datetime,
    parse_decimal,
    parse_int,
    require,
    require_domain,
    utc_now
)
from src.registrars.exceptions import APIError, ServerError, ValidationError
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
from src.registrars.xml_utils import (
    child_local,
    child_text,
    find_local,
    is_true,
    iter_local,
    bool_text,
    parse_xml,
    sub_element,
    text_of,
    texts_of,
    to_document
)
from src.utils.logger import get_logger


logger = get_logger(__name__)

LIVE_URL = "https://api.domainnameapi.com"
TEST_URL = "https://api-test.domainnameapi.com"

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
API_NS = "http://www.domainnameapi.com/"

ET.register_namespace("soap", SOAP_NS)
ET.register_namespace("api", API_NS)

CONTACT_ROLES = {
    "registrant": "Registrant",
    "admin": "Administrative",
    "tech": "Technical",
    "billing": "Billing",
}


class DomainNameApiRegistrar(BaseRegistrar):
    """Domain Name API adapter (SOAP)"""

    provider_code = "DOMAINNAMEAPI"

    def __init__(self, username: str, password: str, use_live: bool = False, **transport_options):
        super().__init__(use_live=use_live)
        self.username = username
        self.password = password
        self.base_url = LIVE_URL if use_live else TEST_URL
        self.transport = HttpTransport(
            "DomainNameApi",
            self.base_url,
            headers={"Content-Type": "text/xml; charset=utf-8", "Accept": "text/xml"},
            **transport_options
        )
        logger.info(f"DomainNameApi Registrar initialized - Environment: {self.get_environment()}")

    # ------------------------------------------------------------------
    # SOAP plumbing
    # ------------------------------------------------------------------

    def build_envelope(self, action: str, *children: ET.Element) -> str:
        """Wrap the action payload in a SOAP envelope carrying the credentials"""
        envelope = ET.Element(f"{{{SOAP_NS}}}Envelope")
        header = sub_element(envelope, f"{{{SOAP_NS}}}Header")
        auth = sub_element(header, f"{{{API_NS}}}Authentication")
        sub_element(auth, f"{{{API_NS}}}Username", self.username)
        sub_element(auth, f"{{{API_NS}}}Password", self.password)
        body = sub_element(envelope, f"{{{SOAP_NS}}}Body")
        operation = sub_element(body, f"{{{API_NS}}}{action}")
        for child in children:
            operation.append(child)
        return to_document(envelope)

    async def _call(self, action: str, *children: ET.Element, read: bool = False) -> ET.Element:
        """
        POST a SOAP action and return the parsed response.

        SOAP faults arrive with HTTP 500, so that status is parsed here.

        Raises:
            ValidationError: On a SOAP fault or an OperationResult that is not SUCCESS
            ServerError: On a 500 that carries no SOAP fault
        """
        envelope = self.build_envelope(action, *children)
        logger.debug(f"DomainNameApi action: {action}")
        if read:
            text = await self.transport.read_text("POST", "/service", content=envelope, ok_statuses=(500,))
        else:
            text = await self.transport.request_text("POST", "/service", content=envelope, ok_statuses=(500,))

        root = parse_xml(text, "DomainNameApi") if text.lstrip().startswith("<") else None
        if root is None:
            raise ServerError(f"DomainNameApi server error: {text[:200]}")

        fault = find_local(root, "Fault")
        if fault is not None:
            raise ValidationError(
                child_text(fault, "faultstring") or "SOAP fault",
                error_code=child_text(fault, "faultcode")
            )

        result = find_local(root, "OperationResult")
        if result is not None and (text_of(result, "Status") or "").upper() != "SUCCESS":
            raise ValidationError(
                text_of(result, "Message") or f"{action} failed",
                error_code=text_of(result, "Code")
            )
        return root

    @staticmethod
    def _domain(domain_name: str, **fields: Any) -> ET.Element:
        """``<Domain><DomainName/>...</Domain>`` payload"""
        element = ET.Element("Domain")
        sub_element(element, "DomainName", domain_name)
        for tag, value in fields.items():
            if value is not None:
                sub_element(element, tag, bool_text(value) if isinstance(value, bool) else value)
        return element

    @staticmethod
    def _nameservers(parent: ET.Element, nameservers: List[str]) -> None:
        ns_element = sub_element(parent, "NameServers")
        for ns in nameservers:
            sub_element(ns_element, "NameServer", ns)

    @staticmethod
    def _contact(role: str, contact: ContactInformation) -> ET.Element:
        element = ET.Element(role)
        for tag, value in (
            ("FirstName", contact.first_name),
            ("LastName", contact.last_name),
            ("Organization", contact.organization or ""),
            ("Email", contact.email),
            ("Phone", contact.phone),
            ("Fax", contact.fax or ""),
            ("AddressLine1", contact.address1),
            ("AddressLine2", contact.address2 or ""),
            ("City", contact.city),
            ("State", contact.state),
            ("PostalCode", contact.postal_code),
            ("Country", contact.country),
        ):
            sub_element(element, tag, value)
        return element

    def _contacts(self, parent: ET.Element, contacts: Dict[str, ContactInformation]) -> None:
        element = sub_element(parent, "Contacts")
        for role, contact in contacts.items():
            element.append(self._contact(CONTACT_ROLES[role], contact))

    @staticmethod
    def _record(record: DnsRecordModel, with_id: bool = False) -> ET.Element:
        element = ET.Element("DnsRecord")
        if with_id and record.id is not None:
            sub_element(element, "Id", record.id)
        sub_element(element, "Name", record.name)
        sub_element(element, "Type", record.type)
        sub_element(element, "Content", record.value)
        sub_element(element, "TTL", record.ttl)
        if record.priority is not None:
            sub_element(element, "Priority", record.priority)
        return element

    # ------------------------------------------------------------------
    # Registrar
    # ------------------------------------------------------------------

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        name = ET.Element("DomainName")
        name.text = domain_name
        try:
            root = await self._call("CheckAvailability", name, read=True)
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        available = is_true(text_of(root, "Available"))
        premium = is_true(text_of(root, "IsPremium"))
        price = parse_decimal(text_of(root, "Price"))
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            is_premium=premium,
            premium_price=price if premium else None,
            price=price,
            currency=text_of(root, "Currency"),
            message=text_of(root, "Status") or ("Domain is available" if available else "Domain is not available")
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain: {domain_name} for {request.years} year(s)")

        domain = self._domain(
            domain_name,
            Period=request.years,
            AutoRenew=request.auto_renew,
            PrivacyProtection=request.privacy_protection
        )
        if request.nameservers:
            self._nameservers(domain, request.nameservers)
        self._contacts(domain, request.role_contacts())

        try:
            root = await self._call("RegisterDomain", domain)
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully via Domain Name API",
            order_id=text_of(root, "OrderId"),
            registration_date=now,
            expiration_date=parse_datetime(text_of(root, "ExpirationDate")) or add_years(now, request.years),
            total_cost=parse_decimal(text_of(root, "Price"))
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        try:
            root = await self._call("RenewDomain", self._domain(domain_name, Period=request.years))
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            order_id=text_of(root, "OrderId"),
            new_expiration_date=parse_datetime(text_of(root, "ExpirationDate"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        domain = self._domain(
            domain_name,
            AuthCode=request.auth_code,
            Period=request.years,
            AutoRenew=request.auto_renew,
            PrivacyProtection=request.privacy_protection
        )
        contacts = request.role_contacts()
        if contacts:
            self._contacts(domain, contacts)

        try:
            root = await self._call("TransferDomain", domain)
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated successfully",
            order_id=text_of(root, "OrderId"),
            transfer_status=text_of(root, "TransferStatus", "Pending")
        )

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        try:
            root = await self._call("GetDnsRecords", self._domain(domain_name), read=True)
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        records = [
            DnsRecordModel(
                id=parse_int(child_text(node, "Id")),
                name=child_text(node, "Name", ""),
                type=child_text(node, "Type", ""),
                value=child_text(node, "Content", ""),
                ttl=parse_int(child_text(node, "TTL")) or 3600,
                priority=parse_int(child_text(node, "Priority"))
            )
            for node in iter_local(root, "DnsRecord")
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

        domain = self._domain(domain_name)
        records = sub_element(domain, "DnsRecords")
        for record in zone.records:
            records.append(self._record(record))

        try:
            await self._call("ModifyDnsRecords", domain)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)
        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message="DNS zone updated successfully",
            applied_records=len(zone.records)
        )

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        domain = self._domain(domain_name)
        domain.append(self._record(record))
        try:
            await self._call("AddDnsRecord", domain)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error adding DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record added successfully", applied_records=1)

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        require(record.id, "record.id")
        domain = self._domain(domain_name)
        domain.append(self._record(record, with_id=True))
        try:
            await self._call("UpdateDnsRecord", domain)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record updated successfully", applied_records=1)

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record_id, "record_id")
        try:
            await self._call("DeleteDnsRecord", self._domain(domain_name, RecordId=record_id))
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error deleting DNS record", e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record deleted successfully", applied_records=1)

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        try:
            root = await self._call("GetDomainInfo", self._domain(domain_name), read=True)
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        info = find_local(root, "DomainInfo")
        raw_status = child_text(info, "Status") or "active"
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=normalize_status(raw_status),
            raw_status=raw_status,
            registration_date=parse_datetime(child_text(info, "CreationDate")),
            expiration_date=parse_datetime(child_text(info, "ExpirationDate")),
            updated_date=parse_datetime(child_text(info, "UpdatedDate")),
            auto_renew=is_true(child_text(info, "AutoRenew")),
            privacy_protection=is_true(child_text(info, "PrivacyProtection")),
            locked=is_true(child_text(info, "LockStatus")),
            nameservers=texts_of(child_local(info, "NameServers"), "NameServer")
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        domain = self._domain(domain_name)
        self._nameservers(domain, nameservers)
        try:
            await self._call("ModifyNameServers", domain)
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error updating nameservers", e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message="Nameservers updated successfully")

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        try:
            await self._call("ModifyPrivacyProtection", self._domain(domain_name, PrivacyProtection=enable))
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
            await self._call("ModifyAutoRenew", self._domain(domain_name, AutoRenew=enable))
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error setting auto-renew", e, domain_name=domain_name)
        return DomainUpdateResult(
            success=True,
            domain_name=domain_name,
            message=f"Auto-renew {'enabled' if enable else 'disabled'} successfully"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        root = await self._call("GetTldList", ET.Element("Request"), read=True)
        tlds = []
        for node in iter_local(root, "Tld"):
            name = child_text(node, "Name")
            if not name:
                continue
            tlds.append(TldInfo(
                name=name,
                currency=child_text(node, "Currency") or "USD",
                registration_price=parse_decimal(child_text(node, "RegistrationPrice")),
                renewal_price=parse_decimal(child_text(node, "RenewalPrice")),
                transfer_price=parse_decimal(child_text(node, "TransferPrice")),
                min_registration_years=parse_int(child_text(node, "MinPeriod")),
                max_registration_years=parse_int(child_text(node, "MaxPeriod")),
                type=child_text(node, "Type"),
                supports_privacy=is_true(child_text(node, "PrivacyAvailable")),
                supports_dnssec=is_true(child_text(node, "DnssecSupported"))
            ))
        return tlds

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        logger.info("Getting registered domains from DomainNameApi")
        try:
            root = await self._call("GetList", ET.Element("Empty"), read=True)
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        domains = [self._parse_listed(node) for node in iter_local(root, "Domain")]
        logger.info(f"Retrieved {len(domains)} domains from DomainNameApi")
        return RegisteredDomainsResult(
            success=True,
            message=f"Successfully retrieved {len(domains)} domains",
            domains=domains,
            total_count=len(domains)
        )

    @staticmethod
    def _parse_listed(node: ET.Element) -> RegisteredDomainInfo:
        status: Optional[str] = child_text(node, "Status")
        return RegisteredDomainInfo(
            domain_name=child_text(node, "Name", ""),
            status=normalize_status(status),
            registration_date=parse_datetime(child_text(node, "RegistrationDate")),
            expiration_date=parse_datetime(child_text(node, "ExpirationDate")),
            auto_renew=child_text(node, "RenewalMode") == "AutoRenew",
            locked=is_true(child_text(node, "LockStatus")),
            privacy_protection=child_text(node, "PrivacyProtectionStatus") == "enabled",
            nameservers=texts_of(node, "Nameserver")
        )
