"""
Oxxa Registrar
XML command API: <request><auth/><command name="..."/></request> POSTed to /command.php
"""

from typing import Any, Dict, List
import xml.etree.ElementTree as ET

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
from src.registrars.exceptions import APIError, AuthenticationError, DomainNotFoundError, ValidationError
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
    TldInfo,
    normalize_status
)
from src.registrars.transport import HttpTransport
from src.registrars.xml_utils import (
    child_local,
    child_text,
    element_from_dict,
    find_local,
    iter_local,
    parse_xml,
    sub_element,
    texts_of,
    to_document
)
from src.utils.logger import get_logger


logger = get_logger(__name__)

LIVE_URL = "https://api.oxxa.com"
OTE_URL = "https://api-ote.oxxa.com"

CODE_OK = "200"
CODE_CREATED = "201"
CODE_AVAILABLE = "210"

ERROR_TYPES = {
    "401": AuthenticationError,
    "403": AuthenticationError,
    "404": DomainNotFoundError,
}


def flag(value: bool) -> str:
    return "1" if value else "0"


class OxxaRegistrar(BaseRegistrar):
    """
    Oxxa adapter.

    Every command answers with ``<result code="..."><msg/>...</result>``;
    200 means done, 201 means accepted (create/transfer), 210 means the
    domain is free.
    """

    provider_code = "OXXA"

    def __init__(self, username: str, password: str, use_live: bool = False, **transport_options):
        super().__init__(use_live=use_live)
        self.username = username
        self.password = password
        self.base_url = LIVE_URL if use_live else OTE_URL
        self.transport = HttpTransport(
            "Oxxa",
            self.base_url,
            headers={"Content-Type": "text/xml; charset=utf-8"},
            **transport_options
        )
        logger.info(f"Oxxa Registrar initialized - Environment: {self.get_environment()}")

    def get_environment(self) -> str:
        return "LIVE" if self.use_live else "OTE"

    def _build_command(self, command: str, data: ET.Element) -> str:
        request = ET.Element("request")
        auth = sub_element(request, "auth")
        sub_element(auth, "username", self.username)
        sub_element(auth, "password", self.password)
        sub_element(request, "command", name=command).append(data)
        return to_document(request)

    async def _command(
        self,
        command: str,
        data: ET.Element,
        read: bool = False,
        accepted: tuple = (CODE_OK,)
    ) -> ET.Element:
        """
        Send a command and return its ``result`` element.

        Raises:
            APIError subclass when the result code is not in ``accepted``
        """
        body = self._build_command(command, data)
        logger.debug(f"Oxxa command: {command}")
        if read:
            text = await self.transport.read_text("POST", "/command.php", content=body)
        else:
            text = await self.transport.request_text("POST", "/command.php", content=body)

        root = parse_xml(text, "Oxxa")
        result = find_local(root, "result")
        code = result.get("code") if result is not None else None
        if code not in accepted:
            message = child_text(result, "msg") or f"{command} failed"
            error_cls = ERROR_TYPES.get(code or "", ValidationError)
            raise error_cls(message, error_code=code)
        return result

    @staticmethod
    def _domain(domain_name: str, **fields: Any) -> ET.Element:
        element = ET.Element("domain")
        element.text = domain_name
        for key, value in fields.items():
            if value is not None:
                sub_element(element, key, value)
        return element

    @staticmethod
    def _contact(role: str, contact: ContactInformation) -> ET.Element:
        return element_from_dict(role, {
            "firstname": contact.first_name,
            "lastname": contact.last_name,
            "organization": contact.organization or "",
            "email": contact.email,
            "phone": contact.phone,
            "address1": contact.address1,
            "address2": contact.address2 or "",
            "city": contact.city,
            "state": contact.state,
            "postalcode": contact.postal_code,
            "country": contact.country
        })

    @staticmethod
    def _record(record: DnsRecordModel, with_id: bool = False) -> ET.Element:
        element = ET.Element("record")
        if with_id and record.id is not None:
            element.set("id", str(record.id))
        sub_element(element, "name", record.name)
        sub_element(element, "type", record.type)
        sub_element(element, "content", record.value)
        sub_element(element, "ttl", record.ttl)
        if record.priority is not None:
            sub_element(element, "priority", record.priority)
        return element

    @staticmethod
    def _add_nameservers(element: ET.Element, nameservers: List[str]) -> None:
        wrapper = sub_element(element, "nameservers")
        for ns in nameservers:
            sub_element(wrapper, "ns", ns)

    def _add_contacts(self, element: ET.Element, contacts: Dict[str, ContactInformation]) -> None:
        for role, contact in contacts.items():
            element.append(self._contact(role, contact))

    # ------------------------------------------------------------------
    # Registrar
    # ------------------------------------------------------------------

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        try:
            result = await self._command(
                "CheckDomain",
                self._domain(domain_name),
                read=True,
                accepted=(CODE_OK, CODE_AVAILABLE, "211")
            )
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        available = result.get("code") == CODE_AVAILABLE
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            message=child_text(result, "msg") or ("Domain is available" if available else "Domain is not available")
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain: {domain_name} for {request.years} year(s)")

        data = self._domain(domain_name, period=request.years)
        if request.nameservers:
            self._add_nameservers(data, request.nameservers)
        self._add_contacts(data, request.role_contacts())
        sub_element(data, "autorenew", flag(request.auto_renew))
        sub_element(data, "privacy", flag(request.privacy_protection))

        try:
            result = await self._command("CreateDomain", data, accepted=(CODE_OK, CODE_CREATED))
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully via Oxxa",
            order_id=child_text(result, "order-id"),
            registration_date=now,
            expiration_date=parse_datetime(child_text(result, "expiry-date")) or add_years(now, request.years)
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        data = self._domain(
            domain_name,
            period=request.years,
            currentexpirationyear=request.current_expiration_year or utc_now().year
        )
        try:
            result = await self._command("RenewDomain", data)
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully via Oxxa",
            order_id=child_text(result, "order-id"),
            new_expiration_date=parse_datetime(child_text(result, "expiry-date"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        data = self._domain(domain_name, authcode=request.auth_code)
        self._add_contacts(data, request.role_contacts())
        sub_element(data, "autorenew", flag(request.auto_renew))
        sub_element(data, "privacy", flag(request.privacy_protection))

        try:
            result = await self._command("TransferDomain", data, accepted=(CODE_OK, CODE_CREATED))
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated via Oxxa",
            order_id=child_text(result, "order-id"),
            transfer_status=child_text(result, "status", "Pending")
        )

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        try:
            result = await self._command("QueryDNS", self._domain(domain_name), read=True)
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        records = []
        for element in iter_local(result, "record"):
            record_id = element.get("id")
            records.append(DnsRecordModel(
                id=parse_int(record_id) if parse_int(record_id) is not None else record_id,
                name=child_text(element, "name", ""),
                type=child_text(element, "type", ""),
                value=child_text(element, "content", ""),
                ttl=parse_int(child_text(element, "ttl")) or 3600,
                priority=parse_int(child_text(element, "priority"))
            ))
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(zone, "zone")

        data = self._domain(domain_name)
        records = sub_element(data, "records")
        for record in zone.records:
            records.append(self._record(record))

        try:
            await self._command("ModifyDNS", data)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message="DNS zone updated successfully",
            applied_records=len(zone.records)
        )

    async def _record_command(self, command: str, domain_name: str, data: ET.Element, message: str, context: str) -> DnsUpdateResult:
        try:
            await self._command(command, data)
        except APIError as e:
            return failure_result(DnsUpdateResult, context, e, domain_name=domain_name)
        return DnsUpdateResult(success=True, domain_name=domain_name, message=message, applied_records=1)

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        data = self._domain(domain_name)
        data.append(self._record(record))
        return await self._record_command(
            "AddDNSRecord", domain_name, data, "DNS record added successfully", "Error adding DNS record"
        )

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        require(record.id, "record.id")
        data = self._domain(domain_name)
        data.append(self._record(record, with_id=True))
        return await self._record_command(
            "ModifyDNSRecord", domain_name, data, "DNS record updated successfully", "Error updating DNS record"
        )

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record_id, "record_id")
        data = self._domain(domain_name)
        sub_element(data, "record-id", record_id)
        return await self._record_command(
            "DeleteDNSRecord", domain_name, data, "DNS record deleted successfully", "Error deleting DNS record"
        )

    # ------------------------------------------------------------------
    # Domain settings
    # ------------------------------------------------------------------

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        try:
            result = await self._command("QueryDomain", self._domain(domain_name), read=True)
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        domain = child_local(result, "domain")
        raw_status = child_text(domain, "status", "active")
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=normalize_status(raw_status),
            raw_status=raw_status,
            registration_date=parse_datetime(child_text(domain, "create-date")),
            expiration_date=parse_datetime(child_text(domain, "expiry-date")),
            auto_renew=child_text(domain, "autorenew") == "1",
            privacy_protection=child_text(domain, "privacy") == "1",
            locked=child_text(domain, "lock") == "1",
            nameservers=texts_of(child_local(domain, "nameservers"), "ns")
        )

    async def _modify(self, command: str, data: ET.Element, domain_name: str, message: str, context: str) -> DomainUpdateResult:
        try:
            await self._command(command, data)
        except APIError as e:
            return failure_result(DomainUpdateResult, context, e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message=message)

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")
        data = self._domain(domain_name)
        self._add_nameservers(data, nameservers)
        return await self._modify(
            "ModifyNS", data, domain_name, "Nameservers updated successfully", "Error updating nameservers"
        )

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        return await self._modify(
            "ModifyPrivacy",
            self._domain(domain_name, privacy=flag(enable)),
            domain_name,
            f"Privacy protection {'enabled' if enable else 'disabled'} successfully",
            "Error setting privacy protection"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        return await self._modify(
            "ModifyAutoRenew",
            self._domain(domain_name, autorenew=flag(enable)),
            domain_name,
            f"Auto-renew {'enabled' if enable else 'disabled'} successfully",
            "Error setting auto-renew"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        result = await self._command("GetTldList", ET.Element("request"), read=True)
        tlds = []
        for element in iter_local(result, "tld"):
            name = child_text(element, "name")
            if not name:
                continue
            tlds.append(TldInfo(
                name=name,
                currency=child_text(element, "currency", "EUR"),
                registration_price=parse_decimal(child_text(element, "register-price")),
                renewal_price=parse_decimal(child_text(element, "renew-price")),
                transfer_price=parse_decimal(child_text(element, "transfer-price")),
                min_registration_years=parse_int(child_text(element, "min-period")),
                max_registration_years=parse_int(child_text(element, "max-period")),
                type=child_text(element, "type"),
                supports_privacy=child_text(element, "privacy") == "1",
                supports_dnssec=child_text(element, "dnssec") == "1"
            ))
        return tlds
