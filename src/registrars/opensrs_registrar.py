"""
OpenSRS Registrar
XCP protocol: OPS_envelope XML documents POSTed with an MD5 signature header
"""

import hashlib
import secrets
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, List, Optional

from src.registrars.base_registrar import (
    BaseRegistrar,
    add_years,
    append_record,
    failure_result,
    parse_datetime,
    parse_int,
    remove_record,
    replace_record,
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
    RegisteredDomainInfo,
    RegisteredDomainsResult,
    TldInfo
)
from src.registrars.transport import HttpTransport
from src.registrars.xml_utils import child_local, local_name, parse_xml, sub_element, to_string
from src.utils.logger import get_logger
from src.utils.validators import DomainValidator


logger = get_logger(__name__)

LIVE_URL = "https://rr-n1-tor.opensrs.net:55443"
TEST_URL = "https://horizon.opensrs.net:55443"

CODE_AVAILABLE = "210"
CODE_TAKEN = "211"

ERROR_TYPES = {
    "415": AuthenticationError,
    "465": DomainNotFoundError,
}

CONTACT_ROLES = {"registrant": "owner", "admin": "admin", "tech": "tech", "billing": "billing"}

# record type -> (value field, extra fields) in OpenSRS zone documents
DNS_FIELDS = {
    "A": "ip_address",
    "AAAA": "ipv6_address",
    "CNAME": "hostname",
    "MX": "hostname",
    "TXT": "text",
    "SRV": "hostname",
}


def opensrs_signature(xml: str, api_key: str) -> str:
    """md5(md5(xml + key) + key), lowercase hex"""
    inner = hashlib.md5((xml + api_key).encode("utf-8")).hexdigest()
    return hashlib.md5((inner + api_key).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# XCP data encoding
# ---------------------------------------------------------------------------

def encode_value(parent: ET.Element, value: Any) -> None:
    """Encode dicts as dt_assoc, lists as dt_array and scalars as text"""
    if isinstance(value, dict):
        assoc = sub_element(parent, "dt_assoc")
        for key, item in value.items():
            if item is not None:
                encode_value(sub_element(assoc, "item", key=key), item)
    elif isinstance(value, (list, tuple)):
        array = sub_element(parent, "dt_array")
        for index, item in enumerate(value):
            encode_value(sub_element(array, "item", key=str(index)), item)
    elif isinstance(value, bool):
        parent.text = "1" if value else "0"
    else:
        parent.text = str(value)


def decode_value(element: ET.Element) -> Any:
    """Inverse of ``encode_value`` for one ``item`` (or data) element"""
    container = next(iter(element), None)
    if container is None:
        return (element.text or "").strip()
    if local_name(container.tag) == "dt_assoc":
        return {item.get("key"): decode_value(item) for item in container if local_name(item.tag) == "item"}
    if local_name(container.tag) == "dt_array":
        return [decode_value(item) for item in container if local_name(item.tag) == "item"]
    return (element.text or "").strip()


def build_envelope(action: str, attributes: Dict[str, Any], obj: str = "DOMAIN") -> str:
    envelope = ET.Element("OPS_envelope")
    header = sub_element(envelope, "header")
    sub_element(header, "version", "0.9")
    data_block = sub_element(sub_element(envelope, "body"), "data_block")
    encode_value(data_block, {
        "protocol": "XCP",
        "action": action,
        "object": obj,
        "attributes": attributes
    })
    return (
        "<?xml version='1.0' encoding='UTF-8' standalone='no' ?>"
        "<!DOCTYPE OPS_envelope SYSTEM 'ops.dtd'>"
        + to_string(envelope)
    )


def parse_envelope(text: str) -> Dict[str, Any]:
    root = parse_xml(text, "OpenSRS")
    body = child_local(root, "body")
    data_block = child_local(body, "data_block")
    if data_block is None:
        raise ValidationError("OpenSRS response has no data_block")
    data = decode_value(data_block)
    return data if isinstance(data, dict) else {}


class OpenSrsRegistrar(BaseRegistrar):
    """
    OpenSRS (Tucows) adapter.

    Zones are read and written whole (GET_DNS_ZONE / SET_DNS_ZONE); the
    supported TLD list comes from configuration.
    """

    provider_code = "OPENSRS"

    def __init__(
        self,
        username: str,
        api_key: str,
        domain: str = "",
        use_live: bool = False,
        tlds: Optional[Iterable[str]] = None,
        **transport_options
    ):
        super().__init__(use_live=use_live)
        self.username = username
        self.api_key = api_key
        self.domain = domain
        self.tlds = list(tlds or [])
        self.base_url = LIVE_URL if use_live else TEST_URL
        self.transport = HttpTransport("OpenSRS", self.base_url, **transport_options)
        logger.info(f"OpenSRS Registrar initialized - Environment: {self.get_environment()}")

    def get_provider_name(self) -> str:
        return "OpenSRS"

    async def _call(self, action: str, attributes: Dict[str, Any], read: bool = False) -> Dict[str, Any]:
        """
        Send one XCP request and return the decoded response.

        Raises:
            APIError subclass when ``is_success`` is not 1
        """
        xml = build_envelope(action, attributes)
        headers = {
            "Content-Type": "text/xml",
            "X-Username": self.username,
            "X-Signature": opensrs_signature(xml, self.api_key)
        }
        logger.debug(f"OpenSRS action: {action}")
        if read:
            text = await self.transport.read_text("POST", "/", content=xml, headers=headers)
        else:
            text = await self.transport.request_text("POST", "/", content=xml, headers=headers)

        response = parse_envelope(text)
        if str(response.get("is_success", "0")) != "1":
            code = str(response.get("response_code") or "")
            error_cls = ERROR_TYPES.get(code, ValidationError)
            raise error_cls(
                response.get("response_text") or f"{action} failed",
                error_code=code or None,
                response_data=response
            )
        return response

    @staticmethod
    def _attributes(response: Dict[str, Any]) -> Dict[str, Any]:
        attributes = response.get("attributes")
        return attributes if isinstance(attributes, dict) else {}

    @staticmethod
    def _map_contact(contact: ContactInformation) -> Dict[str, Any]:
        return {
            "first_name": contact.first_name,
            "last_name": contact.last_name,
            "org_name": contact.organization or contact.full_name,
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

    def _contact_set(self, contacts: Dict[str, ContactInformation]) -> Dict[str, Any]:
        return {CONTACT_ROLES[role]: self._map_contact(c) for role, c in contacts.items()}

    @staticmethod
    def _nameserver_list(nameservers: List[str]) -> List[Dict[str, Any]]:
        return [{"name": ns, "sortorder": index} for index, ns in enumerate(nameservers, start=1)]

    def _sw_register(self, domain_name: str, reg_type: str, years: int, auto_renew: bool, privacy: bool) -> Dict[str, Any]:
        sld, _ = DomainValidator.split_domain(domain_name)
        return {
            "domain": domain_name,
            "reg_type": reg_type,
            "period": years,
            "handle": "process",
            "auto_renew": auto_renew,
            "f_whois_privacy": privacy,
            "reg_username": sld[:20],
            "reg_password": secrets.token_hex(8)
        }

    # ------------------------------------------------------------------
    # Registrar
    # ------------------------------------------------------------------

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        try:
            response = await self._call("LOOKUP", {"domain": domain_name}, read=True)
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        code = str(response.get("response_code"))
        status = str(self._attributes(response).get("status", "")).lower()
        available = code == CODE_AVAILABLE or status == "available"
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            message="Domain is available" if available else "Domain is not available"
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain: {domain_name} for {request.years} year(s)")

        attributes = self._sw_register(
            domain_name, "new", request.years, request.auto_renew, request.privacy_protection
        )
        attributes["contact_set"] = self._contact_set(request.role_contacts())
        if request.nameservers:
            attributes["custom_nameservers"] = 1
            attributes["nameserver_list"] = self._nameserver_list(request.nameservers)

        try:
            response = await self._call("SW_REGISTER", attributes)
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        attrs = self._attributes(response)
        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully via OpenSRS",
            order_id=attrs.get("id"),
            transaction_id=attrs.get("transaction_id"),
            registration_date=now,
            expiration_date=add_years(now, request.years)
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        attributes = {
            "domain": domain_name,
            "period": request.years,
            "currentexpirationyear": request.current_expiration_year or utc_now().year,
            "handle": "process",
            "auto_renew": 0
        }
        try:
            response = await self._call("RENEW", attributes)
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        attrs = self._attributes(response)
        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully via OpenSRS",
            order_id=attrs.get("order_id"),
            new_expiration_date=parse_datetime(attrs.get("registration expiration date"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        attributes = self._sw_register(
            domain_name, "transfer", request.years, request.auto_renew, request.privacy_protection
        )
        attributes["auth_info"] = request.auth_code
        contacts = request.role_contacts()
        if contacts:
            attributes["contact_set"] = self._contact_set(contacts)

        try:
            response = await self._call("SW_REGISTER", attributes)
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        attrs = self._attributes(response)
        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated via OpenSRS",
            order_id=attrs.get("id"),
            transfer_status="Pending"
        )

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        """Records come grouped by type; they are flattened and numbered by position"""
        domain_name = require_domain(domain_name)
        try:
            response = await self._call("GET_DNS_ZONE", {"domain": domain_name}, read=True)
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        grouped = self._attributes(response).get("records") or {}
        records = []
        for record_type, items in grouped.items():
            field = DNS_FIELDS.get(record_type.upper())
            if field is None or not isinstance(items, list):
                continue
            for item in items:
                records.append(DnsRecordModel(
                    id=len(records) + 1,
                    name=item.get("subdomain") or "@",
                    type=record_type,
                    value=item.get(field, ""),
                    ttl=parse_int(item.get("ttl")) or 3600,
                    priority=parse_int(item.get("priority"))
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

        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for record in zone.records:
            field = DNS_FIELDS.get(record.type)
            if field is None:
                return failure_result(
                    DnsUpdateResult,
                    "Error updating DNS zone",
                    ValidationError(f"OpenSRS does not support {record.type} records"),
                    domain_name=domain_name
                )
            item: Dict[str, Any] = {
                "subdomain": "" if record.name == "@" else record.name,
                field: record.value,
                "ttl": record.ttl
            }
            if record.priority is not None:
                item["priority"] = record.priority
            grouped.setdefault(record.type, []).append(item)

        try:
            await self._call("SET_DNS_ZONE", {"domain": domain_name, "records": grouped})
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

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
            response = await self._call("GET", {"domain": domain_name, "type": "all_info"}, read=True)
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        attrs = self._attributes(response)
        expires = parse_datetime(attrs.get("expiredate"))
        status = "EXPIRED" if expires is not None and expires < utc_now() else "ACTIVE"
        nameservers = [ns.get("name") for ns in attrs.get("nameserver_list") or [] if isinstance(ns, dict)]
        owner = (attrs.get("contact_set") or {}).get("owner")
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=status,
            raw_status=attrs.get("status") or status.lower(),
            registration_date=parse_datetime(attrs.get("registry_createdate")),
            expiration_date=expires,
            updated_date=parse_datetime(attrs.get("registry_updatedate")),
            auto_renew=str(attrs.get("auto_renew", "0")) == "1",
            privacy_protection=str(attrs.get("whois_privacy_state", "")).lower() == "enabled",
            locked=str(attrs.get("lock_state", "0")) == "1",
            nameservers=[ns for ns in nameservers if ns],
            registrant_contact=self._parse_contact(owner) if isinstance(owner, dict) else None
        )

    @staticmethod
    def _parse_contact(data: Dict[str, Any]) -> Optional[ContactInformation]:
        try:
            return ContactInformation(
                first_name=data.get("first_name", ""),
                last_name=data.get("last_name", ""),
                organization=data.get("org_name") or None,
                email=data.get("email", ""),
                phone=data.get("phone", ""),
                fax=data.get("fax") or None,
                address1=data.get("address1", ""),
                address2=data.get("address2") or None,
                city=data.get("city", ""),
                state=data.get("state", ""),
                postal_code=data.get("postal_code", ""),
                country=data.get("country", "")
            )
        except ValueError:
            return None

    async def _modify(self, domain_name: str, data: str, message: str, context: str, **fields: Any) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        attributes = {"domain": domain_name, "affect_domains": 0, "data": data, **fields}
        try:
            await self._call("MODIFY", attributes)
        except APIError as e:
            return failure_result(DomainUpdateResult, context, e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message=message)

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        require(nameservers, "nameservers")
        return await self._modify(
            domain_name,
            "nameserver_list",
            "Nameservers updated successfully",
            "Error updating nameservers",
            nameserver_list=self._nameserver_list(nameservers)
        )

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._modify(
            domain_name,
            "whois_privacy_state",
            f"Privacy protection {'enabled' if enable else 'disabled'} successfully",
            "Error setting privacy protection",
            state="enable" if enable else "disable"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._modify(
            domain_name,
            "expire_action",
            f"Auto-renew {'enabled' if enable else 'disabled'} successfully",
            "Error setting auto-renew",
            auto_renew=enable,
            let_expire=False
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        return [TldInfo(name=tld, currency="USD") for tld in self.tlds]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        attributes = {"exp_from": "1970-01-01", "exp_to": "2199-12-31", "limit": 1000}
        try:
            response = await self._call("GET_DOMAINS_BY_EXPIREDATE", attributes, read=True)
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        now = utc_now()
        domains = []
        for item in self._attributes(response).get("exp_domains") or []:
            expires = parse_datetime(item.get("expiredate"))
            domains.append(RegisteredDomainInfo(
                domain_name=item.get("name", ""),
                status="EXPIRED" if expires is not None and expires < now else "ACTIVE",
                expiration_date=expires,
                auto_renew=str(item.get("f_auto_renew", "N")).upper() in ("Y", "1")
            ))
        total = parse_int(self._attributes(response).get("total"))
        return RegisteredDomainsResult(
            success=True,
            message=f"Retrieved {len(domains)} domains",
            domains=domains,
            total_count=total if total is not None else len(domains)
        )
