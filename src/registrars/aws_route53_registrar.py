"""
AWS Route 53 Registrar
Route 53 Domains for registration, Route 53 hosted zones for DNS.
boto3 is synchronous, so every call runs on a worker thread.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

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
from src.registrars.exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    DomainNotFoundError,
    NetworkError,
    RateLimitError,
    RETRYABLE_ERRORS,
    ServerError,
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
from src.utils.logger import get_logger


logger = get_logger(__name__)

# Route 53 Domains only exists in us-east-1
DOMAINS_REGION = "us-east-1"

ERROR_TYPES = {
    "AccessDenied": AuthenticationError,
    "AccessDeniedException": AuthenticationError,
    "UnrecognizedClientException": AuthenticationError,
    "InvalidClientTokenId": AuthenticationError,
    "InvalidSignatureException": AuthenticationError,
    "InvalidInput": ValidationError,
    "InvalidChangeBatch": ValidationError,
    "ValidationException": ValidationError,
    "UnsupportedTLD": ValidationError,
    "TLDRulesViolation": ValidationError,
    "DomainLimitExceeded": ConflictError,
    "DuplicateRequest": ConflictError,
    "NoSuchHostedZone": DomainNotFoundError,
    "Throttling": RateLimitError,
    "ThrottlingException": RateLimitError,
    "OperationLimitExceeded": RateLimitError,
    "PriorRequestNotComplete": RateLimitError,
    "ServiceUnavailable": ServerError,
    "InternalFailure": ServerError,
}

# Record types whose first value token is the priority
PRIORITY_TYPES = ("MX", "SRV")

RecordKey = Tuple[str, str]


def translate_client_error(error: ClientError) -> APIError:
    """Map a botocore ClientError onto the adapter exception hierarchy"""
    details = error.response.get("Error", {})
    code = details.get("Code") or "ClientError"
    message = details.get("Message") or str(error)
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    error_cls = ERROR_TYPES.get(code)
    if error_cls is None:
        error_cls = ServerError if status and status >= 500 else ValidationError
    return error_cls(message, status_code=status, error_code=code, response_data={"code": code})


class AwsRoute53Registrar(BaseRegistrar):
    """
    AWS adapter.

    Route 53 stores DNS as record sets (one name/type with several values)
    and has no record ids, so records get positional ids when read and
    every record change is written as a single atomic change batch.
    """

    provider_code = "AWS"

    def __init__(
        self,
        access_key_id: str,
        secret_access_key: str,
        region: str = "us-east-1",
        retry_attempts: int = 3,
        retry_wait_min: float = 2.0,
        retry_wait_max: float = 10.0
    ):
        super().__init__(use_live=True)
        self.region = region
        self.retry_attempts = retry_attempts
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max

        self.domains_client = boto3.client(
            "route53domains",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=DOMAINS_REGION
        )
        self.route53_client = boto3.client(
            "route53",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region
        )
        self._zone_ids: Dict[str, str] = {}
        logger.info(f"AWS Route53 Registrar initialized (Region: {self.region})")

    def get_provider_name(self) -> str:
        return "AWS Route53"

    def get_environment(self) -> str:
        return "PRODUCTION"

    async def aclose(self) -> None:
        for client in (self.domains_client, self.route53_client):
            close = getattr(client, "close", None)
            if callable(close):
                close()

    # ------------------------------------------------------------------
    # boto3 plumbing
    # ------------------------------------------------------------------

    async def _call(self, client: Any, operation: str, read: bool = False, **kwargs) -> Dict[str, Any]:
        """
        Run a boto3 operation off the event loop.

        Read-only calls are retried on throttling and server errors; billed
        operations run exactly once.
        """
        method: Callable[..., Dict[str, Any]] = getattr(client, operation)
        logger.debug(f"AWS: {operation}")

        async def invoke() -> Dict[str, Any]:
            try:
                return await asyncio.to_thread(method, **kwargs)
            except ClientError as e:
                raise translate_client_error(e)
            except BotoCoreError as e:
                raise NetworkError(f"AWS request failed: {e}")

        if not read:
            return await invoke()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True
        ):
            with attempt:
                return await invoke()

    async def _hosted_zone_id(self, domain_name: str) -> str:
        """Find the hosted zone of a domain (cached per adapter)"""
        if domain_name in self._zone_ids:
            return self._zone_ids[domain_name]

        response = await self._call(self.route53_client, "list_hosted_zones_by_name", read=True, DNSName=domain_name)
        for zone in response.get("HostedZones", []):
            # AWS returns names with trailing dot
            if zone["Name"].rstrip(".") == domain_name:
                logger.info(f"Found hosted zone for {domain_name}: {zone['Id']}")
                self._zone_ids[domain_name] = zone["Id"]
                return zone["Id"]
        raise DomainNotFoundError(f"No hosted zone found for domain: {domain_name}", error_code="NoSuchHostedZone")

    @staticmethod
    def _map_contact(contact: ContactInformation) -> Dict[str, Any]:
        """AWS ContactDetail structure"""
        detail = {
            "FirstName": contact.first_name,
            "LastName": contact.last_name,
            "ContactType": contact.contact_type,
            "AddressLine1": contact.address1,
            "City": contact.city,
            "State": contact.state,
            "CountryCode": contact.country,
            "ZipCode": contact.postal_code,
            "PhoneNumber": contact.phone,
            "Email": contact.email
        }
        if contact.organization:
            detail["OrganizationName"] = contact.organization
        if contact.address2:
            detail["AddressLine2"] = contact.address2
        if contact.fax:
            detail["Fax"] = contact.fax
        return detail

    @staticmethod
    def _parse_contact(data: Dict[str, Any]) -> Optional[ContactInformation]:
        try:
            return ContactInformation(
                contact_type=data.get("ContactType", "PERSON"),
                first_name=data.get("FirstName", ""),
                last_name=data.get("LastName", ""),
                organization=data.get("OrganizationName"),
                email=data.get("Email", ""),
                phone=data.get("PhoneNumber", ""),
                fax=data.get("Fax"),
                address1=data.get("AddressLine1", ""),
                address2=data.get("AddressLine2"),
                city=data.get("City", ""),
                state=data.get("State", ""),
                postal_code=data.get("ZipCode", ""),
                country=data.get("CountryCode", "")
            )
        except ValueError:
            return None

    def _contact_params(self, contacts: Dict[str, ContactInformation], privacy: bool) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for role, prefix in (("admin", "Admin"), ("registrant", "Registrant"), ("tech", "Tech"), ("billing", "Billing")):
            contact = contacts.get(role)
            if contact is None:
                continue
            params[f"{prefix}Contact"] = self._map_contact(contact)
            params[f"PrivacyProtect{prefix}Contact"] = privacy
        return params

    # ------------------------------------------------------------------
    # Registrar
    # ------------------------------------------------------------------

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking AWS domain availability: {domain_name}")

        try:
            response = await self._call(
                self.domains_client, "check_domain_availability", read=True, DomainName=domain_name
            )
        except APIError as e:
            if e.error_code == "UnsupportedTLD":
                return DomainAvailabilityResult(
                    success=True,
                    domain_name=domain_name,
                    is_available=False,
                    is_tld_supported=False,
                    message=f"TLD is not supported by AWS: {e.message}"
                )
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        availability = response.get("Availability", "")
        logger.info(f"Domain {domain_name} status: {availability}")
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=availability == "AVAILABLE",
            is_premium=availability == "UNAVAILABLE_PREMIUM",
            message=f"Availability: {availability}"
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain on AWS: {domain_name} for {request.years} year(s)")
        if request.nameservers:
            logger.warning("AWS assigns Route 53 nameservers at registration; requested nameservers are not sent")

        try:
            response = await self._call(
                self.domains_client,
                "register_domain",
                DomainName=domain_name,
                DurationInYears=request.years,
                AutoRenew=request.auto_renew,
                **self._contact_params(request.role_contacts(), request.privacy_protection)
            )
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        operation_id = response.get("OperationId")
        logger.info(f"Registration request submitted. Operation ID: {operation_id}")
        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registration submitted to AWS",
            order_id=operation_id,
            registration_date=now,
            expiration_date=add_years(now, request.years)
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        """Renewal needs the current expiry year; it is looked up when the request omits it"""
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        try:
            expiry_year = request.current_expiration_year
            if expiry_year is None:
                detail = await self._call(self.domains_client, "get_domain_detail", read=True, DomainName=domain_name)
                expiry = parse_datetime(detail.get("ExpirationDate"))
                if expiry is None:
                    raise ValidationError("AWS did not report an expiration date", error_code="InvalidInput")
                expiry_year = expiry.year

            response = await self._call(
                self.domains_client,
                "renew_domain",
                DomainName=domain_name,
                DurationInYears=request.years,
                CurrentExpiryYear=expiry_year
            )
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewal submitted to AWS",
            order_id=response.get("OperationId")
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)

        contacts = request.role_contacts()
        if not contacts:
            return failure_result(
                DomainTransferResult,
                "Error transferring domain",
                ValidationError("AWS transfers require a registrant contact", error_code="InvalidInput"),
                domain_name=domain_name
            )

        try:
            response = await self._call(
                self.domains_client,
                "transfer_domain",
                DomainName=domain_name,
                DurationInYears=request.years,
                AuthCode=request.auth_code,
                AutoRenew=request.auto_renew,
                **self._contact_params(contacts, request.privacy_protection)
            )
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer submitted to AWS",
            order_id=response.get("OperationId"),
            transfer_status="Pending"
        )

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    @staticmethod
    def _relative_name(fqdn: str, domain_name: str) -> str:
        name = fqdn.rstrip(".").replace("\\052", "*")
        if name == domain_name:
            return "@"
        suffix = f".{domain_name}"
        return name[:-len(suffix)] if name.endswith(suffix) else name

    @staticmethod
    def _absolute_name(name: str, domain_name: str) -> str:
        if name in ("", "@"):
            return f"{domain_name}."
        name = name.rstrip(".")
        if name == domain_name or name.endswith(f".{domain_name}"):
            return f"{name}."
        return f"{name}.{domain_name}."

    @staticmethod
    def _parse_value(record_type: str, raw: str) -> Tuple[str, Optional[int]]:
        if record_type in PRIORITY_TYPES:
            head, _, rest = raw.partition(" ")
            if head.isdigit() and rest:
                return rest, int(head)
        if record_type == "TXT" and len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
            return raw[1:-1], None
        return raw, None

    @staticmethod
    def _format_value(record: DnsRecordModel) -> str:
        if record.type in PRIORITY_TYPES and record.priority is not None:
            return f"{record.priority} {record.value}"
        if record.type == "TXT" and not record.value.startswith('"'):
            return f'"{record.value}"'
        return record.value

    async def _list_records(self, domain_name: str) -> List[DnsRecordModel]:
        zone_id = await self._hosted_zone_id(domain_name)
        params: Dict[str, Any] = {"HostedZoneId": zone_id}
        records: List[DnsRecordModel] = []
        while True:
            response = await self._call(self.route53_client, "list_resource_record_sets", read=True, **params)
            for record_set in response.get("ResourceRecordSets", []):
                record_type = record_set["Type"]
                name = self._relative_name(record_set["Name"], domain_name)
                alias = record_set.get("AliasTarget")
                if alias:
                    records.append(DnsRecordModel(
                        name=name, type=record_type, value=alias.get("DNSName", "").rstrip("."), ttl=60
                    ))
                    continue
                for item in record_set.get("ResourceRecords", []):
                    value, priority = self._parse_value(record_type, item.get("Value", ""))
                    records.append(DnsRecordModel(
                        name=name,
                        type=record_type,
                        value=value,
                        ttl=record_set.get("TTL", 3600),
                        priority=priority
                    ))
            if not response.get("IsTruncated"):
                break
            params["StartRecordName"] = response.get("NextRecordName")
            params["StartRecordType"] = response.get("NextRecordType")
        return number_records(records)

    def _record_sets(self, records: List[DnsRecordModel], domain_name: str) -> Dict[RecordKey, Dict[str, Any]]:
        """Group records into Route 53 record sets keyed by (fqdn, type)"""
        sets: Dict[RecordKey, Dict[str, Any]] = {}
        for record in records:
            fqdn = self._absolute_name(record.name, domain_name)
            record_set = sets.setdefault((fqdn, record.type), {
                "Name": fqdn,
                "Type": record.type,
                "TTL": record.ttl,
                "ResourceRecords": []
            })
            record_set["ResourceRecords"].append({"Value": self._format_value(record)})
        return sets

    async def _change(self, domain_name: str, changes: List[Dict[str, Any]], comment: str) -> None:
        zone_id = await self._hosted_zone_id(domain_name)
        await self._call(
            self.route53_client,
            "change_resource_record_sets",
            HostedZoneId=zone_id,
            ChangeBatch={"Comment": comment, "Changes": changes}
        )

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        try:
            records = await self._list_records(domain_name)
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        nameservers = [r.value for r in records if r.type == "NS" and r.name == "@"]
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records, nameservers=nameservers)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        """UPSERT every record set in the zone; sets not mentioned are left alone"""
        domain_name = require_domain(domain_name)
        require(zone, "zone")

        changes = [
            {"Action": "UPSERT", "ResourceRecordSet": record_set}
            for record_set in self._record_sets(zone.records, domain_name).values()
        ]
        if not changes:
            return DnsUpdateResult(success=True, domain_name=domain_name, message="No DNS records to update")

        try:
            await self._change(domain_name, changes, f"Update DNS zone for {domain_name}")
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

        return DnsUpdateResult(
            success=True,
            domain_name=domain_name,
            message="DNS zone updated successfully",
            applied_records=len(zone.records)
        )

    async def _apply_record_change(
        self,
        domain_name: str,
        change: Callable[[List[DnsRecordModel]], List[DnsRecordModel]],
        comment: str,
        success_message: str,
        context: str
    ) -> DnsUpdateResult:
        """
        Apply a record-level change as one change batch.

        Record sets touched by the change are rewritten (UPSERT) or removed
        (DELETE with their previous contents).
        """
        domain_name = require_domain(domain_name)
        try:
            current = await self._list_records(domain_name)
            before = self._record_sets(current, domain_name)
            after = self._record_sets(change(current), domain_name)

            changes = []
            for key in list(before) + [k for k in after if k not in before]:
                if key in after and after[key] != before.get(key):
                    changes.append({"Action": "UPSERT", "ResourceRecordSet": after[key]})
                elif key not in after:
                    changes.append({"Action": "DELETE", "ResourceRecordSet": before[key]})

            if changes:
                await self._change(domain_name, changes, comment)
        except APIError as e:
            return failure_result(DnsUpdateResult, context, e, domain_name=domain_name)

        return DnsUpdateResult(success=True, domain_name=domain_name, message=success_message, applied_records=1)

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        require(record, "record")
        return await self._apply_record_change(
            domain_name, append_record(record), "Add DNS record", "DNS record added successfully", "Error adding DNS record"
        )

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        require(record, "record")
        require(record.id, "record.id")
        return await self._apply_record_change(
            domain_name, replace_record(record), "Update DNS record", "DNS record updated successfully", "Error updating DNS record"
        )

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        require(record_id, "record_id")
        return await self._apply_record_change(
            domain_name, remove_record(record_id), "Delete DNS record", "DNS record deleted successfully", "Error deleting DNS record"
        )

    # ------------------------------------------------------------------
    # Domain settings
    # ------------------------------------------------------------------

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        try:
            detail = await self._call(self.domains_client, "get_domain_detail", read=True, DomainName=domain_name)
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        status_list = detail.get("StatusList") or []
        statuses = [normalize_status(s) for s in status_list]
        status = next((s for s in statuses if s not in ("ACTIVE", "UNKNOWN")), "ACTIVE")
        registrant = detail.get("RegistrantContact")
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=status,
            raw_status=",".join(status_list) or None,
            registration_date=parse_datetime(detail.get("CreationDate")),
            expiration_date=parse_datetime(detail.get("ExpirationDate")),
            updated_date=parse_datetime(detail.get("UpdatedDate")),
            auto_renew=bool(detail.get("AutoRenew")),
            privacy_protection=bool(detail.get("RegistrantPrivacy")),
            locked="clientTransferProhibited" in status_list,
            nameservers=[ns["Name"] for ns in detail.get("Nameservers", []) if ns.get("Name")],
            registrant_contact=self._parse_contact(registrant) if registrant else None
        )

    async def _update(self, domain_name: str, operation: str, message: str, context: str, **kwargs) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        try:
            await self._call(self.domains_client, operation, DomainName=domain_name, **kwargs)
        except APIError as e:
            return failure_result(DomainUpdateResult, context, e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message=message)

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        require(nameservers, "nameservers")
        return await self._update(
            domain_name,
            "update_domain_nameservers",
            "Nameservers updated successfully",
            "Error updating nameservers",
            Nameservers=[{"Name": ns} for ns in nameservers]
        )

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._update(
            domain_name,
            "update_domain_contact_privacy",
            f"Privacy protection {'enabled' if enable else 'disabled'} successfully",
            "Error setting privacy protection",
            AdminPrivacy=enable,
            RegistrantPrivacy=enable,
            TechPrivacy=enable,
            BillingPrivacy=enable
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._update(
            domain_name,
            "enable_domain_auto_renew" if enable else "disable_domain_auto_renew",
            f"Auto-renew {'enabled' if enable else 'disabled'} successfully",
            "Error setting auto-renew"
        )

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        tlds: List[TldInfo] = []
        params: Dict[str, Any] = {}
        while True:
            response = await self._call(self.domains_client, "list_prices", read=True, **params)
            for price in response.get("Prices", []):
                registration = price.get("RegistrationPrice") or {}
                tlds.append(TldInfo(
                    name=price["Name"],
                    currency=registration.get("Currency", "USD"),
                    registration_price=parse_decimal(registration.get("Price")),
                    renewal_price=parse_decimal((price.get("RenewalPrice") or {}).get("Price")),
                    transfer_price=parse_decimal((price.get("TransferPrice") or {}).get("Price"))
                ))
            marker = response.get("NextPageMarker")
            if not marker:
                return tlds
            params["Marker"] = marker

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        domains: List[RegisteredDomainInfo] = []
        params: Dict[str, Any] = {}
        try:
            while True:
                response = await self._call(self.domains_client, "list_domains", read=True, **params)
                for item in response.get("Domains", []):
                    expiry = parse_datetime(item.get("Expiry"))
                    domains.append(RegisteredDomainInfo(
                        domain_name=item["DomainName"],
                        status="EXPIRED" if expiry is not None and expiry < utc_now() else "ACTIVE",
                        expiration_date=expiry,
                        auto_renew=bool(item.get("AutoRenew")),
                        locked=bool(item.get("TransferLock"))
                    ))
                marker = response.get("NextPageMarker")
                if not marker:
                    break
                params["Marker"] = marker
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        return RegisteredDomainsResult(
            success=True,
            message=f"Retrieved {len(domains)} domains",
            domains=domains,
            total_count=len(domains)
        )
