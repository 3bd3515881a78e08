"""
Cloudflare Registrar
Registrar endpoints live under the account, DNS records under the zone
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
from src.registrars.exceptions import APIError, DomainNotFoundError, ValidationError
from src.registrars.models import (
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

BASE_URL = "https://api.cloudflare.com/client/v4"


class CloudflareRegistrar(BaseRegistrar):
    """Cloudflare Registrar + DNS adapter (API token auth)"""

    provider_code = "CLOUDFLARE"

    def __init__(self, api_token: str, account_id: str, **transport_options):
        super().__init__(use_live=True)
        self.account_id = account_id
        self.transport = HttpTransport(
            "Cloudflare",
            BASE_URL,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json"
            },
            **transport_options
        )
        self._zone_ids: Dict[str, str] = {}

        logger.info(f"Cloudflare Registrar initialized for account {account_id}")

    @property
    def _registrar_path(self) -> str:
        return f"/accounts/{self.account_id}/registrar"

    async def _result(self, method: str, endpoint: str, read: bool = False, **kwargs) -> Any:
        """
        Call the API and unwrap the ``{"success", "result", "errors"}`` envelope.

        Raises:
            ValidationError: When Cloudflare answers 2xx with ``success: false``
        """
        if read:
            data = await self.transport.read_json(endpoint, **kwargs)
        else:
            data = await self.transport.request_json(method, endpoint, **kwargs)

        if isinstance(data, dict) and data.get("success") is False:
            errors = data.get("errors") or []
            first = errors[0] if errors and isinstance(errors[0], dict) else {}
            raise ValidationError(
                first.get("message", "Cloudflare reported failure"),
                response_data=data,
                error_code=str(first["code"]) if "code" in first else None
            )
        return data.get("result") if isinstance(data, dict) else data

    async def _zone_id(self, domain_name: str) -> str:
        if domain_name in self._zone_ids:
            return self._zone_ids[domain_name]

        zones = await self._result("GET", "/zones", read=True, params={"name": domain_name})
        if not zones:
            raise DomainNotFoundError(f"Zone not found for domain {domain_name}")

        self._zone_ids[domain_name] = zones[0]["id"]
        return self._zone_ids[domain_name]

    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Checking availability for: {domain_name}")

        try:
            result = await self._result(
                "GET", f"{self._registrar_path}/domains/{domain_name}/availability", read=True
            )
        except APIError as e:
            return failure_result(DomainAvailabilityResult, "Error checking availability", e, domain_name=domain_name)

        result = result or {}
        available = bool(result.get("available", False))
        return DomainAvailabilityResult(
            success=True,
            domain_name=domain_name,
            is_available=available,
            is_premium=bool(result.get("premium", False)),
            price=parse_decimal(result.get("price")),
            currency=result.get("currency"),
            message="Domain is available" if available else "Domain is not available"
        )

    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Registering domain: {domain_name} for {request.years} year(s)")

        payload = {
            "name": domain_name,
            "years": request.years,
            "auto_renew": request.auto_renew,
            "privacy": request.privacy_protection
        }
        try:
            result = await self._result("POST", f"{self._registrar_path}/domains", json_data=payload)
        except APIError as e:
            return failure_result(DomainRegistrationResult, "Error registering domain", e, domain_name=domain_name)

        result = result or {}
        now = utc_now()
        return DomainRegistrationResult(
            success=True,
            domain_name=domain_name,
            message="Domain registered successfully",
            order_id=result.get("id"),
            registration_date=parse_datetime(result.get("created_at")) or now,
            expiration_date=parse_datetime(result.get("expires_at")) or add_years(now, request.years)
        )

    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Renewing domain: {domain_name} for {request.years} year(s)")

        try:
            result = await self._result(
                "POST", f"{self._registrar_path}/domains/{domain_name}/renew", json_data={"years": request.years}
            )
        except APIError as e:
            return failure_result(DomainRenewalResult, "Error renewing domain", e, domain_name=domain_name)

        result = result or {}
        return DomainRenewalResult(
            success=True,
            domain_name=domain_name,
            message="Domain renewed successfully",
            new_expiration_date=parse_datetime(result.get("expires_at"))
        )

    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        require(request, "request")
        domain_name = require_domain(request.domain_name)
        logger.info(f"Transferring domain: {domain_name}")

        payload = {
            "name": domain_name,
            "auth_code": request.auth_code,
            "auto_renew": request.auto_renew,
            "privacy": request.privacy_protection
        }
        try:
            await self._result("POST", f"{self._registrar_path}/domains/transfer", json_data=payload)
        except APIError as e:
            return failure_result(DomainTransferResult, "Error transferring domain", e, domain_name=domain_name)

        return DomainTransferResult(
            success=True,
            domain_name=domain_name,
            message="Domain transfer initiated successfully",
            transfer_status="Pending"
        )

    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Fetching DNS records for: {domain_name}")

        try:
            zone_id = await self._zone_id(domain_name)
            result = await self._result("GET", f"/zones/{zone_id}/dns_records", read=True)
        except APIError as e:
            return failure_result(DnsZoneResult, "Error retrieving DNS zone", e, domain_name=domain_name)

        records = [
            DnsRecordModel(
                id=item.get("id"),
                name=item.get("name", ""),
                type=item.get("type", ""),
                value=item.get("content", ""),
                ttl=item.get("ttl") or 1,
                priority=item.get("priority")
            )
            for item in result or []
        ]
        return DnsZoneResult(
            success=True,
            domain_name=domain_name,
            message=f"Retrieved {len(records)} DNS records",
            zone=DnsZone(domain_name=domain_name, records=records)
        )

    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        """
        Apply every record of ``zone`` individually.

        Records with an id are updated, the others created. Cloudflare has no
        batch endpoint here, so a partial failure lists each failed record.
        """
        domain_name = require_domain(domain_name)
        require(zone, "zone")
        logger.info(f"Applying {len(zone.records)} DNS records to {domain_name}")

        try:
            zone_id = await self._zone_id(domain_name)
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

        applied = 0
        errors: List[str] = []
        for record in zone.records:
            try:
                if record.id is not None:
                    await self._result(
                        "PUT", f"/zones/{zone_id}/dns_records/{record.id}", json_data=self._record_body(record)
                    )
                else:
                    await self._result("POST", f"/zones/{zone_id}/dns_records", json_data=self._record_body(record))
                applied += 1
            except APIError as e:
                logger.warning(f"Failed to apply {record.type} {record.name}: {e.message}")
                errors.append(f"{record.type} {record.name} ({record.id or 'new'}): {e.message}")

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
            success=True,
            domain_name=domain_name,
            message="DNS zone updated successfully",
            applied_records=applied
        )

    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")

        try:
            zone_id = await self._zone_id(domain_name)
            await self._result("POST", f"/zones/{zone_id}/dns_records", json_data=self._record_body(record))
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error adding DNS record", e, domain_name=domain_name)

        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record added successfully", applied_records=1)

    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record, "record")
        require(record.id, "record.id")

        try:
            zone_id = await self._zone_id(domain_name)
            await self._result(
                "PUT", f"/zones/{zone_id}/dns_records/{record.id}", json_data=self._record_body(record)
            )
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS record", e, domain_name=domain_name)

        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record updated successfully", applied_records=1)

    async def delete_dns_record(self, domain_name: str, record_id) -> DnsUpdateResult:
        domain_name = require_domain(domain_name)
        require(record_id, "record_id")

        try:
            zone_id = await self._zone_id(domain_name)
            await self._result("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error deleting DNS record", e, domain_name=domain_name)

        return DnsUpdateResult(success=True, domain_name=domain_name, message="DNS record deleted successfully", applied_records=1)

    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        domain_name = require_domain(domain_name)
        logger.info(f"Getting details for domain: {domain_name}")

        try:
            domain = await self._result("GET", f"{self._registrar_path}/domains/{domain_name}", read=True)
        except APIError as e:
            return failure_result(DomainInfoResult, "Error retrieving domain info", e, domain_name=domain_name)

        domain = domain or {}
        return DomainInfoResult(
            success=True,
            domain_name=domain_name,
            message="Domain information retrieved successfully",
            status=normalize_status(domain.get("status")),
            raw_status=domain.get("status"),
            registration_date=parse_datetime(domain.get("created_at")),
            expiration_date=parse_datetime(domain.get("expires_at")),
            updated_date=parse_datetime(domain.get("updated_at")),
            auto_renew=bool(domain.get("auto_renew", False)),
            privacy_protection=bool(domain.get("privacy", False)),
            locked=bool(domain.get("locked", False)),
            nameservers=domain.get("name_servers") or []
        )

    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        require(nameservers, "nameservers")

        try:
            await self._result(
                "PUT",
                f"{self._registrar_path}/domains/{domain_name}/nameservers",
                json_data={"nameservers": nameservers}
            )
        except APIError as e:
            return failure_result(DomainUpdateResult, "Error updating nameservers", e, domain_name=domain_name)

        return DomainUpdateResult(success=True, domain_name=domain_name, message="Nameservers updated successfully")

    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._patch_domain(
            domain_name,
            {"privacy": enable},
            f"Privacy protection {'enabled' if enable else 'disabled'} successfully",
            "Error setting privacy protection"
        )

    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        return await self._patch_domain(
            domain_name,
            {"auto_renew": enable},
            f"Auto-renew {'enabled' if enable else 'disabled'} successfully",
            "Error setting auto-renew"
        )

    async def _patch_domain(
        self, domain_name: str, payload: Dict[str, Any], success_message: str, context: str
    ) -> DomainUpdateResult:
        domain_name = require_domain(domain_name)
        try:
            await self._result("PATCH", f"{self._registrar_path}/domains/{domain_name}", json_data=payload)
        except APIError as e:
            return failure_result(DomainUpdateResult, context, e, domain_name=domain_name)
        return DomainUpdateResult(success=True, domain_name=domain_name, message=success_message)

    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        result = await self._result("GET", f"{self._registrar_path}/tlds", read=True)
        return [
            TldInfo(
                name=item["name"],
                currency="USD",
                registration_price=parse_decimal(item.get("registration_price")),
                renewal_price=parse_decimal(item.get("renewal_price")),
                transfer_price=parse_decimal(item.get("transfer_price")),
                supports_dnssec=bool(item.get("dnssec", False))
            )
            for item in result or []
            if item.get("name")
        ]

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        try:
            result = await self._result("GET", f"{self._registrar_path}/domains", read=True)
        except APIError as e:
            return failure_result(RegisteredDomainsResult, "Error retrieving registered domains", e)

        domains = [
            RegisteredDomainInfo(
                domain_name=item.get("name", ""),
                status=normalize_status(item.get("status")),
                registration_date=parse_datetime(item.get("created_at")),
                expiration_date=parse_datetime(item.get("expires_at")),
                auto_renew=bool(item.get("auto_renew", False)),
                locked=bool(item.get("locked", False)),
                privacy_protection=bool(item.get("privacy", False))
            )
            for item in result or []
        ]
        return RegisteredDomainsResult(
            success=True,
            message=f"Retrieved {len(domains)} domains",
            domains=domains,
            total_count=len(domains)
        )

    @staticmethod
    def _record_body(record: DnsRecordModel) -> Dict[str, Optional[Any]]:
        body: Dict[str, Any] = {
            "type": record.type,
            "name": record.name,
            "content": record.value,
            "ttl": record.ttl
        }
        if record.priority is not None:
            body["priority"] = record.priority
        return body
