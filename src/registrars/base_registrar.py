"""
Registrar contract
Abstract base class every registrar adapter implements, plus the helpers
adapters share for building result envelopes
"""

import calendar
import functools
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar, Union

from pydantic import ValidationError as ModelValidationError

from src.registrars.exceptions import (
    APIError,
    DomainNotFoundError,
    InvalidResponseError,
    TransportFailure,
    UnsupportedOperation
)
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
    RegisteredDomainsResult,
    RegistrarResult,
    SupportedTldsResult,
    TldInfo
)
from src.utils.logger import get_logger
from src.utils.validators import DomainValidator, normalize_tld


ResultT = TypeVar("ResultT", bound=RegistrarResult)
RecordId = Union[int, str]

logger = get_logger(__name__)

# What picking apart a vendor body of the wrong shape raises
MALFORMED_BODY_ERRORS = (AttributeError, KeyError, IndexError, TypeError, ModelValidationError)

# Contract operation -> the envelope it returns
CONTRACT_RESULTS: Dict[str, Type[RegistrarResult]] = {
    "check_availability": DomainAvailabilityResult,
    "register_domain": DomainRegistrationResult,
    "renew_domain": DomainRenewalResult,
    "transfer_domain": DomainTransferResult,
    "get_dns_zone": DnsZoneResult,
    "update_dns_zone": DnsUpdateResult,
    "add_dns_record": DnsUpdateResult,
    "update_dns_record": DnsUpdateResult,
    "delete_dns_record": DnsUpdateResult,
    "get_domain_info": DomainInfoResult,
    "update_nameservers": DomainUpdateResult,
    "set_privacy_protection": DomainUpdateResult,
    "set_auto_renew": DomainUpdateResult,
    "get_supported_tlds": SupportedTldsResult,
    "get_registered_domains": RegisteredDomainsResult,
}


class BaseRegistrar(ABC):
    """
    Abstract base class for registrar adapters.

    Every operation is async and returns a result envelope. Expected
    failures (network trouble, vendor errors, missing capabilities) come
    back as ``success=False`` envelopes; only programming errors such as an
    empty domain name raise ``ValueError``.
    """

    provider_code: str = "BASE"

    def __init__(self, use_live: bool = False):
        self.use_live = use_live

    def __init_subclass__(cls, **kwargs):
        # contract operations never let a malformed vendor body escape as an exception
        super().__init_subclass__(**kwargs)
        for name, result_cls in CONTRACT_RESULTS.items():
            operation = cls.__dict__.get(name)
            if operation is not None:
                setattr(cls, name, guard_malformed_body(operation, result_cls))

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def check_availability(self, domain_name: str) -> DomainAvailabilityResult:
        """Check if a domain can be registered."""

    @abstractmethod
    async def register_domain(self, request: DomainRegistrationRequest) -> DomainRegistrationResult:
        """Register a domain. Billed; never retried."""

    @abstractmethod
    async def renew_domain(self, request: DomainRenewalRequest) -> DomainRenewalResult:
        """Renew a domain. Billed; never retried."""

    @abstractmethod
    async def transfer_domain(self, request: DomainTransferRequest) -> DomainTransferResult:
        """Start an inbound transfer. Billed; never retried."""

    @abstractmethod
    async def get_dns_zone(self, domain_name: str) -> DnsZoneResult:
        """Fetch the DNS zone of a domain."""

    @abstractmethod
    async def update_dns_zone(self, domain_name: str, zone: DnsZone) -> DnsUpdateResult:
        """Replace (or apply) the given records to the zone."""

    @abstractmethod
    async def add_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        pass

    @abstractmethod
    async def update_dns_record(self, domain_name: str, record: DnsRecordModel) -> DnsUpdateResult:
        pass

    @abstractmethod
    async def delete_dns_record(self, domain_name: str, record_id: RecordId) -> DnsUpdateResult:
        pass

    @abstractmethod
    async def get_domain_info(self, domain_name: str) -> DomainInfoResult:
        """Fetch status, dates, flags and nameservers of a domain."""

    @abstractmethod
    async def update_nameservers(self, domain_name: str, nameservers: List[str]) -> DomainUpdateResult:
        pass

    @abstractmethod
    async def set_privacy_protection(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        pass

    @abstractmethod
    async def set_auto_renew(self, domain_name: str, enable: bool) -> DomainUpdateResult:
        pass

    @abstractmethod
    async def _fetch_supported_tlds(self) -> List[TldInfo]:
        """
        Full TLD list of the provider.

        Raises:
            APIError: When the list cannot be fetched
        """

    async def get_supported_tlds(self, requested: Optional[Iterable[str]] = None) -> SupportedTldsResult:
        """
        Get the TLDs offered by this provider.

        Args:
            requested: Optional subset to keep (case-insensitive, leading
                dots ignored). ``None`` or empty returns everything.

        Returns:
            SupportedTldsResult with the filtered list
        """
        try:
            tlds = await self._fetch_supported_tlds()
        except APIError as e:
            return failure_result(SupportedTldsResult, "Error retrieving supported TLDs", e)
        except MALFORMED_BODY_ERRORS as e:
            return failure_result(
                SupportedTldsResult,
                "Error retrieving supported TLDs",
                InvalidResponseError(f"{self.get_provider_name()} returned an unreadable TLD list ({e})")
            )

        tlds = filter_tlds(tlds, requested)
        return SupportedTldsResult(
            success=True,
            message=f"Retrieved {len(tlds)} TLDs from {self.get_provider_name()}",
            tlds=tlds
        )

    async def get_registered_domains(self) -> RegisteredDomainsResult:
        """List the domains held in the account (not every provider offers this)"""
        return RegisteredDomainsResult(
            success=False,
            message=f"Listing registered domains is not implemented for {self.get_provider_name()}",
            error_code="NOT_IMPLEMENTED"
        )

    # ------------------------------------------------------------------
    # Environment / lifecycle
    # ------------------------------------------------------------------

    def get_provider_name(self) -> str:
        """
        Get provider name.
        Default implementation returns class name.
        """
        return self.__class__.__name__.replace("Registrar", "")

    def get_environment(self) -> str:
        return "LIVE" if self.use_live else "TEST"

    def is_production(self) -> bool:
        return self.use_live

    async def aclose(self) -> None:
        """Release the transport client. Safe to call more than once."""
        transport = getattr(self, "transport", None)
        if transport is not None:
            await transport.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # DNS emulation for providers that only accept whole zones
    # ------------------------------------------------------------------

    async def _rewrite_zone(
        self,
        domain_name: str,
        change: Callable[[List[DnsRecordModel]], List[DnsRecordModel]],
        success_message: str
    ) -> DnsUpdateResult:
        """
        Read the zone, apply ``change`` to its records and write it back.

        Used where the provider has no per-record endpoint; the rewrite is a
        single zone replacement so it either fully applies or fails.
        """
        current = await self.get_dns_zone(domain_name)
        if not current.success:
            return DnsUpdateResult(
                success=False,
                domain_name=domain_name,
                message=f"Could not read current DNS zone: {current.message}",
                error_code=current.error_code,
                errors=current.errors
            )

        try:
            records = change(list(current.zone.records))
        except APIError as e:
            return failure_result(DnsUpdateResult, "Error updating DNS zone", e, domain_name=domain_name)

        result = await self.update_dns_zone(
            domain_name,
            DnsZone(domain_name=domain_name, records=records, nameservers=current.zone.nameservers)
        )
        if result.success:
            result.message = success_message
        return result


# ---------------------------------------------------------------------------
# Envelope builders
# ---------------------------------------------------------------------------

def failure_result(result_cls: Type[ResultT], context: str, error: APIError, **fields: Any) -> ResultT:
    """
    Build a failure envelope from an adapter exception.

    The message keeps the vendor text, ``error_code`` keeps the vendor (or
    HTTP) code so operators can act on it.
    """
    message = f"{context}: {error.message}"
    errors = [error.message]
    vendor_errors = error.response_data.get("errors") if isinstance(error.response_data, dict) else None
    if isinstance(vendor_errors, list):
        for item in vendor_errors:
            text = item.get("message") if isinstance(item, dict) else str(item)
            if text and text not in errors:
                errors.append(text)
    return result_cls(
        success=False,
        message=message,
        error_code=error.error_code,
        errors=errors,
        transport_failure=isinstance(error, TransportFailure),
        **fields
    )


def unsupported_result(result_cls: Type[ResultT], message: str, **fields: Any) -> ResultT:
    """Failure envelope for an operation the provider cannot perform"""
    return failure_result(result_cls, "Operation not supported", UnsupportedOperation(message), **fields)


def guard_malformed_body(operation: Callable, result_cls: Type[ResultT]) -> Callable:
    """
    Wrap a contract operation so a vendor body of the wrong shape (a list
    where an object was expected, a missing element or key) comes back as
    an INVALID_RESPONSE failure envelope.
    """
    @functools.wraps(operation)
    async def guarded(self, *args, **kwargs):
        try:
            return await operation(self, *args, **kwargs)
        except MALFORMED_BODY_ERRORS as e:
            provider = self.get_provider_name()
            logger.error(f"❌ {provider} {operation.__name__}: unreadable response ({type(e).__name__}: {e})")
            fields = {}
            if "domain_name" in result_cls.model_fields:
                fields["domain_name"] = _domain_argument(args, kwargs)
            return failure_result(
                result_cls,
                f"Unexpected response from {provider}",
                InvalidResponseError(f"{provider} returned a body of an unexpected shape ({type(e).__name__}: {e})"),
                **fields
            )
    return guarded


def _domain_argument(args: tuple, kwargs: Dict[str, Any]) -> str:
    target = args[0] if args else kwargs.get("domain_name", kwargs.get("request"))
    if isinstance(target, str):
        return target
    return getattr(target, "domain_name", None) or ""


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def filter_tlds(tlds: List[TldInfo], requested: Optional[Iterable[str]]) -> List[TldInfo]:
    """
    Intersect a provider TLD list with a requested subset.

    Comparison ignores case and leading dots. ``None`` or an empty
    selection returns the list unchanged.
    """
    if not requested:
        return list(tlds)
    wanted = {normalize_tld(t) for t in requested if t and t.strip()}
    if not wanted:
        return list(tlds)
    return [t for t in tlds if normalize_tld(t.name) in wanted]


def require_domain(domain_name: str) -> str:
    """
    Clean a domain name argument.

    Raises:
        ValueError: If the name is missing
    """
    if domain_name is None or not str(domain_name).strip():
        raise ValueError("domain_name is required")
    return DomainValidator.clean(str(domain_name))


def require(value: Any, name: str) -> Any:
    if value is None:
        raise ValueError(f"{name} is required")
    return value


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse vendor timestamps (ISO 8601, 'Z' suffix, dates, epoch seconds)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    for candidate in (text, text.replace(" ", "T", 1)):
        try:
            parsed = datetime.fromisoformat(candidate)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    for fmt in ("%m/%d/%Y", "%d/%m/%Y", "%Y-%m-%d %H:%M:%S.%f"):
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return None


def parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def add_years(moment: datetime, years: int) -> datetime:
    """Add calendar years, clamping Feb 29 to Feb 28"""
    year = moment.year + years
    day = min(moment.day, calendar.monthrange(year, moment.month)[1])
    return moment.replace(year=year, day=day)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Record list edits used by ``_rewrite_zone``
# ---------------------------------------------------------------------------

def number_records(records: List[DnsRecordModel]) -> List[DnsRecordModel]:
    """Give positional ids (1-based) to records the provider returns without ids"""
    return [
        r if r.id is not None else r.model_copy(update={"id": index})
        for index, r in enumerate(records, start=1)
    ]


def append_record(record: DnsRecordModel) -> Callable[[List[DnsRecordModel]], List[DnsRecordModel]]:
    def change(records: List[DnsRecordModel]) -> List[DnsRecordModel]:
        return records + [record.model_copy(update={"id": None})]
    return change


def replace_record(record: DnsRecordModel) -> Callable[[List[DnsRecordModel]], List[DnsRecordModel]]:
    def change(records: List[DnsRecordModel]) -> List[DnsRecordModel]:
        if record.id is None:
            raise ValueError("record.id is required to update a DNS record")
        if not any(str(r.id) == str(record.id) for r in records):
            raise DomainNotFoundError(f"DNS record {record.id} not found")
        return [record if str(r.id) == str(record.id) else r for r in records]
    return change


def remove_record(record_id: RecordId) -> Callable[[List[DnsRecordModel]], List[DnsRecordModel]]:
    def change(records: List[DnsRecordModel]) -> List[DnsRecordModel]:
        kept = [r for r in records if str(r.id) != str(record_id)]
        if len(kept) == len(records):
            raise DomainNotFoundError(f"DNS record {record_id} not found")
        return kept
    return change
