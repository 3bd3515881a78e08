"""
Provider-neutral domain model shared by every registrar adapter
Contacts, requests, DNS/TLD data and the result envelopes
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.utils.validators import validate_email, validate_phone


# ---------------------------------------------------------------------------
# Contacts and requests
# ---------------------------------------------------------------------------

class ContactInformation(BaseModel):
    """Registrant / admin / tech / billing party"""

    model_config = ConfigDict(frozen=True)

    contact_type: str = "PERSON"
    first_name: str
    last_name: str
    organization: Optional[str] = None
    email: str
    phone: str
    fax: Optional[str] = None
    address1: str
    address2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str

    @field_validator("country")
    @classmethod
    def upper_country(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        # Contacts read back from a registrar may leave it blank
        return validate_email(v) if v else v

    @field_validator("phone")
    @classmethod
    def epp_phone(cls, v: str) -> str:
        return validate_phone(v) if v else v

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


ROLE_FIELDS = ("admin_contact", "tech_contact", "billing_contact")


def _default_role_contacts(data: Any) -> Any:
    """Fill missing admin/tech/billing contacts with the registrant."""
    if isinstance(data, dict) and data.get("registrant_contact") is not None:
        data = dict(data)
        for role in ROLE_FIELDS:
            if data.get(role) is None:
                data[role] = data["registrant_contact"]
    return data


class DomainRegistrationRequest(BaseModel):
    """
    Request to register a new domain.

    Admin, tech and billing contacts default to the registrant when omitted.
    The default is applied once while the request is built, so adapters
    always receive all four roles.
    """

    model_config = ConfigDict(frozen=True)

    domain_name: str
    years: int = Field(default=1, ge=1, le=10)
    auto_renew: bool = False
    privacy_protection: bool = False
    nameservers: List[str] = Field(default_factory=list)
    registrant_contact: ContactInformation
    admin_contact: ContactInformation
    tech_contact: ContactInformation
    billing_contact: ContactInformation

    @model_validator(mode="before")
    @classmethod
    def fill_role_contacts(cls, data: Any) -> Any:
        return _default_role_contacts(data)

    def role_contacts(self) -> Dict[str, ContactInformation]:
        """Contacts keyed by role: registrant, admin, tech, billing"""
        return {
            "registrant": self.registrant_contact,
            "admin": self.admin_contact,
            "tech": self.tech_contact,
            "billing": self.billing_contact,
        }


class DomainRenewalRequest(BaseModel):
    """Request to extend an existing registration"""

    model_config = ConfigDict(frozen=True)

    domain_name: str
    years: int = Field(default=1, ge=1, le=10)
    current_expiration_year: Optional[int] = None


class DomainTransferRequest(BaseModel):
    """Request to transfer a domain in from another registrar"""

    model_config = ConfigDict(frozen=True)

    domain_name: str
    auth_code: str
    years: int = Field(default=1, ge=1, le=10)
    auto_renew: bool = False
    privacy_protection: bool = False
    registrant_contact: Optional[ContactInformation] = None
    admin_contact: Optional[ContactInformation] = None
    tech_contact: Optional[ContactInformation] = None
    billing_contact: Optional[ContactInformation] = None

    @model_validator(mode="before")
    @classmethod
    def fill_role_contacts(cls, data: Any) -> Any:
        return _default_role_contacts(data)

    def role_contacts(self) -> Dict[str, ContactInformation]:
        """Contacts keyed by role, empty when the transfer keeps existing contacts"""
        if self.registrant_contact is None:
            return {}
        return {
            "registrant": self.registrant_contact,
            "admin": self.admin_contact,
            "tech": self.tech_contact,
            "billing": self.billing_contact,
        }


# ---------------------------------------------------------------------------
# DNS and TLD data
# ---------------------------------------------------------------------------

class DnsRecordModel(BaseModel):
    """A single DNS record. ``id`` is absent for records not created yet."""

    id: Optional[Union[int, str]] = None
    name: str
    type: str
    value: str
    ttl: int = 3600
    priority: Optional[int] = None

    @field_validator("type")
    @classmethod
    def upper_type(cls, v: str) -> str:
        return v.strip().upper()


class DnsZone(BaseModel):
    domain_name: str
    records: List[DnsRecordModel] = Field(default_factory=list)
    nameservers: List[str] = Field(default_factory=list)


class TldInfo(BaseModel):
    """Pricing and capabilities of one extension"""

    name: str
    currency: str = "USD"
    registration_price: Optional[Decimal] = None
    renewal_price: Optional[Decimal] = None
    transfer_price: Optional[Decimal] = None
    min_registration_years: Optional[int] = None
    max_registration_years: Optional[int] = None
    supports_privacy: bool = False
    supports_dnssec: bool = False
    is_generic: bool = False
    is_country_code: bool = False
    type: Optional[str] = None
    is_available: bool = True

    @field_validator("name")
    @classmethod
    def strip_dot(cls, v: str) -> str:
        return v.strip().lstrip(".").lower()


class RegisteredDomainInfo(BaseModel):
    domain_name: str
    status: str = "UNKNOWN"
    registration_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    auto_renew: bool = False
    locked: bool = False
    privacy_protection: bool = False
    nameservers: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Result envelopes
# ---------------------------------------------------------------------------

class RegistrarResult(BaseModel):
    """
    Common envelope carried by every registrar operation.

    ``success=False`` always comes with at least one entry in ``errors``
    (the message is used when none was given); ``success=True`` with
    errors is rejected as a programming error.
    """

    success: bool = False
    message: str = ""
    error_code: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    # the vendor answer never arrived or could not be read, so a billed call
    # may or may not have taken effect
    transport_failure: bool = False

    @model_validator(mode="after")
    def check_errors(self):
        if self.success and self.errors:
            raise ValueError("A successful result cannot carry errors")
        if not self.success and not self.errors:
            self.errors.append(self.message or "Unknown error")
        return self


class DomainAvailabilityResult(RegistrarResult):
    domain_name: str = ""
    is_available: bool = False
    is_tld_supported: bool = True
    is_premium: bool = False
    premium_price: Optional[Decimal] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None


class DomainRegistrationResult(RegistrarResult):
    domain_name: str = ""
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    registration_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    total_cost: Optional[Decimal] = None


class DomainRenewalResult(RegistrarResult):
    domain_name: str = ""
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    new_expiration_date: Optional[datetime] = None
    total_cost: Optional[Decimal] = None


class DomainTransferResult(RegistrarResult):
    domain_name: str = ""
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    transfer_status: Optional[str] = None
    total_cost: Optional[Decimal] = None


class DnsUpdateResult(RegistrarResult):
    domain_name: str = ""
    applied_records: int = 0


class DnsZoneResult(RegistrarResult):
    domain_name: str = ""
    zone: Optional[DnsZone] = None


class DomainInfoResult(RegistrarResult):
    domain_name: str = ""
    status: str = "UNKNOWN"
    raw_status: Optional[str] = None
    registration_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None
    auto_renew: bool = False
    privacy_protection: bool = False
    locked: bool = False
    nameservers: List[str] = Field(default_factory=list)
    registrant_contact: Optional[ContactInformation] = None


class DomainUpdateResult(RegistrarResult):
    domain_name: str = ""


class RegisteredDomainsResult(RegistrarResult):
    domains: List[RegisteredDomainInfo] = Field(default_factory=list)
    total_count: int = 0


class SupportedTldsResult(RegistrarResult):
    tlds: List[TldInfo] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Canonical domain status
# ---------------------------------------------------------------------------

CANONICAL_STATUSES = (
    "ACTIVE",
    "PENDING",
    "PENDING_TRANSFER",
    "EXPIRED",
    "REDEMPTION",
    "SUSPENDED",
    "CANCELLED",
    "UNKNOWN",
)

_STATUS_MAP = {
    "active": "ACTIVE",
    "ok": "ACTIVE",
    "registered": "ACTIVE",
    "hosted": "ACTIVE",
    "locked": "ACTIVE",
    "unlocked": "ACTIVE",
    "inactive": "SUSPENDED",
    "pending": "PENDING",
    "pendingcreate": "PENDING",
    "pending_registration": "PENDING",
    "registering": "PENDING",
    "new": "PENDING",
    "awaiting_payment": "PENDING",
    "pendingtransfer": "PENDING_TRANSFER",
    "pending_transfer": "PENDING_TRANSFER",
    "transferring": "PENDING_TRANSFER",
    "transfer_pending": "PENDING_TRANSFER",
    "transferred_in": "PENDING_TRANSFER",
    "expired": "EXPIRED",
    "redemption": "REDEMPTION",
    "redemptionperiod": "REDEMPTION",
    "pendingdelete": "REDEMPTION",
    "pending_delete": "REDEMPTION",
    "suspended": "SUSPENDED",
    "hold": "SUSPENDED",
    "clienthold": "SUSPENDED",
    "serverhold": "SUSPENDED",
    "cancelled": "CANCELLED",
    "canceled": "CANCELLED",
    "deleted": "CANCELLED",
    "failed": "CANCELLED",
}


def normalize_status(raw: Optional[str]) -> str:
    """
    Map a vendor status string onto the canonical vocabulary.

    EPP prohibition flags (``clientTransferProhibited`` and friends) describe
    a live registration, so they map to ACTIVE.
    """
    if not raw:
        return "UNKNOWN"
    key = str(raw).strip().lower().replace(" ", "").replace("-", "_")
    if key in _STATUS_MAP:
        return _STATUS_MAP[key]
    compact = key.replace("_", "")
    if compact in _STATUS_MAP:
        return _STATUS_MAP[compact]
    if compact.endswith("prohibited"):
        return "ACTIVE"
    if "transfer" in compact:
        return "PENDING_TRANSFER"
    if "redemption" in compact:
        return "REDEMPTION"
    if "expire" in compact:
        return "EXPIRED"
    return "UNKNOWN"
