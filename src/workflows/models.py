"""
Workflow data: order states, persisted orders and domains, workflow results
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from src.registrars.models import ContactInformation, DomainRegistrationRequest


class OrderState(str, Enum):
    """Lifecycle of a domain order"""

    INITIATED = "INITIATED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    REGISTERING = "REGISTERING"
    PROVISIONING = "PROVISIONING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RegistrationWorkflowInput(BaseModel):
    """What a customer asked for when ordering a domain"""

    domain_name: str
    customer_id: Optional[str] = None
    years: int = Field(default=1, ge=1, le=10)
    auto_renew: bool = False
    privacy_protection: bool = False
    nameservers: List[str] = Field(default_factory=list)
    registrant_contact: ContactInformation
    admin_contact: Optional[ContactInformation] = None
    tech_contact: Optional[ContactInformation] = None
    billing_contact: Optional[ContactInformation] = None
    check_availability_first: bool = False
    amount: Optional[Decimal] = None

    def to_registration_request(self) -> DomainRegistrationRequest:
        return DomainRegistrationRequest(
            domain_name=self.domain_name,
            years=self.years,
            auto_renew=self.auto_renew,
            privacy_protection=self.privacy_protection,
            nameservers=self.nameservers,
            registrant_contact=self.registrant_contact,
            admin_contact=self.admin_contact,
            tech_contact=self.tech_contact,
            billing_contact=self.billing_contact
        )


class OrderReference(BaseModel):
    """Order/invoice pair returned by the billing collaborator"""

    order_id: str
    invoice_id: str
    amount: Optional[Decimal] = None


class DomainOrder(BaseModel):
    """A registration order as persisted by the order store"""

    order_id: str
    invoice_id: str
    domain_name: str
    customer_id: Optional[str] = None
    state: OrderState = OrderState.INITIATED
    request: DomainRegistrationRequest
    correlation_id: str
    amount: Optional[Decimal] = None
    registrar_order_id: Optional[str] = None
    domain_id: Optional[str] = None
    message: str = ""
    error_code: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    provisioned_at: Optional[datetime] = None


class ManagedDomain(BaseModel):
    """A domain held for a customer, tracked for renewal and expiry"""

    domain_id: str
    domain_name: str
    customer_id: Optional[str] = None
    order_id: Optional[str] = None
    registrar: str = ""
    status: str = "ACTIVE"
    registration_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    auto_renew: bool = False
    renewal_years: int = Field(default=1, ge=1, le=10)
    # expiration date a renewal was last issued against
    last_renewed_expiration: Optional[datetime] = None
    # open renewal invoice and whether it has been paid
    pending_renewal_invoice_id: Optional[str] = None
    renewal_invoice_paid: bool = False


class WorkflowResult(BaseModel):
    """
    Outcome of a workflow step.

    Mirrors the registrar envelopes: a failed result always lists at least
    one error, a successful one never does.
    """

    success: bool = False
    status: str = ""
    order_id: Optional[str] = None
    invoice_id: Optional[str] = None
    domain_id: Optional[str] = None
    correlation_id: str = ""
    message: str = ""
    next_action: Optional[str] = None
    error_code: Optional[str] = None
    errors: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_errors(self):
        if self.success and self.errors:
            raise ValueError("A successful workflow result cannot carry errors")
        if not self.success and not self.errors:
            self.errors.append(self.message or "Unknown error")
        return self

    @classmethod
    def succeeded(cls, status: str, message: str, **fields) -> "WorkflowResult":
        return cls(success=True, status=_state_name(status), message=message, **fields)

    @classmethod
    def from_error(cls, status: str, error: Exception, **fields) -> "WorkflowResult":
        """Failed result from a WorkflowError (message and error_code)"""
        return cls.failed(status, error.message, error_code=error.error_code, **fields)

    @classmethod
    def failed(
        cls,
        status: str,
        message: str,
        error_code: Optional[str] = None,
        errors: Optional[List[str]] = None,
        **fields
    ) -> "WorkflowResult":
        return cls(
            success=False,
            status=_state_name(status),
            message=message,
            error_code=error_code,
            errors=list(errors or []),
            **fields
        )


def _state_name(status) -> str:
    return status.value if isinstance(status, OrderState) else str(status)
