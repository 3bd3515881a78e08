"""
Collaborators the workflows depend on, plus in-memory implementations
used by the CLI and the tests.
"""

import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Tuple

from src.utils.logger import get_logger
from src.workflows.models import DomainOrder, ManagedDomain, OrderReference, RegistrationWorkflowInput


logger = get_logger(__name__)


class BillingService(Protocol):
    """Order/invoice creation and renewal charging"""

    async def create_order(self, workflow_input: RegistrationWorkflowInput) -> OrderReference:
        ...

    async def create_renewal_invoice(self, domain: ManagedDomain) -> str:
        ...

    async def charge_renewal(self, domain: ManagedDomain, invoice_id: str) -> bool:
        ...

    async def send_renewal_reminder(self, domain: ManagedDomain, invoice_id: str) -> None:
        ...


class ProvisioningService(Protocol):
    """Activates whatever service was bought with the order"""

    async def activate(self, order: DomainOrder) -> None:
        ...


class OrderStore(Protocol):
    """Persistence of orders and managed domains"""

    async def get_order(self, order_id: str) -> Optional[DomainOrder]:
        ...

    async def save_order(self, order: DomainOrder) -> None:
        ...

    async def get_domain(self, domain_id: str) -> Optional[ManagedDomain]:
        ...

    async def save_domain(self, domain: ManagedDomain) -> None:
        ...

    async def list_domains(self) -> List[ManagedDomain]:
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class InMemoryOrderStore:
    """Dict-backed store; hands out copies so callers must save to persist"""

    def __init__(self):
        self.orders: Dict[str, DomainOrder] = {}
        self.domains: Dict[str, ManagedDomain] = {}

    async def get_order(self, order_id: str) -> Optional[DomainOrder]:
        order = self.orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def save_order(self, order: DomainOrder) -> None:
        self.orders[order.order_id] = order.model_copy(deep=True)

    async def get_domain(self, domain_id: str) -> Optional[ManagedDomain]:
        domain = self.domains.get(domain_id)
        return domain.model_copy(deep=True) if domain else None

    async def save_domain(self, domain: ManagedDomain) -> None:
        self.domains[domain.domain_id] = domain.model_copy(deep=True)

    async def list_domains(self) -> List[ManagedDomain]:
        return [d.model_copy(deep=True) for d in self.domains.values()]


class InMemoryBillingService:
    """
    Billing stand-in: numbers orders and invoices, records charges and
    reminders. ``charge_succeeds`` switches renewal charging on or off.
    """

    def __init__(self, default_amount: Decimal = Decimal("0"), charge_succeeds: bool = True):
        self.default_amount = default_amount
        self.charge_succeeds = charge_succeeds
        self.orders: List[OrderReference] = []
        self.renewal_invoices: List[Tuple[str, str]] = []
        self.charges: List[Tuple[str, str]] = []
        self.reminders: List[Tuple[str, str]] = []

    async def create_order(self, workflow_input: RegistrationWorkflowInput) -> OrderReference:
        reference = OrderReference(
            order_id=f"ORD-{uuid.uuid4().hex[:12].upper()}",
            invoice_id=f"INV-{uuid.uuid4().hex[:12].upper()}",
            amount=workflow_input.amount if workflow_input.amount is not None else self.default_amount
        )
        self.orders.append(reference)
        logger.info(f"Billing: order {reference.order_id} / invoice {reference.invoice_id} created")
        return reference

    async def create_renewal_invoice(self, domain: ManagedDomain) -> str:
        invoice_id = f"INV-{uuid.uuid4().hex[:12].upper()}"
        self.renewal_invoices.append((domain.domain_id, invoice_id))
        return invoice_id

    async def charge_renewal(self, domain: ManagedDomain, invoice_id: str) -> bool:
        if self.charge_succeeds:
            self.charges.append((domain.domain_id, invoice_id))
        return self.charge_succeeds

    async def send_renewal_reminder(self, domain: ManagedDomain, invoice_id: str) -> None:
        self.reminders.append((domain.domain_id, invoice_id))
        logger.info(f"Billing: renewal reminder for {domain.domain_name} (invoice {invoice_id})")


class InMemoryProvisioningService:
    """Records which orders were activated"""

    def __init__(self):
        self.activated: List[str] = []

    async def activate(self, order: DomainOrder) -> None:
        self.activated.append(order.order_id)
        logger.info(f"Provisioning: activated order {order.order_id} ({order.domain_name})")
