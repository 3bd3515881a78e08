"""
Domain lifecycle workflows
Registration, provisioning, renewal and expiration monitoring on top of the
registrar layer
"""

from src.workflows.registration_workflow import DomainRegistrationWorkflow
from src.workflows.provisioning_workflow import OrderProvisioningWorkflow
from src.workflows.renewal_workflow import DomainRenewalWorkflow
from src.workflows.expiration_monitor import DomainExpirationMonitor
from src.workflows.state_machine import KeyedLocks, OrderStateMachine, TRANSITIONS
from src.workflows.models import (
    DomainOrder,
    ManagedDomain,
    OrderReference,
    OrderState,
    RegistrationWorkflowInput,
    WorkflowResult,
)
from src.workflows.collaborators import (
    BillingService,
    InMemoryBillingService,
    InMemoryOrderStore,
    InMemoryProvisioningService,
    OrderStore,
    ProvisioningService,
)
from src.workflows.exceptions import (
    ManagedDomainNotFoundError,
    OrderNotFoundError,
    WorkflowError,
    WorkflowStateConflict,
)

__all__ = [
    # Workflows
    "DomainRegistrationWorkflow",
    "OrderProvisioningWorkflow",
    "DomainRenewalWorkflow",
    "DomainExpirationMonitor",
    # State machine
    "KeyedLocks",
    "OrderStateMachine",
    "TRANSITIONS",
    # Models
    "DomainOrder",
    "ManagedDomain",
    "OrderReference",
    "OrderState",
    "RegistrationWorkflowInput",
    "WorkflowResult",
    # Collaborators
    "BillingService",
    "InMemoryBillingService",
    "InMemoryOrderStore",
    "InMemoryProvisioningService",
    "OrderStore",
    "ProvisioningService",
    # Exceptions
    "ManagedDomainNotFoundError",
    "OrderNotFoundError",
    "WorkflowError",
    "WorkflowStateConflict",
]
