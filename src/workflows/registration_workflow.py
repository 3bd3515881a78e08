"""
Domain Registration Workflow
Order -> payment -> registrar call -> provisioning, with at-most-once registration
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from src.registrars.base_registrar import BaseRegistrar, add_years
from src.registrars.models import DomainRegistrationResult
from src.utils.logger import get_logger
from src.utils.validators import validate_domain
from src.workflows.collaborators import BillingService, OrderStore, ProvisioningService
from src.workflows.exceptions import OrderNotFoundError, WorkflowStateConflict
from src.workflows.models import (
    DomainOrder,
    ManagedDomain,
    OrderState,
    RegistrationWorkflowInput,
    WorkflowResult
)
from src.workflows.provisioning_workflow import OrderProvisioningWorkflow
from src.workflows.state_machine import KeyedLocks, OrderStateMachine


logger = get_logger(__name__)

# States in which the registrar has been (or is being) called for the order
REGISTRATION_STARTED = (OrderState.REGISTERING, OrderState.PROVISIONING, OrderState.COMPLETED)


class DomainRegistrationWorkflow:
    """
    Drives a registration order through its lifecycle:

    1.  ``execute``              : create order + invoice, wait for payment
    2.  ``on_payment_received``  : REGISTERING is persisted, then the
                                   registrar is called exactly once; a
                                   lost answer leaves the order there
    3.  provisioning             : PROVISIONING -> COMPLETED
    4.  ``reconcile``            : recover an order left in REGISTERING by
                                   reading the domain back, never by
                                   registering again
    """

    def __init__(
        self,
        registrar: BaseRegistrar,
        billing: BillingService,
        provisioning: ProvisioningService,
        store: OrderStore,
        locks: Optional[KeyedLocks] = None
    ):
        self.registrar = registrar
        self.billing = billing
        self.store = store
        self.locks = locks or KeyedLocks()
        self.provisioning = OrderProvisioningWorkflow(provisioning, store, locks=self.locks)

    # ------------------------------------------------------------------
    # Step 1: order
    # ------------------------------------------------------------------

    async def execute(self, workflow_input: RegistrationWorkflowInput) -> WorkflowResult:
        """
        Create the order and invoice. The registrar is not called here.

        Returns:
            WorkflowResult in AWAITING_PAYMENT with ``next_action="await_payment"``
        """
        correlation_id = uuid.uuid4().hex
        logger.info(f"🚀 Starting registration workflow for {workflow_input.domain_name} [{correlation_id}]")

        try:
            domain_name = validate_domain(workflow_input.domain_name)
        except ValueError as e:
            return WorkflowResult.failed(
                OrderState.FAILED, str(e), error_code="INVALID_DOMAIN", correlation_id=correlation_id
            )

        if workflow_input.check_availability_first:
            logger.info(f"── Checking availability of {domain_name}")
            availability = await self.registrar.check_availability(domain_name)
            if not availability.success:
                return WorkflowResult.failed(
                    OrderState.FAILED,
                    availability.message,
                    error_code=availability.error_code,
                    errors=availability.errors,
                    correlation_id=correlation_id
                )
            if not availability.is_available:
                return WorkflowResult.failed(
                    OrderState.FAILED,
                    f"Domain {domain_name} is not available",
                    error_code="DOMAIN_NOT_AVAILABLE",
                    correlation_id=correlation_id
                )

        logger.info("── Creating order and invoice")
        try:
            reference = await self.billing.create_order(workflow_input)
        except Exception as exc:
            logger.exception(f"Billing failed to create an order for {domain_name}: {exc}")
            return WorkflowResult.failed(
                OrderState.FAILED,
                f"Could not create order: {exc}",
                error_code="BILLING_FAILED",
                correlation_id=correlation_id
            )

        now = datetime.now(timezone.utc)
        order = DomainOrder(
            order_id=reference.order_id,
            invoice_id=reference.invoice_id,
            domain_name=domain_name,
            customer_id=workflow_input.customer_id,
            request=workflow_input.to_registration_request().model_copy(update={"domain_name": domain_name}),
            correlation_id=correlation_id,
            amount=reference.amount,
            created_at=now,
            updated_at=now
        )
        OrderStateMachine.transition(order, OrderState.AWAITING_PAYMENT)
        order.message = "Awaiting payment"
        await self.store.save_order(order)

        logger.info(f"Order {order.order_id} awaiting payment of invoice {order.invoice_id}")
        return WorkflowResult.succeeded(
            order.state,
            "Order created, awaiting payment",
            order_id=order.order_id,
            invoice_id=order.invoice_id,
            correlation_id=correlation_id,
            next_action="await_payment"
        )

    # ------------------------------------------------------------------
    # Step 2: payment confirmed -> register
    # ------------------------------------------------------------------

    async def on_payment_received(self, order_id: str, invoice_id: Optional[str] = None) -> WorkflowResult:
        """
        Register the domain for a paid order.

        Safe to call repeatedly: once the order has left AWAITING_PAYMENT
        the registrar is never called again for it.
        """
        async with self.locks.for_key(order_id):
            order = await self.store.get_order(order_id)
            if order is None:
                return WorkflowResult.from_error(
                    "UNKNOWN", OrderNotFoundError(f"Order {order_id} not found"), order_id=order_id
                )

            if invoice_id is not None and invoice_id != order.invoice_id:
                return WorkflowResult.failed(
                    order.state,
                    f"Invoice {invoice_id} does not belong to order {order_id}",
                    error_code="INVOICE_MISMATCH",
                    order_id=order_id,
                    correlation_id=order.correlation_id
                )

            if order.state in REGISTRATION_STARTED:
                logger.info(f"Payment for order {order_id} already processed (state {order.state.value})")
                return WorkflowResult.succeeded(
                    order.state,
                    f"Payment already processed; order is {order.state.value}",
                    order_id=order.order_id,
                    invoice_id=order.invoice_id,
                    domain_id=order.domain_id,
                    correlation_id=order.correlation_id,
                    next_action="reconcile" if order.state == OrderState.REGISTERING else None
                )

            try:
                OrderStateMachine.transition(order, OrderState.REGISTERING)
            except WorkflowStateConflict as conflict:
                return WorkflowResult.failed(
                    order.state,
                    conflict.message,
                    error_code=conflict.error_code,
                    order_id=order.order_id,
                    correlation_id=order.correlation_id
                )

            # persisted before the registrar call so a crash leaves a reconcilable order
            order.message = "Registering domain"
            await self.store.save_order(order)

            logger.info(f"── Registering {order.domain_name} via {self.registrar.get_provider_name()}")
            try:
                result = await self.registrar.register_domain(order.request)
            except Exception as exc:
                logger.exception(f"Registrar raised while registering {order.domain_name}: {exc}")
                result = DomainRegistrationResult(
                    success=False,
                    domain_name=order.domain_name,
                    message=f"Registrar error: {exc}",
                    error_code="REGISTRAR_EXCEPTION",
                    transport_failure=True
                )

            if not result.success and result.transport_failure:
                return await self._await_reconcile(order, result)
            if not result.success:
                return await self._fail(order, result)

            await self._record_domain(order, result.expiration_date, result.registration_date)
            order.registrar_order_id = result.order_id
            OrderStateMachine.transition(order, OrderState.PROVISIONING)
            order.message = result.message
            await self.store.save_order(order)

            return await self.provisioning.activate(order)

    async def _await_reconcile(self, order: DomainOrder, result: DomainRegistrationResult) -> WorkflowResult:
        """
        The registrar's answer was lost (timeout, 5xx, unreadable body), so the
        domain may or may not be registered. The order stays in REGISTERING
        until ``reconcile`` reads the domain back.
        """
        logger.warning(f"⚠️  Registration outcome of {order.domain_name} unknown: {result.message}")
        order.message = f"Registration outcome unknown: {result.message}"
        order.error_code = result.error_code
        order.errors = list(result.errors)
        await self.store.save_order(order)
        return WorkflowResult.failed(
            order.state,
            order.message,
            error_code=result.error_code,
            errors=result.errors,
            order_id=order.order_id,
            invoice_id=order.invoice_id,
            correlation_id=order.correlation_id,
            next_action="reconcile"
        )

    async def _fail(self, order: DomainOrder, result: DomainRegistrationResult) -> WorkflowResult:
        logger.error(f"❌ Registration of {order.domain_name} failed: {result.message}")
        OrderStateMachine.transition(order, OrderState.FAILED)
        order.message = result.message
        order.error_code = result.error_code
        order.errors = list(result.errors)
        await self.store.save_order(order)
        return WorkflowResult.failed(
            order.state,
            result.message,
            error_code=result.error_code,
            errors=result.errors,
            order_id=order.order_id,
            invoice_id=order.invoice_id,
            correlation_id=order.correlation_id,
            next_action="manual_review"
        )

    async def _record_domain(
        self,
        order: DomainOrder,
        expiration_date: Optional[datetime],
        registration_date: Optional[datetime]
    ) -> ManagedDomain:
        registered = registration_date or datetime.now(timezone.utc)
        domain = ManagedDomain(
            domain_id=order.domain_id or uuid.uuid4().hex,
            domain_name=order.domain_name,
            customer_id=order.customer_id,
            order_id=order.order_id,
            registrar=self.registrar.provider_code,
            status="ACTIVE",
            registration_date=registered,
            expiration_date=expiration_date or add_years(registered, order.request.years),
            auto_renew=order.request.auto_renew,
            renewal_years=order.request.years
        )
        await self.store.save_domain(domain)
        order.domain_id = domain.domain_id
        return domain

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def reconcile(self, order_id: str) -> WorkflowResult:
        """
        Resolve an order stuck in REGISTERING by reading the domain back.

        An active domain completes the order; anything else leaves it for
        manual review. ``register_domain`` is never retried from here.
        """
        async with self.locks.for_key(order_id):
            order = await self.store.get_order(order_id)
            if order is None:
                return WorkflowResult.from_error(
                    "UNKNOWN", OrderNotFoundError(f"Order {order_id} not found"), order_id=order_id
                )

            if order.state != OrderState.REGISTERING:
                return WorkflowResult.succeeded(
                    order.state,
                    f"Nothing to reconcile; order is {order.state.value}",
                    order_id=order.order_id,
                    invoice_id=order.invoice_id,
                    domain_id=order.domain_id,
                    correlation_id=order.correlation_id
                )

            logger.info(f"── Reconciling order {order_id}: reading {order.domain_name} back from the registrar")
            info = await self.registrar.get_domain_info(order.domain_name)
            if not info.success or info.status != "ACTIVE":
                detail = info.message if not info.success else f"registrar reports status {info.status}"
                logger.warning(f"Order {order_id} still unresolved: {detail}")
                return WorkflowResult.failed(
                    order.state,
                    f"Registration outcome unresolved: {detail}",
                    error_code=info.error_code or "UNRESOLVED",
                    errors=info.errors,
                    order_id=order.order_id,
                    invoice_id=order.invoice_id,
                    correlation_id=order.correlation_id,
                    next_action="manual_review"
                )

            await self._record_domain(order, info.expiration_date, info.registration_date)
            OrderStateMachine.transition(order, OrderState.PROVISIONING)
            order.message = "Registration confirmed by reconciliation"
            order.error_code = None
            order.errors = []
            await self.store.save_order(order)
            return await self.provisioning.activate(order)
