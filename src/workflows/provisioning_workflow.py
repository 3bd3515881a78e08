"""
Order Provisioning Workflow
Activates the purchased service once the domain is confirmed registered
"""

from datetime import datetime, timezone
from typing import Optional

from src.utils.logger import get_logger
from src.workflows.collaborators import OrderStore, ProvisioningService
from src.workflows.exceptions import OrderNotFoundError, WorkflowStateConflict
from src.workflows.models import DomainOrder, OrderState, WorkflowResult
from src.workflows.state_machine import KeyedLocks, OrderStateMachine


logger = get_logger(__name__)


class OrderProvisioningWorkflow:
    """
    PROVISIONING -> COMPLETED.

    Re-running it for an order that is already provisioned is a no-op
    success.
    """

    def __init__(self, provisioning: ProvisioningService, store: OrderStore, locks: Optional[KeyedLocks] = None):
        self.provisioning = provisioning
        self.store = store
        self.locks = locks or KeyedLocks()

    async def provision(self, order_id: str) -> WorkflowResult:
        async with self.locks.for_key(order_id):
            order = await self.store.get_order(order_id)
            if order is None:
                return WorkflowResult.from_error(
                    "UNKNOWN", OrderNotFoundError(f"Order {order_id} not found"), order_id=order_id
                )

            if order.state == OrderState.COMPLETED and order.provisioned_at is not None:
                logger.info(f"Order {order_id} already provisioned - nothing to do")
                return WorkflowResult.succeeded(
                    order.state,
                    "Order already provisioned",
                    order_id=order.order_id,
                    invoice_id=order.invoice_id,
                    domain_id=order.domain_id,
                    correlation_id=order.correlation_id
                )

            if order.state != OrderState.PROVISIONING:
                conflict = WorkflowStateConflict(
                    order.state.value,
                    OrderState.COMPLETED.value,
                    f"Order {order_id} is {order.state.value}; only confirmed orders can be provisioned"
                )
                return WorkflowResult.failed(
                    order.state,
                    conflict.message,
                    error_code=conflict.error_code,
                    order_id=order.order_id,
                    correlation_id=order.correlation_id
                )

            return await self.activate(order)

    async def activate(self, order: DomainOrder) -> WorkflowResult:
        """
        Run provisioning for an order in PROVISIONING. Caller holds the order lock.

        A provisioning failure leaves the order in PROVISIONING so it can be
        retried; the domain itself is already registered.
        """
        logger.info(f"── Provisioning order {order.order_id} ({order.domain_name})")
        try:
            await self.provisioning.activate(order)
        except Exception as exc:
            logger.exception(f"Provisioning failed for order {order.order_id}: {exc}")
            order.message = f"Provisioning failed: {exc}"
            order.error_code = "PROVISIONING_FAILED"
            await self.store.save_order(order)
            return WorkflowResult.failed(
                order.state,
                order.message,
                error_code="PROVISIONING_FAILED",
                order_id=order.order_id,
                invoice_id=order.invoice_id,
                domain_id=order.domain_id,
                correlation_id=order.correlation_id,
                next_action="retry_provisioning"
            )

        order.provisioned_at = datetime.now(timezone.utc)
        order.error_code = None
        order.message = "Order completed"
        OrderStateMachine.transition(order, OrderState.COMPLETED)
        await self.store.save_order(order)
        logger.info(f"Order {order.order_id} completed")
        return WorkflowResult.succeeded(
            order.state,
            "Domain registered and provisioned",
            order_id=order.order_id,
            invoice_id=order.invoice_id,
            domain_id=order.domain_id,
            correlation_id=order.correlation_id
        )
