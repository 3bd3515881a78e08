"""
Tests for the domain lifecycle workflows: registration, provisioning,
renewal and the expiration monitor.

The sandbox registrar stands in for a real provider (its writes never touch
the network); registrar methods are wrapped in AsyncMock to count calls.
Each scenario runs inside a single event loop.

Run:
    python -m pytest tests/test_workflows.py -v
"""

import asyncio
import gc
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.registrars.models import DomainInfoResult, DomainRegistrationResult, DomainRenewalResult
from src.registrars.sandbox_registrar import SandboxRegistrar
from src.workflows import (
    DomainExpirationMonitor,
    DomainRegistrationWorkflow,
    DomainRenewalWorkflow,
    InMemoryBillingService,
    InMemoryOrderStore,
    InMemoryProvisioningService,
    KeyedLocks,
    ManagedDomain,
    OrderProvisioningWorkflow,
    OrderState,
    OrderStateMachine,
    RegistrationWorkflowInput,
    WorkflowResult,
    WorkflowStateConflict,
)


def _run(coro):
    return asyncio.run(coro)


def _now():
    return datetime.now(timezone.utc)


@pytest.fixture
def registrar():
    registrar = SandboxRegistrar()
    registrar.check_availability = AsyncMock(wraps=registrar.check_availability)
    registrar.register_domain = AsyncMock(wraps=registrar.register_domain)
    registrar.renew_domain = AsyncMock(wraps=registrar.renew_domain)
    registrar.get_domain_info = AsyncMock(wraps=registrar.get_domain_info)
    return registrar


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def billing():
    return InMemoryBillingService()


@pytest.fixture
def provisioning():
    return InMemoryProvisioningService()


@pytest.fixture
def workflow(registrar, billing, provisioning, store):
    return DomainRegistrationWorkflow(registrar, billing, provisioning, store)


@pytest.fixture
def workflow_input(contact):
    return RegistrationWorkflowInput(
        domain_name="Example.com",
        customer_id="cust-1",
        years=2,
        auto_renew=True,
        nameservers=["ns1.example.net", "ns2.example.net"],
        registrant_contact=contact,
    )


# ===========================================================================
# 1. Result envelope and state machine
# ===========================================================================

class TestWorkflowBasics:

    def test_failed_result_always_has_errors(self):
        result = WorkflowResult.failed(OrderState.FAILED, "Boom")

        assert result.status == "FAILED"
        assert result.errors == ["Boom"]

    def test_success_with_errors_rejected(self):
        with pytest.raises(ValueError):
            WorkflowResult(success=True, errors=["nope"])

    def test_allowed_transitions(self):
        assert OrderStateMachine.can_transition(OrderState.AWAITING_PAYMENT, OrderState.REGISTERING)
        assert not OrderStateMachine.can_transition(OrderState.INITIATED, OrderState.REGISTERING)
        assert not OrderStateMachine.can_transition(OrderState.COMPLETED, OrderState.FAILED)
        assert OrderStateMachine.is_terminal(OrderState.FAILED)

    def test_invalid_transition_raises(self, workflow, workflow_input, store):
        async def scenario():
            created = await workflow.execute(workflow_input)
            order = await store.get_order(created.order_id)
            with pytest.raises(WorkflowStateConflict) as info:
                OrderStateMachine.transition(order, OrderState.COMPLETED)
            return info.value

        conflict = _run(scenario())
        assert conflict.error_code == "STATE_CONFLICT"
        assert conflict.current_state == "AWAITING_PAYMENT"

    def test_idle_locks_are_dropped(self):
        locks = KeyedLocks()
        lock = locks.for_key("ord-1")

        assert locks.for_key("ord-1") is lock
        assert "ord-1" in locks

        del lock
        gc.collect()
        assert "ord-1" not in locks


# ===========================================================================
# 2. Registration
# ===========================================================================

class TestRegistrationWorkflow:

    def test_execute_waits_for_payment(self, workflow, workflow_input, registrar, store, billing):
        result = _run(workflow.execute(workflow_input))

        assert result.success is True
        assert result.status == "AWAITING_PAYMENT"
        assert result.next_action == "await_payment"
        assert result.invoice_id == billing.orders[0].invoice_id
        assert store.orders[result.order_id].domain_name == "example.com"
        registrar.register_domain.assert_not_called()

    def test_invalid_domain_fails_before_billing(self, workflow, workflow_input, billing):
        result = _run(workflow.execute(workflow_input.model_copy(update={"domain_name": "not a domain"})))

        assert result.success is False
        assert result.error_code == "INVALID_DOMAIN"
        assert billing.orders == []

    def test_unavailable_domain_rejected_when_checked(self, workflow, workflow_input, registrar, billing):
        registrar.check_availability = AsyncMock(return_value=MagicMock(success=True, is_available=False))

        result = _run(workflow.execute(workflow_input.model_copy(update={"check_availability_first": True})))

        assert result.success is False
        assert result.error_code == "DOMAIN_NOT_AVAILABLE"
        assert billing.orders == []

    def test_payment_registers_and_provisions(self, workflow, workflow_input, registrar, store, provisioning):
        async def scenario():
            created = await workflow.execute(workflow_input)
            paid = await workflow.on_payment_received(created.order_id, created.invoice_id)
            return created, paid

        created, paid = _run(scenario())

        assert paid.success is True
        assert paid.status == "COMPLETED"
        assert provisioning.activated == [created.order_id]
        registrar.register_domain.assert_awaited_once()

        order = store.orders[created.order_id]
        assert order.provisioned_at is not None
        assert order.registrar_order_id.startswith("SBX-ORD-")

        domain = store.domains[paid.domain_id]
        assert domain.domain_name == "example.com"
        assert domain.auto_renew is True
        assert domain.renewal_years == 2
        assert domain.expiration_date.year == _now().year + 2

    def test_repeated_payment_registers_once(self, workflow, workflow_input, registrar):
        async def scenario():
            created = await workflow.execute(workflow_input)
            first = await workflow.on_payment_received(created.order_id)
            second = await workflow.on_payment_received(created.order_id)
            return first, second

        first, second = _run(scenario())

        assert first.status == second.status == "COMPLETED"
        assert "already processed" in second.message
        assert registrar.register_domain.await_count == 1

    def test_concurrent_payments_register_once(self, workflow, workflow_input, registrar):
        async def scenario():
            created = await workflow.execute(workflow_input)
            return await asyncio.gather(
                workflow.on_payment_received(created.order_id),
                workflow.on_payment_received(created.order_id),
                workflow.on_payment_received(created.order_id),
            )

        results = _run(scenario())

        assert all(r.success for r in results)
        assert registrar.register_domain.await_count == 1

    def test_invoice_mismatch(self, workflow, workflow_input, registrar):
        async def scenario():
            created = await workflow.execute(workflow_input)
            return await workflow.on_payment_received(created.order_id, "INV-OTHER")

        result = _run(scenario())

        assert result.success is False
        assert result.error_code == "INVOICE_MISMATCH"
        registrar.register_domain.assert_not_called()

    def test_unknown_order(self, workflow):
        result = _run(workflow.on_payment_received("ORD-MISSING"))

        assert result.success is False
        assert result.error_code == "ORDER_NOT_FOUND"

    def test_registrar_failure_fails_order(self, workflow, workflow_input, registrar, store, provisioning):
        registrar.register_domain = AsyncMock(return_value=DomainRegistrationResult(
            success=False,
            domain_name="example.com",
            message="Error registering domain: Domain taken",
            error_code="DOMAIN_NOT_AVAILABLE",
            errors=["Domain taken", "Try another TLD"],
        ))

        async def scenario():
            created = await workflow.execute(workflow_input)
            failed = await workflow.on_payment_received(created.order_id)
            again = await workflow.on_payment_received(created.order_id)
            return created, failed, again

        created, failed, again = _run(scenario())

        assert failed.success is False
        assert failed.status == "FAILED"
        assert failed.errors == ["Domain taken", "Try another TLD"]
        assert failed.next_action == "manual_review"
        assert store.orders[created.order_id].errors == ["Domain taken", "Try another TLD"]
        assert store.domains == {}
        assert provisioning.activated == []
        # a failed order is terminal
        assert again.error_code == "STATE_CONFLICT"
        assert registrar.register_domain.await_count == 1

    def test_registrar_exception_leaves_order_for_reconcile(self, workflow, workflow_input, registrar):
        registrar.register_domain = AsyncMock(side_effect=RuntimeError("socket closed"))

        async def scenario():
            created = await workflow.execute(workflow_input)
            return await workflow.on_payment_received(created.order_id)

        result = _run(scenario())

        assert result.success is False
        assert result.status == "REGISTERING"
        assert result.error_code == "REGISTRAR_EXCEPTION"
        assert result.next_action == "reconcile"

    def test_timed_out_registration_is_reconciled_not_resent(self, workflow, workflow_input, registrar, store):
        registrar.register_domain = AsyncMock(return_value=DomainRegistrationResult(
            success=False,
            domain_name="example.com",
            message="Error registering domain: request timed out",
            error_code="NETWORK_ERROR",
            transport_failure=True,
        ))

        async def scenario():
            created = await workflow.execute(workflow_input)
            lost = await workflow.on_payment_received(created.order_id)
            repeated = await workflow.on_payment_received(created.order_id)
            reconciled = await workflow.reconcile(created.order_id)
            return created, lost, repeated, reconciled

        created, lost, repeated, reconciled = _run(scenario())

        assert lost.success is False
        assert lost.status == "REGISTERING"
        assert lost.error_code == "NETWORK_ERROR"
        assert lost.next_action == "reconcile"
        assert repeated.next_action == "reconcile"
        assert reconciled.success is True
        assert reconciled.status == "COMPLETED"
        assert registrar.register_domain.await_count == 1
        registrar.get_domain_info.assert_awaited_once_with("example.com")

        order = store.orders[created.order_id]
        assert order.errors == []
        assert order.domain_id in store.domains


class TestReconcile:

    async def _stuck_order(self, workflow, workflow_input, store):
        """An order whose process died after REGISTERING was persisted"""
        created = await workflow.execute(workflow_input)
        order = await store.get_order(created.order_id)
        OrderStateMachine.transition(order, OrderState.REGISTERING)
        await store.save_order(order)
        return created.order_id

    def test_payment_retry_does_not_reregister(self, workflow, workflow_input, registrar, store):
        async def scenario():
            order_id = await self._stuck_order(workflow, workflow_input, store)
            return await workflow.on_payment_received(order_id)

        result = _run(scenario())

        assert result.success is True
        assert result.status == "REGISTERING"
        assert result.next_action == "reconcile"
        registrar.register_domain.assert_not_called()

    def test_reconcile_completes_active_domain(self, workflow, workflow_input, registrar, store):
        async def scenario():
            order_id = await self._stuck_order(workflow, workflow_input, store)
            return order_id, await workflow.reconcile(order_id)

        order_id, result = _run(scenario())

        assert result.success is True
        assert result.status == "COMPLETED"
        registrar.get_domain_info.assert_awaited_once_with("example.com")
        registrar.register_domain.assert_not_called()
        assert store.orders[order_id].domain_id in store.domains

    def test_reconcile_leaves_unresolved_order(self, workflow, workflow_input, registrar, store):
        registrar.get_domain_info = AsyncMock(return_value=DomainInfoResult(
            success=False, message="Error retrieving domain info: not found", error_code="NOT_FOUND"
        ))

        async def scenario():
            order_id = await self._stuck_order(workflow, workflow_input, store)
            return order_id, await workflow.reconcile(order_id)

        order_id, result = _run(scenario())

        assert result.success is False
        assert result.next_action == "manual_review"
        assert store.orders[order_id].state == OrderState.REGISTERING
        registrar.register_domain.assert_not_called()

    def test_reconcile_other_state_is_noop(self, workflow, workflow_input, registrar):
        async def scenario():
            created = await workflow.execute(workflow_input)
            return await workflow.reconcile(created.order_id)

        result = _run(scenario())

        assert result.success is True
        assert result.status == "AWAITING_PAYMENT"
        registrar.get_domain_info.assert_not_called()


# ===========================================================================
# 3. Provisioning
# ===========================================================================

class TestProvisioning:

    def test_failed_provisioning_can_be_retried(self, registrar, billing, store, workflow_input):
        provisioning = MagicMock()
        provisioning.activate = AsyncMock(side_effect=[RuntimeError("mailbox service down"), None])
        workflow = DomainRegistrationWorkflow(registrar, billing, provisioning, store)

        async def scenario():
            created = await workflow.execute(workflow_input)
            first = await workflow.on_payment_received(created.order_id)
            retried = await workflow.provisioning.provision(created.order_id)
            repeated = await workflow.provisioning.provision(created.order_id)
            return first, retried, repeated

        first, retried, repeated = _run(scenario())

        assert first.success is False
        assert first.status == "PROVISIONING"
        assert first.next_action == "retry_provisioning"
        assert retried.status == "COMPLETED"
        assert repeated.message == "Order already provisioned"
        assert provisioning.activate.await_count == 2
        assert registrar.register_domain.await_count == 1

    def test_unpaid_order_cannot_be_provisioned(self, workflow, workflow_input, store, provisioning):
        async def scenario():
            created = await workflow.execute(workflow_input)
            return await OrderProvisioningWorkflow(provisioning, store).provision(created.order_id)

        result = _run(scenario())

        assert result.success is False
        assert result.error_code == "STATE_CONFLICT"
        assert provisioning.activated == []


# ===========================================================================
# 4. Renewal
# ===========================================================================

def _domain(days_left: int, auto_renew: bool = True, **fields) -> ManagedDomain:
    return ManagedDomain(
        domain_id=fields.pop("domain_id", "dom-1"),
        domain_name=fields.pop("domain_name", "example.com"),
        expiration_date=_now() + timedelta(days=days_left),
        auto_renew=auto_renew,
        **fields
    )


class TestRenewalWorkflow:

    def _make(self, registrar, billing, store):
        return DomainRenewalWorkflow(registrar, billing, store, renewal_window_days=30)

    def test_auto_renew_charges_and_renews_once(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)

        async def scenario():
            await store.save_domain(_domain(10))
            first = await renewal.process_auto_renewal("dom-1")
            second = await renewal.process_auto_renewal("dom-1")
            return first, second

        first, second = _run(scenario())

        assert first.success is True
        assert second.success is True
        assert len(billing.charges) == 1
        assert registrar.renew_domain.await_count == 1
        domain = store.domains["dom-1"]
        assert domain.pending_renewal_invoice_id is None
        assert domain.renewal_invoice_paid is False
        assert domain.expiration_date - _now() > timedelta(days=300)

    def test_marker_blocks_second_renewal(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)
        domain = _domain(10)
        domain.last_renewed_expiration = domain.expiration_date

        async def scenario():
            await store.save_domain(domain)
            return await renewal.process_auto_renewal("dom-1")

        result = _run(scenario())

        assert result.success is True
        assert "already renewed" in result.message
        registrar.get_domain_info.assert_awaited_once_with("example.com")
        registrar.renew_domain.assert_not_called()
        assert billing.charges == []
        assert store.domains["dom-1"].expiration_date - _now() > timedelta(days=300)

    def test_not_due_does_nothing(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)

        async def scenario():
            await store.save_domain(_domain(200))
            return await renewal.execute("dom-1")

        result = _run(scenario())

        assert result.success is True
        assert "not due" in result.message
        assert billing.renewal_invoices == []

    def test_failed_charge_keeps_invoice(self, registrar, store):
        billing = InMemoryBillingService(charge_succeeds=False)
        renewal = self._make(registrar, billing, store)

        async def scenario():
            await store.save_domain(_domain(10))
            failed = await renewal.process_auto_renewal("dom-1")
            billing.charge_succeeds = True
            retried = await renewal.process_auto_renewal("dom-1")
            return failed, retried

        failed, retried = _run(scenario())

        assert failed.success is False
        assert failed.error_code == "PAYMENT_FAILED"
        assert retried.success is True
        assert len(billing.renewal_invoices) == 1
        assert billing.charges == [("dom-1", failed.invoice_id)]
        assert registrar.renew_domain.await_count == 1

    def test_rejected_renewal_is_retried_without_second_charge(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)
        registrar.renew_domain = AsyncMock(side_effect=[
            DomainRenewalResult(
                success=False,
                domain_name="example.com",
                message="Error renewing domain: registry rejected the period",
                error_code="VALIDATION_FAILED",
            ),
            DomainRenewalResult(success=True, domain_name="example.com", message="Renewed"),
        ])

        async def scenario():
            await store.save_domain(_domain(10))
            failed = await renewal.process_auto_renewal("dom-1")
            pending = (await store.get_domain("dom-1")).model_copy()
            retried = await renewal.process_auto_renewal("dom-1")
            return failed, pending, retried

        failed, pending, retried = _run(scenario())

        assert failed.success is False
        assert failed.next_action == "manual_review"
        assert pending.renewal_invoice_paid is True
        assert pending.last_renewed_expiration is None
        assert retried.success is True
        assert len(billing.charges) == 1
        assert registrar.renew_domain.await_count == 2
        registrar.get_domain_info.assert_not_called()

    def _lost_renewal(self):
        return DomainRenewalResult(
            success=False,
            domain_name="example.com",
            message="Error renewing domain: request timed out",
            error_code="NETWORK_ERROR",
            transport_failure=True,
        )

    def test_lost_renewal_answer_is_not_renewed_again(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)
        domain = _domain(10)
        registrar.renew_domain = AsyncMock(return_value=self._lost_renewal())
        registrar.get_domain_info = AsyncMock(return_value=DomainInfoResult(
            success=True, domain_name="example.com", status="ACTIVE", expiration_date=domain.expiration_date
        ))

        async def scenario():
            await store.save_domain(domain)
            first = await renewal.process_auto_renewal("dom-1")
            second = await renewal.process_auto_renewal("dom-1")
            return first, second

        first, second = _run(scenario())

        assert first.success is False
        assert first.next_action == "reconcile"
        assert second.success is False
        assert second.error_code == "UNRESOLVED"
        assert second.next_action == "manual_review"
        assert registrar.renew_domain.await_count == 1
        assert registrar.get_domain_info.await_count == 1
        assert len(billing.charges) == 1

        stored = store.domains["dom-1"]
        assert stored.last_renewed_expiration == domain.expiration_date
        assert stored.renewal_invoice_paid is True

    def test_lost_renewal_answer_confirmed_by_registrar(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)
        domain = _domain(10)
        renewed_until = domain.expiration_date + timedelta(days=365)
        registrar.renew_domain = AsyncMock(return_value=self._lost_renewal())
        registrar.get_domain_info = AsyncMock(return_value=DomainInfoResult(
            success=True, domain_name="example.com", status="ACTIVE", expiration_date=renewed_until
        ))

        async def scenario():
            await store.save_domain(domain)
            await renewal.process_auto_renewal("dom-1")
            return await renewal.process_auto_renewal("dom-1")

        result = _run(scenario())

        assert result.success is True
        assert "already renewed" in result.message
        assert registrar.renew_domain.await_count == 1
        assert len(billing.charges) == 1

        stored = store.domains["dom-1"]
        assert stored.expiration_date == renewed_until
        assert stored.pending_renewal_invoice_id is None
        assert stored.renewal_invoice_paid is False

    def test_manual_renewal_invoice_then_payment(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)

        async def scenario():
            await store.save_domain(_domain(10, auto_renew=False))
            issued = await renewal.execute("dom-1")
            reissued = await renewal.execute("dom-1")
            mismatch = await renewal.renew_after_payment("dom-1", "INV-WRONG")
            renewed = await renewal.renew_after_payment("dom-1", issued.invoice_id)
            return issued, reissued, mismatch, renewed

        issued, reissued, mismatch, renewed = _run(scenario())

        assert issued.next_action == "await_payment"
        assert reissued.invoice_id == issued.invoice_id
        assert len(billing.reminders) == 1
        assert mismatch.error_code == "INVOICE_MISMATCH"
        assert renewed.success is True
        assert billing.charges == []
        assert registrar.renew_domain.await_count == 1

    def test_renewal_passes_expiration_year(self, registrar, billing, store):
        renewal = self._make(registrar, billing, store)
        domain = _domain(10, renewal_years=3)

        async def scenario():
            await store.save_domain(domain)
            return await renewal.process_auto_renewal("dom-1")

        _run(scenario())

        request = registrar.renew_domain.await_args.args[0]
        assert request.years == 3
        assert request.current_expiration_year == domain.expiration_date.year

    def test_unknown_domain(self, registrar, billing, store):
        result = _run(self._make(registrar, billing, store).execute("nope"))

        assert result.success is False
        assert result.error_code == "DOMAIN_NOT_FOUND"


# ===========================================================================
# 5. Expiration monitor
# ===========================================================================

class TestExpirationMonitor:

    def test_sweep_renews_and_marks_expired(self, registrar, billing, store):
        renewal = DomainRenewalWorkflow(registrar, billing, store)
        monitor = DomainExpirationMonitor(store, renewal)

        async def scenario():
            await store.save_domain(_domain(10, domain_id="due"))
            await store.save_domain(_domain(-1, domain_id="lapsed", domain_name="old.com"))
            await store.save_domain(_domain(300, domain_id="later", domain_name="later.com"))
            await store.save_domain(_domain(5, domain_id="gone", domain_name="gone.com", status="CANCELLED"))
            return await monitor.run_once()

        report = _run(scenario())

        assert report == {
            "checked": 3,
            "renewals_triggered": 1,
            "renewals_failed": 0,
            "expired_marked": 1,
            "errors": 0,
        }
        assert store.domains["lapsed"].status == "EXPIRED"
        assert store.domains["gone"].status == "CANCELLED"
        assert registrar.renew_domain.await_count == 1

    def test_sweep_continues_after_error(self, store):
        renewal = MagicMock()

        async def execute(domain_id):
            if domain_id == "broken":
                raise RuntimeError("billing offline")
            return WorkflowResult.failed("ACTIVE", "Renewal payment failed", error_code="PAYMENT_FAILED")

        renewal.execute = AsyncMock(side_effect=execute)
        monitor = DomainExpirationMonitor(store, renewal)

        async def scenario():
            await store.save_domain(_domain(3, domain_id="broken"))
            await store.save_domain(_domain(4, domain_id="unpaid", domain_name="unpaid.com"))
            return await monitor.run_once()

        report = _run(scenario())

        assert report["errors"] == 1
        assert report["renewals_triggered"] == 1
        assert report["renewals_failed"] == 1
        assert renewal.execute.await_count == 2

    def test_run_repeats_sweeps(self, store):
        monitor = DomainExpirationMonitor(store, MagicMock())
        monitor.run_once = AsyncMock(return_value={})

        _run(monitor.run(interval_seconds=0, iterations=3))

        assert monitor.run_once.await_count == 3
