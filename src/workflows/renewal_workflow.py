"""
Domain Renewal Workflow
Renewal invoicing, reminders and auto-renewal without double billing
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from src.registrars.base_registrar import BaseRegistrar, add_years
from src.registrars.models import DomainRenewalRequest, DomainRenewalResult
from src.utils.logger import get_logger
from src.workflows.collaborators import BillingService, OrderStore
from src.workflows.exceptions import ManagedDomainNotFoundError
from src.workflows.models import ManagedDomain, WorkflowResult
from src.workflows.state_machine import KeyedLocks


logger = get_logger(__name__)

DEFAULT_RENEWAL_WINDOW_DAYS = 30


class DomainRenewalWorkflow:
    """
    Renews managed domains.

    A domain is due when its expiration falls within ``renewal_window_days``.
    The expiration a renewal was issued against is persisted before the
    registrar call. A second sweep in the same window (after a crash or a
    lost answer) reads the domain back instead of renewing or charging
    again.
    """

    def __init__(
        self,
        registrar: BaseRegistrar,
        billing: BillingService,
        store: OrderStore,
        renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS,
        locks: Optional[KeyedLocks] = None
    ):
        self.registrar = registrar
        self.billing = billing
        self.store = store
        self.renewal_window = timedelta(days=renewal_window_days)
        self.locks = locks or KeyedLocks()

    def is_due(self, domain: ManagedDomain, now: Optional[datetime] = None) -> bool:
        if domain.expiration_date is None:
            return False
        now = now or datetime.now(timezone.utc)
        return domain.expiration_date - now <= self.renewal_window

    @staticmethod
    def _renewal_pending(domain: ManagedDomain) -> bool:
        # a renewal was issued against the current expiration and its outcome never recorded
        return (
            domain.last_renewed_expiration is not None
            and domain.last_renewed_expiration == domain.expiration_date
        )

    @staticmethod
    def _not_found(domain_id: str) -> WorkflowResult:
        return WorkflowResult.from_error(
            "UNKNOWN", ManagedDomainNotFoundError(f"Domain {domain_id} not found"), domain_id=domain_id
        )

    async def execute(self, domain_id: str) -> WorkflowResult:
        """
        Renewal entry point for one domain.

        Auto-renew domains are renewed right away; the others get a renewal
        invoice and a reminder and wait for ``renew_after_payment``.
        """
        domain = await self.store.get_domain(domain_id)
        if domain is None:
            return self._not_found(domain_id)

        if not self.is_due(domain):
            return WorkflowResult.succeeded(
                domain.status,
                f"{domain.domain_name} is not due for renewal",
                domain_id=domain_id
            )

        if domain.auto_renew:
            return await self.process_auto_renewal(domain_id)

        async with self.locks.for_key(domain_id):
            domain = await self.store.get_domain(domain_id)
            if domain.pending_renewal_invoice_id:
                return WorkflowResult.succeeded(
                    domain.status,
                    f"Renewal invoice {domain.pending_renewal_invoice_id} already issued",
                    invoice_id=domain.pending_renewal_invoice_id,
                    domain_id=domain_id,
                    next_action="await_payment"
                )

            logger.info(f"── Issuing renewal invoice for {domain.domain_name}")
            invoice_id = await self.billing.create_renewal_invoice(domain)
            await self.billing.send_renewal_reminder(domain, invoice_id)
            domain.pending_renewal_invoice_id = invoice_id
            await self.store.save_domain(domain)

        return WorkflowResult.succeeded(
            domain.status,
            "Renewal invoice issued, reminder sent",
            invoice_id=invoice_id,
            domain_id=domain_id,
            next_action="await_payment"
        )

    async def renew_after_payment(self, domain_id: str, invoice_id: str) -> WorkflowResult:
        """Renew a manually renewed domain once its renewal invoice is paid"""
        async with self.locks.for_key(domain_id):
            domain = await self.store.get_domain(domain_id)
            if domain is None:
                return self._not_found(domain_id)
            if domain.pending_renewal_invoice_id != invoice_id:
                return WorkflowResult.failed(
                    domain.status,
                    f"Invoice {invoice_id} is not the open renewal invoice of {domain.domain_name}",
                    error_code="INVOICE_MISMATCH",
                    domain_id=domain_id
                )
            if self._renewal_pending(domain):
                return await self._reconcile_renewal(domain)
            domain.renewal_invoice_paid = True
            await self.store.save_domain(domain)
            return await self._renew(domain, invoice_id)

    async def process_auto_renewal(self, domain_id: str) -> WorkflowResult:
        """
        Charge and renew an auto-renew domain.

        Safe to call any number of times within one renewal window: only the
        first call that finds the domain due reaches the registrar.
        """
        async with self.locks.for_key(domain_id):
            domain = await self.store.get_domain(domain_id)
            if domain is None:
                return self._not_found(domain_id)

            if domain.expiration_date is None:
                return WorkflowResult.failed(
                    domain.status,
                    f"{domain.domain_name} has no known expiration date",
                    error_code="UNKNOWN_EXPIRATION",
                    domain_id=domain_id
                )

            if not self.is_due(domain):
                return WorkflowResult.succeeded(
                    domain.status,
                    f"{domain.domain_name} is not due for renewal (expires {domain.expiration_date.date()})",
                    domain_id=domain_id
                )

            if self._renewal_pending(domain):
                return await self._reconcile_renewal(domain)

            invoice_id = domain.pending_renewal_invoice_id
            if invoice_id is None:
                invoice_id = await self.billing.create_renewal_invoice(domain)
                domain.pending_renewal_invoice_id = invoice_id
                await self.store.save_domain(domain)

            if not domain.renewal_invoice_paid:
                logger.info(f"── Charging auto-renewal of {domain.domain_name}")
                if not await self.billing.charge_renewal(domain, invoice_id):
                    return WorkflowResult.failed(
                        domain.status,
                        f"Renewal payment for {domain.domain_name} failed",
                        error_code="PAYMENT_FAILED",
                        invoice_id=invoice_id,
                        domain_id=domain_id,
                        next_action="await_payment"
                    )
                domain.renewal_invoice_paid = True
                await self.store.save_domain(domain)

            return await self._renew(domain, invoice_id)

    async def _reconcile_renewal(self, domain: ManagedDomain) -> WorkflowResult:
        """
        Settle a renewal whose registrar answer was lost by reading the
        domain back. An expiration past the stored one means the renewal
        went through; anything else is left for manual review and
        ``renew_domain`` is not called again.
        """
        logger.info(f"── Reconciling renewal of {domain.domain_name}: reading expiration from the registrar")
        info = await self.registrar.get_domain_info(domain.domain_name)
        if info.success and info.expiration_date and info.expiration_date.date() > domain.expiration_date.date():
            return await self._record_renewal(
                domain, info.expiration_date, domain.pending_renewal_invoice_id, "already renewed"
            )

        if info.success:
            reported = info.expiration_date.date() if info.expiration_date else "no date"
            detail = f"registrar still reports expiration {reported}"
        else:
            detail = info.message
        logger.warning(f"⚠️  Renewal of {domain.domain_name} unresolved: {detail}")
        return WorkflowResult.failed(
            domain.status,
            f"Renewal outcome of {domain.domain_name} unresolved: {detail}",
            error_code=info.error_code or "UNRESOLVED",
            errors=info.errors,
            invoice_id=domain.pending_renewal_invoice_id,
            domain_id=domain.domain_id,
            next_action="manual_review"
        )

    async def _renew(self, domain: ManagedDomain, invoice_id: str) -> WorkflowResult:
        """Call the registrar once for a paid renewal. Caller holds the domain lock."""
        current_expiration = domain.expiration_date
        domain.last_renewed_expiration = current_expiration
        await self.store.save_domain(domain)

        logger.info(f"── Renewing {domain.domain_name} for {domain.renewal_years} year(s)")
        request = DomainRenewalRequest(
            domain_name=domain.domain_name,
            years=domain.renewal_years,
            current_expiration_year=current_expiration.year if current_expiration else None
        )
        try:
            result = await self.registrar.renew_domain(request)
        except Exception as exc:
            logger.exception(f"Registrar raised while renewing {domain.domain_name}: {exc}")
            result = DomainRenewalResult(
                success=False,
                domain_name=domain.domain_name,
                message=f"Registrar error: {exc}",
                error_code="REGISTRAR_EXCEPTION",
                transport_failure=True
            )

        if not result.success and result.transport_failure:
            # marker kept: the next attempt reconciles through get_domain_info
            logger.warning(f"⚠️  Renewal outcome of {domain.domain_name} unknown: {result.message}")
            return WorkflowResult.failed(
                domain.status,
                f"Renewal outcome unknown: {result.message}",
                error_code=result.error_code,
                errors=result.errors,
                invoice_id=invoice_id,
                domain_id=domain.domain_id,
                next_action="reconcile"
            )

        if not result.success:
            # the invoice stays paid and open, so a later attempt does not charge again
            logger.error(f"❌ Renewal of {domain.domain_name} rejected: {result.message}")
            domain.last_renewed_expiration = None
            await self.store.save_domain(domain)
            return WorkflowResult.failed(
                domain.status,
                result.message,
                error_code=result.error_code,
                errors=result.errors,
                invoice_id=invoice_id,
                domain_id=domain.domain_id,
                next_action="manual_review"
            )

        base = current_expiration or datetime.now(timezone.utc)
        return await self._record_renewal(
            domain, result.new_expiration_date or add_years(base, domain.renewal_years), invoice_id, "renewed"
        )

    async def _record_renewal(
        self,
        domain: ManagedDomain,
        new_expiration: datetime,
        invoice_id: Optional[str],
        outcome: str
    ) -> WorkflowResult:
        domain.expiration_date = new_expiration
        domain.pending_renewal_invoice_id = None
        domain.renewal_invoice_paid = False
        domain.status = "ACTIVE"
        await self.store.save_domain(domain)

        message = f"{domain.domain_name} {outcome} until {new_expiration.date()}"
        logger.info(message)
        return WorkflowResult.succeeded(domain.status, message, invoice_id=invoice_id, domain_id=domain.domain_id)
