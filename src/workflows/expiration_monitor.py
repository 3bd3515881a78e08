"""
Domain Expiration Monitor
Periodic sweep over managed domains: triggers renewals inside the renewal
window and marks lapsed domains as expired
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from src.utils.logger import get_logger
from src.workflows.collaborators import OrderStore
from src.workflows.renewal_workflow import DEFAULT_RENEWAL_WINDOW_DAYS, DomainRenewalWorkflow


logger = get_logger(__name__)


class DomainExpirationMonitor:
    """
    Sweeps every ACTIVE managed domain once per ``run_once`` call.

    A failure on one domain is logged and counted; the sweep carries on
    with the next one.
    """

    def __init__(
        self,
        store: OrderStore,
        renewal_workflow: DomainRenewalWorkflow,
        renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS
    ):
        self.store = store
        self.renewal_workflow = renewal_workflow
        self.renewal_window = timedelta(days=renewal_window_days)

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run a single sweep.

        Returns:
            Counts: checked, renewals_triggered, renewals_failed,
            expired_marked, errors
        """
        now = now or datetime.now(timezone.utc)
        report = {
            "checked": 0,
            "renewals_triggered": 0,
            "renewals_failed": 0,
            "expired_marked": 0,
            "errors": 0,
        }

        logger.info("🚀 Starting expiration sweep")
        for domain in await self.store.list_domains():
            if domain.status != "ACTIVE" or domain.expiration_date is None:
                continue
            report["checked"] += 1

            try:
                if domain.expiration_date <= now:
                    logger.warning(f"{domain.domain_name} expired on {domain.expiration_date.date()}")
                    domain.status = "EXPIRED"
                    await self.store.save_domain(domain)
                    report["expired_marked"] += 1
                elif domain.expiration_date - now <= self.renewal_window:
                    logger.info(f"── {domain.domain_name} expires {domain.expiration_date.date()}, renewing")
                    result = await self.renewal_workflow.execute(domain.domain_id)
                    report["renewals_triggered"] += 1
                    if not result.success:
                        logger.error(f"❌ Renewal of {domain.domain_name} failed: {result.message}")
                        report["renewals_failed"] += 1
            except Exception as exc:
                logger.exception(f"Expiration check failed for {domain.domain_name}: {exc}")
                report["errors"] += 1

        logger.info(
            f"Sweep done: {report['checked']} checked, {report['renewals_triggered']} renewals, "
            f"{report['expired_marked']} expired, {report['errors']} errors"
        )
        return report

    async def run(self, interval_seconds: float, iterations: Optional[int] = None) -> None:
        """Sweep every ``interval_seconds``; forever unless ``iterations`` is given"""
        completed = 0
        while iterations is None or completed < iterations:
            await self.run_once()
            completed += 1
            if iterations is None or completed < iterations:
                await asyncio.sleep(interval_seconds)
