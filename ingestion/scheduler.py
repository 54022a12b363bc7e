import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.exceptions import ReconciliationError
from ingestion.reconciler import ReconciliationSweeper

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """Run the counter reconciliation sweep on a fixed interval."""

    def __init__(self, sweeper: ReconciliationSweeper, interval_minutes: Optional[int] = None):
        self.sweeper = sweeper
        self.interval_minutes = interval_minutes or settings.RECONCILE_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler()

    async def run_reconcile_job(self):
        """Job to run one sweep"""
        logger.info("Scheduler: Starting reconciliation job")
        try:
            report = await self.sweeper.sweep()
            logger.info(f"Scheduler: Reconciliation finished, {report['rows_corrected']} rows corrected")
            return report
        except ReconciliationError as e:
            # Next interval retries; ingestion keeps running
            logger.error(
                f"Scheduler: Reconciliation job failed - {e.message}",
                extra={"error_context": e.to_dict()},
            )
            return None

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_reconcile_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="reconcile_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Reconciliation scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        self.scheduler.shutdown(wait=False)
        logger.info("Reconciliation scheduler stopped")
