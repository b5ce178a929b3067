"""Background scheduler for periodic rebalance runs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .logging_config import get_logger
from .services.rebalance import RunSummary, run_rebalance

if TYPE_CHECKING:
    from .context import AppContext

logger = get_logger("scheduler")

REBALANCE_JOB_ID = "rebalance"


class RebalanceScheduler:
    """Runs the rebalance job on a fixed interval."""

    def __init__(self, ctx: AppContext, scheduler: Optional[BaseScheduler] = None):
        """Bind the job to a context and an optional scheduler.

        Args:
            ctx: Context the rebalance job runs against
            scheduler: APScheduler instance to drive; a ``BackgroundScheduler`` by default
        """
        self.ctx = ctx
        self._scheduler_override = scheduler
        self.scheduler: Optional[BaseScheduler] = None

    def register(self, scheduler: BaseScheduler) -> None:
        """Add the rebalance job to ``scheduler``."""
        minutes = self.ctx.config.RUN_INTERVAL_MINUTES
        scheduler.add_job(
            func=self.run_once,
            trigger=IntervalTrigger(minutes=minutes),
            id=REBALANCE_JOB_ID,
            name="Equal-weight rebalance",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled rebalance every %s minutes", minutes, extra={"interval_minutes": minutes})

    def start(self) -> None:
        """Start a background scheduler unless one is already running."""
        if self.scheduler is not None:
            logger.warning("Scheduler already running")
            return

        scheduler = self._scheduler_override or BackgroundScheduler()
        self.register(scheduler)
        scheduler.start()
        self.scheduler = scheduler
        logger.info("Rebalance scheduler started")

    def stop(self) -> None:
        """Shut down the running scheduler, if any."""
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
            self.scheduler = None
            logger.info("Rebalance scheduler stopped")

    def run_once(self) -> Optional[RunSummary]:
        """Execute one run; failures are logged and swallowed so the job keeps firing."""
        try:
            return run_rebalance(self.ctx)
        except Exception as exc:
            logger.error(f"Scheduled rebalance failed: {exc}", exc_info=True)
            return None


def create_scheduler(ctx: AppContext, *, auto_start: bool = False) -> RebalanceScheduler:
    """Create and optionally start a rebalance scheduler.

    Args:
        ctx: Application context
        auto_start: Whether to start the scheduler immediately

    Returns:
        RebalanceScheduler instance
    """
    scheduler = RebalanceScheduler(ctx)
    if auto_start:
        scheduler.start()
    return scheduler
