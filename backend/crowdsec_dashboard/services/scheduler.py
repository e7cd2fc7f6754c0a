"""
Background scheduler for the decision sync

Polls CrowdSec LAPI every LAPI_POLL_INTERVAL seconds, starting right away.
Out-of-band full syncs (after a decision is deleted from the dashboard) run
as one-shot jobs on the same scheduler.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime
from typing import Optional

from crowdsec_dashboard.database import SessionLocal
from crowdsec_dashboard.lapi import get_lapi_client
from crowdsec_dashboard.services.broadcaster import get_broadcaster
from crowdsec_dashboard.sync.orchestrator import SyncOrchestrator
from crowdsec_dashboard.config import get_settings

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Scheduler driving the LAPI decision sync"""

    def __init__(self, orchestrator: Optional[SyncOrchestrator] = None):
        self.scheduler = BackgroundScheduler()
        self.settings = get_settings()
        self.orchestrator = orchestrator or SyncOrchestrator(
            session_factory=SessionLocal,
            client_factory=get_lapi_client,
            broadcaster=get_broadcaster(),
            retention_limit=self.settings.decision_retention_count,
            origins=self.settings.lapi_origins,
        )
        self._started = False

    def start(self):
        """Start the scheduler"""
        if self._started:
            logger.warning("Scheduler already started")
            return

        if not self.settings.lapi_configured:
            logger.warning("LAPI_URL or LAPI_BOUNCER_API_TOKEN not set, decision sync disabled")
            return

        interval = self.settings.lapi_poll_interval
        self.scheduler.add_job(
            func=self._sync_decisions_job,
            trigger=IntervalTrigger(seconds=interval),
            id='sync_decisions',
            name='Sync decisions from CrowdSec LAPI',
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.scheduler.start()
        self._started = True
        logger.info(f"Decision sync scheduler started (every {interval}s)")
        logger.info("Scheduled jobs: %s", [job.id for job in self.scheduler.get_jobs()])

    def stop(self):
        """Stop the scheduler"""
        if not self._started:
            return

        self.scheduler.shutdown()
        self._started = False
        logger.info("Decision sync scheduler stopped")

    @property
    def running(self) -> bool:
        return self._started

    def trigger_full_sync(self):
        """Queue an immediate full sync without waiting for the next poll"""
        if not self._started:
            logger.warning("Scheduler not running, full sync not triggered")
            return

        self.scheduler.add_job(
            func=self._sync_decisions_job,
            kwargs={"force_full_sync": True},
            id='full_sync',
            name='Full decision resync',
            replace_existing=True
        )
        logger.info("Full decision sync scheduled")

    def _sync_decisions_job(self, force_full_sync: bool = False):
        """Background job running one sync; failures are retried by the next poll"""
        try:
            result = self.orchestrator.run(force_full_sync=force_full_sync)
            if result is not None:
                logger.debug(
                    f"Sync finished in {result.duration:.2f}s",
                    extra={"new_count": result.new_count, "deleted_count": result.deleted_count}
                )
        except Exception as e:
            logger.error(f"Error in scheduled decision sync: {str(e)}", exc_info=True)


# Global scheduler instance
_scheduler: Optional[SyncScheduler] = None


def get_scheduler() -> SyncScheduler:
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = SyncScheduler()
    return _scheduler


def start_scheduler():
    """Start the global scheduler"""
    scheduler = get_scheduler()
    scheduler.start()


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
