"""
Decision sync run loop.

One run: fetch the decision stream, link and store new decisions, mark
deleted ones inactive, heal stale rows after a full sync, prune over the
retention limit and broadcast the resulting state.

At most one run is in flight per orchestrator. A run attempted while
another is running is skipped, not queued; the next poll catches up.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from crowdsec_dashboard.lapi.client import LapiClient
from crowdsec_dashboard.metrics import (
    record_decisions_processed,
    record_sync_run,
    update_active_decisions,
)
from crowdsec_dashboard.schemas.lapi_schemas import LapiDecision
from crowdsec_dashboard.services.broadcaster import Broadcaster
from crowdsec_dashboard.services.decision_service import DecisionService
from crowdsec_dashboard.sync.alert_linker import build_decision_to_alert_map
from crowdsec_dashboard.sync.reconciler import DecisionReconciler

logger = logging.getLogger(__name__)

DEFAULT_ORIGINS = "crowdsec,cscli"


class SyncState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class SyncResult:
    """Outcome of one completed run"""
    full_sync: bool
    new_count: int = 0
    deleted_count: int = 0
    stale_count: int = 0
    pruned_hosts: int = 0
    active_decisions: int = 0
    hosts: int = 0
    duration: float = 0.0


def _distinct_ips(decisions: List[LapiDecision]) -> List[str]:
    return list(dict.fromkeys(d.value for d in decisions))


class SyncOrchestrator:
    """
    Runs the decision sync against one LAPI and one database.

    ``first_fetch`` starts True and is cleared after the first successful
    run, so every process starts with a full (startup) stream request.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        client_factory: Callable[[], LapiClient],
        broadcaster: Broadcaster,
        retention_limit: Optional[int] = None,
        origins: str = DEFAULT_ORIGINS,
    ):
        self.session_factory = session_factory
        self.client_factory = client_factory
        self.broadcaster = broadcaster
        self.retention_limit = retention_limit
        self.origins = origins

        self.state = SyncState.IDLE
        self.first_fetch = True
        self.pending_full_sync = False
        self.last_result: Optional[SyncResult] = None
        self._lock = threading.Lock()

    def run(self, force_full_sync: bool = False) -> Optional[SyncResult]:
        """
        Execute one sync run.

        Args:
            force_full_sync: Request the complete active set (startup=true)
                regardless of ``first_fetch``. If a run is already in flight
                the request is kept and applied to the next run.

        Returns:
            SyncResult, or None when skipped because another run is in progress

        Raises:
            Whatever the failing step raised. Batches committed before the
            failure stay committed.
        """
        if not self._lock.acquire(blocking=False):
            if force_full_sync:
                self.pending_full_sync = True
            logger.info("Sync already in progress, skipping this run")
            record_sync_run("skipped")
            return None

        self.state = SyncState.RUNNING
        full_sync = self.first_fetch or force_full_sync or self.pending_full_sync
        self.pending_full_sync = False
        started = time.monotonic()

        try:
            result = self._run(full_sync)
        except Exception:
            if full_sync:
                # Retry the full sync on the next run
                self.pending_full_sync = True
            record_sync_run("failed")
            raise
        finally:
            self.state = SyncState.IDLE
            self._lock.release()

        result.duration = time.monotonic() - started
        self.first_fetch = False
        self.last_result = result
        record_sync_run("success", mode="full" if full_sync else "delta", duration=result.duration)
        return result

    def _run(self, full_sync: bool) -> SyncResult:
        logger.info(
            f"Starting sync (startup={full_sync}, first_fetch={self.first_fetch})",
            extra={"startup": full_sync}
        )

        client = self.client_factory()
        stream = client.get_decision_stream(startup=full_sync, origins=self.origins)
        new_decisions = stream.new
        deleted_decisions = stream.deleted

        logger.info(f"Stream: {len(new_decisions)} new, {len(deleted_decisions)} deleted")
        result = SyncResult(
            full_sync=full_sync,
            new_count=len(new_decisions),
            deleted_count=len(deleted_decisions),
        )

        db = self.session_factory()
        try:
            reconciler = DecisionReconciler(db)

            if new_decisions:
                logger.info(f"Processing {len(new_decisions)} new decisions")
                self._add_new_decisions(reconciler, client, new_decisions)
                record_decisions_processed("new", len(new_decisions))

            if deleted_decisions:
                logger.info(f"Processing {len(deleted_decisions)} deleted decisions")
                self._remove_deleted_decisions(reconciler, deleted_decisions)
                record_decisions_processed("deleted", len(deleted_decisions))

            if full_sync:
                result.stale_count = reconciler.deactivate_stale_decisions(d.id for d in new_decisions)
                record_decisions_processed("stale", result.stale_count)

            if self.retention_limit is not None:
                pruned_ips = reconciler.prune_old_decisions(self.retention_limit)
                if pruned_ips:
                    reconciler.update_host_ban_counts(pruned_ips)
                result.pruned_hosts = len(pruned_ips)

            result.active_decisions, result.hosts = self._broadcast_current_state(db)
        finally:
            db.close()

        logger.info(
            f"Sync complete: {result.active_decisions} active decisions, {result.hosts} hosts"
        )
        return result

    def _add_new_decisions(
        self,
        reconciler: DecisionReconciler,
        client: LapiClient,
        decisions: List[LapiDecision],
    ) -> None:
        decision_to_alerts = build_decision_to_alert_map(decisions, client)
        reconciler.upsert_hosts(decisions, decision_to_alerts)
        reconciler.upsert_alerts(decisions, decision_to_alerts)
        reconciler.upsert_active_decisions(decisions, decision_to_alerts)
        reconciler.update_host_ban_counts(_distinct_ips(decisions))

    def _remove_deleted_decisions(self, reconciler: DecisionReconciler, decisions: List[LapiDecision]) -> None:
        reconciler.ensure_hosts_exist(decisions)
        reconciler.upsert_inactive_decisions(decisions)
        reconciler.update_host_ban_counts(_distinct_ips(decisions))

    def _broadcast_current_state(self, db: Session):
        service = DecisionService(db)

        decisions = service.decisions_payload()
        self.broadcaster.broadcast("decisions", decisions)

        hosts = service.hosts_payload()
        self.broadcaster.broadcast("hosts", hosts)

        update_active_decisions(len(decisions))
        return len(decisions), len(hosts)
