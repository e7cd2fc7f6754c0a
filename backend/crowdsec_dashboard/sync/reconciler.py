"""
Persistence side of the decision sync: applies LAPI stream results to the
local hosts / alerts / decisions tables.

Write protocol
--------------
Every operation is idempotent and works in batches of ``batch_size``
items, each batch committed as one transaction (rolled back and re-raised
on failure; earlier batches stay committed).

Writes for new decisions happen in two phases:

1. Hosts (``upsert_hosts`` / ``ensure_hosts_exist``) and alerts
   (``upsert_alerts``, or implicitly inside ``upsert_active_decisions``)
2. Decisions, which reference both through foreign keys

Host ban counters are never adjusted incrementally; call
``update_host_ban_counts`` for the affected IPs after a phase 2 write or a
prune.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import delete, func, update
from sqlalchemy.orm import Session

from crowdsec_dashboard.alert_types import extract_alert_data
from crowdsec_dashboard.models import Alert, Decision, Host, decision_alerts
from crowdsec_dashboard.schemas.lapi_schemas import AlertSource, LapiAlert, LapiDecision
from crowdsec_dashboard.sync.transform import compute_expires_at, lookup_country
from crowdsec_dashboard.utils.time_utils import parse_rfc3339

logger = logging.getLogger(__name__)

BATCH_SIZE = 500

DecisionAlertMap = Dict[int, List[LapiAlert]]


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _distinct(values: Iterable) -> list:
    return list(dict.fromkeys(values))


class DecisionReconciler:
    """Applies decision stream results to the database"""

    def __init__(
        self,
        db: Session,
        batch_size: int = BATCH_SIZE,
        country_lookup: Callable[[str], Optional[str]] = lookup_country,
    ):
        self.db = db
        self.batch_size = batch_size
        self.country_lookup = country_lookup

    @contextmanager
    def _transaction(self):
        """One transaction per batch"""
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ==================== Phase 1: hosts and alerts ====================

    def upsert_hosts(self, decisions: List[LapiDecision], decision_to_alerts: DecisionAlertMap) -> None:
        """
        Create or refresh the hosts targeted by new decisions.

        Enrichment comes from the first linked alert carrying source data,
        with a GeoIP country lookup as fallback. Existing hosts only get a
        field overwritten when the incoming value is not None, and
        ``first_seen`` is never touched.
        """
        for batch in _chunks(decisions, self.batch_size):
            with self._transaction():
                hosts = self._load_hosts([d.value for d in batch])
                now = datetime.utcnow()

                for d in batch:
                    source = self._enrichment_source(decision_to_alerts.get(d.id, []))
                    enrichment = {
                        "country": source.cn if source.cn is not None else self.country_lookup(d.value),
                        "as_number": source.as_number,
                        "as_name": source.as_name,
                        "latitude": source.latitude,
                        "longitude": source.longitude,
                    }

                    host = hosts.get(d.value)
                    if host is None:
                        host = Host(
                            ip=d.value,
                            scope=d.scope,
                            first_seen=now,
                            last_seen=now,
                            total_bans=0,  # fixed by update_host_ban_counts
                            **enrichment,
                        )
                        self.db.add(host)
                        hosts[d.value] = host
                        continue

                    host.scope = d.scope
                    host.last_seen = now
                    for field, value in enrichment.items():
                        if value is not None:
                            setattr(host, field, value)

    def ensure_hosts_exist(self, decisions: List[LapiDecision]) -> None:
        """Create stub hosts for decisions leaving LAPI; existing hosts are left as is"""
        for batch in _chunks(decisions, self.batch_size):
            with self._transaction():
                hosts = self._load_hosts([d.value for d in batch])
                now = datetime.utcnow()
                for d in batch:
                    if d.value in hosts:
                        continue
                    host = Host(
                        ip=d.value,
                        scope=d.scope,
                        first_seen=now,
                        last_seen=now,
                        total_bans=0,
                        country=self.country_lookup(d.value),
                    )
                    self.db.add(host)
                    hosts[d.value] = host

    def upsert_alerts(self, decisions: List[LapiDecision], decision_to_alerts: DecisionAlertMap) -> None:
        """Store the alerts linked to the given decisions. Stored alerts are never modified."""
        for batch in _chunks(decisions, self.batch_size):
            with self._transaction():
                self._stage_alerts(batch, decision_to_alerts)

    # ==================== Phase 2: decisions ====================

    def upsert_active_decisions(self, decisions: List[LapiDecision], decision_to_alerts: DecisionAlertMap) -> None:
        """
        Store decisions as active and link them to their alerts.

        The batch's alerts are written first, in the same transaction.
        Links missing from an earlier partial sync are back-filled; existing
        links are never removed. ``created_at``, ``duration`` and
        ``expires_at`` are only set on insert.
        """
        for batch in _chunks(decisions, self.batch_size):
            with self._transaction():
                alerts = self._stage_alerts(batch, decision_to_alerts)
                self.db.flush()

                existing = self._load_decisions([d.id for d in batch])
                for d in batch:
                    linked = [alerts[a.id] for a in decision_to_alerts.get(d.id, [])]
                    decision = existing.get(d.id)

                    if decision is None:
                        decision = self._new_decision(d, active=True)
                        decision.alerts = linked
                        self.db.add(decision)
                        existing[d.id] = decision
                        continue

                    decision.type = d.type
                    decision.origin = d.origin
                    decision.scenario = d.scenario
                    decision.active = True
                    for alert in linked:
                        if alert not in decision.alerts:
                            decision.alerts.append(alert)

    def upsert_inactive_decisions(self, decisions: List[LapiDecision]) -> None:
        """
        Store decisions LAPI reported as deleted, as inactive.

        ``expires_at`` is recomputed from the reported duration so that a
        negative duration (already expired) lands in the past.
        """
        for batch in _chunks(decisions, self.batch_size):
            with self._transaction():
                existing = self._load_decisions([d.id for d in batch])
                for d in batch:
                    decision = existing.get(d.id)
                    if decision is None:
                        decision = self._new_decision(d, active=False)
                        self.db.add(decision)
                        existing[d.id] = decision
                        continue
                    decision.active = False
                    decision.expires_at = compute_expires_at(d)

    # ==================== Maintenance ====================

    def deactivate_stale_decisions(self, active_ids: Iterable[int]) -> int:
        """
        Mark active decisions missing from ``active_ids`` as inactive.

        Meant for full (startup) syncs, where ``active_ids`` is the
        authoritative active set. Ban counts of the affected hosts are
        recomputed. Returns the number deactivated.
        """
        authoritative = set(active_ids)
        local_active = dict(
            self.db.query(Decision.id, Decision.host_ip).filter(Decision.active.is_(True)).all()
        )
        stale = sorted(set(local_active) - authoritative)

        for batch in _chunks(stale, self.batch_size):
            with self._transaction():
                self.db.execute(
                    update(Decision)
                    .where(Decision.id.in_(batch))
                    .values(active=False)
                    .execution_options(synchronize_session=False)
                )

        if stale:
            self.update_host_ban_counts(local_active[decision_id] for decision_id in stale)
            logger.info(f"Marked {len(stale)} stale decisions as inactive")
        return len(stale)

    def prune_old_decisions(self, retention_limit: int) -> List[str]:
        """
        Delete the oldest inactive decisions until at most ``retention_limit``
        remain, then delete alerts no longer referenced by any decision.

        Active decisions are never pruned, so the total can stay above the
        limit. Returns the distinct host IPs of pruned decisions.
        """
        total = self.db.query(func.count(Decision.id)).scalar() or 0
        if total <= retention_limit:
            return []

        excess = total - retention_limit
        to_prune = (
            self.db.query(Decision.id, Decision.host_ip)
            .filter(Decision.active.is_(False))
            .order_by(Decision.created_at.asc(), Decision.id.asc())
            .limit(excess)
            .all()
        )
        if not to_prune:
            return []

        prune_ids = [row.id for row in to_prune]
        for batch in _chunks(prune_ids, self.batch_size):
            with self._transaction():
                self.db.execute(delete(decision_alerts).where(decision_alerts.c.decision_id.in_(batch)))
                self.db.execute(
                    delete(Decision)
                    .where(Decision.id.in_(batch))
                    .execution_options(synchronize_session=False)
                )

        orphan_ids = [row[0] for row in self.db.query(Alert.id).filter(~Alert.decisions.any())]
        for batch in _chunks(orphan_ids, self.batch_size):
            with self._transaction():
                self.db.execute(
                    delete(Alert)
                    .where(Alert.id.in_(batch))
                    .execution_options(synchronize_session=False)
                )

        logger.info(
            f"Pruned {len(prune_ids)} inactive decisions, {len(orphan_ids)} orphaned alerts "
            f"(retention limit: {retention_limit})"
        )
        return _distinct(row.host_ip for row in to_prune)

    def update_host_ban_counts(self, ips: Iterable[str]) -> None:
        """Recompute each host's total_bans from a count of its active decisions"""
        ips = _distinct(ips)
        for batch in _chunks(ips, self.batch_size):
            with self._transaction():
                counts = dict(
                    self.db.query(Decision.host_ip, func.count(Decision.id))
                    .filter(Decision.host_ip.in_(batch), Decision.active.is_(True))
                    .group_by(Decision.host_ip)
                    .all()
                )
                for ip in batch:
                    self.db.execute(
                        update(Host)
                        .where(Host.ip == ip)
                        .values(total_bans=counts.get(ip, 0))
                        .execution_options(synchronize_session=False)
                    )

    # ==================== Helpers ====================

    def _load_hosts(self, ips: List[str]) -> Dict[str, Host]:
        rows = self.db.query(Host).filter(Host.ip.in_(_distinct(ips))).all()
        return {host.ip: host for host in rows}

    def _load_decisions(self, ids: List[int]) -> Dict[int, Decision]:
        rows = self.db.query(Decision).filter(Decision.id.in_(_distinct(ids))).all()
        return {decision.id: decision for decision in rows}

    def _stage_alerts(self, batch: Sequence[LapiDecision], decision_to_alerts: DecisionAlertMap) -> Dict[int, Alert]:
        """Add missing alerts for the batch to the session; returns all of them by id"""
        wanted: Dict[int, LapiAlert] = {}
        for d in batch:
            for alert in decision_to_alerts.get(d.id, []):
                wanted[alert.id] = alert
        if not wanted:
            return {}

        stored = {
            alert.id: alert
            for alert in self.db.query(Alert).filter(Alert.id.in_(list(wanted))).all()
        }
        for alert_id, alert in wanted.items():
            if alert_id in stored:
                continue
            extract = extract_alert_data(alert)
            row = Alert(
                id=alert.id,
                scenario=alert.scenario,
                message=alert.message,
                created_at=parse_rfc3339(alert.created_at) or datetime.utcnow(),
                host_ip=alert.source.value or alert.source.ip or "",
                entries=extract.entries,
                entry_type=extract.entry_type.value,
                events=[event.model_dump() for event in alert.events],
            )
            self.db.add(row)
            stored[alert_id] = row
        return stored

    @staticmethod
    def _enrichment_source(alerts: List[LapiAlert]) -> AlertSource:
        for alert in alerts:
            source = alert.source
            if any(
                value is not None
                for value in (source.cn, source.as_number, source.as_name, source.latitude, source.longitude)
            ):
                return source
        return AlertSource()

    @staticmethod
    def _new_decision(d: LapiDecision, active: bool) -> Decision:
        return Decision(
            id=d.id,
            host_ip=d.value,
            type=d.type,
            origin=d.origin,
            scope=d.scope,
            scenario=d.scenario,
            duration=d.duration,
            created_at=datetime.utcnow(),
            expires_at=compute_expires_at(d),
            active=active,
        )
