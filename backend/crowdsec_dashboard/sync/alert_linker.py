"""
Links polled decisions to the LAPI alerts that produced them.

LAPI cannot list alerts for several IPs at once, so alerts are fetched per
IP, a bounded chunk of IPs at a time, and each alert's own decision list
is inverted into a decision id -> alerts map.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List

from crowdsec_dashboard.lapi.client import LapiClient
from crowdsec_dashboard.schemas.lapi_schemas import LapiAlert, LapiDecision

logger = logging.getLogger(__name__)

ALERT_FETCH_CHUNK_SIZE = 10


def _fetch_alerts_for_ip(client: LapiClient, ip: str) -> List[LapiAlert]:
    try:
        return client.get_alerts(ip=ip, has_active_decision=True)
    except Exception as e:
        logger.warning(f"Failed to fetch alerts for {ip}: {e}")
        return []


def build_decision_to_alert_map(
    decisions: List[LapiDecision],
    client: LapiClient,
    chunk_size: int = ALERT_FETCH_CHUNK_SIZE,
) -> Dict[int, List[LapiAlert]]:
    """
    Build a map of decision id -> alerts for the given decisions.

    A decision can be backed by several alerts (one per scenario) and an
    alert can reference several decisions; alerts are accumulated per
    decision id, each alert id at most once. Alerts without events are
    skipped. A failed lookup for one IP yields no alerts for that IP.
    """
    wanted_ids = {d.id for d in decisions}
    distinct_ips = list(dict.fromkeys(d.value for d in decisions))
    decision_to_alerts: Dict[int, Dict[int, LapiAlert]] = {}

    if not distinct_ips:
        return {}

    with ThreadPoolExecutor(max_workers=min(chunk_size, len(distinct_ips))) as executor:
        for start in range(0, len(distinct_ips), chunk_size):
            chunk = distinct_ips[start:start + chunk_size]
            alerts_per_ip = executor.map(lambda ip: _fetch_alerts_for_ip(client, ip), chunk)

            for alerts in alerts_per_ip:
                for alert in alerts:
                    if not alert.events:
                        continue
                    for ref in alert.decisions:
                        if ref.id in wanted_ids:
                            decision_to_alerts.setdefault(ref.id, {})[alert.id] = alert

    logger.info(f"Linked {len(decision_to_alerts)}/{len(decisions)} decisions to alerts")

    return {
        decision_id: list(alerts.values())
        for decision_id, alerts in decision_to_alerts.items()
    }
