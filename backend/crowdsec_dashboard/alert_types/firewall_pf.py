"""
Firewall alerts from OPNsense pf logs (firewallservices/* scenarios,
log_type "pf_drop" / "pf_pass").

The pf parser aggregates destination ports into the alert-level
``dst_port`` meta as a JSON list, e.g. ["tcp:3389", "tcp:22"].
"""

import json
import logging
from typing import List

from crowdsec_dashboard.alert_types.common import EventType, ParsedEvent, parse_common, present
from crowdsec_dashboard.models import AlertEntryType
from crowdsec_dashboard.schemas.lapi_schemas import AlertEvent, LapiAlert

logger = logging.getLogger(__name__)

ENTRY_TYPE = AlertEntryType.PORTS


def extract_entries(alert: LapiAlert) -> List[str]:
    raw = next((item.value for item in alert.meta if item.key == "dst_port"), None)
    if not raw:
        return []
    try:
        ports = json.loads(raw)
    except ValueError:
        logger.debug(f"Alert {alert.id} has malformed dst_port meta: {raw!r}")
        return []
    if not isinstance(ports, list):
        return []
    return [str(port) for port in ports]


def parse_event(event: AlertEvent, meta: dict) -> ParsedEvent:
    return ParsedEvent(
        event_type=EventType.FIREWALL_PF,
        pf_interface=present(meta.get("iface")),
        pf_rule_number=present(meta.get("rulenr")),
        pf_rule_id=present(meta.get("ruleid")),
        pf_machine=present(meta.get("machine")),
        pf_service=present(meta.get("service")),
        **parse_common(meta, event),
    )
