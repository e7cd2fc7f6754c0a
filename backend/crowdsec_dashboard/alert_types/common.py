"""
Shared pieces of the alert type parsers: event type detection, meta
flattening and the fields every event carries.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from crowdsec_dashboard.schemas.lapi_schemas import AlertEvent
from crowdsec_dashboard.utils.time_utils import parse_rfc3339


class EventType(str, Enum):
    """Raw log format that produced an alert's events"""
    HTTP = "http"
    FIREWALL_PF = "firewall_pf"
    SSH = "ssh"
    UNKNOWN = "unknown"


# log_type values written by the CrowdSec parsers
LOG_TYPES = {
    "http_access-log": EventType.HTTP,
    "pf_drop": EventType.FIREWALL_PF,
    "pf_pass": EventType.FIREWALL_PF,
    "ssh_auth": EventType.SSH,
    "auth": EventType.SSH,
}


@dataclass
class ParsedEvent:
    """Structured view of one alert event, built on demand for the UI"""
    event_type: EventType
    timestamp: datetime
    source_ip: Optional[str] = None
    asn_number: Optional[str] = None
    asn_org: Optional[str] = None
    iso_code: Optional[str] = None
    is_in_eu: Optional[bool] = None
    source_range: Optional[str] = None
    datasource_path: Optional[str] = None
    # HTTP (Traefik access log)
    http_verb: Optional[str] = None
    http_path: Optional[str] = None
    http_status: Optional[int] = None
    http_user_agent: Optional[str] = None
    traefik_router_name: Optional[str] = None
    # Firewall (OPNsense pf)
    pf_interface: Optional[str] = None
    pf_rule_number: Optional[str] = None
    pf_rule_id: Optional[str] = None
    pf_machine: Optional[str] = None
    pf_service: Optional[str] = None
    # SSH
    ssh_user: Optional[str] = None
    ssh_service: Optional[str] = None


def present(value: Optional[str]) -> Optional[str]:
    """CrowdSec writes "-" for missing values"""
    if value is None or value == "-":
        return None
    return value


def extract_meta(event: AlertEvent) -> Dict[str, Optional[str]]:
    return {item.key: item.value for item in event.meta}


def parse_common(meta: Dict[str, Optional[str]], event: AlertEvent) -> dict:
    """Fields shared by every event type, as ParsedEvent keyword arguments"""
    # meta.timestamp is ISO formatted; event.timestamp is Go formatted
    raw_ts = meta.get("timestamp") or event.timestamp
    timestamp = parse_rfc3339(raw_ts) or datetime.utcnow()

    is_in_eu = meta.get("IsInEU")
    return {
        "timestamp": timestamp,
        "source_ip": present(meta.get("source_ip")),
        "asn_number": present(meta.get("ASNNumber")),
        "asn_org": present(meta.get("ASNOrg")),
        "iso_code": present(meta.get("IsoCode")),
        "is_in_eu": None if is_in_eu is None else is_in_eu.lower() == "true",
        "source_range": present(meta.get("SourceRange")),
        "datasource_path": present(meta.get("datasource_path")),
    }


def detect_event_type(meta: Dict[str, Optional[str]]) -> EventType:
    """
    Detect the event type from raw meta.

    Primary signal is ``log_type``; otherwise fall back to the presence of
    type-specific keys.
    """
    event_type = LOG_TYPES.get(meta.get("log_type"))
    if event_type is not None:
        return event_type

    if "http_verb" in meta or "http_path" in meta:
        return EventType.HTTP
    if "iface" in meta or "rulenr" in meta:
        return EventType.FIREWALL_PF
    if "ssh_user" in meta:
        return EventType.SSH
    return EventType.UNKNOWN
