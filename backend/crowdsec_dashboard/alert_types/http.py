"""
HTTP alerts from Traefik access logs (crowdsecurity/http-* and CVE
scenarios, log_type "http_access-log").

Entries are the distinct requested paths.
"""

from typing import List

from crowdsec_dashboard.alert_types.common import (
    EventType, ParsedEvent, extract_meta, parse_common, present,
)
from crowdsec_dashboard.models import AlertEntryType
from crowdsec_dashboard.schemas.lapi_schemas import AlertEvent, LapiAlert

ENTRY_TYPE = AlertEntryType.PATHS


def extract_entries(alert: LapiAlert) -> List[str]:
    seen = {}
    for event in alert.events:
        path = present(extract_meta(event).get("http_path"))
        if path:
            seen[path] = None
    return list(seen)


def parse_event(event: AlertEvent, meta: dict) -> ParsedEvent:
    try:
        status = int(meta["http_status"]) if meta.get("http_status") else None
    except ValueError:
        status = None

    return ParsedEvent(
        event_type=EventType.HTTP,
        http_verb=present(meta.get("http_verb")),
        http_path=present(meta.get("http_path")),
        http_status=status,
        http_user_agent=present(meta.get("http_user_agent")),
        traefik_router_name=present(meta.get("traefik_router_name")),
        **parse_common(meta, event),
    )
