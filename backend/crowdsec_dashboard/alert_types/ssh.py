"""
SSH alerts from auth logs (crowdsecurity/ssh-bf, ssh-slow-bf, ...;
log_type "ssh_auth" / "auth"). Entries are the targeted usernames.
"""

from typing import List

from crowdsec_dashboard.alert_types.common import (
    EventType, ParsedEvent, extract_meta, parse_common, present,
)
from crowdsec_dashboard.models import AlertEntryType
from crowdsec_dashboard.schemas.lapi_schemas import AlertEvent, LapiAlert

ENTRY_TYPE = AlertEntryType.USERNAMES


def _user(meta: dict):
    value = meta.get("ssh_user")
    if value is None:
        value = meta.get("user")
    return present(value)


def extract_entries(alert: LapiAlert) -> List[str]:
    seen = {}
    for event in alert.events:
        user = _user(extract_meta(event))
        if user:
            seen[user] = None
    return list(seen)


def parse_event(event: AlertEvent, meta: dict) -> ParsedEvent:
    return ParsedEvent(
        event_type=EventType.SSH,
        ssh_user=_user(meta),
        ssh_service=present(meta.get("service")),
        **parse_common(meta, event),
    )
