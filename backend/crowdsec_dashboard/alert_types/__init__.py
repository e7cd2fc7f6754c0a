"""
Alert type registry.

Two entry points:

    extract_alert_data(alert)  sync time: derives (entries, entry_type)
                               from a LAPI alert for storage

    parse_alert_event(event)   fetch time: turns a stored raw event into a
                               ParsedEvent when a decision is expanded

Each supported log format is a module exposing ENTRY_TYPE,
extract_entries(alert) and parse_event(event, meta); the module is picked
from ALERT_TYPES with detect_event_type(meta).
"""

from typing import Callable, Dict, List, NamedTuple, Union

from crowdsec_dashboard.alert_types import firewall_pf, http, ssh
from crowdsec_dashboard.alert_types.common import (
    EventType,
    ParsedEvent,
    detect_event_type,
    extract_meta,
    parse_common,
)
from crowdsec_dashboard.models import AlertEntryType
from crowdsec_dashboard.schemas.lapi_schemas import AlertEvent, LapiAlert


class AlertTypeHandler(NamedTuple):
    entry_type: AlertEntryType
    extract_entries: Callable[[LapiAlert], List[str]]
    parse_event: Callable[[AlertEvent, dict], ParsedEvent]


class AlertExtract(NamedTuple):
    entries: List[str]
    entry_type: AlertEntryType


ALERT_TYPES: Dict[EventType, AlertTypeHandler] = {
    EventType.HTTP: AlertTypeHandler(http.ENTRY_TYPE, http.extract_entries, http.parse_event),
    EventType.FIREWALL_PF: AlertTypeHandler(
        firewall_pf.ENTRY_TYPE, firewall_pf.extract_entries, firewall_pf.parse_event
    ),
    EventType.SSH: AlertTypeHandler(ssh.ENTRY_TYPE, ssh.extract_entries, ssh.parse_event),
}


def parse_alert_event(event: Union[AlertEvent, dict]) -> ParsedEvent:
    """Convert a raw event (model or stored JSON) into a ParsedEvent"""
    if not isinstance(event, AlertEvent):
        event = AlertEvent.model_validate(event)

    meta = extract_meta(event)
    handler = ALERT_TYPES.get(detect_event_type(meta))
    if handler is None:
        return ParsedEvent(event_type=EventType.UNKNOWN, **parse_common(meta, event))
    return handler.parse_event(event, meta)


def extract_alert_data(alert: LapiAlert) -> AlertExtract:
    """Derive entries and entry type, detecting the format on the first event"""
    if not alert.events:
        return AlertExtract([], AlertEntryType.NONE)

    handler = ALERT_TYPES.get(detect_event_type(extract_meta(alert.events[0])))
    if handler is None:
        return AlertExtract([], AlertEntryType.NONE)
    return AlertExtract(handler.extract_entries(alert), handler.entry_type)


__all__ = [
    "ALERT_TYPES",
    "AlertExtract",
    "AlertTypeHandler",
    "EventType",
    "ParsedEvent",
    "detect_event_type",
    "extract_alert_data",
    "parse_alert_event",
]
