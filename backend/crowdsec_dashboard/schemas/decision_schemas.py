"""
Pydantic response schemas for decisions, hosts and alert details.

The same models serialize the live-update payloads pushed to SSE clients.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from crowdsec_dashboard.alert_types import ParsedEvent


class HostResponse(BaseModel):
    ip: str
    scope: str
    first_seen: datetime
    last_seen: datetime
    total_bans: int
    country: Optional[str] = None
    as_number: Optional[str] = None
    as_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    class Config:
        from_attributes = True


class HostWithCountResponse(HostResponse):
    """Host plus the number of its currently active decisions"""
    active_decisions: int = 0


class AlertSummary(BaseModel):
    """Alert fields shown in the decisions table"""
    id: int
    scenario: str
    entries: List[str] = []
    entry_type: str

    class Config:
        from_attributes = True


class DecisionWithHostResponse(BaseModel):
    id: int
    host_ip: str
    type: str
    origin: str
    scope: str
    scenario: str
    duration: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    active: bool
    host: Optional[HostResponse] = None

    class Config:
        from_attributes = True


class DecisionResponse(DecisionWithHostResponse):
    alerts: List[AlertSummary] = []


class AlertDetailResponse(BaseModel):
    """Full alert with its events parsed for display"""
    id: int
    scenario: str
    message: str
    created_at: datetime
    entries: List[str] = []
    entry_type: str
    events: List[ParsedEvent] = []


class DeleteDecisionResponse(BaseModel):
    id: int
    nb_deleted: int
    message: str
