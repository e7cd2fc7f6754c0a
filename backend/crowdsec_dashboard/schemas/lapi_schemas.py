"""
Pydantic models for payloads returned by the CrowdSec Local API.

LAPI returns ``null`` instead of ``[]`` for empty collections; every list
field here normalizes that to an empty list.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _none_as_empty(v):
    return [] if v is None else v


class LapiDecision(BaseModel):
    """Decision as returned by /v1/decisions and /v1/decisions/stream"""
    id: int
    origin: str
    type: str
    scope: str = "Ip"
    value: str
    duration: str = "0s"
    until: Optional[str] = None
    scenario: str = ""
    simulated: bool = False

    class Config:
        extra = "ignore"


class DecisionStream(BaseModel):
    """Delta (or full state on startup) of the decision stream"""
    new: List[LapiDecision] = Field(default_factory=list)
    deleted: List[LapiDecision] = Field(default_factory=list)

    @field_validator("new", "deleted", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return _none_as_empty(v)


class MetaItem(BaseModel):
    key: str
    value: Optional[str] = None


class AlertEvent(BaseModel):
    """A single log line that contributed to an alert"""
    timestamp: Optional[str] = None
    meta: List[MetaItem] = Field(default_factory=list)

    @field_validator("meta", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return _none_as_empty(v)

    class Config:
        extra = "ignore"


class AlertSource(BaseModel):
    """Source of an alert, enriched by CrowdSec's GeoIP parsers"""
    scope: Optional[str] = None
    value: Optional[str] = None
    ip: Optional[str] = None
    range: Optional[str] = None
    cn: Optional[str] = None
    as_number: Optional[str] = None
    as_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    class Config:
        extra = "ignore"


class AlertDecisionRef(BaseModel):
    """Decision embedded in an alert; only the id is needed for linking"""
    id: int

    class Config:
        extra = "ignore"


class LapiAlert(BaseModel):
    """Alert as returned by /v1/alerts"""
    id: int
    scenario: str = ""
    message: str = ""
    created_at: Optional[str] = None
    source: AlertSource = Field(default_factory=AlertSource)
    events: List[AlertEvent] = Field(default_factory=list)
    decisions: List[AlertDecisionRef] = Field(default_factory=list)
    meta: List[MetaItem] = Field(default_factory=list)

    @field_validator("events", "decisions", "meta", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return _none_as_empty(v)

    @field_validator("source", mode="before")
    @classmethod
    def source_default(cls, v):
        return {} if v is None else v

    class Config:
        extra = "ignore"


class WatcherAuthResponse(BaseModel):
    code: int = 200
    expire: str
    token: str


class DeleteDecisionResponse(BaseModel):
    nb_deleted: str = Field(..., alias="nbDeleted")

    @field_validator("nb_deleted", mode="before")
    @classmethod
    def as_text(cls, v):
        return "0" if v is None else str(v)

    @property
    def deleted_count(self) -> int:
        """nbDeleted as a number; unparsable values count as 0"""
        try:
            return int(self.nb_deleted.strip())
        except ValueError:
            return 0

    class Config:
        populate_by_name = True


class HealthError(str, Enum):
    """Closed set of reasons a LAPI health check can fail"""
    INVALID_API_TOKEN = "INVALID_API_TOKEN"
    SECURITY_ENGINE_SERVER_ERROR = "SECURITY_ENGINE_SERVER_ERROR"
    SECURITY_ENGINE_UNREACHABLE = "SECURITY_ENGINE_UNREACHABLE"
    UNEXPECTED_STATUS = "UNEXPECTED_STATUS"


class ConnectionHealth(BaseModel):
    status: str  # "OK" or "ERROR"
    error: Optional[HealthError] = None

    @classmethod
    def ok(cls) -> "ConnectionHealth":
        return cls(status="OK", error=None)

    @classmethod
    def failed(cls, error: HealthError) -> "ConnectionHealth":
        return cls(status="ERROR", error=error)
