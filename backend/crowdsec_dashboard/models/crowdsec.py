"""
Local cache of CrowdSec decisions, the hosts they target and the alerts
that justified them.

Decision and Alert ids are assigned by LAPI and used as natural keys.
Hosts are keyed by IP address.
"""

from sqlalchemy import (
    Column, String, DateTime, Boolean, Integer, Float, Text, JSON,
    ForeignKey, Table, Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from crowdsec_dashboard.database import Base


class AlertEntryType(str, enum.Enum):
    """What Alert.entries contains"""
    PATHS = "paths"
    PORTS = "ports"
    USERNAMES = "usernames"
    NONE = "none"


decision_alerts = Table(
    "decision_alerts",
    Base.metadata,
    Column("decision_id", Integer, ForeignKey("decisions.id", ondelete="CASCADE"), primary_key=True),
    Column("alert_id", Integer, ForeignKey("alerts.id", ondelete="CASCADE"), primary_key=True),
)


class Host(Base):
    """A source IP seen in at least one decision"""
    __tablename__ = "hosts"

    ip = Column(String(45), primary_key=True)
    scope = Column(String(20), nullable=False, default="Ip")

    # first_seen is written once on insert
    first_seen = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_seen = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Cached count of active decisions for this IP, recomputed after every write
    total_bans = Column(Integer, default=0, nullable=False)

    # Enrichment
    country = Column(String(2), nullable=True)
    as_number = Column(String(20), nullable=True)
    as_name = Column(String(255), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    decisions = relationship("Decision", back_populates="host")

    def __repr__(self):
        return f"<Host(ip={self.ip}, total_bans={self.total_bans})>"


class Decision(Base):
    """A remediation decision mirrored from LAPI"""
    __tablename__ = "decisions"

    id = Column(Integer, primary_key=True, autoincrement=False)
    host_ip = Column(String(45), ForeignKey("hosts.ip"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    origin = Column(String(50), nullable=False)
    scope = Column(String(20), nullable=False, default="Ip")
    scenario = Column(String(255), nullable=False)

    # Remaining duration as reported by LAPI when first seen, e.g. "3h59m43.19s"
    duration = Column(String(50), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    host = relationship("Host", back_populates="decisions")
    alerts = relationship("Alert", secondary=decision_alerts, back_populates="decisions")

    __table_args__ = (
        Index("ix_decisions_active_created_at", "active", "created_at"),
    )

    def __repr__(self):
        return f"<Decision(id={self.id}, host_ip={self.host_ip}, active={self.active})>"


class Alert(Base):
    """A LAPI alert backing one or more decisions. Immutable once stored."""
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=False)
    scenario = Column(String(255), nullable=False)
    message = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    host_ip = Column(String(45), nullable=False, index=True)

    # Derived at sync time (see crowdsec_dashboard.alert_types)
    entries = Column(JSON, nullable=False, default=list)
    entry_type = Column(String(20), nullable=False, default=AlertEntryType.NONE.value)

    # Raw LAPI events, parsed lazily when a decision is expanded
    events = Column(JSON, nullable=False, default=list)

    decisions = relationship("Decision", secondary=decision_alerts, back_populates="alerts")

    def __repr__(self):
        return f"<Alert(id={self.id}, scenario={self.scenario})>"
