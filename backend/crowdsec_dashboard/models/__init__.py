"""
SQLAlchemy models for the CrowdSec dashboard.

All models are exported from this module for easy importing.
"""

from crowdsec_dashboard.models.crowdsec import (
    Host, Decision, Alert, decision_alerts,
    AlertEntryType,
)
from crowdsec_dashboard.models.user import User

__all__ = [
    "Host",
    "Decision",
    "Alert",
    "decision_alerts",
    "AlertEntryType",
    "User",
]
