"""Decision sync between CrowdSec LAPI and the local cache"""

from crowdsec_dashboard.sync.alert_linker import build_decision_to_alert_map
from crowdsec_dashboard.sync.orchestrator import SyncOrchestrator, SyncResult, SyncState
from crowdsec_dashboard.sync.reconciler import DecisionReconciler
from crowdsec_dashboard.sync.transform import compute_expires_at, parse_duration_ms

__all__ = [
    "DecisionReconciler",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "build_decision_to_alert_map",
    "compute_expires_at",
    "parse_duration_ms",
]
