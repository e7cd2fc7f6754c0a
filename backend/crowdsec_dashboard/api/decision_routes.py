"""
Decision API routes.

Endpoints:
- GET /decisions - All decisions, newest first, with host and alert summaries
- GET /decisions/history - Filtered decision history (including inactive)
- GET /decisions/{id}/alerts - Alerts of a decision with parsed events
- DELETE /decisions/{id} - Delete a decision in LAPI and resync
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from crowdsec_dashboard.database import get_db
from crowdsec_dashboard.lapi import get_lapi_client
from crowdsec_dashboard.schemas.decision_schemas import (
    AlertDetailResponse,
    DecisionResponse,
    DecisionWithHostResponse,
    DeleteDecisionResponse,
)
from crowdsec_dashboard.services.decision_service import DecisionService
from crowdsec_dashboard.services.scheduler import get_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/decisions", tags=["Decisions"])


@router.get(
    "",
    response_model=List[DecisionResponse],
    summary="List decisions"
)
async def list_decisions(db: Session = Depends(get_db)):
    """All stored decisions, active and inactive, newest first."""
    return DecisionService(db).list_decisions()


@router.get(
    "/history",
    response_model=List[DecisionWithHostResponse],
    summary="Decision history"
)
async def decision_history(
    host_ip: Optional[str] = Query(None, description="Filter by host IP"),
    active: Optional[bool] = Query(None, description="Filter by active status"),
    origin: Optional[str] = Query(None, description="Filter by origin (crowdsec, cscli, ...)"),
    type: Optional[str] = Query(None, description="Filter by decision type (ban, captcha, ...)"),
    db: Session = Depends(get_db)
):
    return DecisionService(db).decision_history(
        host_ip=host_ip,
        active=active,
        origin=origin,
        decision_type=type,
    )


@router.get(
    "/{decision_id}/alerts",
    response_model=List[AlertDetailResponse],
    summary="Alerts behind a decision"
)
async def get_decision_alerts(decision_id: int, db: Session = Depends(get_db)):
    """
    Alerts that justified a decision, with their events parsed on demand.

    Returns an empty list when the decision is unknown or has no alerts.
    """
    return DecisionService(db).get_decision_alerts(decision_id)


@router.delete(
    "/{decision_id}",
    response_model=DeleteDecisionResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete a decision"
)
def delete_decision(decision_id: int, db: Session = Depends(get_db)):
    """
    Delete a decision in CrowdSec LAPI, mark it inactive locally and
    schedule a full resync.

    **Errors:**
    - 404: LAPI has no such decision
    - 502: LAPI call failed or LAPI is not configured (message is LAPI's error)
    """
    result = DecisionService(db).delete_decision(decision_id, get_lapi_client())
    get_scheduler().trigger_full_sync()
    return result
