"""
Host API routes.

Endpoints:
- GET /hosts - All hosts, most recently seen first, with active decision counts
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from crowdsec_dashboard.database import get_db
from crowdsec_dashboard.schemas.decision_schemas import HostWithCountResponse
from crowdsec_dashboard.services.decision_service import DecisionService

router = APIRouter(prefix="/hosts", tags=["Hosts"])


@router.get("", response_model=List[HostWithCountResponse], summary="List hosts")
async def list_hosts(db: Session = Depends(get_db)):
    return DecisionService(db).list_hosts()
