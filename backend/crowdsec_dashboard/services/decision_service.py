"""
Read and delete operations over the local decision cache.

Also builds the ``decisions`` / ``hosts`` live-update payloads so that SSE
clients and the REST endpoints see identical shapes.
"""

import logging
from typing import List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session, selectinload

from crowdsec_dashboard.alert_types import parse_alert_event
from crowdsec_dashboard.error_handlers import NotFoundError, UpstreamError
from crowdsec_dashboard.lapi.client import DecisionNotFoundError, LapiClient, LapiError
from crowdsec_dashboard.models import Decision, Host
from crowdsec_dashboard.schemas.decision_schemas import (
    AlertDetailResponse,
    DecisionResponse,
    DecisionWithHostResponse,
    DeleteDecisionResponse,
    HostWithCountResponse,
)

logger = logging.getLogger(__name__)


class DecisionService:
    """Queries the decision cache kept up to date by the sync"""

    def __init__(self, db: Session):
        self.db = db

    def _with_host_and_alerts(self):
        return self.db.query(Decision).options(
            selectinload(Decision.host),
            selectinload(Decision.alerts),
        )

    def list_decisions(self, active_only: bool = False) -> List[DecisionResponse]:
        """All decisions (or only active ones), newest first, with host and alert summaries"""
        query = self._with_host_and_alerts()
        if active_only:
            query = query.filter(Decision.active.is_(True))
        rows = query.order_by(Decision.created_at.desc(), Decision.id.desc()).all()
        return [DecisionResponse.model_validate(d) for d in rows]

    def decision_history(
        self,
        host_ip: Optional[str] = None,
        active: Optional[bool] = None,
        origin: Optional[str] = None,
        decision_type: Optional[str] = None,
    ) -> List[DecisionWithHostResponse]:
        """Filtered history, including inactive decisions"""
        query = self.db.query(Decision).options(selectinload(Decision.host))

        if host_ip:
            query = query.filter(Decision.host_ip == host_ip)
        if active is not None:
            query = query.filter(Decision.active.is_(active))
        if origin:
            query = query.filter(Decision.origin == origin)
        if decision_type:
            query = query.filter(Decision.type == decision_type)

        rows = query.order_by(Decision.created_at.desc(), Decision.id.desc()).all()
        return [DecisionWithHostResponse.model_validate(d) for d in rows]

    def get_decision_alerts(self, decision_id: int) -> List[AlertDetailResponse]:
        """
        Alerts backing a decision, with their stored events parsed for display.

        Returns an empty list for unknown decisions and decisions without alerts.
        """
        decision = (
            self.db.query(Decision)
            .options(selectinload(Decision.alerts))
            .filter(Decision.id == decision_id)
            .first()
        )
        if decision is None or not decision.alerts:
            return []

        return [
            AlertDetailResponse(
                id=alert.id,
                scenario=alert.scenario,
                message=alert.message,
                created_at=alert.created_at,
                entries=alert.entries or [],
                entry_type=alert.entry_type,
                events=[parse_alert_event(event) for event in alert.events or []],
            )
            for alert in decision.alerts
        ]

    def delete_decision(self, decision_id: int, client: LapiClient) -> DeleteDecisionResponse:
        """
        Delete a decision in LAPI and mark it inactive locally, refreshing
        the host's ban count.

        Raises:
            NotFoundError: LAPI deleted nothing
            UpstreamError: LAPI call failed; carries the LAPI error message
        """
        logger.info(f"Deleting decision {decision_id} from LAPI")

        try:
            result = client.delete_decision_by_id(decision_id)
        except DecisionNotFoundError as e:
            logger.error(f"Failed to delete decision {decision_id}: {e}")
            raise NotFoundError(str(e), resource_type="decision")
        except LapiError as e:
            logger.error(f"Failed to delete decision {decision_id}: {e}")
            raise UpstreamError(str(e))

        logger.info(f"LAPI confirmed deletion of decision {decision_id}: nbDeleted={result.nb_deleted}")

        decision = self.db.query(Decision).filter(Decision.id == decision_id).first()
        if decision is not None:
            decision.active = False
            self.db.flush()
            decision.host.total_bans = (
                self.db.query(func.count(Decision.id))
                .filter(Decision.host_ip == decision.host_ip, Decision.active.is_(True))
                .scalar()
            )
            self.db.commit()
            logger.info(f"Marked decision {decision_id} inactive")

        return DeleteDecisionResponse(
            id=decision_id,
            nb_deleted=result.deleted_count,
            message=f"Decision {decision_id} deleted",
        )

    def list_hosts(self) -> List[HostWithCountResponse]:
        """All hosts, most recently seen first, with their active decision count"""
        active_count = func.count(Decision.id)
        rows = (
            self.db.query(Host, active_count)
            .outerjoin(Decision, and_(Decision.host_ip == Host.ip, Decision.active.is_(True)))
            .group_by(Host.ip)
            .order_by(Host.last_seen.desc(), Host.ip)
            .all()
        )

        hosts = []
        for host, count in rows:
            response = HostWithCountResponse.model_validate(host)
            response.active_decisions = count
            hosts.append(response)
        return hosts

    # ==================== Live update payloads ====================

    def decisions_payload(self) -> list:
        """Active decisions as pushed on the ``decisions`` channel"""
        return [d.model_dump(mode="json") for d in self.list_decisions(active_only=True)]

    def hosts_payload(self) -> list:
        """All hosts as pushed on the ``hosts`` channel"""
        return [h.model_dump(mode="json") for h in self.list_hosts()]
