"""
HTTP client for the CrowdSec Local API (LAPI).

Two credential scopes are used and never mixed:
- Bouncer (``X-Api-Key``): read-only decision listing and streaming.
- Watcher (JWT bearer): decision deletion and alert listing. Requires
  ``machine_id`` + ``machine_password``. The JWT is fetched lazily and
  refreshed 60 s before it expires.
"""

import logging
import time
from datetime import timezone
from typing import Dict, List, Optional
from urllib.parse import urlparse

import requests

from crowdsec_dashboard.utils.time_utils import parse_rfc3339
from crowdsec_dashboard.schemas.lapi_schemas import (
    ConnectionHealth,
    DecisionStream,
    DeleteDecisionResponse,
    HealthError,
    LapiAlert,
    LapiDecision,
    WatcherAuthResponse,
)

logger = logging.getLogger(__name__)

USER_AGENT = "crowdsec-dashboard/0.1.0"

# Refresh the watcher token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 60


class LapiError(Exception):
    """Raised when a LAPI request fails at the transport or HTTP level"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LapiAuthError(LapiError):
    """Raised when watcher credentials are missing or rejected"""
    pass


class DecisionNotFoundError(LapiError):
    """Raised when LAPI accepted a delete but removed nothing"""
    pass


class LapiClient:
    """Client for the CrowdSec Local API"""

    def __init__(
        self,
        url: str,
        bouncer_api_token: str,
        machine_id: Optional[str] = None,
        machine_password: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid LAPI URL: {url!r}")
        if not bouncer_api_token:
            raise ValueError("A bouncer API token is required")

        self.lapi_url = url.rstrip("/")
        self.bouncer_api_token = bouncer_api_token
        self.machine_id = machine_id or None
        self.machine_password = machine_password or None
        self.timeout = timeout
        self.session = session or requests.Session()

        self._watcher_token: Optional[str] = None
        self._token_expiry: float = 0.0  # unix timestamp

    # ==================== Request signing ====================

    @property
    def _common_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _request(
        self,
        method: str,
        path: str,
        auth_header: Dict[str, str],
        **kwargs,
    ) -> requests.Response:
        headers = {**self._common_headers, **auth_header}
        return self.session.request(
            method,
            f"{self.lapi_url}{path}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )

    def _bouncer_request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Request signed with the bouncer API key (read-only endpoints)"""
        return self._request(method, path, {"X-Api-Key": self.bouncer_api_token}, **kwargs)

    def _watcher_request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Request signed with the watcher JWT (mutating and alert endpoints)"""
        token = self._get_watcher_token()
        return self._request(method, path, {"Authorization": f"Bearer {token}"}, **kwargs)

    # ==================== Watcher token ====================

    def _login_watcher(self) -> None:
        if not self.machine_id or not self.machine_password:
            raise LapiAuthError(
                "Watcher credentials (machine_id + machine_password) are required for this operation"
            )

        try:
            response = self.session.post(
                f"{self.lapi_url}/v1/watchers/login",
                headers=self._common_headers,
                json={"machine_id": self.machine_id, "password": self.machine_password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise LapiError(f"Watcher login failed: {e}") from e

        if not response.ok:
            raise LapiAuthError(
                f"Watcher login failed: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        auth = WatcherAuthResponse.model_validate(response.json())
        self._watcher_token = auth.token
        self._token_expiry = _parse_expiry(auth.expire)
        logger.debug("Watcher token refreshed, expires at %s", auth.expire)

    def _get_watcher_token(self) -> str:
        """Return a valid watcher JWT, logging in again when missing or near expiry"""
        if not self._watcher_token or time.time() >= self._token_expiry - TOKEN_REFRESH_MARGIN:
            self._login_watcher()
        return self._watcher_token

    # ==================== Public API ====================

    def check_connection_health(self) -> ConnectionHealth:
        """
        Verify connectivity and bouncer key validity with a HEAD request.

        Never raises; failures are classified into HealthError values.
        """
        try:
            response = self._bouncer_request("HEAD", "/v1/decisions")
        except requests.RequestException as e:
            logger.error("Error connecting to LAPI: %s", e)
            return ConnectionHealth.failed(HealthError.SECURITY_ENGINE_UNREACHABLE)

        if response.ok:
            return ConnectionHealth.ok()
        if response.status_code == 403:
            return ConnectionHealth.failed(HealthError.INVALID_API_TOKEN)
        if response.status_code >= 500:
            return ConnectionHealth.failed(HealthError.SECURITY_ENGINE_SERVER_ERROR)
        return ConnectionHealth.failed(HealthError.UNEXPECTED_STATUS)

    def get_decisions(self, **filters) -> List[LapiDecision]:
        """
        List active decisions.

        Args:
            **filters: Any of scope, value, type, ip, range, origins.
                None values are ignored.

        Returns:
            Decisions (empty list when LAPI answers null)
        """
        params = {k: v for k, v in filters.items() if v is not None}
        response = self._call(self._bouncer_request, "GET", "/v1/decisions", "fetch decisions", params=params)
        data = response.json() or []
        return [LapiDecision.model_validate(d) for d in data]

    def get_decision_stream(
        self,
        startup: bool = False,
        origins: Optional[str] = None,
        scopes: Optional[str] = None,
    ) -> DecisionStream:
        """
        Fetch new and deleted decisions since the last poll.

        ``startup=True`` asks LAPI for the complete current state instead
        of a delta.
        """
        params = {"startup": "true" if startup else "false"}
        if origins:
            params["origins"] = origins
        if scopes:
            params["scopes"] = scopes

        response = self._call(
            self._bouncer_request, "GET", "/v1/decisions/stream", "fetch decision stream", params=params
        )
        return DecisionStream.model_validate(response.json() or {})

    def get_alerts(self, **filters) -> List[LapiAlert]:
        """
        List alerts (watcher auth).

        Args:
            **filters: e.g. ip, origin, has_active_decision. Booleans are
                sent as lowercase strings; None values are ignored.
        """
        params = {}
        for key, value in filters.items():
            if value is None:
                continue
            params[key] = str(value).lower() if isinstance(value, bool) else value

        response = self._call(self._watcher_request, "GET", "/v1/alerts", "fetch alerts", params=params)
        data = response.json() or []
        return [LapiAlert.model_validate(a) for a in data]

    def delete_decision_by_id(self, decision_id: int) -> DeleteDecisionResponse:
        """
        Delete a decision (watcher auth).

        Raises:
            LapiError: Request failed
            DecisionNotFoundError: LAPI deleted nothing (nbDeleted=0)
        """
        logger.info("DELETE %s/v1/decisions/%s", self.lapi_url, decision_id)

        try:
            response = self._watcher_request("DELETE", f"/v1/decisions/{decision_id}")
        except requests.RequestException as e:
            raise LapiError(f"Failed to delete decision {decision_id}: {e}") from e

        if not response.ok:
            body = response.text
            logger.error("DELETE failed: %s - %s", response.status_code, body)
            raise LapiError(
                f"Failed to delete decision {decision_id}: "
                f"{response.status_code} {response.reason} - {body}",
                status_code=response.status_code,
            )

        result = DeleteDecisionResponse.model_validate(response.json())
        logger.info("DELETE result: nbDeleted=%s", result.nb_deleted)

        if result.deleted_count == 0:
            raise DecisionNotFoundError(
                f"Decision {decision_id} was not found in LAPI (nbDeleted=0)",
                status_code=response.status_code,
            )

        return result

    # ==================== Helpers ====================

    def _call(self, signer, method: str, path: str, action: str, **kwargs) -> requests.Response:
        try:
            response = signer(method, path, **kwargs)
        except requests.RequestException as e:
            raise LapiError(f"Failed to {action}: {e}") from e

        if not response.ok:
            raise LapiError(
                f"Failed to {action}: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        return response


def _parse_expiry(expire: str) -> float:
    """Parse the RFC 3339 expiry LAPI returns with the login token"""
    parsed = parse_rfc3339(expire)
    if parsed is None:
        logger.warning("Unparsable watcher token expiry %r, forcing refresh on next call", expire)
        return 0.0
    return parsed.replace(tzinfo=timezone.utc).timestamp()
