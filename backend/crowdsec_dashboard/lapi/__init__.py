"""CrowdSec Local API access"""

from typing import Optional

from crowdsec_dashboard.config import get_settings
from crowdsec_dashboard.lapi.client import (
    LapiClient,
    LapiError,
    LapiAuthError,
    DecisionNotFoundError,
)

# Global client instance
_client: Optional[LapiClient] = None


def get_lapi_client() -> LapiClient:
    """Get or create the global LAPI client from settings"""
    global _client
    if _client is None:
        settings = get_settings()
        if not settings.lapi_configured:
            raise LapiError(
                "LAPI_URL and LAPI_BOUNCER_API_TOKEN must be set to use the LAPI client"
            )
        try:
            _client = LapiClient(
                url=settings.lapi_url,
                bouncer_api_token=settings.lapi_bouncer_api_token,
                machine_id=settings.lapi_machine_id,
                machine_password=settings.lapi_machine_password,
                timeout=settings.lapi_timeout,
            )
        except ValueError as e:
            raise LapiError(str(e)) from e
    return _client


__all__ = [
    "LapiClient",
    "LapiError",
    "LapiAuthError",
    "DecisionNotFoundError",
    "get_lapi_client",
]
