"""
API key guard for the /api routes

Disabled unless REQUIRE_API_KEY is set. Keys are listed in API_KEYS
(comma-separated) and sent by clients in the X-API-Key header.
"""
import logging
import secrets
from typing import List

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
from crowdsec_dashboard.config import get_settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
KEY_NOT_REQUIRED = "api-key-not-required"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _is_known_key(api_key: str, valid_keys: List[str]) -> bool:
    # Compare against every key so timing does not reveal a partial match
    matched = False
    for key in valid_keys:
        if secrets.compare_digest(api_key.encode(), key.encode()):
            matched = True
    return matched


async def get_api_key(api_key: str = Security(api_key_header)) -> str:
    """
    Dependency validating the X-API-Key header

    Raises:
        HTTPException: 401 if the key is missing, 403 if it is not configured
    """
    settings = get_settings()
    if not settings.require_api_key:
        return KEY_NOT_REQUIRED

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"API key required. Provide {API_KEY_HEADER} header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not _is_known_key(api_key, settings.api_key_list):
        logger.warning(f"Rejected API key with prefix {api_key[:4]}...")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key
