"""
IP -> country lookup using a MaxMind GeoLite2 database.

Used as the fallback enrichment for hosts when no linked alert carries
CrowdSec's own GeoIP data. Both the Country and City editions work.
"""

import logging
from pathlib import Path
from typing import Optional

import geoip2.database
import geoip2.errors

from crowdsec_dashboard.config import get_settings

logger = logging.getLogger(__name__)


class GeoLocationService:
    """Offline country lookup. Degrades to None when the database is missing."""

    def __init__(self, maxmind_db_path: str):
        """
        Initialize geolocation service.

        Args:
            maxmind_db_path: Path to a GeoLite2 Country or City .mmdb file
        """
        self.maxmind_db_path = Path(maxmind_db_path)
        self.reader = None
        self._use_city = False

        if not self.maxmind_db_path.exists():
            logger.warning(
                f"MaxMind database not found at {maxmind_db_path}. "
                "Hosts will only get a country from alert enrichment. "
                "Download GeoLite2-Country.mmdb from https://dev.maxmind.com/geoip/geolite2-free-geolocation-data"
            )
            return

        try:
            self.reader = geoip2.database.Reader(str(self.maxmind_db_path))
            self._use_city = "City" in self.reader.metadata().database_type
            logger.info(f"MaxMind database loaded from {maxmind_db_path}")
        except Exception as e:
            logger.error(f"Failed to load MaxMind database: {e}")
            self.reader = None

    def lookup_country(self, ip_address: str) -> Optional[str]:
        """
        Lookup ISO country code for an IP address.

        Returns:
            Two-letter ISO code, or None if unknown or lookup unavailable
        """
        if self.reader is None:
            return None

        try:
            if self._use_city:
                response = self.reader.city(ip_address)
            else:
                response = self.reader.country(ip_address)
            return response.country.iso_code
        except geoip2.errors.AddressNotFoundError:
            logger.debug(f"IP address not found in MaxMind database: {ip_address}")
            return None
        except ValueError:
            # Not an IP (e.g. a range or AS scope value)
            logger.debug(f"Cannot geolocate non-IP value: {ip_address}")
            return None


# Global service instance
_service: Optional[GeoLocationService] = None


def get_geolocation_service() -> GeoLocationService:
    """Get or create the global geolocation service"""
    global _service
    if _service is None:
        _service = GeoLocationService(get_settings().geoip_db_path)
    return _service


def lookup_country(ip_address: str) -> Optional[str]:
    """Country code for an IP using the global service"""
    return get_geolocation_service().lookup_country(ip_address)
