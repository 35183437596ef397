"""Best-effort geo-IP lookup backed by a MaxMind database"""

import logging
from typing import Any, Dict, Optional

import geoip2.database
import geoip2.errors
from maxminddb.errors import InvalidDatabaseError

logger = logging.getLogger(__name__)


class GeoIpLocator:
    """Looks up client addresses in a GeoLite2/GeoIP2 City database.

    Without a database every lookup returns None.
    """

    def __init__(self, database: Optional[str] = None):
        self._reader: Optional[geoip2.database.Reader] = None
        if not database:
            return
        try:
            self._reader = geoip2.database.Reader(database)
            logger.info(f"Geo-IP database loaded: {database}")
        except (OSError, InvalidDatabaseError) as e:
            logger.warning(f"Geo-IP lookups disabled, could not open {database}: {e}")

    @property
    def enabled(self) -> bool:
        return self._reader is not None

    def lookup(self, ip: Optional[str]) -> Optional[Dict[str, Any]]:
        if not ip or self._reader is None:
            return None
        try:
            response = self._reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None
        except Exception as e:
            logger.warning(f"Geo-IP lookup failed for {ip}: {e}")
            return None

        return {
            "country": response.country.iso_code,
            "region": response.subdivisions.most_specific.iso_code,
            "city": response.city.name,
            "timezone": response.location.time_zone,
            "ll": [response.location.latitude, response.location.longitude],
        }

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
