"""IP geolocation lookups used when recording login sessions."""

import ipaddress
import logging
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)

_EMPTY: Dict[str, Optional[str]] = {"city": None, "region": None, "country": None}


class GeolocationService:
    """Resolves an IP address to city/region/country using an HTTP lookup API."""

    def __init__(self, url_template: str, timeout_seconds: float = 2.0) -> None:
        self._url_template = url_template
        self._timeout = timeout_seconds

    async def lookup(self, ip: Optional[str]) -> Dict[str, Optional[str]]:
        if not self._url_template or not self._is_public(ip):
            return dict(_EMPTY)
        url = self._url_template.format(ip=ip)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Geolocation lookup for %s failed: %s", ip, exc)
            return dict(_EMPTY)

        if not isinstance(data, dict) or data.get("status") == "fail":
            logger.debug("Geolocation lookup for %s returned no match", ip)
            return dict(_EMPTY)
        return {
            "city": data.get("city"),
            "region": data.get("regionName") or data.get("region"),
            "country": data.get("country") or data.get("countryCode"),
        }

    @staticmethod
    def _is_public(ip: Optional[str]) -> bool:
        if not ip:
            return False
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return False
        return not (address.is_private or address.is_loopback or address.is_reserved or address.is_link_local)
