"""
Nominatim (OpenStreetMap) geocoding client.

Requests go out from the backend so browsers avoid CORS and the
configured User-Agent is always sent, as the Nominatim usage policy
requires.
"""
import logging
from typing import List, Optional

import httpx

from marketplace.config import settings
from marketplace.errors import UpstreamError

logger = logging.getLogger(__name__)

CITY_TYPES = {"city", "town", "village", "municipality", "borough"}
AUTOCOMPLETE_LIMIT = 8


def place_name(entry: Optional[dict]) -> str:
    """City-level name of a result, falling back to its own name."""
    if not entry:
        return ""
    address = entry.get("address") or {}
    return str(
        address.get("city")
        or address.get("town")
        or address.get("village")
        or address.get("municipality")
        or entry.get("name")
        or ""
    )


class NominatimClient:
    def __init__(self, base_url: Optional[str] = None, user_agent: Optional[str] = None, timeout: float = 10.0):
        self.base_url = (base_url or settings.NOMINATIM_URL).rstrip("/")
        self.user_agent = user_agent or settings.NOMINATIM_UA
        self.timeout = timeout

    async def _get(self, path: str, params: dict):
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(f"{self.base_url}/{path}", params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Nominatim {path} request failed: {e}")
            raise UpstreamError("Geocoding service unavailable")

        if response.status_code >= 400:
            logger.warning(f"Nominatim {path} returned {response.status_code}")
            raise UpstreamError("Geocoding service error", details={"status": response.status_code})
        return response.json()

    async def search(self, q: str, country: str = "", limit: int = 1) -> List[dict]:
        params = {"q": q, "format": "json", "addressdetails": "1", "limit": str(limit)}
        if country:
            params["countrycodes"] = country.lower()
        data = await self._get("search", params)
        return data if isinstance(data, list) else []

    async def reverse(self, lat: float, lon: float) -> dict:
        params = {"lat": str(lat), "lon": str(lon), "format": "json", "zoom": "10", "addressdetails": "1"}
        data = await self._get("reverse", params)
        return data if isinstance(data, dict) else {}


def get_nominatim() -> NominatimClient:
    return NominatimClient()
