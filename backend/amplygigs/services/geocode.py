"""Address geocoding with Redis caching.

Uses the Google Geocoding API when ``GOOGLE_MAPS_API_KEY`` is set and
OpenStreetMap Nominatim otherwise. Lookups return ``None`` when the
provider has no match or cannot be reached, so callers fall back to
text-only locations.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional
import json
import logging

import httpx

from ..core.config import settings
from ..utils.redis_cache import get_redis_client

logger = logging.getLogger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
NOMINATIM_URL = "https://nominatim.openstreetmap.org"
CACHE_TTL = 86400
TIMEOUT = httpx.Timeout(3.0, connect=1.0)
USER_AGENT = "AmplyGigs/1.0 (geocoding)"


@dataclass
class GeocodeResult:
    latitude: float
    longitude: float
    display_name: Optional[str] = None


@dataclass
class ReverseResult:
    address: Optional[str]
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


def _cache_key(kind: str, value: str) -> str:
    return f"geo:{kind}:{value.strip().lower()}"


def _cached(key: str) -> Optional[dict[str, Any]]:
    raw = get_redis_client().get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _store(key: str, data: dict[str, Any]) -> None:
    get_redis_client().setex(key, CACHE_TTL, json.dumps(data))


async def _get_json(url: str, params: dict[str, Any]) -> Any:
    async with httpx.AsyncClient(timeout=TIMEOUT, headers={"User-Agent": USER_AGENT}) as http:
        res = await http.get(url, params=params)
        res.raise_for_status()
        return res.json()


async def geocode_address(address: str) -> Optional[GeocodeResult]:
    if not address or not address.strip():
        return None
    key = _cache_key("addr", address)
    cached = _cached(key)
    if cached:
        return GeocodeResult(**cached)
    try:
        if settings.GOOGLE_MAPS_API_KEY:
            data = await _get_json(GOOGLE_GEOCODE_URL, {"address": address, "key": settings.GOOGLE_MAPS_API_KEY})
            results = data.get("results") or []
            if not results:
                return None
            loc = (results[0].get("geometry") or {}).get("location") or {}
            if loc.get("lat") is None or loc.get("lng") is None:
                return None
            result = GeocodeResult(
                float(loc["lat"]), float(loc["lng"]), results[0].get("formatted_address")
            )
        else:
            data = await _get_json(
                f"{NOMINATIM_URL}/search", {"format": "json", "q": address, "limit": 1}
            )
            if not data:
                return None
            result = GeocodeResult(float(data[0]["lat"]), float(data[0]["lon"]), data[0].get("display_name"))
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        logger.warning("Geocoding failed for address %r: %s", address, exc)
        return None
    _store(key, asdict(result))
    return result


async def reverse_geocode(latitude: float, longitude: float) -> Optional[ReverseResult]:
    key = _cache_key("rev", f"{latitude:.5f},{longitude:.5f}")
    cached = _cached(key)
    if cached:
        return ReverseResult(**cached)
    try:
        data = await _get_json(
            f"{NOMINATIM_URL}/reverse",
            {"format": "json", "lat": latitude, "lon": longitude},
        )
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Reverse geocoding failed for %s,%s: %s", latitude, longitude, exc)
        return None
    if not data or "display_name" not in data:
        return None
    addr = data.get("address") or {}
    result = ReverseResult(
        address=data.get("display_name"),
        city=addr.get("city") or addr.get("town") or addr.get("village"),
        state=addr.get("state"),
        country=addr.get("country"),
    )
    _store(key, asdict(result))
    return result
