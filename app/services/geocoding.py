import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import InvalidPostalCode, ExternalCollaboratorFailure
from app.core.metrics import cache_hits, cache_misses, track_external_call
from app.services.distance import Coordinate

logger = logging.getLogger(__name__)

PINCODE_PATTERN = re.compile(r"^[1-9][0-9]{5}$")

# Region centroids keyed by the first pincode digit
APPROXIMATE_REGIONS = {
    "1": Coordinate(28.7041, 77.1025),  # Delhi/NCR
    "2": Coordinate(28.7041, 77.1025),  # Delhi/NCR
    "3": Coordinate(26.2389, 73.0243),  # Rajasthan
    "4": Coordinate(19.0760, 72.8777),  # Maharashtra
    "5": Coordinate(17.3850, 78.4867),  # Telangana/Andhra Pradesh
    "6": Coordinate(12.9716, 77.5946),  # Karnataka/Tamil Nadu/Kerala
    "7": Coordinate(22.5726, 88.3639),  # West Bengal/Odisha/North East
    "8": Coordinate(23.0225, 72.5714),  # Gujarat
    "9": Coordinate(30.7333, 76.7794),  # Punjab/Haryana/Himachal
}


def is_valid_pincode(pincode) -> bool:
    return isinstance(pincode, str) and bool(PINCODE_PATTERN.match(pincode))


def approximate_location(pincode: str) -> Optional[Coordinate]:
    return APPROXIMATE_REGIONS.get(pincode[:1])


class Geocoder(ABC):
    @abstractmethod
    async def resolve(self, postal_code: str) -> Coordinate:
        """Coordinates for a pincode, or InvalidPostalCode."""


class GoogleGeocoder(Geocoder):
    """Google geocoding API with a Redis cache and a regional fallback.

    The cache only saves provider calls. When the provider is unreachable or
    errors, the approximate region centroid is used instead, unless
    ``use_fallback`` is off, in which case ExternalCollaboratorFailure is raised.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        cache: Optional[Redis] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        use_fallback: bool = True,
    ):
        self.api_key = settings.GEOCODING_API_KEY if api_key is None else api_key
        self.base_url = base_url or settings.GEOCODING_API_URL
        self.cache = cache
        self.transport = transport
        self.use_fallback = use_fallback

    async def resolve(self, postal_code: str) -> Coordinate:
        if not is_valid_pincode(postal_code):
            raise InvalidPostalCode(postal_code)

        cached = await self._cached(postal_code)
        if cached is not None:
            return cached

        try:
            location = await self._lookup(postal_code)
        except ExternalCollaboratorFailure as e:
            fallback = approximate_location(postal_code) if self.use_fallback else None
            if fallback is None:
                raise
            logger.warning(f"Geocoding failed for {postal_code}, using approximate location: {e}")
            return fallback

        await self._store(postal_code, location)
        return location

    @track_external_call("geocoding", "resolve")
    async def _lookup(self, postal_code: str) -> Coordinate:
        if not self.api_key:
            raise ExternalCollaboratorFailure("geocoding", "resolve", "no API key configured")

        params = {"address": f"{postal_code}, {settings.GEOCODING_REGION}", "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=settings.EXTERNAL_CALL_TIMEOUT, transport=self.transport) as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            raise ExternalCollaboratorFailure("geocoding", "resolve", "timeout")
        except httpx.HTTPError as e:
            raise ExternalCollaboratorFailure("geocoding", "resolve", str(e))
        except ValueError:
            raise ExternalCollaboratorFailure("geocoding", "resolve", "response is not JSON")
        if not isinstance(data, dict):
            raise ExternalCollaboratorFailure("geocoding", "resolve", "unexpected response body")

        status = data.get("status")
        if status == "ZERO_RESULTS":
            raise InvalidPostalCode(postal_code)
        if status != "OK" or not data.get("results"):
            raise ExternalCollaboratorFailure("geocoding", "resolve", f"provider status {status}")

        try:
            point = data["results"][0]["geometry"]["location"]
            return Coordinate(float(point["lat"]), float(point["lng"]))
        except (KeyError, IndexError, TypeError, ValueError):
            raise ExternalCollaboratorFailure("geocoding", "resolve", "malformed result")

    async def _cached(self, postal_code: str) -> Optional[Coordinate]:
        if self.cache is None:
            return None
        try:
            raw = await self.cache.get(f"geo:{postal_code}")
        except RedisError as e:
            logger.warning(f"Geocode cache read failed for {postal_code}: {e}")
            return None
        if raw is None:
            cache_misses.labels(cache_key="geocode").inc()
            return None
        cache_hits.labels(cache_key="geocode").inc()
        value = json.loads(raw)
        return Coordinate(value["lat"], value["lon"])

    async def _store(self, postal_code: str, location: Coordinate) -> None:
        if self.cache is None:
            return
        payload = json.dumps({"lat": location.lat, "lon": location.lon})
        try:
            await self.cache.set(f"geo:{postal_code}", payload, ex=settings.GEOCODE_CACHE_TTL)
        except RedisError as e:
            logger.warning(f"Geocode cache write failed for {postal_code}: {e}")
