"""Forward (OpenCage) and reverse (Nominatim) geocoding.

The two lookups fail differently: forward geocoding backs a user search and
propagates every failure, reverse geocoding only decorates the current
location label and degrades to a placeholder. FAILURE_POLICIES records this
per operation.
"""

import logging
from dataclasses import dataclass
from enum import StrEnum

import httpx

from weatherdash.config.defaults import (
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    NOMINATIM_REVERSE_URL,
    OPENCAGE_URL,
)
from weatherdash.errors import NetworkFailure, NotConfigured, NotFound, WeatherDashError
from weatherdash.models.forecast import PlaceLabel

logger = logging.getLogger(__name__)

CURRENT_LOCATION_LABEL = PlaceLabel(name="Current Location", country="")
UNKNOWN_LOCATION_NAME = "Unknown Location"

_NAME_COMPONENTS = ("city", "town", "village", "county")


class FailurePolicy(StrEnum):
    PROPAGATE = "propagate"
    DEGRADE = "degrade-with-default"


FAILURE_POLICIES: dict[str, FailurePolicy] = {
    "forward": FailurePolicy.PROPAGATE,
    "reverse": FailurePolicy.DEGRADE,
}


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    name: str
    country: str | None = None


class GeocodeClient:
    def __init__(
        self,
        api_key: str = "",
        forward_url: str = OPENCAGE_URL,
        reverse_url: str = NOMINATIM_REVERSE_URL,
        reverse_zoom: int = 10,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.api_key = api_key
        self.forward_url = forward_url
        self.reverse_url = reverse_url
        self.reverse_zoom = reverse_zoom
        self.user_agent = user_agent
        self.timeout = timeout

    async def forward(self, query: str) -> GeocodeResult:
        """Resolve a free-text place name to coordinates.

        Raises NotConfigured without an API key, NotFound on zero results and
        NetworkFailure for everything else.
        """
        if not self.api_key:
            logger.error("OpenCage API key is missing")
            raise NotConfigured("Geocoding API key is not configured")

        params = {"q": query, "key": self.api_key, "limit": 1}
        data = await self._get_json(self.forward_url, params, "forward")

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise NetworkFailure("Geocoding response has no results list")
        if not results:
            raise NotFound(f"Location not found: {query!r}")

        first = results[0]
        try:
            geometry = first["geometry"]
            latitude = float(geometry["lat"])
            longitude = float(geometry["lng"])
            components = first.get("components") or {}
            return GeocodeResult(
                latitude=latitude,
                longitude=longitude,
                name=_place_name(components, fallback=query),
                country=components.get("country"),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise NetworkFailure(f"Malformed geocoding result: {e}") from e

    async def reverse(self, latitude: float, longitude: float) -> PlaceLabel:
        """Name the place at a coordinate pair. Never raises."""
        params = {
            "format": "json",
            "lat": latitude,
            "lon": longitude,
            "zoom": self.reverse_zoom,
        }
        try:
            data = await self._get_json(self.reverse_url, params, "reverse")
            address = data["address"]
            return PlaceLabel(
                name=_place_name(address, fallback=UNKNOWN_LOCATION_NAME),
                country=address.get("country") or "",
            )
        except (WeatherDashError, KeyError, TypeError, AttributeError) as e:
            if FAILURE_POLICIES["reverse"] is not FailurePolicy.DEGRADE:
                raise
            logger.warning(
                "Reverse geocoding failed for (%.4f, %.4f), using placeholder: %s",
                latitude, longitude, e,
            )
            return CURRENT_LOCATION_LABEL

    async def _get_json(self, url: str, params: dict, operation: str) -> dict:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params, headers=headers)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            raise NetworkFailure(
                f"{operation} geocoding failed: HTTP {e.response.status_code}",
                e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"{operation} geocoding request failed: {e}") from e
        except ValueError as e:
            raise NetworkFailure(f"{operation} geocoding response is not valid JSON") from e


def _place_name(components: dict, fallback: str) -> str:
    for key in _NAME_COMPONENTS:
        value = components.get(key)
        if value:
            return value
    return fallback
