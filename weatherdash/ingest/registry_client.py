"""Client for the location registry backend (GET/POST /api/locations)."""

import logging

import httpx

from weatherdash.config.defaults import DEFAULT_TIMEOUT, REGISTRY_URL
from weatherdash.errors import NetworkFailure

logger = logging.getLogger(__name__)


class RegistryClient:
    def __init__(self, base_url: str = REGISTRY_URL, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def list_locations(self) -> list[dict]:
        data = await self._request("GET", "/api/locations")
        return data if isinstance(data, list) else []

    async def create_location(
        self, name: str, latitude: float | None = None, longitude: float | None = None
    ) -> dict:
        """Create a registry record. Returns it with its server-issued id."""
        payload = {"name": name, "latitude": latitude, "longitude": longitude}
        return await self._request("POST", "/api/locations", payload)

    async def _request(self, method: str, endpoint: str, data: dict | None = None):
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.request(method, url, json=data)
            if resp.status_code >= 400:
                logger.error("Registry %d: %s %s -> %s", resp.status_code, method, endpoint, resp.text)
                raise NetworkFailure(f"HTTP {resp.status_code}: {resp.text}", resp.status_code)
            return resp.json()
        except httpx.RequestError as e:
            logger.error("Registry request failed: %s %s -> %s", method, endpoint, e)
            raise NetworkFailure(f"Request failed: {e}") from e
        except ValueError as e:
            raise NetworkFailure("Registry response is not valid JSON") from e
