"""One-shot position sources for the "current location" tab."""

import logging
from dataclasses import dataclass

import httpx

from weatherdash.config.defaults import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, IP_GEOLOCATION_URL
from weatherdash.config.schema import GeolocationConfig, GeolocationProvider

logger = logging.getLogger(__name__)

UNSUPPORTED_REASON = "Geolocation is not supported"


@dataclass(frozen=True)
class GeolocationResult:
    latitude: float | None = None
    longitude: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GeolocationSource:
    """Answers a single position query and remembers the outcome.

    Subclasses implement _query(); locate() runs it at most once per
    instance, so later callers see the same terminal result.
    """

    def __init__(self):
        self._result: GeolocationResult | None = None

    @property
    def result(self) -> GeolocationResult | None:
        """None until the query has resolved."""
        return self._result

    async def locate(self) -> GeolocationResult:
        if self._result is None:
            self._result = await self._query()
            if self._result.ok:
                logger.info(
                    "Position resolved: (%.4f, %.4f)",
                    self._result.latitude, self._result.longitude,
                )
            else:
                logger.warning("Geolocation failed: %s", self._result.error)
        return self._result

    async def _query(self) -> GeolocationResult:
        raise NotImplementedError


class FixedGeolocationSource(GeolocationSource):
    def __init__(self, latitude: float, longitude: float):
        super().__init__()
        self.latitude = latitude
        self.longitude = longitude

    async def _query(self) -> GeolocationResult:
        return GeolocationResult(latitude=self.latitude, longitude=self.longitude)


class UnsupportedGeolocationSource(GeolocationSource):
    async def _query(self) -> GeolocationResult:
        return GeolocationResult(error=UNSUPPORTED_REASON)


class IpGeolocationSource(GeolocationSource):
    """Approximate position from the public IP address (ipapi.co format)."""

    def __init__(
        self,
        url: str = IP_GEOLOCATION_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__()
        self.url = url
        self.user_agent = user_agent
        self.timeout = timeout

    async def _query(self) -> GeolocationResult:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.url, headers={"User-Agent": self.user_agent})
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException:
            return GeolocationResult(error="Timeout expired")
        except httpx.HTTPStatusError as e:
            return GeolocationResult(error=f"Position lookup failed: HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            return GeolocationResult(error=f"Position lookup failed: {e}")
        except ValueError:
            return GeolocationResult(error="Position lookup returned invalid JSON")

        if isinstance(data, dict) and data.get("error"):
            return GeolocationResult(error=str(data.get("reason") or "Position unavailable"))
        try:
            return GeolocationResult(
                latitude=float(data["latitude"]),
                longitude=float(data["longitude"]),
            )
        except (KeyError, TypeError, ValueError):
            return GeolocationResult(error="Position unavailable")


def build_geolocation_source(
    config: GeolocationConfig, user_agent: str = DEFAULT_USER_AGENT
) -> GeolocationSource:
    if config.provider == GeolocationProvider.FIXED:
        assert config.latitude is not None and config.longitude is not None
        return FixedGeolocationSource(config.latitude, config.longitude)
    if config.provider == GeolocationProvider.DISABLED:
        return UnsupportedGeolocationSource()
    return IpGeolocationSource(config.url, user_agent, config.timeout_seconds)
