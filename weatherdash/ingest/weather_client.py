"""Open-Meteo daily forecast client."""

import logging

import httpx

from weatherdash.config.defaults import DAILY_FIELDS, DEFAULT_TIMEOUT, OPEN_METEO_URL
from weatherdash.errors import NetworkFailure
from weatherdash.models.common import utc_now_iso
from weatherdash.models.forecast import DailySeries, ForecastRecord

logger = logging.getLogger(__name__)

_REQUIRED_DAILY = (
    "time",
    "temperature_2m_max",
    "temperature_2m_min",
    "windspeed_10m_max",
    "precipitation_sum",
)


class WeatherClient:
    def __init__(
        self,
        base_url: str = OPEN_METEO_URL,
        daily_fields: list[str] | None = None,
        forecast_days: int = 7,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url
        self.daily_fields = list(daily_fields or DAILY_FIELDS)
        self.forecast_days = forecast_days
        self.timeout = timeout

    async def fetch_forecast(self, latitude: float, longitude: float) -> ForecastRecord:
        """Fetch the daily forecast for a coordinate pair.

        Raises NetworkFailure on transport errors, non-2xx responses and
        payloads missing the daily arrays.
        """
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "daily": ",".join(self.daily_fields),
            "timezone": "auto",
            "forecast_days": self.forecast_days,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.base_url, params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Forecast API %d for (%.4f, %.4f)",
                e.response.status_code, latitude, longitude,
            )
            raise NetworkFailure(
                f"Forecast request failed: HTTP {e.response.status_code}",
                e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error("Forecast request error for (%.4f, %.4f): %s", latitude, longitude, e)
            raise NetworkFailure(f"Forecast request failed: {e}") from e
        except ValueError as e:
            raise NetworkFailure("Forecast response is not valid JSON") from e

        return parse_forecast(data, latitude, longitude)


def parse_forecast(data: dict, latitude: float, longitude: float) -> ForecastRecord:
    """Build a ForecastRecord from an Open-Meteo response body.

    Any shape problem in the body raises NetworkFailure.
    """
    daily = data.get("daily") if isinstance(data, dict) else None
    if not isinstance(daily, dict):
        raise NetworkFailure("Forecast response has no daily block")

    missing = [k for k in _REQUIRED_DAILY if not isinstance(daily.get(k), list)]
    if missing:
        raise NetworkFailure(f"Forecast response missing daily fields: {', '.join(missing)}")

    days = len(daily["time"])
    ragged = [k for k in _REQUIRED_DAILY if len(daily[k]) != days]
    if ragged:
        raise NetworkFailure(f"Forecast response has misaligned daily fields: {', '.join(ragged)}")

    try:
        series = DailySeries(
            time=list(daily["time"]),
            temperature_max=list(daily["temperature_2m_max"]),
            temperature_min=list(daily["temperature_2m_min"]),
            wind_speed_max=list(daily["windspeed_10m_max"]),
            precipitation_sum=list(daily["precipitation_sum"]),
            weather_code=_optional_list(daily, "weathercode", days),
            uv_index_max=_optional_list(daily, "uv_index_max", days),
        )
        return ForecastRecord(
            latitude=float(data.get("latitude", latitude)),
            longitude=float(data.get("longitude", longitude)),
            timezone=str(data.get("timezone") or ""),
            daily=series,
            fetched_at=utc_now_iso(),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.error("Malformed forecast payload for (%.4f, %.4f): %s", latitude, longitude, e)
        raise NetworkFailure(f"Malformed forecast response: {e}") from e


def _optional_list(daily: dict, key: str, days: int) -> list | None:
    value = daily.get(key)
    if not isinstance(value, list) or len(value) != days:
        return None
    return list(value)
