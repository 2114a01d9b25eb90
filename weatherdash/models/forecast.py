"""Open-Meteo daily forecast models."""

from collections.abc import Iterator
from dataclasses import dataclass

from weatherdash.models.common import FetchState


@dataclass(frozen=True)
class PlaceLabel:
    name: str
    country: str = ""


@dataclass(frozen=True)
class DailyForecast:
    date: str  # YYYY-MM-DD
    temperature_max: float | None
    temperature_min: float | None
    wind_speed_max: float | None
    precipitation_sum: float | None
    weather_code: int | None = None
    uv_index_max: float | None = None


@dataclass(frozen=True)
class DailySeries:
    """Parallel per-day arrays as returned by the forecast service.

    Optional arrays, when present, are index-aligned with ``time``. Any
    single value may be None when the service has no data for that day.
    """

    time: list[str]
    temperature_max: list[float | None]
    temperature_min: list[float | None]
    wind_speed_max: list[float | None]
    precipitation_sum: list[float | None]
    weather_code: list[int | None] | None = None
    uv_index_max: list[float | None] | None = None

    def __len__(self) -> int:
        return len(self.time)

    def days(self) -> Iterator[DailyForecast]:
        for i, date in enumerate(self.time):
            yield DailyForecast(
                date=date,
                temperature_max=self.temperature_max[i],
                temperature_min=self.temperature_min[i],
                wind_speed_max=self.wind_speed_max[i],
                precipitation_sum=self.precipitation_sum[i],
                weather_code=self.weather_code[i] if self.weather_code else None,
                uv_index_max=self.uv_index_max[i] if self.uv_index_max else None,
            )


@dataclass(frozen=True)
class ForecastRecord:
    latitude: float
    longitude: float
    timezone: str
    daily: DailySeries
    fetched_at: str
    label: PlaceLabel | None = None


@dataclass(frozen=True)
class ForecastEntry:
    """What the presentation layer reads for one tab."""

    state: FetchState
    record: ForecastRecord | None = None
    error: str | None = None

    @classmethod
    def uninitialized(cls) -> "ForecastEntry":
        return cls(FetchState.UNINITIALIZED)

    @classmethod
    def loading(cls) -> "ForecastEntry":
        return cls(FetchState.LOADING)

    @classmethod
    def ready(cls, record: ForecastRecord) -> "ForecastEntry":
        return cls(FetchState.READY, record=record)

    @classmethod
    def errored(cls, reason: str) -> "ForecastEntry":
        return cls(FetchState.ERRORED, error=reason)
