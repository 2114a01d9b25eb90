"""Plain text and JSON renderings of forecasts and saved locations."""

import json
from dataclasses import asdict

from weatherdash.models.common import CURRENT, FetchState
from weatherdash.models.forecast import ForecastEntry, ForecastRecord
from weatherdash.models.location import Location


def format_forecast_text(record: ForecastRecord) -> str:
    title = record.label.name if record.label else f"{record.latitude:.2f}, {record.longitude:.2f}"
    if record.label and record.label.country:
        title = f"{title}, {record.label.country}"
    lines = [
        f"=== {title} ({record.timezone or 'UTC'}) ===",
        f"{'Date':<11} {'Max':>6} {'Min':>6} {'Wind':>7} {'Rain':>6} {'Code':>5}",
    ]
    for day in record.daily.days():
        code = "-" if day.weather_code is None else str(day.weather_code)
        lines.append(
            f"{day.date:<11} {_cell(day.temperature_max, '°'):>6} "
            f"{_cell(day.temperature_min, '°'):>6} {_cell(day.wind_speed_max, 'kh'):>7} "
            f"{_cell(day.precipitation_sum, 'mm'):>6} {code:>5}"
        )
    return "\n".join(lines)


def _cell(value: float | None, unit: str) -> str:
    """One numeric column; the service sends null for days it has no value for."""
    if value is None:
        return "-"
    return f"{value:.1f}{unit}"


def format_entry_text(entry: ForecastEntry) -> str:
    if entry.state == FetchState.READY and entry.record is not None:
        return format_forecast_text(entry.record)
    if entry.state == FetchState.ERRORED:
        return f"Forecast unavailable: {entry.error}"
    if entry.state == FetchState.UNINITIALIZED:
        return "Waiting for position..."
    return "Loading weather data..."


def format_locations_text(locations: list[Location], active: str = CURRENT) -> str:
    marker = "*" if active == CURRENT else " "
    lines = [f"{marker} {CURRENT:<38} Current Location"]
    for loc in locations:
        marker = "*" if loc.id == active else " "
        lines.append(
            f"{marker} {loc.id:<38} {loc.name} ({loc.latitude:.4f}, {loc.longitude:.4f})"
        )
    return "\n".join(lines)


def format_forecast_json(record: ForecastRecord) -> str:
    return json.dumps(asdict(record), indent=2)
