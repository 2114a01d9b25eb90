"""Shared test fixtures."""

import json
import sqlite3
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from weatherdash.config.schema import DashboardConfig
from weatherdash.ingest.geocode_client import GeocodeClient
from weatherdash.ingest.weather_client import WeatherClient, parse_forecast
from weatherdash.models.forecast import ForecastRecord, PlaceLabel
from weatherdash.reporting.notifier import Notifier
from weatherdash.state.location_store import LocationStore
from weatherdash.state.persistence import LocationPersistence
from weatherdash.storage.database import connect, run_migrations

FIXTURE_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> dict:
    with open(FIXTURE_DIR / name, encoding="utf-8") as f:
        return json.load(f)


def make_record(latitude: float = 52.52, longitude: float = 13.41) -> ForecastRecord:
    """A parsed Berlin forecast placed at the given coordinates."""
    data = load_fixture("openmeteo_forecast_berlin.json")
    data["latitude"] = latitude
    data["longitude"] = longitude
    return parse_forecast(data, latitude, longitude)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return FIXTURE_DIR


@pytest.fixture
def forecast_payload() -> dict:
    return load_fixture("openmeteo_forecast_berlin.json")


@pytest.fixture
def tmp_db(tmp_path: Path) -> sqlite3.Connection:
    """A migrated temporary SQLite database."""
    conn = connect(tmp_path / "test.db")
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def default_config() -> DashboardConfig:
    return DashboardConfig()


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "weather": {"timeout_seconds": 3.0},
        "geolocation": {"provider": "fixed", "latitude": 40.71, "longitude": -74.01},
        "storage": {"client_db_path": str(tmp_path / "client.db")},
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def weather() -> MagicMock:
    """WeatherClient mock that returns a forecast at the requested coordinates."""
    mock = MagicMock(spec=WeatherClient)
    mock.fetch_forecast.side_effect = lambda lat, lon: make_record(lat, lon)
    return mock


@pytest.fixture
def geocoder() -> MagicMock:
    mock = MagicMock(spec=GeocodeClient)
    mock.reverse.return_value = PlaceLabel("Berlin", "Deutschland")
    return mock


@pytest.fixture
def persistence(tmp_db: sqlite3.Connection) -> LocationPersistence:
    return LocationPersistence(tmp_db)


@pytest.fixture
def store(weather, geocoder, persistence) -> LocationStore:
    return LocationStore(weather, geocoder, persistence, notifier=Notifier())


@pytest.fixture
def record_factory():
    return make_record
