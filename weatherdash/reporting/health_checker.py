"""Health checker: storage connectivity, upstream reachability, credentials."""

import sqlite3

import httpx

from weatherdash.config.schema import DashboardConfig
from weatherdash.models.reporting import HealthStatus
from weatherdash.state.persistence import LocationPersistence


class HealthChecker:
    def __init__(self, config: DashboardConfig, conn: sqlite3.Connection):
        self.config = config
        self.conn = conn

    def check(self) -> HealthStatus:
        return HealthStatus(
            client_db_connected=self._check_db(),
            registry_db_connected=self._check_registry(),
            forecast_api_reachable=self._check_forecast_api(),
            geocode_configured=bool(self.config.geocode.api_key),
            saved_locations=len(
                LocationPersistence(self.conn, self.config.storage.locations_key).load()
            ),
        )

    def _check_db(self) -> bool:
        try:
            self.conn.execute("SELECT 1")
            return True
        except sqlite3.Error:
            return False

    def _check_registry(self) -> bool:
        try:
            resp = httpx.get(f"{self.config.registry.base_url.rstrip('/')}/api/health", timeout=5.0)
            return resp.status_code == 200 and bool(resp.json().get("db_ok"))
        except (httpx.HTTPError, ValueError, AttributeError):
            return False

    def _check_forecast_api(self) -> bool:
        try:
            resp = httpx.get(
                self.config.weather.base_url,
                params={"latitude": 0, "longitude": 0, "daily": "temperature_2m_max"},
                timeout=self.config.weather.timeout_seconds,
            )
            return resp.status_code == 200
        except httpx.HTTPError:
            return False
