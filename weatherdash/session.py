"""Build the clients and the location store from one config."""

import sqlite3
from dataclasses import dataclass

from weatherdash.config.schema import DashboardConfig
from weatherdash.ingest.geocode_client import GeocodeClient
from weatherdash.ingest.geolocation import GeolocationSource, build_geolocation_source
from weatherdash.ingest.registry_client import RegistryClient
from weatherdash.ingest.weather_client import WeatherClient
from weatherdash.reporting.notifier import Notifier
from weatherdash.state.location_store import LocationStore
from weatherdash.state.persistence import LocationPersistence
from weatherdash.storage.database import connect, run_migrations


@dataclass
class Session:
    store: LocationStore
    geolocation: GeolocationSource
    conn: sqlite3.Connection

    def close(self) -> None:
        self.store.close()
        self.conn.close()


def build_weather_client(config: DashboardConfig) -> WeatherClient:
    return WeatherClient(
        base_url=config.weather.base_url,
        daily_fields=config.weather.daily_fields,
        forecast_days=config.weather.forecast_days,
        timeout=config.weather.timeout_seconds,
    )


def build_geocode_client(config: DashboardConfig) -> GeocodeClient:
    return GeocodeClient(
        api_key=config.geocode.api_key,
        forward_url=config.geocode.forward_url,
        reverse_url=config.geocode.reverse_url,
        reverse_zoom=config.geocode.reverse_zoom,
        user_agent=config.geocode.user_agent,
        timeout=config.geocode.timeout_seconds,
    )


def open_session(config: DashboardConfig, notifier: Notifier | None = None) -> Session:
    """Open the client database and wire a store around it."""
    conn = connect(config.storage.client_db_path)
    run_migrations(conn)

    registry = None
    if config.registry.mirror_enabled:
        registry = RegistryClient(config.registry.base_url, config.registry.timeout_seconds)

    store = LocationStore(
        weather=build_weather_client(config),
        geocoder=build_geocode_client(config),
        persistence=LocationPersistence(conn, config.storage.locations_key),
        notifier=notifier,
        registry=registry,
    )
    geolocation = build_geolocation_source(config.geolocation, config.geocode.user_agent)
    return Session(store=store, geolocation=geolocation, conn=conn)
