"""Pydantic v2 configuration schema with strict validation."""

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from weatherdash.config import defaults


class GeolocationProvider(StrEnum):
    IP = "ip"
    FIXED = "fixed"
    DISABLED = "disabled"


class WeatherApiConfig(BaseModel):
    model_config = {"extra": "forbid"}

    base_url: str = defaults.OPEN_METEO_URL
    daily_fields: list[str] = Field(default_factory=lambda: list(defaults.DAILY_FIELDS))
    forecast_days: int = Field(default=7, ge=1, le=16)
    timeout_seconds: float = Field(default=defaults.DEFAULT_TIMEOUT, gt=0.0)


class GeocodeConfig(BaseModel):
    model_config = {"extra": "forbid"}

    forward_url: str = defaults.OPENCAGE_URL
    reverse_url: str = defaults.NOMINATIM_REVERSE_URL
    api_key: str = ""
    reverse_zoom: int = Field(default=10, ge=0, le=18)
    user_agent: str = defaults.DEFAULT_USER_AGENT
    timeout_seconds: float = Field(default=defaults.DEFAULT_TIMEOUT, gt=0.0)


class GeolocationConfig(BaseModel):
    model_config = {"extra": "forbid"}

    provider: GeolocationProvider = GeolocationProvider.IP
    url: str = defaults.IP_GEOLOCATION_URL
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    timeout_seconds: float = Field(default=defaults.DEFAULT_TIMEOUT, gt=0.0)

    @model_validator(mode="after")
    def _fixed_needs_coordinates(self) -> "GeolocationConfig":
        if self.provider == GeolocationProvider.FIXED and (
            self.latitude is None or self.longitude is None
        ):
            raise ValueError("fixed geolocation requires latitude and longitude")
        return self


class StorageConfig(BaseModel):
    model_config = {"extra": "forbid"}

    client_db_path: str = "data/client.db"
    locations_key: str = defaults.LOCATIONS_STORAGE_KEY


class RegistryConfig(BaseModel):
    model_config = {"extra": "forbid"}

    mirror_enabled: bool = False
    base_url: str = defaults.REGISTRY_URL
    db_path: str = "data/registry.db"
    host: str = "127.0.0.1"
    port: int = Field(default=8777, ge=1, le=65535)
    timeout_seconds: float = Field(default=defaults.DEFAULT_TIMEOUT, gt=0.0)


class DashboardConfig(BaseModel):
    model_config = {"extra": "forbid"}

    weather: WeatherApiConfig = WeatherApiConfig()
    geocode: GeocodeConfig = GeocodeConfig()
    geolocation: GeolocationConfig = GeolocationConfig()
    storage: StorageConfig = StorageConfig()
    registry: RegistryConfig = RegistryConfig()
