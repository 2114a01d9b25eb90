"""Notification and operational health models."""

from dataclasses import dataclass, field
from enum import StrEnum

from weatherdash.models.common import utc_now_iso


class NotificationLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    kind: str | None = None  # error class name for failures
    created_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class HealthStatus:
    client_db_connected: bool
    registry_db_connected: bool
    forecast_api_reachable: bool
    geocode_configured: bool
    saved_locations: int
