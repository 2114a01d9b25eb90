"""Error taxonomy shared by the clients, the store and the registry."""


class WeatherDashError(Exception):
    """Base class for every failure the dashboard reports to the user."""


class NetworkFailure(WeatherDashError):
    """Transport error, non-success HTTP status, timeout or malformed payload."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFound(WeatherDashError):
    """Forward geocoding returned zero results."""


class NotConfigured(WeatherDashError):
    """A required access credential is missing."""


class PersistenceParseFailure(WeatherDashError):
    """Locally stored state could not be decoded."""
