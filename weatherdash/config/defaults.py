"""Default upstream endpoints and request parameters."""

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
OPENCAGE_URL = "https://api.opencagedata.com/geocode/v1/json"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
IP_GEOLOCATION_URL = "https://ipapi.co/json/"
REGISTRY_URL = "http://127.0.0.1:8777"

DEFAULT_USER_AGENT = "weatherdash/0.1.0"
DEFAULT_TIMEOUT = 10.0

DAILY_FIELDS: list[str] = [
    "temperature_2m_max",
    "temperature_2m_min",
    "weathercode",
    "windspeed_10m_max",
    "precipitation_sum",
    "uv_index_max",
]

OPENCAGE_API_KEY_ENV = "OPENCAGE_API_KEY"
LOCATIONS_STORAGE_KEY = "weatherLocations"
