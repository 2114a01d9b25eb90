"""Saved location model."""

import uuid
from dataclasses import asdict, dataclass

from weatherdash.models.common import LocationId
from weatherdash.models.forecast import ForecastRecord

PENDING_PREFIX = "temp-"


@dataclass(frozen=True)
class Location:
    id: LocationId
    name: str
    latitude: float
    longitude: float

    @property
    def is_pending(self) -> bool:
        """True when the id was minted locally rather than issued by the registry."""
        return self.id.startswith(PENDING_PREFIX)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class LocationPreview:
    """A search result and its forecast, shown before the user saves it."""
    location: Location
    forecast: ForecastRecord


def new_pending_id() -> LocationId:
    return f"{PENDING_PREFIX}{uuid.uuid4().hex}"
