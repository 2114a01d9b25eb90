"""Serialize the saved-location sequence to durable client storage."""

import json
import logging
import sqlite3

from weatherdash.config.defaults import LOCATIONS_STORAGE_KEY
from weatherdash.errors import PersistenceParseFailure
from weatherdash.models.location import Location
from weatherdash.storage import client_storage_repo

logger = logging.getLogger(__name__)


def serialize_locations(locations: list[Location]) -> str:
    return json.dumps([loc.to_dict() for loc in locations])


def deserialize_locations(raw: str) -> list[Location]:
    """Decode a stored sequence. Raises PersistenceParseFailure on any defect."""
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise PersistenceParseFailure(f"Stored locations are not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise PersistenceParseFailure("Stored locations are not a list")

    locations = []
    seen: set[str] = set()
    for item in data:
        try:
            loc = Location(
                id=str(item["id"]),
                name=str(item["name"]),
                latitude=float(item["latitude"]),
                longitude=float(item["longitude"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceParseFailure(f"Malformed stored location {item!r}") from e
        if loc.id in seen:
            raise PersistenceParseFailure(f"Duplicate stored location id {loc.id!r}")
        seen.add(loc.id)
        locations.append(loc)
    return locations


class LocationPersistence:
    """Whole-sequence read/write of saved locations under a single key."""

    def __init__(self, conn: sqlite3.Connection, key: str = LOCATIONS_STORAGE_KEY):
        self.conn = conn
        self.key = key

    def load(self) -> list[Location]:
        """Read the stored sequence. Corrupt state is logged and read as empty."""
        raw = client_storage_repo.get_item(self.conn, self.key)
        if raw is None:
            return []
        try:
            return deserialize_locations(raw)
        except PersistenceParseFailure:
            logger.exception("Failed to parse saved locations")
            return []

    def save(self, locations: list[Location]) -> None:
        """Write the full sequence, or clear the key when it is empty."""
        if locations:
            client_storage_repo.set_item(self.conn, self.key, serialize_locations(locations))
        else:
            client_storage_repo.remove_item(self.conn, self.key)
