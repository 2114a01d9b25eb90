"""Repository for registry location records."""

import sqlite3
import uuid


def list_locations(conn: sqlite3.Connection) -> list[dict]:
    """All registry locations in creation order."""
    rows = conn.execute(
        "SELECT id, name, latitude, longitude FROM locations "
        "ORDER BY created_at, rowid"
    ).fetchall()
    return [dict(r) for r in rows]


def create_location(
    conn: sqlite3.Connection,
    name: str,
    latitude: float | None = None,
    longitude: float | None = None,
) -> dict:
    """Insert a location with a server-issued id. Returns the stored record."""
    record = {
        "id": str(uuid.uuid4()),
        "name": name,
        "latitude": latitude or 0.0,
        "longitude": longitude or 0.0,
    }
    conn.execute(
        "INSERT INTO locations (id, name, latitude, longitude) VALUES (?, ?, ?, ?)",
        (record["id"], record["name"], record["latitude"], record["longitude"]),
    )
    conn.commit()
    return record
