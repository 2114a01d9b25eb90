"""Initial schema: client key-value storage and the location registry."""

import sqlite3

DDL = [
    # Durable client-side storage, one JSON document per key
    """
    CREATE TABLE IF NOT EXISTS client_storage (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,

    # Server-side location registry
    """
    CREATE TABLE IF NOT EXISTS locations (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        latitude REAL NOT NULL DEFAULT 0,
        longitude REAL NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    (
        "CREATE INDEX IF NOT EXISTS idx_locations_created_at "
        "ON locations(created_at)"
    ),
]


def up(conn: sqlite3.Connection) -> None:
    for statement in DDL:
        conn.execute(statement)
    conn.commit()
