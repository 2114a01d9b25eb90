"""Repository for the durable client key-value store."""

import sqlite3


def get_item(conn: sqlite3.Connection, key: str) -> str | None:
    """Get a stored value, or None when the key is absent."""
    row = conn.execute(
        "SELECT value FROM client_storage WHERE key = ?", (key,)
    ).fetchone()
    if row is None:
        return None
    return row[0]


def set_item(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT INTO client_storage (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
        (key, value),
    )
    conn.commit()


def remove_item(conn: sqlite3.Connection, key: str) -> None:
    conn.execute("DELETE FROM client_storage WHERE key = ?", (key,))
    conn.commit()
