"""Location registry backend: list and create saved location records."""

import logging
import sqlite3
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from weatherdash.storage import location_repo
from weatherdash.storage.database import connect, run_migrations

logger = logging.getLogger(__name__)

DB_PATH = Path("data") / "registry.db"

app = FastAPI(title="Weather Dashboard Registry", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def _invalid_payload(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Bad request bodies are 400s. A missing, non-JSON or nameless body reads as no name."""
    for err in exc.errors():
        loc = tuple(err.get("loc", ()))
        if loc == ("body",) or err.get("type") == "json_invalid" or loc[1:2] == ("name",):
            return JSONResponse({"error": "Name is required"}, status_code=400)
    return JSONResponse({"error": "Invalid location payload"}, status_code=400)


class LocationCreate(BaseModel):
    """Create payload. Name is checked in the handler so a missing one is a 400."""
    name: str | None = None
    latitude: float | None = None
    longitude: float | None = None


def _conn() -> sqlite3.Connection:
    conn = connect(DB_PATH)
    run_migrations(conn)
    return conn


@app.get("/api/locations")
def get_locations():
    """All registry locations."""
    try:
        conn = _conn()
    except sqlite3.Error:
        logger.exception("Error fetching locations")
        return JSONResponse({"error": "Failed to fetch locations"}, status_code=500)
    try:
        return location_repo.list_locations(conn)
    except sqlite3.Error:
        logger.exception("Error fetching locations")
        return JSONResponse({"error": "Failed to fetch locations"}, status_code=500)
    finally:
        conn.close()


@app.post("/api/locations")
def create_location(payload: LocationCreate):
    if not payload.name:
        return JSONResponse({"error": "Name is required"}, status_code=400)
    try:
        conn = _conn()
    except sqlite3.Error:
        logger.exception("Error creating location")
        return JSONResponse({"error": "Failed to create location"}, status_code=500)
    try:
        record = location_repo.create_location(
            conn, payload.name, payload.latitude, payload.longitude
        )
        logger.info("Registered location %s (%s)", record["name"], record["id"])
        return record
    except sqlite3.Error:
        logger.exception("Error creating location")
        return JSONResponse({"error": "Failed to create location"}, status_code=500)
    finally:
        conn.close()


@app.get("/api/health")
def get_health():
    """Quick health check."""
    try:
        conn = _conn()
    except sqlite3.Error as e:
        return {"db_ok": False, "error": str(e)}
    try:
        count = conn.execute("SELECT COUNT(*) FROM locations").fetchone()[0]
        return {"db_ok": True, "locations": count}
    except sqlite3.Error as e:
        return {"db_ok": False, "error": str(e)}
    finally:
        conn.close()


def serve(db_path: str | Path, host: str = "127.0.0.1", port: int = 8777) -> None:
    global DB_PATH
    DB_PATH = Path(db_path)
    import uvicorn
    uvicorn.run(app, host=host, port=port)
