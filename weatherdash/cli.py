"""CLI entry point for the weather dashboard."""

import argparse
import asyncio
import json
import logging

from weatherdash.config.loader import get_config_value, load_config
from weatherdash.config.schema import DashboardConfig
from weatherdash.models.common import CURRENT
from weatherdash.reporting.formatters import (
    format_entry_text,
    format_forecast_json,
    format_forecast_text,
    format_locations_text,
)
from weatherdash.reporting.health_checker import HealthChecker
from weatherdash.reporting.notifier import Notifier
from weatherdash.session import Session, open_session


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="weatherdash",
        description="Multi-location 7-day weather dashboard",
    )
    parser.add_argument("--config", default=None, help="Config YAML path")
    parser.add_argument("--db", default=None, help="Client storage SQLite path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    # forecast
    forecast_p = sub.add_parser("forecast", help="Forecast for the current position")
    forecast_p.add_argument("--lat", type=float, help="Latitude (skips geolocation)")
    forecast_p.add_argument("--lon", type=float, help="Longitude (skips geolocation)")
    forecast_p.add_argument("--json", action="store_true", help="Print JSON")

    # show
    show_p = sub.add_parser("show", help="Load saved locations and print one forecast")
    show_p.add_argument("location_id", nargs="?", help="Saved location id")

    # refresh
    refresh_p = sub.add_parser("refresh", help="Reload saved locations and re-fetch one")
    refresh_p.add_argument("location_id", nargs="?", help="Saved location id (default: current)")

    # locations list / search / add / remove
    loc_p = sub.add_parser("locations", help="Saved location operations")
    loc_sub = loc_p.add_subparsers(dest="locations_command")
    loc_sub.add_parser("list", help="List saved locations")
    search_p = loc_sub.add_parser("search", help="Preview a place and its forecast without saving")
    search_p.add_argument("query", help="Place name")
    add_p = loc_sub.add_parser("add", help="Search for a place and save it")
    add_p.add_argument("query", help="Place name")
    rm_p = loc_sub.add_parser("remove", help="Delete a saved location")
    rm_p.add_argument("location_id")

    # serve
    serve_p = sub.add_parser("serve", help="Run the location registry backend")
    serve_p.add_argument("--host", default=None)
    serve_p.add_argument("--port", type=int, default=None)

    # health
    sub.add_parser("health", help="Run health checks")

    # config show / config get
    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config")
    get_p = config_sub.add_parser("get", help="Print one config value")
    get_p.add_argument("key", help="Dotted key, e.g. weather.timeout_seconds")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    if args.db:
        config = config.model_copy(
            update={"storage": config.storage.model_copy(update={"client_db_path": args.db})}
        )

    if args.command == "forecast":
        return _cmd_forecast(config, args)
    elif args.command == "show":
        return _cmd_show(config, args)
    elif args.command == "refresh":
        return _cmd_refresh(config, args)
    elif args.command == "locations":
        return _cmd_locations(config, args)
    elif args.command == "serve":
        return _cmd_serve(config, args)
    elif args.command == "health":
        return _cmd_health(config)
    elif args.command == "config":
        return _cmd_config(config, args)
    else:
        parser.print_help()
        return 1


def _open(config: DashboardConfig) -> Session:
    notifier = Notifier(sink=lambda note: print(f"[{note.level.value}] {note.message}"))
    return open_session(config, notifier)


def _cmd_forecast(config: DashboardConfig, args) -> int:
    session = _open(config)
    store = session.store
    try:
        if args.lat is not None and args.lon is not None:
            asyncio.run(store.load_current(args.lat, args.lon))
        else:
            asyncio.run(store.locate_current(session.geolocation))
        entry = store.entry(CURRENT)
        if args.json and entry.record is not None:
            print(format_forecast_json(entry.record))
        else:
            print(format_entry_text(entry))
        return 0 if entry.record is not None else 1
    finally:
        session.close()


def _cmd_show(config: DashboardConfig, args) -> int:
    session = _open(config)
    store = session.store
    try:
        asyncio.run(store.load())
        if args.location_id is None or args.location_id == CURRENT:
            asyncio.run(store.locate_current(session.geolocation))
        else:
            try:
                store.select(args.location_id)
            except KeyError as e:
                print(f"Error: {e.args[0]}")
                return 1
        print(format_locations_text(store.locations, store.active))
        print()
        entry = store.entry()
        print(format_entry_text(entry))
        return 0 if entry.record is not None else 1
    finally:
        session.close()


def _cmd_refresh(config: DashboardConfig, args) -> int:
    session = _open(config)
    store = session.store
    try:
        asyncio.run(store.load())
        if args.location_id is None or args.location_id == CURRENT:
            ok = asyncio.run(store.locate_current(session.geolocation))
        elif store.get_location(args.location_id) is None:
            print(f"Error: unknown location id {args.location_id}")
            return 1
        else:
            store.select(args.location_id)
            ok = asyncio.run(store.refresh())
        print(format_entry_text(store.entry()))
        return 0 if ok else 1
    finally:
        session.close()


def _cmd_locations(config: DashboardConfig, args) -> int:
    session = _open(config)
    store = session.store
    try:
        store.restore()
        if args.locations_command == "list":
            print(format_locations_text(store.locations, store.active))
            return 0
        elif args.locations_command == "search":
            preview = asyncio.run(store.search(args.query))
            if preview is None:
                return 1
            loc = preview.location
            print(f"Found {loc.name} ({loc.latitude:.4f}, {loc.longitude:.4f})")
            print(format_forecast_text(preview.forecast))
            return 0
        elif args.locations_command == "add":
            location = asyncio.run(store.add_location(args.query))
            if location is None:
                return 1
            print(f"Saved {location.name} as {location.id}")
            print(format_entry_text(store.entry(location.id)))
            return 0
        elif args.locations_command == "remove":
            if not store.delete_location(args.location_id):
                print(f"Error: unknown location id {args.location_id}")
                return 1
            return 0
        else:
            print("Use: locations list | search QUERY | add QUERY | remove ID")
            return 1
    finally:
        session.close()


def _cmd_serve(config: DashboardConfig, args) -> int:
    from weatherdash.dashboard import serve

    serve(
        config.registry.db_path,
        host=args.host or config.registry.host,
        port=args.port or config.registry.port,
    )
    return 0


def _cmd_health(config: DashboardConfig) -> int:
    session = open_session(config)
    try:
        status = HealthChecker(config, session.conn).check()
    finally:
        session.close()

    print(f"Client DB: {'OK' if status.client_db_connected else 'FAIL'}")
    print(f"Registry: {'OK' if status.registry_db_connected else 'FAIL'}")
    print(f"Forecast API: {'OK' if status.forecast_api_reachable else 'FAIL'}")
    print(f"Geocoding key: {'set' if status.geocode_configured else 'missing'}")
    print(f"Saved locations: {status.saved_locations}")
    return 0 if status.client_db_connected else 1


def _cmd_config(config: DashboardConfig, args) -> int:
    if args.config_command == "show":
        data = config.model_dump(mode="json")
        if data["geocode"]["api_key"]:
            data["geocode"]["api_key"] = "***"
        print(json.dumps(data, indent=2))
        return 0
    elif args.config_command == "get":
        try:
            print(get_config_value(config, args.key))
            return 0
        except (KeyError, IndexError, ValueError) as e:
            print(f"Error: {e}")
            return 1
    else:
        print("Use: config show | config get KEY")
        return 1
