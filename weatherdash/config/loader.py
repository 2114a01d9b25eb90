"""YAML config loader with environment credential overlay and dotted lookup."""

import os
from pathlib import Path
from typing import Any

import yaml

from weatherdash.config.defaults import OPENCAGE_API_KEY_ENV
from weatherdash.config.schema import DashboardConfig


def load_config(path: str | Path | None = None) -> DashboardConfig:
    """Load and validate config from a YAML file.

    With no path every section takes its defaults. The forward-geocoding
    key falls back to the OPENCAGE_API_KEY environment variable when the
    YAML leaves it empty.
    """
    raw: dict = {}
    if path is not None:
        with open(Path(path)) as f:
            raw = yaml.safe_load(f) or {}

    geocode = raw.setdefault("geocode", {}) or {}
    raw["geocode"] = geocode
    if not geocode.get("api_key"):
        env_key = os.environ.get(OPENCAGE_API_KEY_ENV, "")
        if env_key:
            geocode["api_key"] = env_key

    return DashboardConfig(**raw)


def get_config_value(config: DashboardConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'weather.timeout_seconds'."""
    parts = dotted_key.split(".")
    obj: Any = config
    for part in parts:
        if isinstance(obj, list):
            obj = obj[int(part)]
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        elif isinstance(obj, dict):
            obj = obj[part]
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj
