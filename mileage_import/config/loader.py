from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.schedule_entry import DEFAULT_MILEAGE_RATE, UserSettings
from ..services.routing import GOOGLE_DIRECTIONS_URL

"""Config loader.

Responsibilities:
- Load YAML config (default: config/import.yml)
- Validate against the bundled config_schema.json
- Apply defaults (timezone=UTC, routing timeout 10s, mileage rate 0.655)
- Resolve per-user settings: stored user settings > environment > file defaults
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class RoutingConfig:
    base_url: str = GOOGLE_DIRECTIONS_URL
    timeout_seconds: float = 10.0
    cost_per_call: float = 0.005  # USD, Directions API 単価


@dataclass(frozen=True)
class DefaultSettings:
    api_key: str | None = None
    default_start_address: str | None = None
    default_end_address: str | None = None
    mileage_rate: float = DEFAULT_MILEAGE_RATE


@dataclass(frozen=True)
class ImportConfig:
    timezone: str = "UTC"
    error_log_dir: str = "./logs"
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    defaults: DefaultSettings = field(default_factory=DefaultSettings)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)
    tz = data.get("timezone", "UTC")
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown timezone: {tz}") from e

    routing_raw = data.get("routing") or {}
    defaults_raw = data.get("defaults") or {}
    db_raw = data.get("database") or {}
    return ImportConfig(
        timezone=tz,
        error_log_dir=data.get("error_log_dir", "./logs"),
        routing=RoutingConfig(
            base_url=routing_raw.get("base_url", GOOGLE_DIRECTIONS_URL),
            timeout_seconds=float(routing_raw.get("timeout_seconds", 10.0)),
            cost_per_call=float(routing_raw.get("cost_per_call", 0.005)),
        ),
        defaults=DefaultSettings(
            api_key=defaults_raw.get("api_key"),
            default_start_address=defaults_raw.get("default_start_address"),
            default_end_address=defaults_raw.get("default_end_address"),
            mileage_rate=float(defaults_raw.get("mileage_rate", DEFAULT_MILEAGE_RATE)),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )


def resolve_user_settings(config: ImportConfig, stored: UserSettings | None, user_id: str) -> UserSettings:
    """Merge stored per-user settings over environment and file defaults.

    Priority per field: stored user settings, then GOOGLE_MAPS_API_KEY /
    DEFAULT_START_ADDRESS / DEFAULT_END_ADDRESS environment variables, then
    the config file's defaults section. Missing values stay None; the
    orchestrator decides whether that is fatal.
    """
    d = config.defaults
    api_key = (stored.api_key if stored else None) or os.getenv("GOOGLE_MAPS_API_KEY") or d.api_key
    start = (
        (stored.default_start_address if stored else None)
        or os.getenv("DEFAULT_START_ADDRESS")
        or d.default_start_address
    )
    end = (
        (stored.default_end_address if stored else None)
        or os.getenv("DEFAULT_END_ADDRESS")
        or d.default_end_address
    )
    rate = stored.mileage_rate if stored else d.mileage_rate
    return UserSettings(
        user_id=user_id,
        api_key=api_key,
        default_start_address=start,
        default_end_address=end,
        mileage_rate=rate,
    )
