"""Configuration loading from YAML + environment variables."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv


@dataclass
class AvailabilityConfig:
    slot_minutes: int = 30
    edit_slot_minutes: int = 15
    timezone: str = "UTC"  # viewer's local clock for active hours
    active_hours_start: str = "09:00"
    active_hours_end: str = "02:00"  # latest end on the following day
    max_recommendations: int = 3
    min_available: int = 1


@dataclass
class CalendarConfig:
    provider: str = "google"
    credentials_path: str = "credentials.json"
    token_path: str = "token.json"
    sync_range_months: int = 2
    default_timezone: str = "UTC"  # for all-day events on calendars without one


@dataclass
class StorageConfig:
    database_path: str = "meetgrid.db"
    bucket_timezone: str = "UTC"


@dataclass
class WebConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    api_key: str = ""
    allowed_origins: list[str] = field(default_factory=list)


@dataclass
class Config:
    availability: AvailabilityConfig = field(default_factory=AvailabilityConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    web: WebConfig = field(default_factory=WebConfig)


def _resolve_env_vars(value: str) -> str:
    """Replace ${VAR} with environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _resolve_dict(d: dict) -> dict:
    """Recursively resolve env vars in a dict."""
    resolved = {}
    for k, v in d.items():
        if isinstance(v, str):
            resolved[k] = _resolve_env_vars(v)
        elif isinstance(v, dict):
            resolved[k] = _resolve_dict(v)
        elif isinstance(v, list):
            resolved[k] = [_resolve_env_vars(i) if isinstance(i, str) else i for i in v]
        else:
            resolved[k] = v
    return resolved


def load_config(config_path: str | Path, env_path: str | Path | None = None) -> Config:
    """Load config from YAML file with env var resolution."""
    config_path = Path(config_path).resolve()
    config_dir = config_path.parent

    if env_path:
        load_dotenv(env_path)
    else:
        env_beside_config = config_dir / ".env"
        if env_beside_config.exists():
            load_dotenv(env_beside_config)
        else:
            load_dotenv()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _resolve_dict(raw)

    avail_data = raw.get("availability", {})
    availability = AvailabilityConfig(
        slot_minutes=int(avail_data.get("slot_minutes", 30)),
        edit_slot_minutes=int(avail_data.get("edit_slot_minutes", 15)),
        timezone=avail_data.get("timezone", "UTC"),
        active_hours_start=avail_data.get("active_hours_start", "09:00"),
        active_hours_end=avail_data.get("active_hours_end", "02:00"),
        max_recommendations=int(avail_data.get("max_recommendations", 3)),
        min_available=int(avail_data.get("min_available", 1)),
    )
    if availability.slot_minutes <= 0 or availability.edit_slot_minutes <= 0:
        raise ValueError("availability.slot_minutes and edit_slot_minutes must be positive")

    cal_data = raw.get("calendar", {})
    calendar = CalendarConfig(
        provider=cal_data.get("provider", "google"),
        credentials_path=cal_data.get("credentials_path", "credentials.json"),
        token_path=cal_data.get("token_path", "token.json"),
        sync_range_months=int(cal_data.get("sync_range_months", 2)),
        default_timezone=cal_data.get("default_timezone", availability.timezone),
    )

    storage_data = raw.get("storage", {})
    storage = StorageConfig(
        database_path=os.environ.get(
            "DATABASE_PATH", storage_data.get("database_path", "meetgrid.db")
        ),
        bucket_timezone=storage_data.get("bucket_timezone", "UTC"),
    )

    web_data = raw.get("web", {})
    port = int(web_data.get("port", 8080))
    if not (1 <= port <= 65535):
        raise ValueError(f"Invalid web port: {port}. Must be 1-65535.")
    api_key = os.environ.get("MEETGRID_API_KEY", web_data.get("api_key") or "")
    if api_key.startswith("${"):
        api_key = ""  # placeholder whose variable is unset
    web = WebConfig(
        host=web_data.get("host", "127.0.0.1"),
        port=port,
        api_key=api_key,
        allowed_origins=web_data.get("allowed_origins", []),
    )

    return Config(
        availability=availability,
        calendar=calendar,
        storage=storage,
        web=web,
    )
