"""Load settings and env configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from jobfeed.log import get_logger

log = get_logger(__name__)

load_dotenv()

ROOT_DIR: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT_DIR / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "settings.yaml"
PREFERENCES_PATH: Path = CONFIG_DIR / "preferences.yaml"
DATA_DIR: Path = ROOT_DIR / "data"

DEFAULT_BATCH_KEYWORDS: list[str] = ["Software Engineer", "Product Manager", "Data Scientist"]


@dataclass(frozen=True)
class Schedule:
    """Crontab expressions for the three scheduler triggers."""

    daily: str = "0 2 * * *"
    hourly: str = "0 * * * *"
    weekly: str = "0 3 * * sun"


@dataclass(frozen=True)
class Settings:
    timezone: str = "America/New_York"
    schedule: Schedule = field(default_factory=Schedule)
    cache_ttl_hours: float = 24
    popular_ttl_hours: float = 168
    popular_threshold: int = 5
    retention_days: int = 7
    max_search_calls: int = 80
    search_interval_seconds: float = 1.0
    results_per_query: int = 10
    adapter_timeout_seconds: float = 30.0
    run_timeout_seconds: float = 900.0
    batch_keywords: tuple[str, ...] = tuple(DEFAULT_BATCH_KEYWORDS)
    batch_locations: tuple[str, ...] = ("Remote",)
    database_path: Path = DATA_DIR / "jobfeed.db"


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"settings section {key!r} must be a mapping")
    return value


def settings_from_dict(data: dict[str, Any]) -> Settings:
    """Build Settings from a parsed YAML mapping; missing keys keep defaults."""
    base = Settings()
    schedule = _section(data, "schedule")
    cache = _section(data, "cache")
    search = _section(data, "search")
    batch = _section(data, "batch")

    db_path = get_env("JOBFEED_DB_PATH") or data.get("database_path")
    if db_path:
        db_path = Path(db_path)
        if not db_path.is_absolute():
            db_path = ROOT_DIR / db_path

    return Settings(
        timezone=get_env("JOBFEED_TIMEZONE") or data.get("timezone", base.timezone),
        schedule=Schedule(
            daily=schedule.get("daily", base.schedule.daily),
            hourly=schedule.get("hourly", base.schedule.hourly),
            weekly=schedule.get("weekly", base.schedule.weekly),
        ),
        cache_ttl_hours=float(cache.get("ttl_hours", base.cache_ttl_hours)),
        popular_ttl_hours=float(cache.get("popular_ttl_hours", base.popular_ttl_hours)),
        popular_threshold=int(cache.get("popular_threshold", base.popular_threshold)),
        retention_days=int(data.get("retention_days", base.retention_days)),
        max_search_calls=int(search.get("max_calls", base.max_search_calls)),
        search_interval_seconds=float(search.get("interval_seconds", base.search_interval_seconds)),
        results_per_query=int(search.get("results_per_query", base.results_per_query)),
        adapter_timeout_seconds=float(data.get("adapter_timeout_seconds", base.adapter_timeout_seconds)),
        run_timeout_seconds=float(data.get("run_timeout_seconds", base.run_timeout_seconds)),
        batch_keywords=tuple(batch.get("keywords") or base.batch_keywords),
        batch_locations=tuple(batch.get("locations") or base.batch_locations),
        database_path=db_path or base.database_path,
    )


def load_settings(path: Path | None = None) -> Settings:
    """Read settings.yaml (or $JOBFEED_SETTINGS); defaults when the file is absent."""
    path = path or Path(get_env("JOBFEED_SETTINGS") or SETTINGS_PATH)
    if not path.exists():
        log.info("No settings file at %s — using defaults", path)
        return settings_from_dict({})
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    settings = settings_from_dict(data)
    log.debug("Loaded settings from %s", path)
    return settings


def ensure_dirs(settings: Settings) -> None:
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
