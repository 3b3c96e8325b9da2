"""Runtime configuration: environment (.env aware) plus an optional YAML file."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .clients.ipopremium_client import DEFAULT_USER_AGENT
from .core.errors import ConfigError

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# scheduler keys that may come from config.yaml
_YAML_KEYS = {
    "scheduler_enabled": bool,
    "mainboard_interval_seconds": int,
    "sme_interval_seconds": int,
    "backfill_interval_seconds": int,
    "sme_market_hours_utc": tuple,
    "db_wake_attempts": int,
    "db_wake_delay_seconds": float,
}

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    sqlite_path: str = "ipos.db"
    cutoff_date: date = date(2025, 1, 1)
    http_timeout: float = 15.0
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    mainboard_interval_seconds: int = 15 * 60
    sme_interval_seconds: int = 3 * 60 * 60
    backfill_interval_seconds: int = 8 * 60 * 60
    sme_market_hours_utc: Tuple[int, int] = (5, 12)
    db_wake_attempts: int = 3
    db_wake_delay_seconds: float = 5.0
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, config_path: Optional[Path] = None) -> "Settings":
        load_dotenv()
        cutoff_raw = os.getenv("IPO_SYNC_CUTOFF_DATE", "2025-01-01")
        try:
            cutoff = date.fromisoformat(cutoff_raw)
        except ValueError as exc:
            raise ConfigError(f"IPO_SYNC_CUTOFF_DATE must be YYYY-MM-DD, got {cutoff_raw!r}") from exc

        settings = cls(
            database_url=os.getenv("DATABASE_URL") or None,
            sqlite_path=os.getenv("IPO_SYNC_SQLITE_PATH", "ipos.db"),
            cutoff_date=cutoff,
            http_timeout=_env_number("IPO_SYNC_HTTP_TIMEOUT", 15.0, float),
            user_agent=os.getenv("IPO_SYNC_USER_AGENT", DEFAULT_USER_AGENT),
            log_level=os.getenv("IPO_SYNC_LOG_LEVEL", "INFO").upper(),
            scheduler_enabled=_env_bool("IPO_SYNC_SCHEDULER", True),
        )

        path = config_path or Path(os.getenv("IPO_SYNC_CONFIG", "config.yaml"))
        if path.exists():
            with open(path, "r") as f:
                settings = settings.with_overrides(yaml.safe_load(f) or {})
        return settings

    def with_overrides(self, values: Mapping[str, Any]) -> "Settings":
        if not isinstance(values, Mapping):
            raise ConfigError("config file must contain a mapping")
        updates: Dict[str, Any] = {}
        extra = dict(self.extra)
        for key, value in values.items():
            cast = _YAML_KEYS.get(key)
            if cast is None:
                extra[key] = value
                continue
            try:
                updates[key] = cast(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"invalid value for {key}: {value!r}") from exc
        hours = updates.get("sme_market_hours_utc", self.sme_market_hours_utc)
        if len(hours) != 2 or not all(0 <= int(h) <= 23 for h in hours):
            raise ConfigError(f"sme_market_hours_utc must be two hours in 0..23, got {hours!r}")
        updates["sme_market_hours_utc"] = (int(hours[0]), int(hours[1]))
        return replace(self, extra=extra, **updates)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
