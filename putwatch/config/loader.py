"""Environment aware configuration loader for the put watcher."""

from __future__ import annotations

import copy
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from putwatch.cache.response import DataKind
from putwatch.errors import ConfigurationError
from putwatch.models.symbols import normalize_symbol
from putwatch.scoring.config import DEFAULT_SCORER_CONFIG

DEFAULT_SETTINGS: Dict[str, Any] = {
    "watchlists": {
        "default": ["SPY", "QQQ"],
        "preferred": [],
    },
    "scoring": copy.deepcopy(DEFAULT_SCORER_CONFIG),
    "adapter": {
        "provider": "yfinance",
        "settings": {
            "max_retries": 3,
            "request_timeout_seconds": 5.0,
        },
    },
    "cache": {
        "ttl_seconds": {
            "latest": 120,
            "history": 300,
            "performance": 600,
            "status": 30,
        },
    },
    "storage": {
        "backend": "sqlite",
        "sqlite": {
            "path": "data/putwatch.db",
            "pragmas": {},
        },
    },
    "scheduler": {
        "interval_seconds": 60,
        "fetch_timeout_seconds": 20.0,
        "max_consecutive_failures": 3,
    },
    "calendar": {
        "extra_holidays": [],
        "use_timezone_database": True,
    },
}

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
ENVIRONMENT_VARIABLE = "APP_ENV"


class ScoringSettings(BaseModel):
    """Scoring configuration handed to the put scoring engine."""

    model_config = ConfigDict(extra="forbid")

    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SCORER_CONFIG["weights"]))
    spread: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SCORER_CONFIG["spread"]))
    score_bounds: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SCORER_CONFIG["score_bounds"]))

    @field_validator("weights", "spread", "score_bounds", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Mapping[str, Any]) -> Dict[str, float]:
        return {key: float(val) for key, val in dict(value or {}).items()}

    @field_validator("weights")
    @classmethod
    def _non_negative_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        negative = sorted(key for key, weight in value.items() if weight < 0)
        if negative:
            raise ValueError(f"Scoring weights must be non-negative: {', '.join(negative)}")
        return value

    def to_engine_config(self) -> Dict[str, Any]:
        return {
            "weights": dict(self.weights),
            "spread": dict(self.spread),
            "score_bounds": dict(self.score_bounds),
        }


class AdapterSettings(BaseModel):
    provider: str = "yfinance"
    settings: Dict[str, Any] = Field(default_factory=dict)

    def request_budget_seconds(self) -> float:
        """Longest time one upstream request may take across all of its retries."""

        retries = max(1, int(self.settings.get("max_retries", 1)))
        return retries * float(self.settings.get("request_timeout_seconds", 0.0))


class CacheSettings(BaseModel):
    ttl_seconds: Dict[str, float] = Field(default_factory=dict)

    @field_validator("ttl_seconds", mode="before")
    @classmethod
    def _validate_kinds(cls, value: Mapping[str, Any]) -> Dict[str, float]:
        known = {kind.value for kind in DataKind}
        result: Dict[str, float] = {}
        for key, ttl in dict(value or {}).items():
            if key not in known:
                raise ValueError(f"Unknown cache data kind: {key}")
            if float(ttl) < 0:
                raise ValueError(f"Cache TTL for {key} must be non-negative")
            result[key] = float(ttl)
        return result

    def ttl_for(self, kind: DataKind) -> float:
        return self.ttl_seconds.get(kind.value, DEFAULT_SETTINGS["cache"]["ttl_seconds"][kind.value])


class SQLiteSettings(BaseModel):
    path: str = "data/putwatch.db"
    pragmas: Dict[str, Any] = Field(default_factory=dict)


class StorageSettings(BaseModel):
    backend: str = "sqlite"
    sqlite: SQLiteSettings = Field(default_factory=SQLiteSettings)

    def require_sqlite(self) -> SQLiteSettings:
        if self.backend != "sqlite":
            raise ConfigurationError(f"Unsupported storage backend: {self.backend}")
        return self.sqlite


class SchedulerSettings(BaseModel):
    interval_seconds: float = Field(default=60, gt=0)
    fetch_timeout_seconds: float = Field(default=20.0, gt=0)
    max_consecutive_failures: int = Field(default=3, ge=0)


class CalendarSettings(BaseModel):
    extra_holidays: List[str] = Field(default_factory=list)
    use_timezone_database: bool = True


class AppSettings(BaseModel):
    """Fully resolved application settings loaded from YAML."""

    model_config = ConfigDict(frozen=True)

    env: str
    watchlists: Dict[str, List[str]]
    scoring: ScoringSettings
    adapter: AdapterSettings
    cache: CacheSettings
    storage: StorageSettings
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    calendar: CalendarSettings = Field(default_factory=CalendarSettings)

    @field_validator("env")
    @classmethod
    def _normalize_env(cls, value: str) -> str:
        return value.lower()

    @field_validator("watchlists", mode="before")
    @classmethod
    def _coerce_watchlists(cls, value: Mapping[str, Any]) -> Dict[str, List[str]]:
        return {key: [normalize_symbol(item) for item in items or []] for key, items in dict(value or {}).items()}

    @model_validator(mode="after")
    def _retries_fit_fetch_timeout(self) -> "AppSettings":
        budget = self.adapter.request_budget_seconds()
        if budget > self.scheduler.fetch_timeout_seconds:
            raise ValueError(
                f"adapter retries may take {budget:g}s per request, longer than the scheduler "
                f"fetch timeout of {self.scheduler.fetch_timeout_seconds:g}s"
            )
        return self

    def get_watchlist(self, name: str = "default") -> List[str]:
        return list(self.watchlists.get(name, []))

    def scoring_dict(self) -> Dict[str, Any]:
        return self.scoring.to_engine_config()


def _deep_merge(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping):
            existing = base.get(key)
            if isinstance(existing, MutableMapping):
                base[key] = _deep_merge(copy.deepcopy(existing), value)
            else:
                base[key] = copy.deepcopy(value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle.read()) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping at the root.")
    return data


def build_settings(overrides: Optional[Mapping[str, Any]] = None, env: str = "test") -> AppSettings:
    """Validate ``overrides`` merged over the defaults without touching disk."""

    merged = _deep_merge(copy.deepcopy(DEFAULT_SETTINGS), overrides or {})
    merged["env"] = env
    return AppSettings.model_validate(merged)


def _build_settings(env: str) -> AppSettings:
    config_path = CONFIG_DIR / f"{env}.yaml"
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file for environment '{env}' not found at {config_path}")
    return build_settings(_load_yaml(config_path), env=env)


@lru_cache(maxsize=None)
def _cached_settings(env: str) -> AppSettings:
    return _build_settings(env)


def get_settings(env: Optional[str] = None) -> AppSettings:
    """Load settings for the requested environment (default: APP_ENV or 'dev')."""

    resolved_env = (env or os.getenv(ENVIRONMENT_VARIABLE, "dev")).strip().lower()
    return _cached_settings(resolved_env)


def reset_settings_cache() -> None:
    """Clear the cached settings, primarily used during tests."""

    _cached_settings.cache_clear()


__all__ = [
    "AppSettings",
    "AdapterSettings",
    "CacheSettings",
    "CalendarSettings",
    "DEFAULT_SETTINGS",
    "ScoringSettings",
    "SchedulerSettings",
    "SQLiteSettings",
    "StorageSettings",
    "build_settings",
    "get_settings",
    "reset_settings_cache",
]
