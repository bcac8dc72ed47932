# src/vibewatch/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/vibewatch/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `VIBEWATCH_STORE_URL`, `VIBEWATCH_PUSH_API_KEY`)
- an external YAML file via `VIBEWATCH_CONFIG_PATH`

Design rule:
- Radii, windows and retry knobs live in YAML, not hard-coded in the pipeline.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from vibewatch.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `vibewatch.config`."""
    text = resources.files("vibewatch.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "vibewatch"
    timezone: str = "UTC"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class ClusteringSettings(BaseModel):
    max_distance_km: float = Field(1.0, ge=0)


CooldownGranularity = Literal["global", "severity", "category"]


class NotificationSettings(BaseModel):
    radius_km: float = Field(5.0, ge=0)
    cooldown_seconds: float = Field(30.0, ge=0)
    cooldown_granularity: CooldownGranularity = "global"
    notify_on_unknown_location: bool = False
    dedup_cache_size: int = Field(1024, ge=1)


class AreaSummarySettings(BaseModel):
    enabled: bool = True
    interval_seconds: float = Field(30 * 60, gt=0)
    lookback_hours: float = Field(1.0, gt=0)
    min_reports: int = Field(3, ge=1)
    fetch_limit: int = Field(150, ge=1)


class PushSettings(BaseModel):
    fanout_radius_km: float = Field(5.0, ge=0)
    url: str | None = None
    api_key: str | None = None


class BackoffSettings(BaseModel):
    base_delay_seconds: float = Field(5.0, ge=0)
    max_delay_seconds: float = Field(60.0, ge=0)
    multiplier: float = Field(2.0, ge=1)
    jitter_ratio: float = Field(0.1, ge=0, le=1)
    max_attempts: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _validate_cap(self) -> "BackoffSettings":
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("reconnect.max_delay_seconds must be >= base_delay_seconds")
        return self


class RealtimeSettings(BaseModel):
    collections: list[Literal["reports", "votes"]] = Field(default_factory=lambda: ["reports", "votes"])
    route_delay_seconds: float = Field(1.0, ge=0)
    receive_timeout_seconds: float | None = Field(default=300.0, gt=0)
    poll_interval_seconds: float = Field(10.0, gt=0)
    reconnect: BackoffSettings = Field(default_factory=BackoffSettings)


class StoreSettings(BaseModel):
    base_url: str | None = None
    table: str = "reports"
    api_key: str | None = None


class GeocodingSettings(BaseModel):
    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    language: str = "en"
    zoom: int = Field(16, ge=0, le=18)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    clustering: ClusteringSettings = Field(default_factory=ClusteringSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    area_summary: AreaSummarySettings = Field(default_factory=AreaSummarySettings)
    push: PushSettings = Field(default_factory=PushSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("VIBEWATCH_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    store_url = os.getenv("VIBEWATCH_STORE_URL")
    store_key = os.getenv("VIBEWATCH_STORE_API_KEY")
    if store_url:
        data.setdefault("store", {})["base_url"] = store_url
    if store_key:
        data.setdefault("store", {})["api_key"] = store_key

    push_url = os.getenv("VIBEWATCH_PUSH_URL")
    push_key = os.getenv("VIBEWATCH_PUSH_API_KEY")
    if push_url:
        data.setdefault("push", {})["url"] = push_url
    if push_key:
        data.setdefault("push", {})["api_key"] = push_key

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("VIBEWATCH_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
