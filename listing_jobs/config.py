"""
Configuration loading.

Everything is read once at start from a YAML file (``jobs.yml`` unless
``JOBS_CONFIG`` says otherwise), with cadences overridable from the
environment (``.env`` files are honoured)::

    schedule:
      scrape: "*/30 * * * * *"
      health: "*/5 * * * *"
      cleanup: "0 2 * * *"
      timezone: UTC
    health:
      max_recent_errors: 0
      staleness_hours: 168
    collaborators:
      base_url: http://localhost:5000/api/scraper
    sources:
      fotocasa:
        endpoint: http://localhost:3000/search/all/barcelona
        page_count: 3
        api_key_env: FOTOCASA_API_KEY
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import CadenceError, ConfigError
from .infra.scheduler import parse_cadence
from .models import HealthThresholds, ScheduleConfig, SourceConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "jobs.yml"

DEV_SCRAPE_CADENCE = "*/30 * * * * *"
PRODUCTION_SCRAPE_CADENCE = "*/10 * * * *"
DEFAULT_HEALTH_CADENCE = "*/5 * * * *"
DEFAULT_CLEANUP_CADENCE = "0 2 * * *"


class CollaboratorSettings(BaseModel):
    """Where the scrape / health / cleanup collaborators are reachable."""
    model_config = ConfigDict(frozen=True)

    base_url: str = "http://localhost:5000/api/scraper"
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    api_key: Optional[str] = Field(default=None, repr=False)


class OpsSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = Field(default=8089, ge=0, le=65535)


class JobsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    sources: Tuple[SourceConfig, ...] = ()
    schedule: ScheduleConfig = ScheduleConfig()
    health: HealthThresholds = HealthThresholds()
    collaborators: CollaboratorSettings = CollaboratorSettings()
    ops: OpsSettings = OpsSettings()

    def enabled_sources(self) -> List[SourceConfig]:
        return [s for s in self.sources if s.enabled]

    def source(self, name: str) -> SourceConfig:
        for s in self.sources:
            if s.name == name:
                return s
        raise KeyError(f"Source '{name}' not found. Available: {[s.name for s in self.sources]}")


def is_production() -> bool:
    return os.getenv("APP_ENV", os.getenv("ENVIRONMENT", "development")).strip().lower() == "production"


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _mapping(raw: Any, what: str) -> Dict[str, Any]:
    """A YAML section as a dict; an absent section is empty."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{what} must be a mapping, got {type(raw).__name__}")
    return dict(raw)


def build_schedule(raw: Optional[Dict[str, Any]] = None) -> ScheduleConfig:
    """Cadences from the YAML ``schedule`` section, then the environment, then defaults."""
    raw = _mapping(raw, "'schedule'")
    scrape_default = PRODUCTION_SCRAPE_CADENCE if is_production() else DEV_SCRAPE_CADENCE

    schedule = ScheduleConfig(
        scrape_cadence=_env("SCRAPE_CADENCE") or raw.get("scrape") or scrape_default,
        health_cadence=_env("HEALTH_CADENCE") or raw.get("health") or DEFAULT_HEALTH_CADENCE,
        cleanup_cadence=_env("CLEANUP_CADENCE") or raw.get("cleanup") or DEFAULT_CLEANUP_CADENCE,
        timezone=_env("SCHEDULER_TIMEZONE") or raw.get("timezone") or "UTC",
    )

    for cadence in (schedule.scrape_cadence, schedule.health_cadence, schedule.cleanup_cadence):
        parse_cadence(cadence)
    return schedule


def build_health_thresholds(raw: Optional[Dict[str, Any]] = None) -> HealthThresholds:
    raw = _mapping(raw, "'health'")
    staleness_hours = raw.pop("staleness_hours", None)
    if staleness_hours is not None:
        try:
            raw["staleness"] = timedelta(hours=float(staleness_hours))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"'health.staleness_hours' must be a number, got {staleness_hours!r}") from e
    return HealthThresholds.model_validate(raw)


def build_sources(raw: Any) -> Tuple[SourceConfig, ...]:
    """Accept a list of source mappings or a name-keyed mapping."""
    if not raw:
        return ()

    if isinstance(raw, dict):
        entries = []
        for name, cfg in raw.items():
            cfg = _mapping(cfg, f"Source '{name}'")
            cfg["name"] = name
            entries.append(cfg)
    elif isinstance(raw, list):
        entries = [_mapping(cfg, f"Source entry #{i}") for i, cfg in enumerate(raw, 1)]
    else:
        raise ConfigError(f"'sources' must be a list or a mapping, got {type(raw).__name__}")

    sources: List[SourceConfig] = []
    seen = set()
    for cfg in entries:
        api_key_env = cfg.pop("api_key_env", None)
        if api_key_env and not cfg.get("api_key"):
            cfg["api_key"] = os.getenv(api_key_env)
            if cfg["api_key"] is None:
                logger.warning(f"Source '{cfg.get('name')}': environment variable {api_key_env} is not set")

        source = SourceConfig.model_validate(cfg)
        if source.name in seen:
            raise ConfigError(f"Duplicate source name: {source.name}")
        seen.add(source.name)
        sources.append(source)

    return tuple(sources)


def load_config(path: Optional[str] = None) -> JobsConfig:
    """Load and validate the jobs configuration. Raises ConfigError."""
    load_dotenv()
    config_path = Path(path or os.getenv("JOBS_CONFIG", DEFAULT_CONFIG_PATH))

    if not config_path.exists():
        logger.warning(f"Jobs config file not found: {config_path}; using defaults with no sources")
        data: Dict[str, Any] = {}
    else:
        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {config_path} must be a mapping")

    try:
        collaborators = _mapping(data.get("collaborators"), "'collaborators'")
        base_url = _env("SCRAPER_API_URL")
        if base_url:
            collaborators["base_url"] = base_url
        api_key = _env("SCRAPER_API_KEY")
        if api_key:
            collaborators["api_key"] = api_key

        config = JobsConfig(
            sources=build_sources(data.get("sources")),
            schedule=build_schedule(data.get("schedule")),
            health=build_health_thresholds(data.get("health")),
            collaborators=CollaboratorSettings.model_validate(collaborators),
            ops=OpsSettings.model_validate(_mapping(data.get("ops"), "'ops'")),
        )
    except (ValidationError, CadenceError) as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    logger.info(
        f"Loaded {len(config.sources)} source(s) from {config_path} "
        f"({len(config.enabled_sources())} enabled)"
    )
    return config
