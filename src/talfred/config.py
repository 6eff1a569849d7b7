"""Centralised runtime configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/talfred/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class RuntimeConfig(BaseModel):
    """Feature lifecycle configuration."""

    deactivation_timeout_seconds: float = Field(default=5.0, gt=0)


class SchedulerConfig(BaseModel):
    """Polling scheduler configuration."""

    tick_seconds: float = Field(default=0.5, gt=0)
    default_interval_seconds: float = Field(default=1.0, gt=0)
    location_poll_seconds: float = Field(default=2.0, gt=0)


class DebounceConfig(BaseModel):
    """Quiet periods for debounced page events."""

    selection_quiet_seconds: float = Field(default=0.5, ge=0)


class AppConfig(BaseModel):
    """Application-level toggles."""

    debug: bool = False
    log_dir: Path = Path("logs")
    settings_file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Runtime settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``RUNTIME__DEACTIVATION_TIMEOUT_SECONDS``, ``SCHEDULER__TICK_SECONDS``,
    ``APP__DEBUG``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    runtime: RuntimeConfig = RuntimeConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    debounce: DebounceConfig = DebounceConfig()
    app: AppConfig = AppConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None and Path(str(env_file)).is_file():
        logger.info("Settings loaded .env from: %s", env_file)
    else:
        logger.debug("Settings: no .env file found, using env vars and defaults")

    return settings
