"""Centralised configuration using pydantic-settings.

All tunables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.

Environment variables use the ``PHRASELENS_`` prefix and a double-underscore
delimiter for nesting, e.g. ``PHRASELENS_ENGINE__MAX_OPERATIONS=500``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/phraselens/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# High-frequency words that let most text through the cheap pre-check.
# Every registry key term is added on top of these, so the list only ever
# widens the pre-check.
DEFAULT_TRIGGER_TERMS: tuple[str, ...] = (
    "the",
    "president",
    "trump",
    "biden",
    "cnn",
    "fox",
    "news",
)

# Non-content containers and form controls that are never descended into
DEFAULT_SKIP_TAGS: tuple[str, ...] = (
    "script",
    "style",
    "svg",
    "noscript",
    "iframe",
    "object",
    "embed",
    "canvas",
    "template",
    "input",
    "textarea",
    "select",
    "option",
    "pre",
    "code",
)


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class EngineConfig(BaseModel):
    """Rewriting limits and traversal budgets."""

    max_operations: int = Field(default=1000, ge=0)
    chunk_size: int = Field(default=50, ge=1)
    time_slice_ms: float = Field(default=15.0, gt=0)
    min_text_length: int = Field(default=2, ge=1)
    early_bailout: bool = True
    trigger_terms: tuple[str, ...] = DEFAULT_TRIGGER_TERMS
    skip_tags: tuple[str, ...] = DEFAULT_SKIP_TAGS

    @field_validator("skip_tags")
    @classmethod
    def _lowercase_tags(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(tag.lower() for tag in value)


class CacheConfig(BaseModel):
    """Rewritten-text cache sizing."""

    max_size: int = Field(default=1000, ge=1)
    trim_fraction: float = Field(default=0.25, gt=0, le=1)


class ObserverConfig(BaseModel):
    """Change subscription batching."""

    batch_size: int = Field(default=20, ge=1)
    max_buffer_size: int = Field(default=100, ge=1)
    debounce_ms: float = Field(default=50.0, ge=0)


class LoggingConfig(BaseModel):
    """Log destinations and verbosity."""

    log_dir: Path = Path("logs")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Application settings with automatic .env loading and type validation."""

    model_config = SettingsConfigDict(
        env_prefix="PHRASELENS_",
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineConfig = EngineConfig()
    cache: CacheConfig = CacheConfig()
    observer: ObserverConfig = ObserverConfig()
    logging: LoggingConfig = LoggingConfig()


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
