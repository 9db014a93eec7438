"""Application configuration loader.

Loads centralized configuration from data/config/speakup_v1.yaml (or the
file named by SPEAKUP_CONFIG) with fallback to built-in defaults.

Usage:
    from speakup.config.app_config import load_app_config

    config = load_app_config()
    config.store.backend  # "sqlite" | "memory"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/speakup_v1.yaml")
CONFIG_ENV_VAR = "SPEAKUP_CONFIG"

STORE_BACKENDS = ("sqlite", "memory")


@dataclass
class StoreConfig:
    """Which content store backs the engine."""

    backend: str = "sqlite"
    db_path: str = "db/speakup.db"


@dataclass
class ProgressionConfig:
    """Progression rule parameters."""

    xp_per_correct: int = 10
    level_up_threshold: float = 0.80


@dataclass
class ApiConfig:
    """Web API settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    load_timeout_seconds: float = 5.0


@dataclass
class AppConfig:
    """Application-wide configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    progression: ProgressionConfig = field(default_factory=ProgressionConfig)
    api: ApiConfig = field(default_factory=ApiConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "store": {
            "backend": "sqlite",
            "db_path": "db/speakup.db",
        },
        "progression": {
            "xp_per_correct": 10,
            "level_up_threshold": 0.80,
        },
        "api": {
            "host": "127.0.0.1",
            "port": 8000,
            "load_timeout_seconds": 5.0,
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    store_data = data.get("store") or {}
    backend = store_data.get("backend", "sqlite")
    if backend not in STORE_BACKENDS:
        logger.warning("unknown_store_backend", backend=backend, fallback="sqlite")
        backend = "sqlite"
    store = StoreConfig(
        backend=backend,
        db_path=str(store_data.get("db_path", "db/speakup.db")),
    )

    progression_data = data.get("progression") or {}
    progression = ProgressionConfig(
        xp_per_correct=int(progression_data.get("xp_per_correct", 10)),
        level_up_threshold=float(progression_data.get("level_up_threshold", 0.80)),
    )

    api_data = data.get("api") or {}
    api = ApiConfig(
        host=api_data.get("host", "127.0.0.1"),
        port=int(api_data.get("port", 8000)),
        load_timeout_seconds=float(api_data.get("load_timeout_seconds", 5.0)),
    )

    return AppConfig(store=store, progression=progression, api=api)


def _config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else CONFIG_FILE


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    path = _config_path()
    data = _get_defaults()

    if path.exists():
        logger.debug("loading_app_config", source=str(path))
        loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(data.get(section), dict):
                data[section].update(values)
    else:
        logger.info("using_default_config")

    _cached_config = _parse_config(data)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
