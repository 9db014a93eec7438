"""Configuration package for SpeakUp."""

from speakup.config.app_config import (
    ApiConfig,
    AppConfig,
    ProgressionConfig,
    StoreConfig,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "ApiConfig",
    "AppConfig",
    "ProgressionConfig",
    "StoreConfig",
    "clear_config_cache",
    "load_app_config",
]
