"""Configuration package for the study tracker."""

from studytrack.config.app_config import (
    AppConfig,
    StoreConfig,
    TrackerConfig,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "StoreConfig",
    "TrackerConfig",
    "clear_config_cache",
    "load_app_config",
]
