"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml,
falling back to built-in defaults.

Usage:
    from studytrack.config.app_config import load_app_config

    config = load_app_config()
    store_dir = config.store.state_dir
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")

STORE_BACKENDS = ("file", "memory")


@dataclass
class StoreConfig:
    """Configuration for the document store backend."""

    backend: str = "file"  # file | memory
    state_dir: str = "data/state"


@dataclass
class TrackerConfig:
    """Configuration for tracker defaults."""

    default_section_kinds: list[str] = field(
        default_factory=lambda: ["EXAMPLES", "EXERCISE", "PYQS"]
    )
    recent_limit: int = 3
    default_user_id: str = "local"


@dataclass
class AppConfig:
    """Application-wide configuration."""

    app_id: str = "execution-tracker-v2"
    store: StoreConfig = field(default_factory=StoreConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "app_id": "execution-tracker-v2",
        "store": {
            "backend": "file",
            "state_dir": "data/state",
        },
        "tracker": {
            "default_section_kinds": ["EXAMPLES", "EXERCISE", "PYQS"],
            "recent_limit": 3,
            "default_user_id": "local",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    store_data = data.get("store") or {}
    backend = store_data.get("backend", defaults["store"]["backend"])
    if backend not in STORE_BACKENDS:
        logger.warning("unknown_store_backend", backend=backend, fallback="file")
        backend = "file"
    store = StoreConfig(
        backend=backend,
        state_dir=store_data.get("state_dir", defaults["store"]["state_dir"]),
    )

    tracker_data = data.get("tracker") or {}
    tracker_defaults = defaults["tracker"]
    tracker = TrackerConfig(
        default_section_kinds=list(
            tracker_data.get("default_section_kinds", tracker_defaults["default_section_kinds"])
        ),
        recent_limit=int(tracker_data.get("recent_limit", tracker_defaults["recent_limit"])),
        default_user_id=str(
            tracker_data.get("default_user_id", tracker_defaults["default_user_id"])
        ),
    )

    return AppConfig(
        app_id=str(data.get("app_id") or defaults["app_id"]),
        store=store,
        tracker=tracker,
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
