"""Process-wide tracker state for the Web API.

Holds the one SyncController the API serves and the profile resolved
for its current identity.
"""

from __future__ import annotations

import structlog

from studytrack.config.app_config import load_app_config
from studytrack.sync import SyncController, build_store
from studytrack.sync.profile import Profile

logger = structlog.get_logger(__name__)

# Global controller instance
_sync_controller: SyncController | None = None
_profile: Profile | None = None


def get_sync_controller() -> SyncController:
    """Get the global sync controller, building it from config on first use."""
    global _sync_controller
    if _sync_controller is None:
        config = load_app_config()
        _sync_controller = SyncController(build_store(config), config.app_id)
        logger.info("sync_controller_created", app_id=config.app_id)
    return _sync_controller


def get_current_profile() -> Profile | None:
    """Profile resolved for the controller's identity, if any."""
    return _profile


def set_current_profile(profile: Profile | None) -> None:
    global _profile
    _profile = profile


def reset_sync_controller() -> None:
    """Stop and drop the global controller (for testing)."""
    global _sync_controller, _profile
    if _sync_controller is not None:
        _sync_controller.stop()
    _sync_controller = None
    _profile = None
