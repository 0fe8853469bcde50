"""Profile onboarding.

A user's display name lives in a small profile document next to the
subjects document:
    {"onboarded": true, "name": "Ana", "setupAt": 1700000000000}

resolve_profile() decides whether a name is already known (stored profile
or identity display name) or whether the user still has to pick one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import structlog

from studytrack.sync.controller import Identity
from studytrack.sync.store import DocumentStore, DocumentStoreError, profile_path

logger = structlog.get_logger(__name__)

DEFAULT_DISPLAY_NAME = "User"


class ProfileSetupError(Exception):
    """Error completing profile setup."""

    pass


@dataclass(frozen=True)
class Profile:
    """Resolved user profile."""

    name: str
    onboarded: bool

    @property
    def needs_setup(self) -> bool:
        return not self.onboarded

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {"name": self.name, "onboarded": self.onboarded}


def _profile_document(name: str) -> dict[str, Any]:
    return {"onboarded": True, "name": name, "setupAt": int(time.time() * 1000)}


async def resolve_profile(store: DocumentStore, app_id: str, identity: Identity) -> Profile:
    """Resolve the display profile for an identity.

    Args:
        store: Document store
        app_id: Application namespace
        identity: Signed-in identity

    Returns:
        Onboarded profile when a name is known, otherwise a profile
        with `needs_setup` set
    """
    path = profile_path(app_id, identity.id)

    try:
        stored = await store.read_document(path)
    except DocumentStoreError as e:
        logger.error("profile_read_failed", user_id=identity.id, error=str(e))
        return Profile(name=identity.display_name or DEFAULT_DISPLAY_NAME, onboarded=True)

    if stored and stored.get("onboarded"):
        name = stored.get("name") or identity.display_name or DEFAULT_DISPLAY_NAME
        return Profile(name=name, onboarded=True)

    if identity.display_name:
        try:
            await store.write_document(path, _profile_document(identity.display_name), merge=True)
        except DocumentStoreError as e:
            logger.error("profile_write_failed", user_id=identity.id, error=str(e))
        else:
            logger.info("profile_onboarded", user_id=identity.id, source="identity")
        return Profile(name=identity.display_name, onboarded=True)

    logger.info("profile_setup_required", user_id=identity.id)
    return Profile(name="", onboarded=False)


async def complete_profile_setup(
    store: DocumentStore,
    app_id: str,
    identity: Identity,
    name: str,
) -> Profile:
    """Store a user-chosen display name.

    Raises:
        ProfileSetupError: If the name is blank
    """
    if not name or not name.strip():
        raise ProfileSetupError("Display name cannot be empty")

    await store.write_document(profile_path(app_id, identity.id), _profile_document(name), merge=True)
    logger.info("profile_onboarded", user_id=identity.id, source="setup")
    return Profile(name=name, onboarded=True)
