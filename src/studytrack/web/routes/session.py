"""Session endpoints: bind the tracker to an identity."""

from fastapi import APIRouter, HTTPException, status

from studytrack.sync.controller import Identity, SyncController, SyncState
from studytrack.sync.profile import (
    ProfileSetupError,
    complete_profile_setup,
    resolve_profile,
)
from studytrack.web.schemas import (
    ProfileResponse,
    ProfileSetupRequest,
    SessionResponse,
    SessionStartRequest,
)
from studytrack.web.tracker import (
    get_current_profile,
    get_sync_controller,
    set_current_profile,
)

router = APIRouter(prefix="/api/session", tags=["session"])


def _session_response(controller: SyncController) -> SessionResponse:
    identity = controller.identity
    profile = get_current_profile()
    return SessionResponse(
        state=controller.state.name,
        user_id=identity.id if identity else None,
        display_name=identity.display_name if identity else "",
        is_anonymous=identity.is_anonymous if identity else False,
        profile=ProfileResponse(**profile.to_dict()) if profile else None,
    )


@router.get("", response_model=SessionResponse)
async def get_session() -> SessionResponse:
    """Get the current session."""
    return _session_response(get_sync_controller())


@router.post("", response_model=SessionResponse)
async def start_session(request: SessionStartRequest) -> SessionResponse:
    """Start syncing the tree of a user."""
    controller = get_sync_controller()
    identity = Identity(
        id=request.user_id,
        display_name=request.display_name,
        is_anonymous=request.is_anonymous,
    )

    controller.start(identity)
    profile = await resolve_profile(controller.store, controller.app_id, identity)
    set_current_profile(profile)

    return _session_response(controller)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def end_session() -> None:
    """Stop syncing and clear the tree."""
    controller = get_sync_controller()
    await controller.flush()
    controller.stop()
    set_current_profile(None)


@router.post("/profile", response_model=SessionResponse)
async def setup_profile(request: ProfileSetupRequest) -> SessionResponse:
    """Set the display name of the current user."""
    controller = get_sync_controller()
    if controller.state is SyncState.IDLE:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No active session",
        )

    try:
        profile = await complete_profile_setup(
            controller.store, controller.app_id, controller.identity, request.name
        )
    except ProfileSetupError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    set_current_profile(profile)
    return _session_response(controller)
