"""Dashboard endpoint."""

from fastapi import APIRouter

from studytrack.config.app_config import load_app_config
from studytrack.core.progress import dashboard_summary
from studytrack.web.schemas import ChapterRefResponse, DashboardResponse
from studytrack.web.tracker import get_sync_controller

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
async def get_dashboard() -> DashboardResponse:
    """Overall progress and the most advanced unfinished chapters."""
    controller = get_sync_controller()
    summary = dashboard_summary(
        controller.tree,
        recent_limit=load_app_config().tracker.recent_limit,
    )
    return DashboardResponse(
        global_progress=summary.global_progress,
        subject_count=summary.subject_count,
        chapter_count=summary.chapter_count,
        in_progress=[ChapterRefResponse.model_validate(ref) for ref in summary.in_progress],
    )
