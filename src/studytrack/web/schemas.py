"""Pydantic schemas for the Web API.

Serialization models for sessions, tree mutations and the dashboard.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

MAX_QUESTION_COUNT = 500


# =============================================================================
# SESSION SCHEMAS
# =============================================================================


class SessionStartRequest(BaseModel):
    """Request to bind the tracker to a user identity."""

    user_id: str = Field(..., min_length=1, max_length=128)
    display_name: str = Field(default="", max_length=100)
    is_anonymous: bool = False


class ProfileSetupRequest(BaseModel):
    """Request to set the display name of the signed-in user."""

    name: str = Field(..., min_length=1, max_length=100)


class ProfileResponse(BaseModel):
    """Resolved user profile."""

    name: str
    onboarded: bool


class SessionResponse(BaseModel):
    """Current sync session."""

    state: str  # IDLE | SUBSCRIBED
    user_id: str | None = None
    display_name: str = ""
    is_anonymous: bool = False
    profile: ProfileResponse | None = None


# =============================================================================
# TREE SCHEMAS
# =============================================================================


class SubjectCreate(BaseModel):
    """Request body for creating a subject."""

    name: str = Field(..., min_length=1, max_length=200)


class ChapterCreate(BaseModel):
    """Request body for creating a chapter."""

    name: str = Field(..., min_length=1, max_length=200)
    section_kinds: list[str] | None = None  # None = configured defaults


class SectionCreate(BaseModel):
    """Request body for adding a custom section."""

    label: str = Field(..., min_length=1, max_length=100)


class QuestionsGenerate(BaseModel):
    """Request body for (re)generating a section's questions. 0 resets."""

    count: int = Field(..., ge=0, le=MAX_QUESTION_COUNT)


class SubExerciseCreate(BaseModel):
    """Request body for adding a sub-exercise."""

    name: str = Field(..., min_length=1, max_length=200)
    count: int = Field(..., ge=0, le=MAX_QUESTION_COUNT)


class TreeResponse(BaseModel):
    """The user's whole tree in document form."""

    subjects: list[dict[str, Any]]
    count: int
    pending_writes: int = 0


# =============================================================================
# DASHBOARD SCHEMAS
# =============================================================================


class ChapterRefResponse(BaseModel):
    """Chapter entry in dashboard listings."""

    subject_id: str
    subject_name: str
    chapter_id: str
    chapter_name: str
    progress: int

    model_config = {"from_attributes": True}


class DashboardResponse(BaseModel):
    """Dashboard summary."""

    global_progress: int
    subject_count: int
    chapter_count: int
    in_progress: list[ChapterRefResponse]


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
