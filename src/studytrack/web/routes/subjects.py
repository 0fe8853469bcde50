"""Subject tree endpoints.

Mutations are applied optimistically by the controller; each route waits
for the resulting document write to settle before answering.
"""

from fastapi import APIRouter, HTTPException, status

from studytrack.config.app_config import load_app_config
from studytrack.core.hierarchy import (
    Chapter,
    ExerciseSection,
    Tree,
    find_chapter,
    find_subject,
    tree_to_document,
)
from studytrack.sync.controller import SyncController, SyncState
from studytrack.web.schemas import (
    ChapterCreate,
    QuestionsGenerate,
    SectionCreate,
    SubExerciseCreate,
    SubjectCreate,
    TreeResponse,
)
from studytrack.web.tracker import get_sync_controller

router = APIRouter(prefix="/api/subjects", tags=["subjects"])


def _require_session() -> SyncController:
    """Get the controller, or 409 if no user is bound."""
    controller = get_sync_controller()
    if controller.state is SyncState.IDLE:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No active session",
        )
    return controller


def _require_subject(tree: Tree, subject_id: str) -> None:
    if find_subject(tree, subject_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Subject '{subject_id}' not found",
        )


def _require_chapter(tree: Tree, subject_id: str, chapter_id: str) -> Chapter:
    _require_subject(tree, subject_id)
    chapter = find_chapter(tree, subject_id, chapter_id)
    if chapter is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Chapter '{chapter_id}' not found",
        )
    return chapter


def _require_section(tree: Tree, subject_id: str, chapter_id: str, section_id: str):
    chapter = _require_chapter(tree, subject_id, chapter_id)
    section = chapter.sections.get(section_id)
    if section is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Section '{section_id}' not found",
        )
    return section


def _tree_response(controller: SyncController) -> TreeResponse:
    document = tree_to_document(controller.tree)
    return TreeResponse(
        subjects=document["list"],
        count=len(document["list"]),
        pending_writes=controller.pending_writes,
    )


@router.get("", response_model=TreeResponse)
async def get_tree() -> TreeResponse:
    """Get the whole tree of the current user."""
    return _tree_response(_require_session())


@router.post("", response_model=TreeResponse, status_code=status.HTTP_201_CREATED)
async def create_subject(request: SubjectCreate) -> TreeResponse:
    """Create a subject. Blank names leave the tree unchanged."""
    controller = _require_session()
    controller.add_subject(request.name)
    await controller.flush()
    return _tree_response(controller)


@router.post(
    "/{subject_id}/chapters",
    response_model=TreeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_chapter(subject_id: str, request: ChapterCreate) -> TreeResponse:
    """Create a chapter with one empty section per kind."""
    controller = _require_session()
    _require_subject(controller.tree, subject_id)

    kinds = request.section_kinds
    if kinds is None:
        kinds = load_app_config().tracker.default_section_kinds

    controller.add_chapter(subject_id, request.name, kinds)
    await controller.flush()
    return _tree_response(controller)


@router.delete("/{subject_id}/chapters/{chapter_id}", response_model=TreeResponse)
async def delete_chapter(subject_id: str, chapter_id: str) -> TreeResponse:
    """Delete a chapter and everything under it."""
    controller = _require_session()
    _require_chapter(controller.tree, subject_id, chapter_id)
    controller.delete_chapter(subject_id, chapter_id)
    await controller.flush()
    return _tree_response(controller)


@router.post(
    "/{subject_id}/chapters/{chapter_id}/sections",
    response_model=TreeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_section(subject_id: str, chapter_id: str, request: SectionCreate) -> TreeResponse:
    """Add a custom section to a chapter."""
    controller = _require_session()
    _require_chapter(controller.tree, subject_id, chapter_id)
    controller.add_generic_section(subject_id, chapter_id, request.label)
    await controller.flush()
    return _tree_response(controller)


@router.post(
    "/{subject_id}/chapters/{chapter_id}/sections/{section_id}/questions",
    response_model=TreeResponse,
)
async def generate_questions(
    subject_id: str,
    chapter_id: str,
    section_id: str,
    request: QuestionsGenerate,
) -> TreeResponse:
    """Replace a section's questions with `count` fresh ones (0 resets)."""
    controller = _require_session()
    section = _require_section(controller.tree, subject_id, chapter_id, section_id)
    if isinstance(section, ExerciseSection):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Exercise sections hold sub-exercises, not questions",
        )
    controller.generate_questions(subject_id, chapter_id, section_id, request.count)
    await controller.flush()
    return _tree_response(controller)


@router.post(
    "/{subject_id}/chapters/{chapter_id}/sections/{section_id}/sub-exercises",
    response_model=TreeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_sub_exercise(
    subject_id: str,
    chapter_id: str,
    section_id: str,
    request: SubExerciseCreate,
) -> TreeResponse:
    """Add a sub-exercise to an exercise section."""
    controller = _require_session()
    section = _require_section(controller.tree, subject_id, chapter_id, section_id)
    if not isinstance(section, ExerciseSection):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Sub-exercises can only be added to exercise sections",
        )
    controller.add_sub_exercise(subject_id, chapter_id, section_id, request.name, request.count)
    await controller.flush()
    return _tree_response(controller)


@router.post(
    "/{subject_id}/chapters/{chapter_id}/sections/{section_id}/questions/{question_id}/toggle",
    response_model=TreeResponse,
)
async def toggle_question(
    subject_id: str,
    chapter_id: str,
    section_id: str,
    question_id: str,
    sub_exercise_id: str | None = None,
) -> TreeResponse:
    """Flip a question's completed flag."""
    controller = _require_session()
    _require_section(controller.tree, subject_id, chapter_id, section_id)
    controller.toggle_question(subject_id, chapter_id, section_id, question_id, sub_exercise_id)
    await controller.flush()
    return _tree_response(controller)
