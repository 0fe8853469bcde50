"""Hierarchy model for study progress.

Entities (leaves first):
- Question: the only node with a completion flag
- SubExercise: named question list inside an exercise section
- QuestionSection / ExerciseSection: closed union of section shapes
- Chapter: id-keyed sections plus cached progress
- Subject: ordered chapters

The whole tree (a tuple of Subjects) is the unit of persistence.
Document layout:
    {"list": [subject, ...]}
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Union

import structlog

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

EXERCISE_KIND = "exercise"
CUSTOM_KIND = "custom"
DOCUMENT_FIELD = "list"

QUESTION_ID_PREFIX = "q-"


class DocumentFormatError(Exception):
    """Error parsing a persisted document into a tree."""

    pass


def new_id() -> str:
    """Generate a fresh entity id (subjects, chapters, sections, sub-exercises)."""
    return str(uuid.uuid4())


def positional_id(position: int) -> str:
    """Positional question id, 1-based. Only unique within one question list."""
    return f"{QUESTION_ID_PREFIX}{position}"


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class Question:
    """A single trackable question."""

    id: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for document serialization."""
        return {"id": self.id, "completed": self.completed}


@dataclass(frozen=True)
class SubExercise:
    """Named subset of questions inside an exercise section."""

    id: str
    name: str
    questions: tuple[Question, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for document serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "questions": [q.to_dict() for q in self.questions],
        }


@dataclass(frozen=True)
class QuestionSection:
    """Section holding a direct question list (examples, pyqs, custom, ...).

    The exercise kind appears here only for documents whose exercise
    section was stored without subExercises; such a section is tracked by
    its own question list.
    """

    id: str
    label: str
    kind: str = CUSTOM_KIND
    questions: tuple[Question, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for document serialization."""
        return {
            "id": self.id,
            "label": self.label,
            "type": self.kind,
            "questions": [q.to_dict() for q in self.questions],
        }


@dataclass(frozen=True)
class ExerciseSection:
    """Section holding sub-exercises keyed by id."""

    id: str
    label: str
    sub_exercises: Mapping[str, SubExercise] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "sub_exercises", _freeze(self.sub_exercises))

    @property
    def kind(self) -> str:
        return EXERCISE_KIND

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for document serialization."""
        return {
            "id": self.id,
            "label": self.label,
            "type": EXERCISE_KIND,
            "subExercises": {
                sub_id: sub.to_dict() for sub_id, sub in self.sub_exercises.items()
            },
        }


Section = Union[QuestionSection, ExerciseSection]


@dataclass(frozen=True)
class Chapter:
    """A chapter with sections keyed by id.

    `progress` is a cached value derived from the sections; it is
    recomputed by the mutation engine and never set on its own.
    """

    id: str
    name: str
    progress: int = 0
    sections: Mapping[str, Section] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "sections", _freeze(self.sections))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for document serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "progress": self.progress,
            "sections": {sec_id: sec.to_dict() for sec_id, sec in self.sections.items()},
        }


@dataclass(frozen=True)
class Subject:
    """Top-level subject with ordered chapters."""

    id: str
    name: str
    chapters: tuple[Chapter, ...] = ()

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        """Get chapter by ID."""
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for document serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "chapters": [c.to_dict() for c in self.chapters],
        }


Tree = tuple[Subject, ...]

EMPTY_TREE: Tree = ()


def find_subject(tree: Tree, subject_id: str) -> Subject | None:
    """Get subject by ID."""
    for subject in tree:
        if subject.id == subject_id:
            return subject
    return None


def find_chapter(tree: Tree, subject_id: str, chapter_id: str) -> Chapter | None:
    """Get chapter by subject and chapter ID."""
    subject = find_subject(tree, subject_id)
    if subject is None:
        return None
    return subject.get_chapter(chapter_id)


# =============================================================================
# DOCUMENT CODEC
# =============================================================================


def tree_to_document(tree: Tree) -> dict[str, Any]:
    """Serialize a tree into the persisted document form."""
    return {DOCUMENT_FIELD: [s.to_dict() for s in tree]}


def _require(data: Any, key: str, kind: str) -> Any:
    if not isinstance(data, dict):
        raise DocumentFormatError(f"{kind} must be an object, got {type(data).__name__}")
    if key not in data:
        raise DocumentFormatError(f"{kind} is missing '{key}'")
    return data[key]


def _parse_questions(raw: Any) -> tuple[Question, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise DocumentFormatError("questions must be a list")
    questions = []
    for q in raw:
        question_id = str(_require(q, "id", "question"))
        completed = q.get("completed", False)
        if not isinstance(completed, bool):
            raise DocumentFormatError(f"question '{question_id}' has non-boolean 'completed'")
        questions.append(Question(id=question_id, completed=completed))
    return tuple(questions)


def _parse_section(data: Any) -> Section:
    section_id = str(_require(data, "id", "section"))
    label = str(data.get("label", ""))
    kind = str(data.get("type") or CUSTOM_KIND).lower()

    # An exercise section stored without subExercises counts its own questions
    if kind == EXERCISE_KIND and data.get("subExercises") is not None:
        raw_subs = data["subExercises"]
        if not isinstance(raw_subs, dict):
            raise DocumentFormatError("subExercises must be an object")
        if data.get("questions"):
            logger.warning(
                "exercise_questions_ignored",
                section_id=section_id,
                count=len(data["questions"]),
            )
        subs = {}
        for sub_id, sub_data in raw_subs.items():
            subs[sub_id] = SubExercise(
                id=str(_require(sub_data, "id", "sub-exercise")),
                name=str(sub_data.get("name", "")),
                questions=_parse_questions(sub_data.get("questions")),
            )
        return ExerciseSection(id=section_id, label=label, sub_exercises=subs)

    return QuestionSection(
        id=section_id,
        label=label,
        kind=kind,
        questions=_parse_questions(data.get("questions")),
    )


def _parse_chapter(data: Any) -> Chapter:
    # Imported lazily: the aggregator depends on this module.
    from studytrack.core.progress import compute_chapter_progress

    raw_sections = data.get("sections") if isinstance(data, dict) else None
    if raw_sections is not None and not isinstance(raw_sections, dict):
        raise DocumentFormatError("sections must be an object")

    chapter = Chapter(
        id=str(_require(data, "id", "chapter")),
        name=str(data.get("name", "")),
        sections={sec_id: _parse_section(sec) for sec_id, sec in (raw_sections or {}).items()},
    )
    stored = data.get("progress", 0)
    derived = compute_chapter_progress(chapter)
    if stored != derived:
        logger.debug(
            "chapter_progress_rederived",
            chapter_id=chapter.id,
            stored=stored,
            derived=derived,
        )
    return Chapter(id=chapter.id, name=chapter.name, progress=derived, sections=chapter.sections)


def _parse_subject(data: Any) -> Subject:
    raw_chapters = data.get("chapters") if isinstance(data, dict) else None
    if raw_chapters is not None and not isinstance(raw_chapters, list):
        raise DocumentFormatError("chapters must be a list")
    return Subject(
        id=str(_require(data, "id", "subject")),
        name=str(data.get("name", "")),
        chapters=tuple(_parse_chapter(c) for c in raw_chapters or []),
    )


def tree_from_document(document: dict[str, Any] | None) -> Tree:
    """Parse a persisted document into a tree.

    Cached chapter progress is re-derived from the questions rather
    than trusted.

    Args:
        document: Document data, or None when the document does not exist

    Returns:
        Parsed tree (empty for a missing document or missing list)

    Raises:
        DocumentFormatError: If the document shape is invalid
    """
    if document is None:
        return EMPTY_TREE
    if not isinstance(document, dict):
        raise DocumentFormatError("document must be an object")

    raw_list = document.get(DOCUMENT_FIELD) or []
    if not isinstance(raw_list, list):
        raise DocumentFormatError(f"'{DOCUMENT_FIELD}' must be a list")

    return tuple(_parse_subject(s) for s in raw_list)
