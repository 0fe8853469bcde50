"""Progress aggregation.

Pure functions deriving completion percentages from the hierarchy.
Chapter progress is recomputed in full on every mutation; there are
no incremental counters.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from studytrack.core.hierarchy import (
    Chapter,
    ExerciseSection,
    Question,
    Section,
    Tree,
)


def percentage(completed: int, total: int) -> int:
    """Rounded completion percentage (half-up). Zero total is 0%."""
    if total == 0:
        return 0
    return int(math.floor(completed / total * 100 + 0.5))


def _section_questions(section: Section) -> Iterable[Question]:
    if isinstance(section, ExerciseSection):
        for sub in section.sub_exercises.values():
            yield from sub.questions
    else:
        yield from section.questions


def _count(questions: Iterable[Question]) -> tuple[int, int]:
    total = 0
    completed = 0
    for q in questions:
        total += 1
        if q.completed:
            completed += 1
    return completed, total


def question_list_progress(questions: Iterable[Question]) -> int:
    """Progress of a single question list (section or sub-exercise)."""
    return percentage(*_count(questions))


def section_progress(section: Section) -> int:
    """Progress of one section, flattening sub-exercises for exercise kind."""
    return percentage(*_count(_section_questions(section)))


def compute_chapter_progress(chapter: Chapter) -> int:
    """Compute chapter completion percentage (0..100).

    Sums total and completed questions across every section. Exercise
    sections contribute all of their sub-exercises' questions.

    Args:
        chapter: Chapter to aggregate

    Returns:
        round(100 * completed / total), or 0 when the chapter has no questions
    """
    completed = 0
    total = 0
    for section in chapter.sections.values():
        done, count = _count(_section_questions(section))
        completed += done
        total += count
    return percentage(completed, total)


# =============================================================================
# DASHBOARD
# =============================================================================


@dataclass(frozen=True)
class ChapterRef:
    """Chapter reference with its parent subject, for listings."""

    subject_id: str
    subject_name: str
    chapter_id: str
    chapter_name: str
    progress: int


@dataclass(frozen=True)
class DashboardSummary:
    """Aggregate view over the whole tree."""

    global_progress: int = 0
    subject_count: int = 0
    chapter_count: int = 0
    in_progress: tuple[ChapterRef, ...] = field(default_factory=tuple)


def dashboard_summary(tree: Tree, recent_limit: int = 3) -> DashboardSummary:
    """Summarize the tree for the dashboard.

    Global progress is the rounded mean of cached chapter progress values.
    `in_progress` lists unfinished chapters, most advanced first.
    """
    refs = [
        ChapterRef(
            subject_id=subject.id,
            subject_name=subject.name,
            chapter_id=chapter.id,
            chapter_name=chapter.name,
            progress=chapter.progress,
        )
        for subject in tree
        for chapter in subject.chapters
    ]

    if refs:
        mean = sum(r.progress for r in refs) / len(refs)
        global_progress = int(math.floor(mean + 0.5))
    else:
        global_progress = 0

    unfinished = sorted(
        (r for r in refs if r.progress < 100),
        key=lambda r: r.progress,
        reverse=True,
    )

    return DashboardSummary(
        global_progress=global_progress,
        subject_count=len(tree),
        chapter_count=len(refs),
        in_progress=tuple(unfinished[: max(0, recent_limit)]),
    )
