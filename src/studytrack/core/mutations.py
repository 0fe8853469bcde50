"""Mutation engine.

Pure transformations (tree, ...) -> tree. Nothing is modified in place:
each operation rebuilds the path from the root to the touched node and
shares every sibling with the input tree. When a target id is not found
the input tree object is returned unchanged.

Every update that reaches a chapter re-derives its progress.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable

import structlog

from studytrack.core.hierarchy import (
    CUSTOM_KIND,
    EXERCISE_KIND,
    Chapter,
    ExerciseSection,
    Question,
    QuestionSection,
    Section,
    SubExercise,
    Subject,
    Tree,
    new_id,
    positional_id,
)
from studytrack.core.progress import compute_chapter_progress

logger = structlog.get_logger(__name__)

# =============================================================================
# PATH-ADDRESSED UPDATE HELPERS
# =============================================================================


def update_subject(tree: Tree, subject_id: str, fn: Callable[[Subject], Subject]) -> Tree:
    """Replace one subject with fn(subject). Unknown id or no change returns tree."""
    for i, subject in enumerate(tree):
        if subject.id == subject_id:
            updated = fn(subject)
            if updated is subject:
                return tree
            return tree[:i] + (updated,) + tree[i + 1 :]
    logger.debug("subject_not_found", subject_id=subject_id)
    return tree


def update_chapter(
    tree: Tree,
    subject_id: str,
    chapter_id: str,
    fn: Callable[[Chapter], Chapter],
) -> Tree:
    """Replace one chapter with fn(chapter) and re-derive its progress."""

    def on_subject(subject: Subject) -> Subject:
        for i, chapter in enumerate(subject.chapters):
            if chapter.id == chapter_id:
                updated = fn(chapter)
                if updated is chapter:
                    return subject
                updated = replace(updated, progress=compute_chapter_progress(updated))
                chapters = subject.chapters[:i] + (updated,) + subject.chapters[i + 1 :]
                return replace(subject, chapters=chapters)
        logger.debug("chapter_not_found", subject_id=subject_id, chapter_id=chapter_id)
        return subject

    return update_subject(tree, subject_id, on_subject)


def update_section(
    tree: Tree,
    subject_id: str,
    chapter_id: str,
    section_id: str,
    fn: Callable[[Section], Section],
) -> Tree:
    """Replace one section with fn(section)."""

    def on_chapter(chapter: Chapter) -> Chapter:
        section = chapter.sections.get(section_id)
        if section is None:
            logger.debug("section_not_found", chapter_id=chapter_id, section_id=section_id)
            return chapter
        updated = fn(section)
        if updated is section:
            return chapter
        return replace(chapter, sections={**chapter.sections, section_id: updated})

    return update_chapter(tree, subject_id, chapter_id, on_chapter)


def update_sub_exercise(
    tree: Tree,
    subject_id: str,
    chapter_id: str,
    section_id: str,
    sub_exercise_id: str,
    fn: Callable[[SubExercise], SubExercise],
) -> Tree:
    """Replace one sub-exercise of an exercise section with fn(sub)."""

    def on_section(section: Section) -> Section:
        if not isinstance(section, ExerciseSection):
            logger.debug("section_not_exercise", section_id=section_id)
            return section
        sub = section.sub_exercises.get(sub_exercise_id)
        if sub is None:
            logger.debug("sub_exercise_not_found", sub_exercise_id=sub_exercise_id)
            return section
        updated = fn(sub)
        if updated is sub:
            return section
        return replace(
            section,
            sub_exercises={**section.sub_exercises, sub_exercise_id: updated},
        )

    return update_section(tree, subject_id, chapter_id, section_id, on_section)


def _fresh_questions(count: int) -> tuple[Question, ...]:
    return tuple(Question(id=positional_id(i + 1)) for i in range(count))


def _flip(questions: tuple[Question, ...], qid: str) -> tuple[Question, ...]:
    """Flip the matching question; returns the same tuple if none matched."""
    if not any(q.id == qid for q in questions):
        logger.debug("question_not_found", question_id=qid)
        return questions
    return tuple(replace(q, completed=not q.completed) if q.id == qid else q for q in questions)


# =============================================================================
# OPERATIONS
# =============================================================================


def add_subject(tree: Tree, name: str) -> Tree:
    """Append a new subject. Blank names are ignored."""
    if not name or not name.strip():
        logger.debug("add_subject_rejected", reason="blank_name")
        return tree
    return tree + (Subject(id=new_id(), name=name),)


def add_chapter(
    tree: Tree,
    subject_id: str,
    name: str,
    section_kinds: Iterable[str],
) -> Tree:
    """Append a chapter with one empty section per requested kind.

    Args:
        tree: Current tree
        subject_id: Target subject
        name: Chapter name
        section_kinds: Kind labels (e.g., "EXAMPLES", "EXERCISE", "PYQS").
            The label is kept as given; the section type is its lower-case form.

    Returns:
        New tree, or the input tree if the subject does not exist
    """
    kinds = list(section_kinds)

    def on_subject(subject: Subject) -> Subject:
        sections: dict[str, Section] = {}
        for label in kinds:
            section_id = new_id()
            kind = label.lower()
            if kind == EXERCISE_KIND:
                sections[section_id] = ExerciseSection(id=section_id, label=label)
            else:
                sections[section_id] = QuestionSection(id=section_id, label=label, kind=kind)
        chapter = Chapter(id=new_id(), name=name, progress=0, sections=sections)
        return replace(subject, chapters=subject.chapters + (chapter,))

    return update_subject(tree, subject_id, on_subject)


def toggle_question(
    tree: Tree,
    subject_id: str,
    chapter_id: str,
    section_id: str,
    question_id: str,
    sub_exercise_id: str | None = None,
) -> Tree:
    """Flip one question's completed flag.

    The question is looked up inside the sub-exercise when
    `sub_exercise_id` is given, otherwise in the section's own list.
    """
    if sub_exercise_id:
        return update_sub_exercise(
            tree,
            subject_id,
            chapter_id,
            section_id,
            sub_exercise_id,
            lambda sub: _replace_questions(sub, _flip(sub.questions, question_id)),
        )

    def on_section(section: Section) -> Section:
        if not isinstance(section, QuestionSection):
            logger.debug("toggle_requires_sub_exercise", section_id=section_id)
            return section
        return _replace_questions(section, _flip(section.questions, question_id))

    return update_section(tree, subject_id, chapter_id, section_id, on_section)


def _replace_questions(node, questions):
    if questions is node.questions:
        return node
    return replace(node, questions=questions)


def generate_questions(
    tree: Tree,
    subject_id: str,
    chapter_id: str,
    section_id: str,
    count: int,
) -> Tree:
    """Replace a section's question list with `count` fresh questions.

    Destructive: previous completion state for the section is discarded.
    `count == 0` resets the section.
    """
    if count < 0:
        logger.debug("generate_questions_rejected", reason="negative_count", count=count)
        return tree

    def on_section(section: Section) -> Section:
        if not isinstance(section, QuestionSection):
            logger.debug("generate_requires_question_section", section_id=section_id)
            return section
        return replace(section, questions=_fresh_questions(count))

    return update_section(tree, subject_id, chapter_id, section_id, on_section)


def delete_chapter(tree: Tree, subject_id: str, chapter_id: str) -> Tree:
    """Remove a chapter from its subject."""

    def on_subject(subject: Subject) -> Subject:
        remaining = tuple(c for c in subject.chapters if c.id != chapter_id)
        if len(remaining) == len(subject.chapters):
            logger.debug("chapter_not_found", subject_id=subject_id, chapter_id=chapter_id)
            return subject
        return replace(subject, chapters=remaining)

    return update_subject(tree, subject_id, on_subject)


def add_generic_section(tree: Tree, subject_id: str, chapter_id: str, label: str) -> Tree:
    """Append a custom question section with no questions."""

    def on_chapter(chapter: Chapter) -> Chapter:
        section_id = new_id()
        section = QuestionSection(id=section_id, label=label, kind=CUSTOM_KIND)
        return replace(chapter, sections={**chapter.sections, section_id: section})

    return update_chapter(tree, subject_id, chapter_id, on_chapter)


def add_sub_exercise(
    tree: Tree,
    subject_id: str,
    chapter_id: str,
    section_id: str,
    name: str,
    count: int,
) -> Tree:
    """Add a sub-exercise with `count` fresh questions to an exercise section."""
    if count < 0:
        logger.debug("add_sub_exercise_rejected", reason="negative_count", count=count)
        return tree

    def on_section(section: Section) -> Section:
        if not isinstance(section, ExerciseSection):
            logger.debug("section_not_exercise", section_id=section_id)
            return section
        sub = SubExercise(id=new_id(), name=name, questions=_fresh_questions(count))
        return replace(section, sub_exercises={**section.sub_exercises, sub.id: sub})

    return update_section(tree, subject_id, chapter_id, section_id, on_section)
