"""Tests for the hierarchy model and document codec (F1)."""

import pytest

from studytrack.core.hierarchy import (
    Chapter,
    DocumentFormatError,
    ExerciseSection,
    Question,
    QuestionSection,
    SubExercise,
    Subject,
    find_chapter,
    find_subject,
    positional_id,
    tree_from_document,
    tree_to_document,
)


def _sample_tree():
    exercise = ExerciseSection(
        id="sec-ex",
        label="EXERCISE",
        sub_exercises={
            "sub-a": SubExercise(
                id="sub-a",
                name="Set A",
                questions=(Question("q-1", True), Question("q-2", False)),
            )
        },
    )
    pyqs = QuestionSection(
        id="sec-pyq",
        label="PYQS",
        kind="pyqs",
        questions=(Question("q-1", True), Question("q-2", True), Question("q-3", False)),
    )
    chapter = Chapter(
        id="ch-1",
        name="Algebra",
        progress=60,
        sections={"sec-ex": exercise, "sec-pyq": pyqs},
    )
    return (Subject(id="sub-math", name="Math", chapters=(chapter,)),)


def _single_section_document(section, progress=0):
    return {
        "list": [
            {
                "id": "s",
                "name": "S",
                "chapters": [
                    {"id": "c", "name": "C", "progress": progress, "sections": {"x": section}}
                ],
            }
        ]
    }


class TestEntities:
    """Tests for entity dataclasses."""

    def test_positional_ids(self):
        """Question ids are 1-based and positional."""
        assert positional_id(1) == "q-1"
        assert positional_id(12) == "q-12"

    def test_question_defaults_incomplete(self):
        """New questions are not completed."""
        assert Question("q-1").completed is False

    def test_exercise_section_kind(self):
        """Exercise sections always report the exercise kind."""
        section = ExerciseSection(id="s", label="EXERCISE")
        assert section.kind == "exercise"
        assert dict(section.sub_exercises) == {}

    def test_question_section_with_exercise_kind_keeps_questions(self):
        """An exercise-kind question section serializes its own list."""
        section = QuestionSection(
            id="s", label="EXERCISE", kind="exercise", questions=(Question("q-1"),)
        )
        data = section.to_dict()
        assert data["type"] == "exercise"
        assert data["questions"] == [{"id": "q-1", "completed": False}]
        assert "subExercises" not in data

    def test_chapter_sections_are_read_only(self):
        """Sections mapping cannot be mutated through the chapter."""
        chapter = Chapter(id="c", name="C", sections={"s": QuestionSection(id="s", label="X")})
        with pytest.raises(TypeError):
            chapter.sections["other"] = QuestionSection(id="other", label="Y")

    def test_chapter_does_not_alias_input_dict(self):
        """Changing the dict used to build a chapter does not affect it."""
        sections = {"s": QuestionSection(id="s", label="X")}
        chapter = Chapter(id="c", name="C", sections=sections)
        sections["t"] = QuestionSection(id="t", label="Y")
        assert "t" not in chapter.sections

    def test_frozen_nodes(self):
        """Nodes cannot be modified in place."""
        question = Question("q-1")
        with pytest.raises(AttributeError):
            question.completed = True

    def test_find_helpers(self):
        """Lookup helpers find by id and return None on misses."""
        tree = _sample_tree()
        assert find_subject(tree, "sub-math").name == "Math"
        assert find_subject(tree, "nope") is None
        assert find_chapter(tree, "sub-math", "ch-1").name == "Algebra"
        assert find_chapter(tree, "sub-math", "nope") is None
        assert find_chapter(tree, "nope", "ch-1") is None


class TestDocumentCodec:
    """Tests for tree <-> document serialization."""

    def test_document_shape(self):
        """Document uses the 'list' field with nested id-keyed maps."""
        doc = tree_to_document(_sample_tree())

        assert list(doc.keys()) == ["list"]
        subject = doc["list"][0]
        assert subject["name"] == "Math"
        chapter = subject["chapters"][0]
        assert chapter["progress"] == 60
        assert chapter["sections"]["sec-ex"]["type"] == "exercise"
        assert "questions" not in chapter["sections"]["sec-ex"]
        assert chapter["sections"]["sec-ex"]["subExercises"]["sub-a"]["name"] == "Set A"
        assert chapter["sections"]["sec-pyq"]["type"] == "pyqs"
        assert chapter["sections"]["sec-pyq"]["questions"][0] == {"id": "q-1", "completed": True}

    def test_round_trip_is_identical(self):
        """Serializing then parsing yields the same tree."""
        tree = _sample_tree()
        assert tree_from_document(tree_to_document(tree)) == tree

    def test_round_trip_preserves_order(self):
        """Subject, chapter and question order survive the round trip."""
        tree = (
            Subject(id="b", name="B", chapters=(Chapter(id="c2", name="2"), Chapter(id="c1", name="1"))),
            Subject(id="a", name="A"),
        )
        parsed = tree_from_document(tree_to_document(tree))
        assert [s.id for s in parsed] == ["b", "a"]
        assert [c.id for c in parsed[0].chapters] == ["c2", "c1"]

    def test_absent_document_is_empty_tree(self):
        """A missing document parses to an empty tree."""
        assert tree_from_document(None) == ()

    def test_missing_list_is_empty_tree(self):
        """A document without 'list' parses to an empty tree."""
        assert tree_from_document({}) == ()

    def test_stale_progress_is_rederived(self):
        """Stored progress is never trusted over the questions."""
        doc = tree_to_document(_sample_tree())
        doc["list"][0]["chapters"][0]["progress"] = 7

        tree = tree_from_document(doc)

        assert tree[0].chapters[0].progress == 60

    def test_legacy_exercise_with_empty_questions(self):
        """Exercise sections stored with an extra empty questions list still parse."""
        doc = {
            "list": [
                {
                    "id": "s",
                    "name": "S",
                    "chapters": [
                        {
                            "id": "c",
                            "name": "C",
                            "progress": 0,
                            "sections": {
                                "x": {
                                    "id": "x",
                                    "label": "EXERCISE",
                                    "type": "exercise",
                                    "questions": [],
                                    "subExercises": {},
                                }
                            },
                        }
                    ],
                }
            ]
        }
        tree = tree_from_document(doc)
        assert isinstance(tree[0].chapters[0].sections["x"], ExerciseSection)

    def test_exercise_without_sub_exercises_counts_own_questions(self):
        """Exercise sections stored without subExercises keep their question list."""
        doc = _single_section_document(
            {
                "id": "x",
                "label": "EXERCISE",
                "type": "exercise",
                "questions": [{"id": "q-1", "completed": True}, {"id": "q-2", "completed": False}],
            },
            progress=50,
        )

        tree = tree_from_document(doc)

        chapter = tree[0].chapters[0]
        section = chapter.sections["x"]
        assert isinstance(section, QuestionSection)
        assert section.kind == "exercise"
        assert [q.completed for q in section.questions] == [True, False]
        assert chapter.progress == 50
        assert tree_to_document(tree) == doc

    def test_exercise_with_null_sub_exercises_counts_own_questions(self):
        doc = _single_section_document(
            {
                "id": "x",
                "label": "EXERCISE",
                "type": "exercise",
                "questions": [{"id": "q-1", "completed": True}],
                "subExercises": None,
            }
        )
        chapter = tree_from_document(doc)[0].chapters[0]
        assert isinstance(chapter.sections["x"], QuestionSection)
        assert chapter.progress == 100

    def test_exercise_with_empty_sub_exercises_ignores_own_questions(self):
        """An empty subExercises map still makes the section an exercise section."""
        doc = _single_section_document(
            {
                "id": "x",
                "label": "EXERCISE",
                "type": "exercise",
                "questions": [{"id": "q-1", "completed": True}],
                "subExercises": {},
            }
        )
        chapter = tree_from_document(doc)[0].chapters[0]
        assert isinstance(chapter.sections["x"], ExerciseSection)
        assert chapter.progress == 0

    def test_non_boolean_completed_raises(self):
        """A stored "false" string is rejected rather than read as True."""
        doc = _single_section_document(
            {"id": "x", "type": "pyqs", "questions": [{"id": "q-1", "completed": "false"}]}
        )
        with pytest.raises(DocumentFormatError):
            tree_from_document(doc)

    def test_missing_completed_defaults_to_pending(self):
        doc = _single_section_document({"id": "x", "type": "pyqs", "questions": [{"id": "q-1"}]})
        section = tree_from_document(doc)[0].chapters[0].sections["x"]
        assert section.questions[0].completed is False

    def test_section_without_type_is_custom(self):
        """Sections with no type are treated as custom question sections."""
        doc = {
            "list": [
                {
                    "id": "s",
                    "name": "S",
                    "chapters": [
                        {"id": "c", "name": "C", "sections": {"x": {"id": "x", "label": "NOTES"}}}
                    ],
                }
            ]
        }
        section = tree_from_document(doc)[0].chapters[0].sections["x"]
        assert isinstance(section, QuestionSection)
        assert section.kind == "custom"

    def test_invalid_list_raises(self):
        """A non-list 'list' field is rejected."""
        with pytest.raises(DocumentFormatError):
            tree_from_document({"list": {"not": "a list"}})

    def test_subject_without_id_raises(self):
        """Subjects must carry an id."""
        with pytest.raises(DocumentFormatError):
            tree_from_document({"list": [{"name": "Math", "chapters": []}]})

    def test_invalid_questions_raise(self):
        """Question lists must be lists."""
        doc = {
            "list": [
                {
                    "id": "s",
                    "name": "S",
                    "chapters": [
                        {
                            "id": "c",
                            "name": "C",
                            "sections": {"x": {"id": "x", "type": "pyqs", "questions": "q-1"}},
                        }
                    ],
                }
            ]
        }
        with pytest.raises(DocumentFormatError):
            tree_from_document(doc)
