"""Reference resolution helpers for command-line input.

Entities are addressed by UUID, which is unpleasant to type. A reference
may be:
- a full id
- a unique id prefix (e.g., "3f2a")
- a name/label, matched case-insensitively

Functions:
- resolve_reference(ref, candidates, kind) -> str: Resolve to a unique id
- normalize_question_ref(ref) -> str: "3" -> "q-3"
"""

from __future__ import annotations

from typing import Iterable

from studytrack.core.hierarchy import QUESTION_ID_PREFIX, positional_id


class AmbiguousReferenceError(Exception):
    """Raised when a reference matches multiple entities."""

    def __init__(self, kind: str, ref: str, candidates: list[str]):
        self.kind = kind
        self.ref = ref
        self.candidates = candidates
        super().__init__(
            f"{kind.capitalize()} reference '{ref}' is ambiguous. Candidates:\n"
            + "\n".join(f"  - {c}" for c in candidates)
        )


class ReferenceNotFoundError(Exception):
    """Raised when no entity matches the reference."""

    def __init__(self, kind: str, ref: str):
        self.kind = kind
        self.ref = ref
        super().__init__(f"No {kind} matches '{ref}'")


def resolve_reference(ref: str, candidates: Iterable[tuple[str, str]], kind: str) -> str:
    """Resolve a reference to a unique entity id.

    Args:
        ref: Full id, id prefix, or name
        candidates: (id, name) pairs to search
        kind: Entity kind for error messages (e.g., "subject")

    Returns:
        The unique matching id

    Raises:
        ReferenceNotFoundError: If nothing matches
        AmbiguousReferenceError: If several entities match
    """
    if not ref or not ref.strip():
        raise ReferenceNotFoundError(kind, ref)

    pairs = list(candidates)

    # Exact id first
    for entity_id, _ in pairs:
        if entity_id == ref:
            return entity_id

    # Then exact name, then id prefix
    lowered = ref.lower()
    by_name = [entity_id for entity_id, name in pairs if name.lower() == lowered]
    if len(by_name) == 1:
        return by_name[0]
    if len(by_name) > 1:
        raise AmbiguousReferenceError(kind, ref, by_name)

    matches = [entity_id for entity_id, _ in pairs if entity_id.startswith(ref)]
    if len(matches) == 0:
        raise ReferenceNotFoundError(kind, ref)
    elif len(matches) == 1:
        return matches[0]
    else:
        raise AmbiguousReferenceError(kind, ref, matches)


def normalize_question_ref(ref: str) -> str:
    """Accept "3" or "q-3" for the third question of a list."""
    ref = ref.strip()
    if ref.isdigit():
        return positional_id(int(ref))
    if not ref.startswith(QUESTION_ID_PREFIX) and ref[1:].isdigit() and ref[:1] in ("q", "Q"):
        return positional_id(int(ref[1:]))
    return ref
