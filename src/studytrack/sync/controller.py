"""Sync controller.

Owns the single in-memory tree for one user session and keeps it in step
with the document store:

- start(identity): open one live subscription to the user's document
- every inbound snapshot replaces the whole tree (last writer wins)
- mutations install the new tree immediately, then dispatch a
  fire-and-forget full-document write
- stop(): unsubscribe and clear the tree

Write failures are logged; the optimistic local tree is kept.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Iterable

import structlog

from studytrack.core import mutations
from studytrack.core.hierarchy import (
    EMPTY_TREE,
    DocumentFormatError,
    Tree,
    tree_from_document,
    tree_to_document,
)
from studytrack.sync.store import (
    Document,
    DocumentPath,
    DocumentStore,
    Unsubscribe,
    subjects_path,
)

logger = structlog.get_logger(__name__)

TreeListener = Callable[[Tree], None]


@dataclass(frozen=True)
class Identity:
    """User handle supplied by the identity provider.

    Only `id` is used by the controller, as the document partition key.
    """

    id: str
    display_name: str = ""
    is_anonymous: bool = False


class SyncState(Enum):
    """Controller lifecycle states."""

    IDLE = auto()  # No identity, empty tree
    SUBSCRIBED = auto()  # Live subscription open


class SyncController:
    """Owns the live tree for one identity at a time."""

    def __init__(self, store: DocumentStore, app_id: str):
        self._store = store
        self._app_id = app_id
        self._identity: Identity | None = None
        self._tree: Tree = EMPTY_TREE
        self._unsubscribe: Unsubscribe | None = None
        self._subscription_token: object | None = None
        self._listeners: list[TreeListener] = []
        self._pending_writes: set[asyncio.Task[None]] = set()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def tree(self) -> Tree:
        """Current in-memory tree."""
        return self._tree

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def app_id(self) -> str:
        return self._app_id

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def state(self) -> SyncState:
        if self._identity is None:
            return SyncState.IDLE
        return SyncState.SUBSCRIBED

    @property
    def pending_writes(self) -> int:
        """Number of dispatched writes that have not settled."""
        return len(self._pending_writes)

    @property
    def document_path(self) -> DocumentPath | None:
        if self._identity is None:
            return None
        return subjects_path(self._app_id, self._identity.id)

    def add_listener(self, listener: TreeListener) -> Callable[[], None]:
        """Register a callback invoked with the tree after every change.

        Returns:
            Function removing the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_tree(self, tree: Tree) -> None:
        self._tree = tree
        for listener in list(self._listeners):
            listener(tree)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, identity: Identity | None) -> None:
        """Bind the controller to an identity.

        Opens exactly one subscription. A different identity cancels the
        previous subscription first; the same identity is a no-op; None is
        equivalent to stop().
        """
        if identity is None:
            self.stop()
            return

        if self._identity is not None and self._identity.id == identity.id:
            self._identity = identity
            return

        if self._identity is not None:
            self.stop()

        self._identity = identity
        token = object()
        self._subscription_token = token
        path = subjects_path(self._app_id, identity.id)

        logger.info("sync_subscribing", user_id=identity.id, path="/".join(path))
        self._unsubscribe = self._store.subscribe(
            path,
            lambda doc: self._on_snapshot(token, doc),
            lambda err: self._on_error(token, err),
        )

    def stop(self) -> None:
        """Tear down the subscription and clear the tree."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        previous = self._identity
        self._subscription_token = None
        self._identity = None
        if previous is not None:
            logger.info("sync_stopped", user_id=previous.id)
        self._set_tree(EMPTY_TREE)

    def _on_snapshot(self, token: object, document: Document | None) -> None:
        if token is not self._subscription_token:
            logger.warning("stale_snapshot_ignored")
            return

        if document is None:
            logger.debug("snapshot_absent", user_id=self._identity.id if self._identity else None)
            return

        try:
            tree = tree_from_document(document)
        except DocumentFormatError as e:
            logger.error("snapshot_rejected", error=str(e))
            return

        logger.debug("snapshot_applied", subjects=len(tree), pending_writes=self.pending_writes)
        self._set_tree(tree)

    def _on_error(self, token: object, error: Exception) -> None:
        if token is not self._subscription_token:
            return
        logger.error("sync_subscription_error", error=str(error))

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def apply(self, operation: Callable[..., Tree], *args: Any) -> Tree:
        """Apply a mutation optimistically and dispatch the document write.

        Args:
            operation: Pure mutation (tree, *args) -> tree
            *args: Operation parameters after the tree

        Returns:
            The in-memory tree after the mutation
        """
        if self._identity is None:
            logger.debug("mutation_ignored_idle", operation=operation.__name__)
            return self._tree

        updated = operation(self._tree, *args)
        if updated is self._tree:
            return self._tree

        self._set_tree(updated)
        self._dispatch_write(updated)
        return self._tree

    def _dispatch_write(self, tree: Tree) -> None:
        path = subjects_path(self._app_id, self._identity.id)
        document = tree_to_document(tree)
        task = asyncio.get_running_loop().create_task(self._store.write_document(path, document))
        self._pending_writes.add(task)
        task.add_done_callback(self._on_write_done)
        logger.debug("write_dispatched", path="/".join(path), subjects=len(tree))

    def _on_write_done(self, task: asyncio.Task[None]) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            logger.warning("write_cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error("write_failed", error=str(error), error_type=type(error).__name__)

    async def flush(self) -> None:
        """Wait until every dispatched write has settled (success or failure)."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def add_subject(self, name: str) -> Tree:
        return self.apply(mutations.add_subject, name)

    def add_chapter(self, subject_id: str, name: str, section_kinds: Iterable[str]) -> Tree:
        return self.apply(mutations.add_chapter, subject_id, name, list(section_kinds))

    def toggle_question(
        self,
        subject_id: str,
        chapter_id: str,
        section_id: str,
        question_id: str,
        sub_exercise_id: str | None = None,
    ) -> Tree:
        return self.apply(
            mutations.toggle_question,
            subject_id,
            chapter_id,
            section_id,
            question_id,
            sub_exercise_id,
        )

    def generate_questions(
        self, subject_id: str, chapter_id: str, section_id: str, count: int
    ) -> Tree:
        return self.apply(mutations.generate_questions, subject_id, chapter_id, section_id, count)

    def delete_chapter(self, subject_id: str, chapter_id: str) -> Tree:
        return self.apply(mutations.delete_chapter, subject_id, chapter_id)

    def add_generic_section(self, subject_id: str, chapter_id: str, label: str) -> Tree:
        return self.apply(mutations.add_generic_section, subject_id, chapter_id, label)

    def add_sub_exercise(
        self,
        subject_id: str,
        chapter_id: str,
        section_id: str,
        name: str,
        count: int,
    ) -> Tree:
        return self.apply(
            mutations.add_sub_exercise, subject_id, chapter_id, section_id, name, count
        )
