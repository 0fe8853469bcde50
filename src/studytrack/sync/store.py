"""Document store collaborators.

The sync controller only needs three primitives from a store:
- subscribe(path, on_snapshot, on_error) -> unsubscribe
- write_document(path, value) (coroutine, replaces the document wholesale)
- read_document(path) (coroutine, one-shot read)

Backends:
- InMemoryDocumentStore: process-local, used by tests and the web API
- JsonFileDocumentStore: one JSON file per document under a state dir

Document paths:
    artifacts/{app_id}/users/{user_id}/data/subjects
    artifacts/{app_id}/users/{user_id}/settings/profile
"""

from __future__ import annotations

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import structlog

from studytrack.config.app_config import AppConfig

logger = structlog.get_logger(__name__)

DocumentPath = tuple[str, ...]
Document = dict[str, Any]
SnapshotCallback = Callable[[Document | None], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

ROOT_NAMESPACE = "artifacts"


class DocumentStoreError(Exception):
    """Error reading or writing a document."""

    pass


def subjects_path(app_id: str, user_id: str) -> DocumentPath:
    """Path of the user's aggregate subjects document."""
    return (ROOT_NAMESPACE, app_id, "users", user_id, "data", "subjects")


def profile_path(app_id: str, user_id: str) -> DocumentPath:
    """Path of the user's profile settings document."""
    return (ROOT_NAMESPACE, app_id, "users", user_id, "settings", "profile")


class DocumentStore(ABC):
    """Remote document store contract."""

    @abstractmethod
    def subscribe(
        self,
        path: DocumentPath,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Deliver the current document now and on every change.

        `on_snapshot(None)` means the document does not exist.
        """

    @abstractmethod
    async def write_document(
        self,
        path: DocumentPath,
        value: Document,
        merge: bool = False,
    ) -> None:
        """Replace (or, with merge=True, shallow-merge into) a document."""

    @abstractmethod
    async def read_document(self, path: DocumentPath) -> Document | None:
        """Read a document once. None if it does not exist."""


@dataclass(eq=False)
class _Subscription:
    path: DocumentPath
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True


class _LocalDocumentStore(DocumentStore):
    """Shared subscriber bookkeeping for in-process backends."""

    def __init__(self):
        self._subscriptions: dict[DocumentPath, list[_Subscription]] = {}
        self._write_locks: dict[DocumentPath, asyncio.Lock] = {}

    @abstractmethod
    def _load(self, path: DocumentPath) -> Document | None:
        """Load a document (None if absent)."""

    @abstractmethod
    def _save(self, path: DocumentPath, value: Document) -> None:
        """Persist a document."""

    def subscriber_count(self, path: DocumentPath) -> int:
        """Number of live subscriptions on a path."""
        return len(self._subscriptions.get(path, []))

    def subscribe(
        self,
        path: DocumentPath,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        subscription = _Subscription(path=path, on_snapshot=on_snapshot, on_error=on_error)
        self._subscriptions.setdefault(path, []).append(subscription)
        logger.debug("store_subscribed", path="/".join(path))

        try:
            current = self._load(path)
        except DocumentStoreError as e:
            on_error(e)
        else:
            on_snapshot(copy.deepcopy(current))

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            subs = self._subscriptions.get(path, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscriptions.pop(path, None)
            logger.debug("store_unsubscribed", path="/".join(path))

        return unsubscribe

    async def write_document(
        self,
        path: DocumentPath,
        value: Document,
        merge: bool = False,
    ) -> None:
        # Writes to one path land in dispatch order, one at a time
        lock = self._write_locks.setdefault(path, asyncio.Lock())
        async with lock:
            if merge:
                existing = self._load(path) or {}
                value = {**existing, **value}
            await self._save_async(path, copy.deepcopy(value))
            self._notify(path, value)

    async def read_document(self, path: DocumentPath) -> Document | None:
        return copy.deepcopy(self._load(path))

    async def _save_async(self, path: DocumentPath, value: Document) -> None:
        self._save(path, value)

    def _notify(self, path: DocumentPath, value: Document) -> None:
        for subscription in list(self._subscriptions.get(path, [])):
            if subscription.active:
                subscription.on_snapshot(copy.deepcopy(value))


class InMemoryDocumentStore(_LocalDocumentStore):
    """Process-local document store."""

    def __init__(self, documents: dict[DocumentPath, Document] | None = None):
        super().__init__()
        self._documents: dict[DocumentPath, Document] = {
            path: copy.deepcopy(doc) for path, doc in (documents or {}).items()
        }

    def _load(self, path: DocumentPath) -> Document | None:
        doc = self._documents.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    def _save(self, path: DocumentPath, value: Document) -> None:
        self._documents[path] = value


class JsonFileDocumentStore(_LocalDocumentStore):
    """Document store backed by JSON files.

    Each document lives at {root}/{path...}.json and is replaced through a
    sibling .tmp file. Change notifications only reach subscribers within
    the same process.
    """

    def __init__(self, root: Path | str):
        super().__init__()
        self.root = Path(root)

    def document_file(self, path: DocumentPath) -> Path:
        """File backing a document path."""
        *parents, name = path
        return self.root.joinpath(*parents) / f"{name}.json"

    def _load(self, path: DocumentPath) -> Document | None:
        doc_file = self.document_file(path)
        if not doc_file.exists():
            return None
        try:
            with open(doc_file, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise DocumentStoreError(f"Could not read {doc_file}: {e}") from e
        if not isinstance(data, dict):
            raise DocumentStoreError(f"Document {doc_file} is not an object")
        return data

    def _save(self, path: DocumentPath, value: Document) -> None:
        doc_file = self.document_file(path)
        tmp_file = doc_file.with_name(f"{doc_file.name}.tmp")
        try:
            doc_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
            # Readers see either the previous document or the new one
            tmp_file.replace(doc_file)
        except OSError as e:
            raise DocumentStoreError(f"Could not write {doc_file}: {e}") from e
        logger.debug("document_saved", path=str(doc_file))

    async def _save_async(self, path: DocumentPath, value: Document) -> None:
        await asyncio.to_thread(self._save, path, value)


def build_store(config: AppConfig) -> DocumentStore:
    """Create the document store configured for the application."""
    if config.store.backend == "memory":
        logger.info("document_store_ready", backend="memory")
        return InMemoryDocumentStore()
    logger.info("document_store_ready", backend="file", state_dir=config.store.state_dir)
    return JsonFileDocumentStore(Path(config.store.state_dir))
