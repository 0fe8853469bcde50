"""Synchronization between the in-memory tree and the document store."""

from studytrack.sync.controller import Identity, SyncController, SyncState
from studytrack.sync.store import (
    DocumentStore,
    DocumentStoreError,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    build_store,
    profile_path,
    subjects_path,
)

__all__ = [
    "Identity",
    "SyncController",
    "SyncState",
    "DocumentStore",
    "DocumentStoreError",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "build_store",
    "profile_path",
    "subjects_path",
]
