"""Tests for document store backends (F3)."""

import asyncio
import json

import pytest

from studytrack.config.app_config import AppConfig, StoreConfig
from studytrack.core.hierarchy import tree_to_document
from studytrack.sync.controller import Identity, SyncController
from studytrack.sync.store import (
    DocumentStoreError,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    build_store,
    profile_path,
    subjects_path,
)

PATH = subjects_path("test-app", "user-1")


class Recorder:
    """Collects snapshot and error callbacks."""

    def __init__(self):
        self.snapshots = []
        self.errors = []

    def on_snapshot(self, doc):
        self.snapshots.append(doc)

    def on_error(self, err):
        self.errors.append(err)


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    """Each local backend."""
    if request.param == "memory":
        return InMemoryDocumentStore()
    return JsonFileDocumentStore(tmp_path / "state")


class TestPaths:
    """Tests for document path builders."""

    def test_subjects_path(self):
        assert subjects_path("execution-tracker-v2", "u1") == (
            "artifacts",
            "execution-tracker-v2",
            "users",
            "u1",
            "data",
            "subjects",
        )

    def test_profile_path(self):
        assert profile_path("app", "u1")[-2:] == ("settings", "profile")
        assert profile_path("app", "u1")[:4] == ("artifacts", "app", "users", "u1")


class TestSubscribe:
    """Tests for subscribe semantics shared by local backends."""

    def test_delivers_none_for_absent_document(self, store):
        """First snapshot is delivered immediately, None when absent."""
        rec = Recorder()
        store.subscribe(PATH, rec.on_snapshot, rec.on_error)
        assert rec.snapshots == [None]
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_delivers_current_document(self, store):
        await store.write_document(PATH, {"list": []})
        rec = Recorder()
        store.subscribe(PATH, rec.on_snapshot, rec.on_error)
        assert rec.snapshots == [{"list": []}]

    @pytest.mark.asyncio
    async def test_notifies_on_write(self, store):
        rec = Recorder()
        store.subscribe(PATH, rec.on_snapshot, rec.on_error)

        await store.write_document(PATH, {"list": [{"id": "s1", "name": "Math", "chapters": []}]})

        assert len(rec.snapshots) == 2
        assert rec.snapshots[-1]["list"][0]["name"] == "Math"

    @pytest.mark.asyncio
    async def test_other_paths_not_notified(self, store):
        rec = Recorder()
        store.subscribe(PATH, rec.on_snapshot, rec.on_error)

        await store.write_document(subjects_path("test-app", "user-2"), {"list": []})

        assert rec.snapshots == [None]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, store):
        rec = Recorder()
        unsubscribe = store.subscribe(PATH, rec.on_snapshot, rec.on_error)
        unsubscribe()

        await store.write_document(PATH, {"list": []})

        assert rec.snapshots == [None]
        assert store.subscriber_count(PATH) == 0

    def test_unsubscribe_is_idempotent(self, store):
        rec = Recorder()
        unsubscribe = store.subscribe(PATH, rec.on_snapshot, rec.on_error)
        other = store.subscribe(PATH, rec.on_snapshot, rec.on_error)
        assert store.subscriber_count(PATH) == 2

        unsubscribe()
        unsubscribe()

        assert store.subscriber_count(PATH) == 1
        other()
        assert store.subscriber_count(PATH) == 0

    @pytest.mark.asyncio
    async def test_snapshots_are_copies(self, store):
        """Mutating a delivered snapshot does not change the stored document."""
        await store.write_document(PATH, {"list": []})
        rec = Recorder()
        store.subscribe(PATH, rec.on_snapshot, rec.on_error)
        rec.snapshots[0]["list"].append("junk")

        assert await store.read_document(PATH) == {"list": []}


class TestWriteDocument:
    """Tests for write and read."""

    @pytest.mark.asyncio
    async def test_write_replaces_document(self, store):
        await store.write_document(PATH, {"list": [], "extra": 1})
        await store.write_document(PATH, {"list": []})
        assert await store.read_document(PATH) == {"list": []}

    @pytest.mark.asyncio
    async def test_merge_keeps_other_fields(self, store):
        path = profile_path("test-app", "user-1")
        await store.write_document(path, {"onboarded": True, "name": "Ana"})
        await store.write_document(path, {"name": "Ana María"}, merge=True)

        assert await store.read_document(path) == {"onboarded": True, "name": "Ana María"}

    @pytest.mark.asyncio
    async def test_read_absent_is_none(self, store):
        assert await store.read_document(PATH) is None


class TestJsonFileDocumentStore:
    """Tests specific to the JSON file backend."""

    @pytest.mark.asyncio
    async def test_writes_json_file(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path)
        await store.write_document(PATH, {"list": []})

        doc_file = tmp_path / "artifacts" / "test-app" / "users" / "user-1" / "data" / "subjects.json"
        assert store.document_file(PATH) == doc_file
        assert json.loads(doc_file.read_text(encoding="utf-8")) == {"list": []}

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        await JsonFileDocumentStore(tmp_path).write_document(PATH, {"list": []})
        assert await JsonFileDocumentStore(tmp_path).read_document(PATH) == {"list": []}

    def test_corrupt_file_reports_error(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path)
        doc_file = store.document_file(PATH)
        doc_file.parent.mkdir(parents=True)
        doc_file.write_text("{not json", encoding="utf-8")

        rec = Recorder()
        store.subscribe(PATH, rec.on_snapshot, rec.on_error)

        assert rec.snapshots == []
        assert len(rec.errors) == 1
        assert isinstance(rec.errors[0], DocumentStoreError)

    @pytest.mark.asyncio
    async def test_non_object_document_rejected(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path)
        doc_file = store.document_file(PATH)
        doc_file.parent.mkdir(parents=True)
        doc_file.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(DocumentStoreError):
            await store.read_document(PATH)


class TestConcurrentWrites:
    """Overlapping writes to one document."""

    @pytest.mark.asyncio
    async def test_rapid_mutations_persist_final_tree(self, tmp_path):
        """Many unawaited mutations leave valid JSON holding the last tree."""
        store = JsonFileDocumentStore(tmp_path)
        controller = SyncController(store, "test-app")
        controller.start(Identity(id="user-1"))

        for i in range(40):
            controller.add_subject(f"Subject {i}")
        expected = tree_to_document(controller.tree)
        await controller.flush()

        stored = json.loads(store.document_file(PATH).read_text(encoding="utf-8"))
        assert stored == expected
        assert len(stored["list"]) == 40
        assert tree_to_document(controller.tree) == expected

    @pytest.mark.asyncio
    async def test_overlapping_writes_apply_in_order(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path)

        await asyncio.gather(
            *(store.write_document(PATH, {"list": [], "n": n}) for n in range(10))
        )

        assert await store.read_document(PATH) == {"list": [], "n": 9}

    @pytest.mark.asyncio
    async def test_no_temp_file_left_behind(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path)
        await store.write_document(PATH, {"list": []})

        leftovers = list(store.document_file(PATH).parent.glob("*.tmp"))
        assert leftovers == []

    @pytest.mark.asyncio
    async def test_overlapping_merges_keep_every_field(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path)
        path = profile_path("test-app", "user-1")

        await asyncio.gather(
            store.write_document(path, {"name": "Ana"}, merge=True),
            store.write_document(path, {"onboarded": True}, merge=True),
        )

        assert await store.read_document(path) == {"name": "Ana", "onboarded": True}


class TestBuildStore:
    """Tests for build_store."""

    def test_memory_backend(self):
        config = AppConfig(store=StoreConfig(backend="memory"))
        assert isinstance(build_store(config), InMemoryDocumentStore)

    def test_file_backend(self, tmp_path):
        config = AppConfig(store=StoreConfig(backend="file", state_dir=str(tmp_path)))
        store = build_store(config)
        assert isinstance(store, JsonFileDocumentStore)
        assert store.root == tmp_path
