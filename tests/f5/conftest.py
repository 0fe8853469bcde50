"""Fixtures for F5 tests - Web API and CLI."""

import pytest
from fastapi.testclient import TestClient

from studytrack.config.app_config import CONFIG_FILE, clear_config_cache
from studytrack.web.api import create_app
from studytrack.web.tracker import reset_sync_controller


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """Empty project directory used as the working directory."""
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield tmp_path
    clear_config_cache()


@pytest.fixture
def memory_config(project_dir):
    """Config selecting the in-memory store."""
    config_file = project_dir / CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text("store:\n  backend: memory\n", encoding="utf-8")
    return config_file


@pytest.fixture
def client(memory_config):
    """Test client with a fresh sync controller."""
    reset_sync_controller()
    with TestClient(create_app()) as test_client:
        yield test_client
    reset_sync_controller()


@pytest.fixture
def session(client):
    """Client with an active session for user 'alice'."""
    response = client.post("/api/session", json={"user_id": "alice", "display_name": "Alice"})
    assert response.status_code == 200
    return client


@pytest.fixture
def algebra(session):
    """Session holding Math > Algebra with the default sections.

    Returns:
        Tuple of (client, subject_id, chapter, section ids by label)
    """
    resp = session.post("/api/subjects", json={"name": "Math"})
    subject_id = resp.json()["subjects"][0]["id"]
    resp = session.post(f"/api/subjects/{subject_id}/chapters", json={"name": "Algebra"})
    chapter = resp.json()["subjects"][0]["chapters"][0]
    sections = {s["label"]: s["id"] for s in chapter["sections"].values()}
    return session, subject_id, chapter["id"], sections
