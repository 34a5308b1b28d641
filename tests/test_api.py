"""
Tests for the HTTP API.

The app wraps a started Pipeline with fake synthesis and playback.
"""

from datetime import datetime, UTC

import pytest
from fastapi.testclient import TestClient

from agent_tts.api import create_app
from agent_tts.db.repositories import QueueRecordRepository
from agent_tts.models.db import MessageRole
from agent_tts.parsers.registry import create_default_registry
from agent_tts.pipeline import Pipeline
from agent_tts.profiles import FileConfigSource

from conftest import FakePlayer, FakeSynthesizerFactory, make_profile, write_config


@pytest.fixture
def pipeline(database, tmp_path):
    watch_dir = tmp_path / "projects"
    watch_dir.mkdir()
    config_path = write_config(tmp_path / "config.json", [make_profile(watch_dir).model_dump()])
    pipe = Pipeline(
        database=database,
        config_source=FileConfigSource(config_path),
        registry=create_default_registry(),
        player=FakePlayer(),
        synthesizers=FakeSynthesizerFactory(),
        use_polling=True,
        poll_interval=0.1,
        watch_config=False,
    )
    pipe.start()
    yield pipe
    pipe.shutdown()


@pytest.fixture
def api_client(pipeline) -> TestClient:
    return TestClient(create_app(pipeline))


@pytest.fixture
def record_id(database) -> int:
    with database.session() as session:
        record = QueueRecordRepository(session).add(
            timestamp=datetime(2025, 1, 15, 10, 0, tzinfo=UTC),
            file_path="/logs/s.jsonl",
            profile_id="claude",
            original_text="**Done**",
            filtered_text="Done",
            role=MessageRole.ASSISTANT,
            cwd="/work/a",
        )
        return record.id


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "healthy"}


class TestStatusAndControl:
    def test_status(self, api_client):
        data = api_client.get("/status").json()

        assert data["muted"] is False
        assert data["profiles"][0]["id"] == "claude"
        assert data["profiles"][0]["watching"] is True
        assert data["is_playing"] is False

    @pytest.mark.parametrize("action", ["pause", "resume", "stop", "skip"])
    def test_playback_actions(self, api_client, action):
        response = api_client.post(f"/control/{action}")
        assert response.status_code == 200
        assert response.json()["action"] == action

    def test_unknown_action(self, api_client):
        assert api_client.post("/control/rewind").status_code == 404

    def test_mute(self, api_client, pipeline):
        response = api_client.post("/mute", json={"muted": True})

        assert response.status_code == 200
        assert response.json()["status"]["muted"] is True
        assert pipeline.is_muted()

    def test_profile_toggle(self, api_client):
        response = api_client.post("/profiles/claude/enabled", json={"enabled": False})

        assert response.status_code == 200
        profile = response.json()["status"]["profiles"][0]
        assert profile["enabled"] is False
        assert profile["watching"] is False

    def test_profile_toggle_unknown(self, api_client):
        response = api_client.post("/profiles/nope/enabled", json={"enabled": False})
        assert response.status_code == 404


class TestLogs:
    def test_list_logs(self, api_client, record_id):
        response = api_client.get("/logs")

        assert response.status_code == 200
        [entry] = response.json()
        assert entry["id"] == record_id
        assert entry["filtered_text"] == "Done"
        assert entry["voice_name"] == "Nova"
        assert entry["profile_name"] == "Claude Code"

    def test_list_logs_filters(self, api_client, record_id):
        assert api_client.get("/logs", params={"cwd": "/work/b"}).json() == []
        assert len(api_client.get("/logs", params={"exclude_cwd": "/work/b"}).json()) == 1
        assert api_client.get("/logs", params={"profile": "codex"}).json() == []
        assert api_client.get("/logs", params={"since": "2025-02-01T00:00:00Z"}).json() == []

    def test_limit_validated(self, api_client):
        assert api_client.get("/logs", params={"limit": 0}).status_code == 422

    def test_favorite_toggle_and_count(self, api_client, record_id):
        response = api_client.post(f"/logs/{record_id}/favorite")

        assert response.json() == {"id": record_id, "is_favorite": True}
        assert api_client.get("/logs/favorites/count").json() == {"count": 1}
        assert len(api_client.get("/logs", params={"favorites": True}).json()) == 1

    def test_favorite_missing(self, api_client):
        assert api_client.post("/logs/9999/favorite").status_code == 404

    def test_replay(self, api_client, record_id, pipeline):
        response = api_client.post(f"/logs/{record_id}/replay")

        assert response.status_code == 200
        assert response.json() == {"id": record_id, "queued": True}
        assert pipeline.playback.wait_until_idle(timeout=5)

    def test_replay_missing(self, api_client):
        assert api_client.post("/logs/9999/replay").status_code == 404

    def test_delete_old(self, api_client, record_id):
        response = api_client.delete("/logs", params={"days": 1})
        assert response.json() == {"deleted": 1}
        assert api_client.get("/logs").json() == []
