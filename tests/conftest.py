"""
Pytest configuration and fixtures for agent-tts tests.

Provides an in-memory state store, a fake synthesizer and a fake audio
player so pipeline tests never touch the network or a sound device.
"""

import json
import threading
from pathlib import Path
from typing import Generator, Optional

import pytest
from sqlalchemy.orm import Session

from agent_tts.db.connection import Database
from agent_tts.events import EventBus
from agent_tts.profiles import ProfileConfig
from agent_tts.synthesis import SynthesisResult


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """A fresh in-memory state store per test."""
    db = Database("sqlite:///:memory:")
    db.init()
    yield db
    db.dispose()


@pytest.fixture
def db_session(database: Database) -> Generator[Session, None, None]:
    """A session that commits when the test finishes."""
    with database.session() as session:
        yield session


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def captured_events(events: EventBus) -> list:
    received: list = []
    events.subscribe(received.append)
    return received


class FakeSynthesizer:
    """Returns fixed bytes; can be told to fail or to block until released."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.texts: list[str] = []
        self.release = threading.Event()
        self.release.set()
        self.started = threading.Event()

    def synthesize(self, text: str) -> SynthesisResult:
        self.texts.append(text)
        self.started.set()
        self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return SynthesisResult(audio=b"ID3-fake-audio", format="mp3")


class FakeSynthesizerFactory:
    """SynthesizerFactory stand-in handing out one shared FakeSynthesizer."""

    def __init__(self, synthesizer: Optional[FakeSynthesizer] = None):
        self.synthesizer = synthesizer or FakeSynthesizer()
        self.cleared = 0

    def get(self, profile: ProfileConfig) -> FakeSynthesizer:
        return self.synthesizer

    def clear(self) -> None:
        self.cleared += 1


class FakePlayer:
    """
    AudioPlayer stand-in.

    With block=True, play() waits until stop() or finish() is called, which
    lets tests observe the queue mid-playback.
    """

    def __init__(self, block: bool = False):
        self.block = block
        self.played: list = []
        self.cancelled: list = []
        self.stop_calls = 0
        self.active = 0
        self.max_active = 0
        self.playing = threading.Event()
        self._done = threading.Event()
        self._stopped = False
        self._lock = threading.Lock()

    def play(self, audio, suffix: str = ".mp3", cancelled=None) -> bool:
        with self._lock:
            if cancelled is not None and cancelled.is_set():
                self.cancelled.append(audio)
                return False
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.played.append(audio)
            self._stopped = False
            self._done.clear()
        self.playing.set()
        try:
            if self.block:
                self._done.wait(timeout=5)
            return not self._stopped
        finally:
            with self._lock:
                self.active -= 1
            self.playing.clear()

    def finish(self) -> None:
        self._done.set()

    def stop(self) -> bool:
        self.stop_calls += 1
        with self._lock:
            was_active = self.active > 0
            if was_active:
                self._stopped = True
        self._done.set()
        return was_active

    def is_playing(self) -> bool:
        return self.active > 0


@pytest.fixture
def fake_synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def fake_player() -> FakePlayer:
    return FakePlayer()


def make_profile(watch_dir: Path, **overrides) -> ProfileConfig:
    data = {
        "id": "claude",
        "name": "Claude Code",
        "watch": [str(watch_dir / "**" / "*.jsonl")],
        "parser": {"type": "claude-code"},
        "tts": {"type": "openai", "voice_id": "nova", "voice_name": "Nova"},
    }
    data.update(overrides)
    return ProfileConfig.model_validate(data)


def write_config(path: Path, profiles: list[dict], muted: bool = False) -> Path:
    path.write_text(json.dumps({"muted": muted, "profiles": profiles}), encoding="utf-8")
    return path


def claude_line(role: str, text: str, cwd: str = "/work/project", ts: str = "2025-01-15T10:00:00Z") -> str:
    if role == "assistant":
        content = [{"type": "text", "text": text}]
    else:
        content = text
    record = {
        "type": role,
        "cwd": cwd,
        "timestamp": ts,
        "message": {"role": role, "content": content},
    }
    return json.dumps(record) + "\n"
