"""
Tests for MessageProcessor: change batches in, queue records out.
"""

import base64
import json
from pathlib import Path

import pytest

from agent_tts.db.repositories import QueueRecordRepository
from agent_tts.events import LogAdded
from agent_tts.filters.chain import build_filter_chain
from agent_tts.models.db import MessageRole, QueueState
from agent_tts.parsers.images import ImageStore
from agent_tts.parsers.registry import create_default_registry
from agent_tts.processor import MessageProcessor
from agent_tts.watch import ChangeBatch

from conftest import claude_line


def _batch(*lines: str, parser_type: str = "claude-code") -> ChangeBatch:
    return ChangeBatch(
        profile_id="claude",
        parser_type=parser_type,
        file_path=Path("/logs/proj/s.jsonl"),
        raw="".join(lines).encode("utf-8"),
    )


@pytest.fixture
def ready() -> list:
    return []


@pytest.fixture
def processor(database, events, ready) -> MessageProcessor:
    proc = MessageProcessor(database, create_default_registry(), events, on_ready=ready.append)
    proc.set_chains({"claude": build_filter_chain()})
    return proc


def _records(database):
    with database.session() as session:
        return QueueRecordRepository(session).search(limit=100)


class TestMessageProcessor:
    def test_assistant_message_queued(self, processor, database, ready):
        ids = processor.process(_batch(claude_line("assistant", "Run `git status` now.")))

        assert len(ids) == 1
        assert ready == ids
        [record] = _records(database)
        assert record.state == QueueState.QUEUED
        assert record.role == MessageRole.ASSISTANT
        assert record.original_text == "Run `git status` now."
        assert record.filtered_text == "Run ghit status now."
        assert record.cwd == "/work/project"
        assert record.file_path == "/logs/proj/s.jsonl"

    def test_user_message_logged_not_spoken(self, processor, database, ready):
        """User turns are stored in the USER state and never enqueued."""
        ids = processor.process(_batch(claude_line("user", "Please fix it")))

        assert len(ids) == 1
        assert ready == []
        [record] = _records(database)
        assert record.state == QueueState.USER
        assert record.filtered_text == "Please fix it"

    def test_filtered_out_message_leaves_no_record(self, processor, database, ready):
        ids = processor.process(_batch(claude_line("assistant", "```\nls\n```")))

        assert ids == []
        assert ready == []
        assert _records(database) == []

    def test_messages_kept_in_file_order(self, processor, ready):
        ids = processor.process(
            _batch(
                claude_line("assistant", "One.", ts="2025-01-15T10:00:01Z"),
                claude_line("assistant", "Two.", ts="2025-01-15T10:00:02Z"),
                claude_line("assistant", "Three.", ts="2025-01-15T10:00:03Z"),
            )
        )
        assert ids == sorted(ids)
        assert ready == ids

    def test_log_added_published(self, processor, captured_events):
        processor.process(_batch(claude_line("assistant", "Hello there.")))

        [event] = [e for e in captured_events if isinstance(e, LogAdded)]
        assert event.record["filtered_text"] == "Hello there."
        assert event.record["state"] == "queued"

    def test_unknown_parser_yields_nothing(self, processor, database):
        assert processor.process(_batch(claude_line("assistant", "x"), parser_type="gemini")) == []
        assert _records(database) == []

    def test_parser_exception_isolated(self, database, events):
        class BrokenRegistry:
            def get(self, name):
                class Broken:
                    def parse(self, raw, path):
                        raise ValueError("bad format")

                return Broken()

        proc = MessageProcessor(database, BrokenRegistry(), events)
        assert proc.process(_batch(claude_line("assistant", "x"))) == []

    def test_profile_without_chain_passes_text_through(self, database, events):
        proc = MessageProcessor(database, create_default_registry(), events)
        ids = proc.process(_batch(claude_line("assistant", "**raw**")))

        [record] = _records(database)
        assert ids == [record.id]
        assert record.filtered_text == "**raw**"

    def test_failing_ready_callback_does_not_lose_later_messages(self, database, events):
        calls = []

        def on_ready(record_id):
            calls.append(record_id)
            if len(calls) == 1:
                raise RuntimeError("queue full")

        proc = MessageProcessor(database, create_default_registry(), events, on_ready=on_ready)
        proc.process(_batch(claude_line("assistant", "First."), claude_line("assistant", "Second.")))

        assert len(calls) == 2
        assert len(_records(database)) == 2

    def test_images_stored(self, database, events, tmp_path):
        store = ImageStore(tmp_path / "images")
        proc = MessageProcessor(database, create_default_registry(), events, image_store=store)
        record = {
            "type": "user",
            "timestamp": "2025-01-15T10:00:00Z",
            "message": {
                "role": "user",
                "content": [
                    {"type": "text", "text": "See screenshot"},
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": "image/png",
                            "data": base64.b64encode(b"png-bytes").decode(),
                        },
                    },
                ],
            },
        }
        proc.process(_batch(json.dumps(record) + "\n"))

        [stored] = _records(database)
        assert len(stored.images) == 1
        assert store.resolve(stored.images[0]).read_bytes() == b"png-bytes"
