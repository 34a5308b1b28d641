"""
Tests for the playback queue: ordering, single playback, duplicate
suppression and the control operations.
"""

import threading
from datetime import datetime, UTC

import pytest

from agent_tts.audio import AudioCache
from agent_tts.db.repositories import QueueRecordRepository
from agent_tts.events import StatusChanged
from agent_tts.exceptions import RecordNotFoundError, SynthesisError
from agent_tts.models.db import MessageRole, QueueState
from agent_tts.playback import INTERRUPTED_MESSAGE, PlaybackQueue

from conftest import FakePlayer, FakeSynthesizer, FakeSynthesizerFactory, make_profile


def add_record(database, text: str = "Hello.", role: MessageRole = MessageRole.ASSISTANT) -> int:
    with database.session() as session:
        record = QueueRecordRepository(session).add(
            timestamp=datetime(2025, 1, 15, 10, 0, tzinfo=UTC),
            file_path="/logs/s.jsonl",
            profile_id="claude",
            original_text=text,
            filtered_text=text,
            role=role,
            cwd="/work",
        )
        return record.id


def get_record(database, record_id: int):
    with database.session() as session:
        return QueueRecordRepository(session).get(record_id)


@pytest.fixture
def profile(tmp_path):
    return make_profile(tmp_path)


def build_queue(database, events, profile, synthesizer=None, player=None, cache=None):
    return PlaybackQueue(
        database,
        FakeSynthesizerFactory(synthesizer or FakeSynthesizer()),
        player or FakePlayer(),
        events,
        profile_lookup=lambda profile_id: profile if profile_id == profile.id else None,
        cache=cache,
    )


class TestPlayback:
    def test_plays_and_marks_played(self, database, events, captured_events, profile):
        synth, player = FakeSynthesizer(), FakePlayer()
        queue = build_queue(database, events, profile, synth, player)
        record_id = add_record(database, "Build passed.")

        assert queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=5)

        record = get_record(database, record_id)
        assert record.state == QueueState.PLAYED
        assert record.api_response_status == 200
        assert record.api_response_message is None
        assert record.processing_time_ms is not None
        assert synth.texts == ["Build passed."]
        assert player.played == [b"ID3-fake-audio"]

        status = [e for e in captured_events if isinstance(e, StatusChanged)]
        assert status == [
            StatusChanged(playing=True, playing_id=record_id),
            StatusChanged(playing=False, played_id=record_id),
        ]

    def test_fifo_order_and_single_playback(self, database, events, profile):
        """Records play in arrival order, never two at a time."""
        synth, player = FakeSynthesizer(), FakePlayer()
        queue = build_queue(database, events, profile, synth, player)
        ids = [add_record(database, f"Message {i}.") for i in range(5)]

        for record_id in ids:
            queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=10)

        assert synth.texts == [f"Message {i}." for i in range(5)]
        assert player.max_active == 1
        assert all(get_record(database, i).state == QueueState.PLAYED for i in ids)

    def test_concurrent_producers(self, database, events, profile):
        player = FakePlayer()
        queue = build_queue(database, events, profile, player=player)
        ids = [add_record(database, f"Message {i}.") for i in range(10)]

        threads = [threading.Thread(target=queue.enqueue, args=(i,)) for i in ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert queue.wait_until_idle(timeout=10)

        assert len(player.played) == 10
        assert player.max_active == 1

    def test_duplicate_enqueue_suppressed(self, database, events, profile):
        player = FakePlayer(block=True)
        queue = build_queue(database, events, profile, player=player)
        first, second = add_record(database, "One."), add_record(database, "Two.")

        assert queue.enqueue(first)
        assert player.playing.wait(timeout=5)
        assert queue.current_id == first
        assert queue.enqueue(first) is False
        assert queue.enqueue(second)
        assert queue.enqueue(second) is False
        assert queue.pending_ids() == [second]

        player.block = False
        player.finish()
        assert queue.wait_until_idle(timeout=5)
        assert len(player.played) == 2

    def test_stale_playing_record_reset(self, database, events, profile):
        """Starting a record moves any other PLAYING record to ERROR."""
        stale = add_record(database, "Stale.")
        with database.session() as session:
            QueueRecordRepository(session).mark_playing(stale)
        fresh = add_record(database, "Fresh.")
        queue = build_queue(database, events, profile)

        queue.enqueue(fresh)
        assert queue.wait_until_idle(timeout=5)

        assert get_record(database, stale).state == QueueState.ERROR
        assert get_record(database, fresh).state == QueueState.PLAYED


class TestPlaybackErrors:
    def test_synthesis_error_marks_error(self, database, events, captured_events, profile):
        synth = FakeSynthesizer(error=SynthesisError("Rate limited", 429))
        queue = build_queue(database, events, profile, synth)
        record_id = add_record(database)

        queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=5)

        record = get_record(database, record_id)
        assert record.state == QueueState.ERROR
        assert record.api_response_status == 429
        assert record.api_response_message == "Rate limited"
        assert captured_events[-1] == StatusChanged(playing=False, played_id=record_id)

    def test_error_does_not_stop_queue(self, database, events, profile):
        class FlakySynth(FakeSynthesizer):
            def synthesize(self, text):
                if text == "Bad.":
                    raise SynthesisError("boom")
                return super().synthesize(text)

        queue = build_queue(database, events, profile, FlakySynth())
        bad, good = add_record(database, "Bad."), add_record(database, "Good.")
        queue.enqueue(bad)
        queue.enqueue(good)
        assert queue.wait_until_idle(timeout=5)

        assert get_record(database, bad).state == QueueState.ERROR
        assert get_record(database, good).state == QueueState.PLAYED

    def test_unknown_profile_marks_error(self, database, events, tmp_path):
        queue = build_queue(database, events, make_profile(tmp_path, id="other"))
        record_id = add_record(database)

        queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=5)

        record = get_record(database, record_id)
        assert record.state == QueueState.ERROR
        assert "claude" in record.api_response_message

    def test_unexpected_exception_marks_error(self, database, events, profile):
        synth = FakeSynthesizer(error=KeyError("voice"))
        queue = build_queue(database, events, profile, synth)
        record_id = add_record(database)

        queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=5)

        record = get_record(database, record_id)
        assert record.state == QueueState.ERROR
        assert record.api_response_message.startswith("KeyError")


class TestControls:
    def test_mute_rejects_enqueue(self, database, events, profile):
        queue = build_queue(database, events, profile)
        queue.set_muted(True)

        assert queue.enqueue(add_record(database)) is False
        assert queue.queue_size() == 0

        queue.set_muted(False)
        assert queue.enqueue(add_record(database))
        assert queue.wait_until_idle(timeout=5)

    def test_mute_stops_current_and_clears_queue(self, database, events, profile):
        player = FakePlayer(block=True)
        queue = build_queue(database, events, profile, player=player)
        first, second = add_record(database, "One."), add_record(database, "Two.")
        queue.enqueue(first)
        assert player.playing.wait(timeout=5)
        queue.enqueue(second)

        queue.set_muted(True)
        assert queue.wait_until_idle(timeout=5)

        assert queue.muted
        assert player.stop_calls == 1
        record = get_record(database, first)
        assert record.state == QueueState.PLAYED
        assert record.api_response_message == INTERRUPTED_MESSAGE
        assert get_record(database, second).state == QueueState.QUEUED

    def test_stop_clears_queue(self, database, events, profile):
        player = FakePlayer(block=True)
        queue = build_queue(database, events, profile, player=player)
        ids = [add_record(database, f"Message {i}.") for i in range(3)]
        for record_id in ids:
            queue.enqueue(record_id)
        assert player.playing.wait(timeout=5)

        queue.stop()
        assert queue.wait_until_idle(timeout=5)

        assert queue.queue_size() == 0
        assert len(player.played) == 1
        assert get_record(database, ids[0]).api_response_message == INTERRUPTED_MESSAGE
        assert get_record(database, ids[2]).state == QueueState.QUEUED

    def test_pause_is_destructive(self, database, events, profile):
        """Pause stops like stop(); resume does not bring back cleared items."""
        player = FakePlayer(block=True)
        queue = build_queue(database, events, profile, player=player)
        first, second = add_record(database, "One."), add_record(database, "Two.")
        queue.enqueue(first)
        queue.enqueue(second)
        assert player.playing.wait(timeout=5)

        queue.pause()
        assert queue.wait_until_idle(timeout=5)
        queue.resume()

        assert queue.wait_until_idle(timeout=5)
        assert not queue.is_playing()
        assert player.played == [b"ID3-fake-audio"]
        assert get_record(database, second).state == QueueState.QUEUED

    def test_skip_moves_to_next(self, database, events, profile):
        player = FakePlayer(block=True)
        queue = build_queue(database, events, profile, player=player)
        first, second = add_record(database, "One."), add_record(database, "Two.")
        queue.enqueue(first)
        queue.enqueue(second)
        assert player.playing.wait(timeout=5)

        player.block = False
        queue.skip()
        assert queue.wait_until_idle(timeout=5)

        assert get_record(database, first).api_response_message == INTERRUPTED_MESSAGE
        second_record = get_record(database, second)
        assert second_record.state == QueueState.PLAYED
        assert second_record.api_response_message is None

    def test_stop_during_synthesis(self, database, events, profile):
        """A stop that lands while synthesis is in flight skips playback."""
        synth, player = FakeSynthesizer(), FakePlayer()
        synth.release.clear()
        queue = build_queue(database, events, profile, synth, player)
        record_id = add_record(database)

        queue.enqueue(record_id)
        assert synth.started.wait(timeout=5)
        queue.stop()
        synth.release.set()
        assert queue.wait_until_idle(timeout=5)

        assert player.played == []
        assert get_record(database, record_id).api_response_message == INTERRUPTED_MESSAGE

    def test_stop_just_before_player_starts(self, database, events, profile):
        """The player sees a stop that lands after the queue's own check."""

        class StopOnEntryPlayer(FakePlayer):
            def play(self, audio, suffix=".mp3", cancelled=None):
                queue.stop()
                return super().play(audio, suffix, cancelled=cancelled)

        player = StopOnEntryPlayer()
        queue = build_queue(database, events, profile, FakeSynthesizer(), player)
        record_id = add_record(database)

        queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=5)

        assert player.played == []
        assert len(player.cancelled) == 1
        record = get_record(database, record_id)
        assert record.state == QueueState.PLAYED
        assert record.api_response_message == INTERRUPTED_MESSAGE


class TestReplay:
    def test_replay_played_record(self, database, events, profile):
        synth = FakeSynthesizer()
        queue = build_queue(database, events, profile, synth)
        record_id = add_record(database, "Again.")
        queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=5)

        assert queue.replay(record_id)
        assert queue.wait_until_idle(timeout=5)

        assert synth.texts == ["Again.", "Again."]
        assert get_record(database, record_id).state == QueueState.PLAYED

    def test_replay_missing_record(self, database, events, profile):
        queue = build_queue(database, events, profile)
        with pytest.raises(RecordNotFoundError):
            queue.replay(9999)

    def test_user_record_not_replayable(self, database, events, profile):
        queue = build_queue(database, events, profile)
        record_id = add_record(database, "My question", role=MessageRole.USER)
        assert queue.replay(record_id) is False

    def test_replay_uses_audio_cache(self, database, events, profile, tmp_path):
        synth, player = FakeSynthesizer(), FakePlayer()
        cache = AudioCache(tmp_path / "audio")
        queue = build_queue(database, events, profile, synth, player, cache=cache)
        record_id = add_record(database, "Cached.")

        queue.enqueue(record_id)
        assert queue.wait_until_idle(timeout=5)
        queue.replay(record_id)
        assert queue.wait_until_idle(timeout=5)

        assert synth.texts == ["Cached."]
        assert len(player.played) == 2
        cached = cache.lookup("claude", datetime(2025, 1, 15, 10, 0, tzinfo=UTC), record_id)
        assert player.played == [cached, cached]
        assert cached.read_bytes() == b"ID3-fake-audio"
