"""
Tests for the audio player wrapper and the audio cache.
"""

import subprocess
import threading
from datetime import date, datetime, UTC
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from agent_tts.audio import AudioCache, AudioPlayer
from agent_tts.exceptions import PlaybackError

TS = datetime(2025, 1, 15, 10, 0, tzinfo=UTC)


def _process(returncode: int = 0, stderr: bytes = b"") -> MagicMock:
    process = MagicMock()
    process.pid = 4242
    process.returncode = returncode
    process.communicate.return_value = (None, stderr)
    process.poll.return_value = returncode
    return process


class TestAudioPlayer:
    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            AudioPlayer([])

    @patch("agent_tts.audio.subprocess.Popen")
    def test_play_file(self, mock_popen, tmp_path):
        audio = tmp_path / "a.mp3"
        audio.write_bytes(b"mp3")
        mock_popen.return_value = _process()

        assert AudioPlayer(["afplay"]).play(audio) is True

        args = mock_popen.call_args[0][0]
        assert args == ["afplay", str(audio)]

    @patch("agent_tts.audio.subprocess.Popen")
    def test_play_bytes_uses_temp_file(self, mock_popen):
        """Raw audio goes through a temp file that is removed afterwards."""
        mock_popen.return_value = _process()

        assert AudioPlayer(["ffplay", "-nodisp"]).play(b"audio", suffix=".wav") is True

        temp_path = Path(mock_popen.call_args[0][0][-1])
        assert temp_path.suffix == ".wav"
        assert not temp_path.exists()

    @patch("agent_tts.audio.subprocess.Popen")
    def test_player_failure_raises(self, mock_popen):
        mock_popen.return_value = _process(returncode=1, stderr=b"unsupported format")

        with pytest.raises(PlaybackError) as exc_info:
            AudioPlayer(["afplay"]).play(b"audio")

        assert exc_info.value.returncode == 1
        assert "unsupported format" in str(exc_info.value)

    @patch("agent_tts.audio.subprocess.Popen")
    def test_missing_player_raises(self, mock_popen):
        mock_popen.side_effect = FileNotFoundError("afplay")

        with pytest.raises(PlaybackError):
            AudioPlayer(["afplay"]).play(b"audio")

    @patch("agent_tts.audio.subprocess.Popen")
    def test_signalled_player_reports_stopped(self, mock_popen):
        mock_popen.return_value = _process(returncode=-15)
        assert AudioPlayer(["afplay"]).play(b"audio") is False

    def test_stop_without_process(self):
        assert AudioPlayer(["afplay"]).stop() is False

    def test_stop_terminates_running_process(self):
        player = AudioPlayer(["afplay"])
        process = MagicMock()
        process.poll.return_value = None
        player._process = process

        assert player.stop() is True
        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    def test_stop_kills_stubborn_process(self):
        player = AudioPlayer(["afplay"], stop_timeout=0.1)
        process = MagicMock()
        process.poll.return_value = None
        process.wait.side_effect = [subprocess.TimeoutExpired("afplay", 0.1), 0]
        player._process = process

        assert player.stop() is True
        process.kill.assert_called_once()

    @patch("agent_tts.audio.subprocess.Popen")
    def test_new_play_stops_previous(self, mock_popen):
        player = AudioPlayer(["afplay"])
        previous = MagicMock()
        previous.poll.return_value = None
        player._process = previous
        mock_popen.return_value = _process()

        player.play(b"audio")

        previous.terminate.assert_called_once()


    @patch("agent_tts.audio.subprocess.Popen")
    def test_cancelled_play_never_spawns(self, mock_popen):
        cancelled = threading.Event()
        cancelled.set()

        assert AudioPlayer(["afplay"]).play(b"audio", cancelled=cancelled) is False
        mock_popen.assert_not_called()

    @patch("agent_tts.audio.subprocess.Popen")
    def test_unset_cancel_event_plays(self, mock_popen):
        mock_popen.return_value = _process()
        assert AudioPlayer(["afplay"]).play(b"audio", cancelled=threading.Event()) is True


class TestAudioCache:
    def test_path_layout(self, tmp_path):
        cache = AudioCache(tmp_path)
        path = cache.path_for("claude", TS, 7)
        assert path == tmp_path / "2025-01-15" / "claude-1736935200-7.mp3"

    def test_store_and_lookup(self, tmp_path):
        cache = AudioCache(tmp_path)
        stored = cache.store("claude", TS, 7, b"audio", ext="wav")

        assert stored.suffix == ".wav"
        assert cache.lookup("claude", TS, 7) == stored
        assert cache.lookup("claude", TS, 8) is None
        assert not list(tmp_path.rglob("*.part"))

    def test_lookup_ignores_empty_files(self, tmp_path):
        cache = AudioCache(tmp_path)
        path = cache.path_for("claude", TS, 7)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"")

        assert cache.lookup("claude", TS, 7) is None

    @pytest.mark.parametrize(
        "leftover", ["claude-1736935200-7.mp3.part", ".claude-1736935200-7.mp3.part"]
    )
    def test_lookup_ignores_interrupted_write(self, tmp_path, leftover):
        """A crash mid-store leaves only the partial file: that is a miss."""
        cache = AudioCache(tmp_path)
        day_dir = tmp_path / "2025-01-15"
        day_dir.mkdir()
        (day_dir / leftover).write_bytes(b"trunc")

        assert cache.lookup("claude", TS, 7) is None

    def test_lookup_missing_directory(self, tmp_path):
        assert AudioCache(tmp_path / "none").lookup("claude", TS, 1) is None

    def test_prune_old_days(self, tmp_path):
        cache = AudioCache(tmp_path)
        cache.store("claude", datetime(2025, 1, 1, tzinfo=UTC), 1, b"old")
        cache.store("claude", datetime(2025, 1, 2, tzinfo=UTC), 2, b"old")
        cache.store("claude", TS, 3, b"new")
        (tmp_path / "not-a-date").mkdir()

        removed = cache.prune(days=7, today=date(2025, 1, 16))

        assert removed == 2
        assert sorted(p.name for p in tmp_path.iterdir()) == ["2025-01-15", "not-a-date"]

    def test_prune_missing_base_dir(self, tmp_path):
        assert AudioCache(tmp_path / "none").prune(days=1) == 0
