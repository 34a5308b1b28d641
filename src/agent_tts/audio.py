"""
Audio playback and the on-disk audio cache.

AudioPlayer runs the platform player as a subprocess and guarantees that at
most one player process is alive. AudioCache stores synthesized audio per
message so replays skip synthesis.
"""

import logging
import shutil
import subprocess
import tempfile
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, Sequence, Union

from agent_tts.exceptions import PlaybackError
from agent_tts.utils.timeutil import as_utc

logger = logging.getLogger(__name__)

AudioSource = Union[Path, bytes]

PARTIAL_SUFFIX = ".part"


class AudioPlayer:
    """
    Single-process audio player.

    play() blocks until the player exits. Starting a new playback stops the
    current one first; stop() may be called from any thread.
    """

    def __init__(self, command: Sequence[str], stop_timeout: float = 2.0):
        if not command:
            raise ValueError("Player command cannot be empty")
        self.command = list(command)
        self.stop_timeout = stop_timeout
        self._process: Optional[subprocess.Popen] = None
        self._stopped = False
        self._lock = threading.Lock()

    def is_playing(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    def play(
        self,
        audio: AudioSource,
        suffix: str = ".mp3",
        cancelled: Optional[threading.Event] = None,
    ) -> bool:
        """
        Play a file, or raw bytes through a temporary file.

        A set `cancelled` event makes play() return without starting the
        player. It is checked under the lock stop() takes.

        Returns:
            True if playback ran to completion, False if it was stopped

        Raises:
            PlaybackError: If the player cannot start or exits with an error
        """
        temp_path: Optional[Path] = None
        if isinstance(audio, bytes):
            with tempfile.NamedTemporaryFile(prefix="agent-tts-", suffix=suffix, delete=False) as f:
                f.write(audio)
                temp_path = Path(f.name)
            path = temp_path
        else:
            path = audio

        try:
            with self._lock:
                self._stop_locked()
                if cancelled is not None and cancelled.is_set():
                    logger.debug(f"Playback of {path.name} cancelled before start")
                    return False
                self._stopped = False
                try:
                    process = subprocess.Popen(
                        [*self.command, str(path)],
                        stdin=subprocess.DEVNULL,
                        stdout=subprocess.DEVNULL,
                        stderr=subprocess.PIPE,
                    )
                except OSError as e:
                    raise PlaybackError(f"Cannot start audio player {self.command[0]}: {e}") from e
                self._process = process

            logger.debug(f"Playing {path.name} with {self.command[0]} (pid {process.pid})")
            _, stderr = process.communicate()

            with self._lock:
                stopped = self._stopped
                if self._process is process:
                    self._process = None

            if stopped or process.returncode < 0:
                logger.debug(f"Playback of {path.name} stopped")
                return False
            if process.returncode != 0:
                detail = (stderr or b"").decode("utf-8", errors="replace").strip()
                raise PlaybackError(
                    f"Audio player exited with code {process.returncode}"
                    + (f": {detail[:200]}" if detail else ""),
                    process.returncode,
                )
            return True
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)

    def stop(self) -> bool:
        """
        Terminate the active player process.

        Returns:
            True if a process was stopped
        """
        with self._lock:
            return self._stop_locked()

    def _stop_locked(self) -> bool:
        process = self._process
        if process is None or process.poll() is not None:
            return False
        self._stopped = True
        process.terminate()
        try:
            process.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Audio player pid {process.pid} ignored terminate; killing")
            process.kill()
            process.wait()
        logger.debug(f"Stopped audio player pid {process.pid}")
        return True


class AudioCache:
    """
    Synthesized audio stored as {base}/YYYY-MM-DD/{profile}-{epoch}-{record_id}.{ext}.

    The date directory and epoch come from the message timestamp (UTC), so a
    message always maps to the same file.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def _stem(self, profile_id: str, timestamp: datetime, record_id: int) -> tuple[Path, str]:
        ts = as_utc(timestamp)
        day_dir = self.base_dir / ts.strftime("%Y-%m-%d")
        return day_dir, f"{profile_id}-{int(ts.timestamp())}-{record_id}"

    def path_for(self, profile_id: str, timestamp: datetime, record_id: int, ext: str = "mp3") -> Path:
        day_dir, stem = self._stem(profile_id, timestamp, record_id)
        return day_dir / f"{stem}.{ext}"

    def lookup(self, profile_id: str, timestamp: datetime, record_id: int) -> Optional[Path]:
        """Cached audio for a message in any format, or None."""
        day_dir, stem = self._stem(profile_id, timestamp, record_id)
        if not day_dir.is_dir():
            return None
        for candidate in sorted(day_dir.glob(f"{stem}.*")):
            if candidate.suffix == PARTIAL_SUFFIX:
                continue
            if candidate.is_file() and candidate.stat().st_size > 0:
                return candidate
        return None

    def store(
        self, profile_id: str, timestamp: datetime, record_id: int, audio: bytes, ext: str = "mp3"
    ) -> Path:
        path = self.path_for(profile_id, timestamp, record_id, ext)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so a crash never leaves a truncated cache entry
        partial = path.with_name(f".{path.name}{PARTIAL_SUFFIX}")
        partial.write_bytes(audio)
        partial.replace(path)
        logger.debug(f"Cached audio: {path}")
        return path

    def prune(self, days: int, today: Optional[date] = None) -> int:
        """
        Delete date directories older than N days.

        Returns:
            Number of audio files removed
        """
        if not self.base_dir.is_dir():
            return 0
        cutoff = (today or date.today()) - timedelta(days=days)
        removed = 0
        for day_dir in self.base_dir.iterdir():
            if not day_dir.is_dir():
                continue
            try:
                day = date.fromisoformat(day_dir.name)
            except ValueError:
                continue
            if day < cutoff:
                removed += sum(1 for p in day_dir.iterdir() if p.is_file())
                shutil.rmtree(day_dir, ignore_errors=True)
        if removed:
            logger.info(f"✓ Pruned {removed} cached audio file(s) older than {days} days")
        return removed
