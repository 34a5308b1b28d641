"""
Playback queue: the single consumer that serializes synthesis and playback.

Record ids enter an in-memory FIFO; one drain thread at a time takes them in
arrival order, resolves audio (cache hit or synthesis) and plays it. Every
state change is written through QueueRecordRepository:

    queued -> playing -> played | error

pause() is destructive, exactly like stop(): it kills the current audio and
clears the FIFO. resume() only reopens draining for new arrivals.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

from agent_tts.audio import AudioCache, AudioPlayer
from agent_tts.db.connection import Database
from agent_tts.db.repositories import QueueRecordRepository
from agent_tts.events import EventBus, StatusChanged
from agent_tts.exceptions import PlaybackError, RecordNotFoundError, SynthesisError
from agent_tts.models.db import QueueState
from agent_tts.profiles import ProfileConfig
from agent_tts.synthesis import SynthesizerFactory

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted"
REPLAYABLE_STATES = (QueueState.PLAYED, QueueState.ERROR, QueueState.QUEUED)

ProfileLookup = Callable[[str], Optional[ProfileConfig]]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class PlaybackQueue:
    """
    Single-consumer FIFO of queue record ids.

    Example:
        >>> queue = PlaybackQueue(db, SynthesizerFactory(), player, events, config.get_profile)
        >>> queue.enqueue(record_id)
        >>> queue.wait_until_idle(timeout=30)
    """

    def __init__(
        self,
        database: Database,
        synthesizers: SynthesizerFactory,
        player: AudioPlayer,
        events: EventBus,
        profile_lookup: ProfileLookup,
        cache: Optional[AudioCache] = None,
    ):
        self.database = database
        self.synthesizers = synthesizers
        self.player = player
        self.events = events
        self.profile_lookup = profile_lookup
        self.cache = cache

        self._queue: deque[int] = deque()
        self._lock = threading.Lock()
        self._draining = False
        self._current_id: Optional[int] = None
        # Set by stop/skip/mute for the item being played; checked by the player
        self._cancelled = threading.Event()
        self._muted = False
        self._idle = threading.Event()
        self._idle.set()

    # Introspection

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def current_id(self) -> Optional[int]:
        return self._current_id

    def is_playing(self) -> bool:
        return self._current_id is not None

    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)

    def pending_ids(self) -> list[int]:
        with self._lock:
            return list(self._queue)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no drain is running. Returns False on timeout."""
        return self._idle.wait(timeout)

    # Producers

    def enqueue(self, record_id: int) -> bool:
        """
        Add a record to the FIFO and make sure a drain is running.

        Returns:
            False if skipped (muted, already playing, or already queued)
        """
        with self._lock:
            if self._muted:
                logger.debug(f"Muted, not queueing record {record_id}")
                return False
            if record_id == self._current_id:
                logger.debug(f"Record {record_id} is currently playing, skipping duplicate")
                return False
            if record_id in self._queue:
                logger.debug(f"Record {record_id} is already queued, skipping duplicate")
                return False
            self._queue.append(record_id)
        self._ensure_draining()
        return True

    def replay(self, record_id: int) -> bool:
        """
        Re-enqueue a stored record under its original id.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        with self.database.session() as session:
            record = QueueRecordRepository(session).get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            state = record.state
        if state not in REPLAYABLE_STATES:
            logger.info(f"Record {record_id} is in state {state.value}; not replayable")
            return False
        return self.enqueue(record_id)

    # Controls

    def stop(self) -> None:
        """Kill the current audio and clear the FIFO."""
        with self._lock:
            cleared = len(self._queue)
            self._queue.clear()
            self._cancel_current_locked()
        self.player.stop()
        logger.info(f"Playback stopped ({cleared} queued item(s) cleared)")

    def pause(self) -> None:
        """Same effect as stop(); resume() does not restart the item."""
        self.stop()
        logger.info("Playback paused")

    def resume(self) -> None:
        self._ensure_draining()
        logger.info("Playback resumed")

    def skip(self) -> None:
        """Kill the current audio; the drain continues with the next item."""
        with self._lock:
            self._cancel_current_locked()
        self.player.stop()
        logger.info("Skipped current item")

    def set_muted(self, muted: bool) -> None:
        with self._lock:
            self._muted = muted
            if muted:
                self._queue.clear()
                self._cancel_current_locked()
        if muted:
            self.player.stop()
            logger.info("Muted: playback stopped and queue cleared")
        else:
            logger.info("Unmuted")
            self._ensure_draining()

    def shutdown(self, timeout: float = 5.0) -> None:
        self.stop()
        if not self.wait_until_idle(timeout):
            logger.warning("Playback drain did not finish before shutdown timeout")

    # Consumer

    def _ensure_draining(self) -> None:
        with self._lock:
            if self._draining or self._muted or not self._queue:
                return
            self._draining = True
            self._idle.clear()
        thread = threading.Thread(target=self._drain, name="playback-drain", daemon=True)
        thread.start()

    def _drain(self) -> None:
        try:
            while True:
                with self._lock:
                    if self._muted or not self._queue:
                        self._draining = False
                        self._current_id = None
                        self._idle.set()
                        return
                    record_id = self._queue.popleft()
                    self._current_id = record_id
                    self._cancelled = threading.Event()
                try:
                    self.play_record(record_id)
                except Exception as e:
                    logger.error(f"✗ Unexpected error playing record {record_id}: {e}", exc_info=True)
                finally:
                    with self._lock:
                        self._current_id = None
        except BaseException:
            with self._lock:
                self._draining = False
                self._idle.set()
            raise

    def _cancel_current_locked(self) -> None:
        if self._current_id is not None:
            self._cancelled.set()

    def play_record(self, record_id: int) -> None:
        """Synthesize (or load from cache) and play one record, recording the outcome."""
        start = time.monotonic()
        with self._lock:
            cancelled = self._cancelled

        with self.database.session() as session:
            repo = QueueRecordRepository(session)
            record = repo.get(record_id)
            if record is None:
                logger.warning(f"Record {record_id} vanished before playback")
                return
            reset = repo.reset_stuck_playing(exclude_id=record_id)
            if reset:
                logger.warning(f"Reset {reset} record(s) stuck in playing state")
            repo.mark_playing(record_id)
            text = record.filtered_text
            profile_id = record.profile_id
            timestamp = record.timestamp

        self.events.publish(StatusChanged(playing=True, playing_id=record_id))
        try:
            completed = self._speak(record_id, profile_id, timestamp, text, cancelled)
        except (SynthesisError, PlaybackError) as e:
            status = getattr(e, "status_code", None)
            logger.error(f"✗ Record {record_id} failed: {e}")
            self._finish_error(record_id, str(e), _elapsed_ms(start), status)
        except Exception as e:
            logger.error(f"✗ Record {record_id} failed: {e}", exc_info=True)
            self._finish_error(record_id, f"{type(e).__name__}: {e}", _elapsed_ms(start))
        else:
            elapsed = _elapsed_ms(start)
            message = None if completed else INTERRUPTED_MESSAGE
            with self.database.session() as session:
                QueueRecordRepository(session).mark_played(record_id, elapsed, message=message)
            logger.info(
                f"✓ Played record {record_id} ({elapsed} ms)"
                if completed
                else f"Record {record_id} interrupted after {elapsed} ms"
            )
        finally:
            self.events.publish(StatusChanged(playing=False, played_id=record_id))

    def _finish_error(
        self, record_id: int, message: str, elapsed_ms: int, status: Optional[int] = None
    ) -> None:
        with self.database.session() as session:
            QueueRecordRepository(session).mark_error(
                record_id, message, processing_time_ms=elapsed_ms, status=status
            )

    def _speak(
        self, record_id: int, profile_id: str, timestamp, text: str, cancelled: threading.Event
    ) -> bool:
        """Returns False if playback was interrupted."""
        cached = self.cache.lookup(profile_id, timestamp, record_id) if self.cache else None
        if cached is not None:
            logger.debug(f"Audio cache hit for record {record_id}: {cached.name}")
            if cancelled.is_set():
                return False
            return self.player.play(cached, cancelled=cancelled)

        profile = self.profile_lookup(profile_id)
        if profile is None:
            raise SynthesisError(f"Profile {profile_id!r} is not configured")

        result = self.synthesizers.get(profile).synthesize(text)
        path = None
        if self.cache is not None:
            path = self.cache.store(profile_id, timestamp, record_id, result.audio, result.format)

        if cancelled.is_set():
            # Stopped while the request was in flight
            return False
        if path is not None:
            return self.player.play(path, cancelled=cancelled)
        return self.player.play(result.audio, suffix=f".{result.format}", cancelled=cancelled)
