"""
File watching for session logs.

Each enabled profile gets a ProfileWatcher that observes its glob patterns
with watchdog and turns file changes into ChangeBatch objects:

- append mode: unread bytes after the stored offset (complete lines only;
  a trailing partial line waits for the next change)
- new-file mode: the whole content of files created after the watcher
  started

Read progress lives in the file_watch_state table so a restart resumes
where the previous run stopped.
"""

import glob
import logging
import os
import threading
import time
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Iterable, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from agent_tts.db.connection import Database
from agent_tts.db.repositories import FileWatchStateRepository
from agent_tts.parsers.metadata import LogGrowthMode
from agent_tts.profiles import ProfileConfig
from agent_tts.utils.timeutil import from_epoch

logger = logging.getLogger(__name__)

GLOB_CHARS = set("*?[")

SEEN_PRUNE_THRESHOLD = 10_000


@dataclass
class ChangeBatch:
    """Newly available content of one file, ready for its parser."""

    profile_id: str
    parser_type: str
    file_path: Path
    raw: bytes


ChangeCallback = Callable[[ChangeBatch], None]


def glob_base_dir(pattern: str) -> tuple[Path, bool]:
    """
    Split a glob pattern into the directory to observe and recursion flag.

    Returns:
        (deepest directory without glob characters, whether subdirectories
        must be observed too)
    """
    parts = Path(pattern).parts
    base_parts: list[str] = []
    for part in parts:
        if GLOB_CHARS & set(part):
            break
        base_parts.append(part)

    if len(base_parts) == len(parts):
        # Plain file path: observe its directory
        return Path(*parts).parent, False

    remaining = parts[len(base_parts) :]
    recursive = len(remaining) > 1 or "**" in pattern
    return Path(*base_parts) if base_parts else Path("."), recursive


def matches_pattern(path: str, pattern: str) -> bool:
    """fnmatch with '/**/' also matching a single separator."""
    if fnmatch(path, pattern):
        return True
    return "/**/" in pattern and fnmatch(path, pattern.replace("/**/", "/"))


def file_birth_time(stat_result: os.stat_result) -> float:
    """Creation time where the platform has it, else ctime."""
    return getattr(stat_result, "st_birthtime", None) or stat_result.st_ctime


class ProfileEventHandler(FileSystemEventHandler):
    """Watchdog handler routing file events to a ProfileWatcher."""

    def __init__(self, watcher: "ProfileWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.schedule(Path(str(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.schedule(Path(str(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic writers rename a temp file into place
        if not event.is_directory:
            self.watcher.schedule(Path(str(event.dest_path)))


class ProfileWatcher:
    """
    Watches one profile's patterns and emits ChangeBatches.

    Example:
        >>> watcher = ProfileWatcher(profile, LogGrowthMode.APPEND, db, processor.process)
        >>> watcher.start()   # startup scan, then observe
        >>> watcher.stop()
    """

    def __init__(
        self,
        profile: ProfileConfig,
        growth_mode: LogGrowthMode,
        database: Database,
        on_change: ChangeCallback,
        debounce_seconds: float = 0.25,
        use_polling: bool = False,
        poll_interval: float = 1.0,
    ):
        self.profile = profile
        self.growth_mode = growth_mode
        self.database = database
        self.on_change = on_change
        self.debounce_seconds = debounce_seconds
        self.use_polling = use_polling
        self.poll_interval = poll_interval

        self.patterns = profile.expanded_watch()
        self.excludes = profile.expanded_exclude()
        self.started_at = time.time()
        self.scan_complete = False

        # Files currently being read; a change arriving meanwhile is re-run after
        self.processing: Set[str] = set()
        self._pending: Set[str] = set()
        self._processing_lock = threading.Lock()

        # Debounce: one trailing timer per path
        self._timers: dict[str, threading.Timer] = {}
        self._timers_lock = threading.Lock()

        # New-file mode: files already handled or present at startup.
        # Paths that no longer exist are dropped once the set reaches the limit.
        self._seen: Set[str] = set()
        self._seen_limit = SEEN_PRUNE_THRESHOLD
        self._seen_lock = threading.Lock()

        # Set when this watcher replaces a running one for the same profile
        self._carry_over: Set[str] = set()
        self._resumed = False

        self.observer = None
        self.watch_errors: list[str] = []

    @property
    def profile_id(self) -> str:
        return self.profile.id

    def matches(self, path: Path) -> bool:
        path_str = str(path)
        if not any(matches_pattern(path_str, p) for p in self.patterns):
            return False
        return not any(matches_pattern(path_str, p) for p in self.excludes)

    def iter_existing_files(self) -> Iterable[Path]:
        seen: Set[str] = set()
        for pattern in self.patterns:
            for match in sorted(glob.glob(pattern, recursive=True)):
                if match in seen or not os.path.isfile(match):
                    continue
                seen.add(match)
                path = Path(match)
                if self.matches(path):
                    yield path

    def start(self) -> None:
        """Scan existing files, then begin observing the patterns."""
        self.scan()

        self.observer = PollingObserver(timeout=self.poll_interval) if self.use_polling else Observer()
        handler = ProfileEventHandler(self)
        scheduled = 0
        for pattern in self.patterns:
            base_dir, recursive = glob_base_dir(pattern)
            try:
                if not base_dir.is_dir():
                    raise FileNotFoundError(f"directory does not exist: {base_dir}")
                self.observer.schedule(handler, str(base_dir), recursive=recursive)
                scheduled += 1
            except Exception as e:
                # One bad pattern must not stop the others
                message = f"Cannot watch {pattern!r}: {e}"
                self.watch_errors.append(message)
                logger.warning(f"✗ [{self.profile_id}] {message}")

        self.observer.start()
        logger.info(
            f"✓ [{self.profile_id}] Watching {scheduled}/{len(self.patterns)} pattern(s) "
            f"({self.growth_mode.value} mode)"
        )

    def stop(self) -> None:
        with self._timers_lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()

        if self.observer is None:
            return
        try:
            self.observer.stop()
            self.observer.join(timeout=3)
            if self.observer.is_alive():
                logger.warning(f"[{self.profile_id}] Observer thread did not stop cleanly")
        except Exception as e:
            logger.error(f"[{self.profile_id}] Error stopping observer: {e}", exc_info=True)
        self.observer = None
        logger.info(f"✓ [{self.profile_id}] Watcher stopped")

    def pending_paths(self) -> Set[str]:
        """Paths with a debounce timer or a deferred re-read outstanding."""
        with self._timers_lock:
            paths = set(self._timers)
        with self._processing_lock:
            paths |= self._pending
        return paths

    def take_over(self, previous: "ProfileWatcher", pending: Iterable[str]) -> None:
        """
        Continue from a replaced watcher of the same profile.

        Must be called before start(). The start time and seen files carry
        over, and `pending` files (changed but not yet read by `previous`)
        are read by the scan instead of being recorded as history.
        """
        self.started_at = previous.started_at
        with previous._seen_lock:
            self._seen = set(previous._seen)
        self._carry_over = set(pending)
        self._resumed = True

    def scan(self) -> None:
        """
        Startup scan.

        Append mode: unknown files get their current size as offset (history
        is not replayed); known files are caught up from their offset.
        New-file mode: every existing file is marked as already seen.

        Files handed over by take_over() are processed normally, as are
        new-file mode files created while the replaced watcher ran.
        """
        known = new = carried = 0
        for path in self.iter_existing_files():
            key = str(path)
            if key in self._carry_over:
                carried += 1
                self.process_path(path)
                continue

            if self.growth_mode == LogGrowthMode.NEW_FILE:
                if self._resumed and not self._is_seen(key):
                    # Birth time decides between history and a new file
                    self.process_path(path)
                else:
                    self._mark_seen(key)
                new += 1
                continue

            try:
                stat = path.stat()
            except FileNotFoundError:
                continue

            with self.database.session() as session:
                repo = FileWatchStateRepository(session)
                state = repo.get_by_path(str(path))
                if state is None:
                    repo.upsert(
                        str(path),
                        self.profile_id,
                        file_size=stat.st_size,
                        offset=stat.st_size,
                        last_modified=from_epoch(stat.st_mtime),
                    )
                    new += 1
                    continue
            known += 1
            self.process_path(path)

        self._carry_over.clear()
        self.scan_complete = True
        logger.info(
            f"[{self.profile_id}] Startup scan complete: {new} new file(s) recorded, "
            f"{known} tracked file(s) checked, {carried} handed over"
        )

    def schedule(self, path: Path) -> None:
        """Debounced processing of a changed path."""
        if not self.matches(path):
            return
        key = str(path)
        with self._timers_lock:
            existing = self._timers.pop(key, None)
            if existing is not None:
                existing.cancel()
            timer = threading.Timer(self.debounce_seconds, self._fire, args=(path,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _fire(self, path: Path) -> None:
        with self._timers_lock:
            self._timers.pop(str(path), None)
        try:
            self.process_path(path)
        except Exception as e:
            logger.error(f"✗ [{self.profile_id}] Failed to process {path}: {e}", exc_info=True)

    def process_path(self, path: Path) -> Optional[ChangeBatch]:
        """
        Read new content from a file and emit it.

        Returns:
            The emitted batch, or None when there was nothing to emit
        """
        key = str(path)
        with self._processing_lock:
            if key in self.processing:
                self._pending.add(key)
                logger.debug(f"Already processing {path.name}, deferring")
                return None
            self.processing.add(key)

        try:
            if self.growth_mode == LogGrowthMode.NEW_FILE:
                batch = self._read_new_file(path)
            else:
                batch = self._read_appended(path)
        finally:
            with self._processing_lock:
                self.processing.discard(key)
                rerun = key in self._pending
                self._pending.discard(key)

        if batch is not None:
            self.on_change(batch)
        if rerun:
            self.schedule(path)
        return batch

    def _batch(self, path: Path, raw: bytes) -> ChangeBatch:
        return ChangeBatch(
            profile_id=self.profile_id,
            parser_type=self.profile.parser.type,
            file_path=path,
            raw=raw,
        )

    def _read_appended(self, path: Path) -> Optional[ChangeBatch]:
        try:
            stat = path.stat()
        except FileNotFoundError:
            logger.debug(f"File vanished before read: {path}")
            return None

        size = stat.st_size
        with self.database.session() as session:
            repo = FileWatchStateRepository(session)
            state = repo.get_by_path(str(path))
            # A file first seen after the scan is new content: read it all
            offset = state.last_processed_offset if state else 0

            if size < offset:
                logger.warning(
                    f"[{self.profile_id}] {path.name} shrank ({offset} -> {size} bytes); "
                    "resyncing from start"
                )
                offset = 0

            if size == offset:
                if state is None or state.file_size != size:
                    repo.upsert(str(path), self.profile_id, size, offset, from_epoch(stat.st_mtime))
                return None

            try:
                with open(path, "rb") as f:
                    f.seek(offset)
                    data = f.read(size - offset)
            except FileNotFoundError:
                logger.debug(f"File vanished during read: {path}")
                return None

            last_newline = data.rfind(b"\n")
            if last_newline < 0:
                # Partial line only; wait for the writer to finish it
                logger.debug(f"Partial line pending in {path.name}")
                return None

            consumed = data[: last_newline + 1]
            repo.upsert(
                str(path),
                self.profile_id,
                file_size=size,
                offset=offset + len(consumed),
                last_modified=from_epoch(stat.st_mtime),
            )

        logger.debug(f"[{self.profile_id}] {len(consumed)} new bytes in {path.name}")
        return self._batch(path, consumed)

    def _is_seen(self, key: str) -> bool:
        with self._seen_lock:
            return key in self._seen

    def _mark_seen(self, key: str) -> None:
        with self._seen_lock:
            self._seen.add(key)
            if len(self._seen) < self._seen_limit:
                return
            before = len(self._seen)
            self._seen = {seen for seen in self._seen if os.path.exists(seen)}
            after = len(self._seen)
            self._seen_limit = max(SEEN_PRUNE_THRESHOLD, 2 * after)
        logger.debug(f"[{self.profile_id}] Forgot {before - after} vanished file(s)")

    def _read_new_file(self, path: Path) -> Optional[ChangeBatch]:
        key = str(path)
        if self._is_seen(key):
            return None

        try:
            stat = path.stat()
        except FileNotFoundError:
            logger.debug(f"File vanished before read: {path}")
            return None

        if file_birth_time(stat) < self.started_at:
            self._mark_seen(key)
            logger.debug(f"Ignoring file created before start: {path.name}")
            return None

        if stat.st_size == 0:
            # Created but not yet written; the next modify event retries
            return None

        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug(f"File vanished during read: {path}")
            return None

        self._mark_seen(key)
        return self._batch(path, raw)


class FileMonitor:
    """
    Owns the ProfileWatchers of all enabled profiles.

    A profile whose watcher fails to start is logged and skipped; the other
    profiles keep watching.
    """

    def __init__(
        self,
        database: Database,
        on_change: ChangeCallback,
        growth_mode_for: Callable[[ProfileConfig], LogGrowthMode],
        debounce_seconds: float = 0.25,
        use_polling: bool = False,
        poll_interval: float = 1.0,
        on_watch_error: Optional[Callable[[str], None]] = None,
    ):
        self.database = database
        self.on_change = on_change
        self.growth_mode_for = growth_mode_for
        self.debounce_seconds = debounce_seconds
        self.use_polling = use_polling
        self.poll_interval = poll_interval
        self.on_watch_error = on_watch_error
        self.watchers: dict[str, ProfileWatcher] = {}
        self._lock = threading.Lock()

    def create_watcher(self, profile: ProfileConfig) -> ProfileWatcher:
        return ProfileWatcher(
            profile,
            self.growth_mode_for(profile),
            self.database,
            self.on_change,
            debounce_seconds=self.debounce_seconds,
            use_polling=self.use_polling,
            poll_interval=self.poll_interval,
        )

    def add_profile(self, profile: ProfileConfig) -> bool:
        """
        Start watching a profile. Returns False if it could not be started.

        A profile already watched with the same configuration keeps its
        watcher, unless some of its patterns could not be watched. Otherwise
        the new watcher takes over the old one's unread files.
        """
        with self._lock:
            previous = self.watchers.pop(profile.id, None)
        if previous is not None and previous.profile == profile and not previous.watch_errors:
            with self._lock:
                self.watchers[profile.id] = previous
            return True

        pending: Set[str] = set()
        if previous is not None:
            pending = previous.pending_paths()
            previous.stop()

        try:
            watcher = self.create_watcher(profile)
            if previous is not None:
                watcher.take_over(previous, pending)
            watcher.start()
        except Exception as e:
            logger.error(f"✗ Failed to start watcher for profile {profile.id}: {e}", exc_info=True)
            self._report(f"Profile {profile.id}: cannot start watcher: {e}")
            return False
        with self._lock:
            self.watchers[profile.id] = watcher
        for message in watcher.watch_errors:
            self._report(f"Profile {profile.id}: {message}")
        return True

    def _report(self, message: str) -> None:
        if self.on_watch_error is None:
            return
        try:
            self.on_watch_error(message)
        except Exception as e:
            logger.error(f"Watch error handler failed: {e}", exc_info=True)

    def watch_errors(self, profile_id: str) -> list[str]:
        with self._lock:
            watcher = self.watchers.get(profile_id)
        return list(watcher.watch_errors) if watcher is not None else []

    def remove_profile(self, profile_id: str) -> None:
        with self._lock:
            watcher = self.watchers.pop(profile_id, None)
        if watcher is not None:
            watcher.stop()

    def sync(self, profiles: Iterable[ProfileConfig]) -> None:
        """Start, restart or stop watchers so exactly the given profiles are watched."""
        wanted = {p.id: p for p in profiles}
        for profile_id in list(self.watchers):
            if profile_id not in wanted:
                self.remove_profile(profile_id)
        for profile in wanted.values():
            self.add_profile(profile)

    def watched_profiles(self) -> list[str]:
        with self._lock:
            return sorted(self.watchers)

    def stop(self) -> None:
        for profile_id in list(self.watchers):
            self.remove_profile(profile_id)


class _ConfigFileHandler(FileSystemEventHandler):
    def __init__(self, watcher: "ConfigFileWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = {str(event.src_path), str(getattr(event, "dest_path", "") or "")}
        if str(self.watcher.path) in paths:
            self.watcher.schedule()


class ConfigFileWatcher:
    """Calls on_change (debounced) whenever the profiles file is written."""

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], None],
        debounce_seconds: float = 0.5,
        use_polling: bool = False,
    ):
        self.path = path.expanduser().absolute()
        self.on_change = on_change
        self.debounce_seconds = debounce_seconds
        self.use_polling = use_polling
        self.observer = None
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        self.observer = PollingObserver() if self.use_polling else Observer()
        try:
            self.observer.schedule(_ConfigFileHandler(self), str(self.path.parent), recursive=False)
            self.observer.start()
            logger.info(f"✓ Watching config file {self.path}")
        except Exception as e:
            logger.warning(f"✗ Cannot watch config file {self.path}: {e}")
            self.observer = None

    def schedule(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        try:
            self.on_change()
        except Exception as e:
            logger.error(f"Config reload handler failed: {e}", exc_info=True)

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self.observer is not None:
            self.observer.stop()
            self.observer.join(timeout=3)
            self.observer = None
