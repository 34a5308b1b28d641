"""
Pipeline: wires the store, watchers, processor and playback queue together
and exposes the control surface used by the CLI and HTTP API.

Components are passed in through the constructor; build_pipeline() assembles
the production set from Settings.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from agent_tts.audio import AudioCache, AudioPlayer
from agent_tts.config import Settings
from agent_tts.db.connection import Database
from agent_tts.db.repositories import QueueRecordRepository, SettingsRepository
from agent_tts.db.repositories.settings import MUTE_KEY
from agent_tts.events import ConfigErrorEvent, EventBus
from agent_tts.exceptions import FilterPluginError, RecordNotFoundError
from agent_tts.filters.chain import FilterChain, build_filter_chain
from agent_tts.parsers.images import ImageStore
from agent_tts.parsers.metadata import LogGrowthMode
from agent_tts.parsers.registry import ParserRegistry, create_default_registry
from agent_tts.playback import PlaybackQueue
from agent_tts.processor import MessageProcessor
from agent_tts.profiles import AppConfig, FileConfigSource, ProfileConfig
from agent_tts.synthesis import SynthesizerFactory
from agent_tts.watch import ConfigFileWatcher, FileMonitor

logger = logging.getLogger(__name__)


class Pipeline:
    """
    The running agent-tts system.

    Example:
        >>> pipeline = build_pipeline(settings)
        >>> pipeline.start()
        >>> pipeline.get_status()
        >>> pipeline.shutdown()
    """

    def __init__(
        self,
        database: Database,
        config_source: FileConfigSource,
        registry: ParserRegistry,
        player: AudioPlayer,
        synthesizers: Optional[SynthesizerFactory] = None,
        cache: Optional[AudioCache] = None,
        image_store: Optional[ImageStore] = None,
        events: Optional[EventBus] = None,
        debounce_seconds: float = 0.25,
        use_polling: bool = False,
        poll_interval: float = 1.0,
        watch_config: bool = True,
    ):
        self.database = database
        self.config_source = config_source
        self.registry = registry
        self.events = events or EventBus()
        self.synthesizers = synthesizers or SynthesizerFactory()
        self.cache = cache
        self.watch_config = watch_config
        self.use_polling = use_polling

        self.config = AppConfig()
        self._config_lock = threading.Lock()
        self._started = False

        self.playback = PlaybackQueue(
            database,
            self.synthesizers,
            player,
            self.events,
            profile_lookup=self.get_profile,
            cache=cache,
        )
        self.processor = MessageProcessor(
            database,
            registry,
            self.events,
            on_ready=self.playback.enqueue,
            image_store=image_store,
        )
        self.monitor = FileMonitor(
            database,
            on_change=self.processor.process,
            growth_mode_for=self.growth_mode_for,
            debounce_seconds=debounce_seconds,
            use_polling=use_polling,
            poll_interval=poll_interval,
            on_watch_error=self._report_config_error,
        )
        self.config_watcher: Optional[ConfigFileWatcher] = None

        config_source.on_change(self.apply_config)
        config_source.on_error(self._report_config_error)

    # Lifecycle

    def start(self) -> None:
        """
        Open the store, recover from a crash, load config and start watching.

        Raises:
            StoreInitError: If the state store cannot be opened
            ConfigError: If the initial configuration is missing or invalid
        """
        self.database.init()

        with self.database.session() as session:
            recovered = QueueRecordRepository(session).recover_interrupted()
        if recovered:
            logger.warning(f"Recovered {recovered} record(s) left playing by a previous run")

        config = self.config_source.load()

        with self.database.session() as session:
            settings_repo = SettingsRepository(session)
            persisted = settings_repo.get_value(MUTE_KEY)
            muted = settings_repo.is_muted() if persisted is not None else config.muted
        self.playback.set_muted(muted)

        self.apply_config(config)

        if self.watch_config:
            self.config_watcher = ConfigFileWatcher(
                self.config_source.path,
                self.config_source.reload,
                use_polling=self.use_polling,
            )
            self.config_watcher.start()

        self._started = True
        logger.info(f"✓ Pipeline started ({len(self.monitor.watched_profiles())} profile(s) watching)")

    def shutdown(self) -> None:
        logger.info("Shutting down pipeline...")
        if self.config_watcher is not None:
            self.config_watcher.stop()
            self.config_watcher = None
        self.monitor.stop()
        self.playback.shutdown()
        self.synthesizers.clear()
        self._started = False
        logger.info("✓ Pipeline stopped")

    # Configuration

    def get_profile(self, profile_id: str) -> Optional[ProfileConfig]:
        return self.config.get_profile(profile_id)

    def growth_mode_for(self, profile: ProfileConfig) -> LogGrowthMode:
        return self.registry.get(profile.parser.type).metadata.growth_mode

    def is_profile_active(self, profile: ProfileConfig) -> bool:
        if not profile.enabled:
            return False
        with self.database.session() as session:
            return SettingsRepository(session).is_profile_enabled(profile.id)

    def apply_config(self, config: AppConfig) -> None:
        """Rebuild filter chains and synthesizers, and re-sync watchers."""
        with self._config_lock:
            previous_chains = dict(self.processor.chains)
            chains: dict[str, FilterChain] = {}
            for profile in config.profiles:
                try:
                    chains[profile.id] = build_filter_chain(profile.filters, profile.pronunciations)
                except FilterPluginError as e:
                    self._report_config_error(f"Profile {profile.id}: {e}")
                    chains[profile.id] = previous_chains.get(profile.id) or build_filter_chain(
                        [], profile.pronunciations
                    )

            self.config = config
            self.processor.set_chains(chains)
            self.synthesizers.clear()
            self.monitor.sync(p for p in config.profiles if self.is_profile_active(p))
        logger.info(f"✓ Applied configuration with {len(config.profiles)} profile(s)")

    def _report_config_error(self, message: str) -> None:
        logger.error(f"✗ Configuration error: {message}")
        self.events.publish(ConfigErrorEvent(message=message))

    # Control surface

    def pause(self) -> None:
        self.playback.pause()

    def resume(self) -> None:
        self.playback.resume()

    def stop(self) -> None:
        self.playback.stop()

    def skip(self) -> None:
        self.playback.skip()

    def replay(self, record_id: int) -> bool:
        """
        Raises:
            RecordNotFoundError: If the record does not exist
        """
        return self.playback.replay(record_id)

    def toggle_favorite(self, record_id: int) -> bool:
        """
        Flip a record's favorite flag.

        Returns:
            The new flag value

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        with self.database.session() as session:
            result = QueueRecordRepository(session).toggle_favorite(record_id)
        if result is None:
            raise RecordNotFoundError(record_id)
        return result

    def set_profile_enabled(self, profile_id: str, enabled: bool) -> None:
        with self.database.session() as session:
            SettingsRepository(session).set_profile_enabled(profile_id, enabled)

        profile = self.get_profile(profile_id)
        if profile is None:
            logger.warning(f"Profile {profile_id!r} is not configured; toggle stored only")
            return
        if enabled and profile.enabled:
            self.monitor.add_profile(profile)
        else:
            self.monitor.remove_profile(profile_id)
        logger.info(f"Profile {profile_id} {'enabled' if enabled else 'disabled'}")

    def set_muted(self, muted: bool) -> None:
        with self.database.session() as session:
            SettingsRepository(session).set_muted(muted)
        self.playback.set_muted(muted)

    def is_muted(self) -> bool:
        return self.playback.muted

    def get_status(self) -> dict[str, Any]:
        watching = set(self.monitor.watched_profiles())
        profiles = []
        for profile in self.config.profiles:
            profiles.append(
                {
                    "id": profile.id,
                    "name": profile.name,
                    "icon": profile.icon,
                    "enabled": self.is_profile_active(profile),
                    "watching": profile.id in watching,
                    "watch_errors": self.monitor.watch_errors(profile.id),
                }
            )
        return {
            "muted": self.playback.muted,
            "profiles": profiles,
            "queue_size": self.playback.queue_size(),
            "is_playing": self.playback.is_playing(),
            "playing_id": self.playback.current_id,
        }

    def get_logs(
        self,
        limit: int = 50,
        profile_id: Optional[str] = None,
        favorites_only: bool = False,
        offset: int = 0,
        cwd: Optional[str] = None,
        exclude_cwd: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """Playback log rows, newest first, with voice display details attached."""
        with self.database.session() as session:
            records = QueueRecordRepository(session).search(
                limit=limit,
                offset=offset,
                profile_id=profile_id,
                favorites_only=favorites_only,
                cwd=cwd,
                exclude_cwd=exclude_cwd,
                since=since,
            )
            rows = [record.to_dict() for record in records]

        for row in rows:
            profile = self.get_profile(row["profile_id"])
            tts = profile.tts if profile else None
            row["profile_name"] = profile.name if profile else row["profile_id"]
            row["voice_name"] = tts.voice_name if tts else None
            row["avatar_url"] = tts.avatar_url if tts else None
            row["profile_url"] = tts.profile_url if tts else None
        return rows

    def favorites_count(self) -> int:
        with self.database.session() as session:
            return QueueRecordRepository(session).count_favorites()

    def clear_old_entries(self, days: int) -> int:
        """
        Retention sweep over records and cached audio. Favorites are kept.

        Returns:
            Number of records deleted
        """
        with self.database.session() as session:
            deleted = QueueRecordRepository(session).delete_older_than(days)
        if self.cache is not None:
            self.cache.prune(days)
        logger.info(f"✓ Deleted {deleted} record(s) older than {days} days")
        return deleted


def build_pipeline(settings: Settings, watch_config: bool = True) -> Pipeline:
    """Assemble a Pipeline from process settings."""
    database = Database(settings.resolved_database_url, echo=settings.database_echo)
    registry = create_default_registry(
        extra_modules=settings.parser_module_list,
        opencode_storage_dir=(
            Path(settings.opencode_storage_dir).expanduser() if settings.opencode_storage_dir else None
        ),
    )
    cache = (
        AudioCache(Path(settings.audio_cache_dir).expanduser())
        if settings.audio_cache_enabled
        else None
    )
    return Pipeline(
        database=database,
        config_source=FileConfigSource(settings.config_path),
        registry=registry,
        player=AudioPlayer(settings.player_argv),
        cache=cache,
        image_store=ImageStore(Path(settings.image_dir).expanduser()),
        debounce_seconds=settings.watch_debounce_seconds,
        use_polling=settings.watch_use_polling,
        poll_interval=settings.watch_poll_interval,
        watch_config=watch_config,
    )
