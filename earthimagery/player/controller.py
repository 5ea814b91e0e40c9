"""
Adaptive playback controller.

One controller drives one video sink. Each (dataset, date range) selection
gets its own PlaybackSession that owns a segment engine; changing the
selection tears the old session down completely before the new one starts.

Session states:
    IDLE -> MANIFEST_LOADING -> BUFFERING -> PLAYABLE
                     \\              \\          \\
                      +--------------+----------+--> ERROR

Playback starts once two thirds of the segments are buffered, or earlier if
segments stop arriving and at least one is available. Buffered media well
behind the playback position is trimmed to keep memory bounded.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, Optional, Set
from urllib.parse import urlencode

import httpx

from ..services.hls.identity import DatasetIdentity
from .config import PlayerSettings
from .engine import EngineConfig, HttpSegmentEngine, SegmentEngine, readiness_target
from .events import (
    EngineEvent,
    ErrorCategory,
    ErrorDetails,
    EventHandler,
    FatalError,
    FragmentLoaded,
    ManifestParsed,
    NonFatalBufferFull,
)
from .manifest import ManifestFetchError, NoContentError, fetch_manifest
from .sink import LOADED_METADATA, TIME_UPDATE, VideoSink

logger = logging.getLogger(__name__)

PLAYBACK_ERROR_MESSAGE = "Playback error"
CHECK_ERROR_MESSAGE = "Error while checking the video"


class BufferState(str, Enum):
    IDLE = "idle"
    MANIFEST_LOADING = "manifest_loading"
    BUFFERING = "buffering"
    PLAYABLE = "playable"
    ERROR = "error"


def no_content_message(from_date: date, to_date: date) -> str:
    return f"No video available for the period from {from_date:%Y-%m-%d} to {to_date:%Y-%m-%d}"


def build_playlist_url(identity: DatasetIdentity, from_date: date, to_date: date,
                       playlist_path: str = "/api/playlist") -> str:
    query = urlencode({
        "satellite": identity.source,
        "sector": identity.sector,
        "product": identity.product,
        "resolution": identity.resolution,
        "from": from_date.isoformat(),
        "to": to_date.isoformat(),
    })
    return f"{playlist_path}?{query}"


@dataclass
class PlaybackSession:
    """State of one selection being played."""
    identity: DatasetIdentity
    from_date: date
    to_date: date
    manifest_url: str
    playback_rate: float = 1.0
    buffer_state: BufferState = BufferState.IDLE
    total_segment_count: int = 0
    target_segment_count: int = 0
    loaded_segment_count: int = 0
    last_fragment_received_at: Optional[float] = None
    last_forced_reload_at: Optional[float] = None
    last_purge_at: Optional[float] = None
    forced_reloads: int = 0
    media_recovery_attempted: bool = False
    error: Optional[str] = None
    session_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    # Resources owned by the session, released on teardown
    engine: Optional[SegmentEngine] = None
    handler: Optional[EventHandler] = None
    sink_listeners: Dict[str, Callable[[], None]] = field(default_factory=dict)
    tasks: Set[asyncio.Task] = field(default_factory=set)
    closed: bool = False

    @property
    def selection(self) -> tuple:
        return (self.identity, self.from_date, self.to_date)

    @property
    def progress(self) -> float:
        """Share of the readiness target buffered, capped at 1."""
        if self.target_segment_count <= 0:
            return 0.0
        return min(self.loaded_segment_count / self.target_segment_count, 1.0)

    @property
    def target_reached(self) -> bool:
        return self.total_segment_count > 0 and self.loaded_segment_count >= self.target_segment_count


class PlaybackController:
    """Plays date-range playlists into a borrowed video sink."""

    def __init__(
        self,
        sink: VideoSink,
        settings: Optional[PlayerSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        engine_factory: Optional[Callable[[], SegmentEngine]] = None,
        engine_config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sink = sink
        self.settings = settings or PlayerSettings()
        self.controller_id = str(uuid.uuid4())[:8]
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.settings.base_url, follow_redirects=True)
        self._engine_config = engine_config or EngineConfig()
        self._engine_factory = engine_factory or self._default_engine
        self._clock = clock
        self._session: Optional[PlaybackSession] = None
        self._playback_rate = 1.0

    def _default_engine(self) -> SegmentEngine:
        return HttpSegmentEngine(config=self._engine_config, client=self._client)

    # ── Public state ────────────────────────────────────────────────

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    @property
    def state(self) -> BufferState:
        return self._session.buffer_state if self._session else BufferState.IDLE

    @property
    def progress(self) -> float:
        return self._session.progress if self._session else 0.0

    @property
    def error(self) -> Optional[str]:
        return self._session.error if self._session else None

    @property
    def playback_rate(self) -> float:
        return self._playback_rate

    # ── Selection ───────────────────────────────────────────────────

    async def select(self, identity: DatasetIdentity, from_date: date, to_date: date) -> PlaybackSession:
        """
        Start playing a new selection.

        The previous session (if any) is torn down first, cancelling its
        fetches. Re-selecting what is already playing is a no-op unless that
        session failed.
        """
        current = self._session
        if (current is not None and current.selection == (identity, from_date, to_date)
                and current.buffer_state != BufferState.ERROR):
            return current

        self.teardown()

        session = PlaybackSession(
            identity=identity,
            from_date=from_date,
            to_date=to_date,
            manifest_url=build_playlist_url(identity, from_date, to_date, self.settings.playlist_path),
            playback_rate=self._playback_rate,
            buffer_state=BufferState.MANIFEST_LOADING,
        )
        self._session = session
        logger.info(f"[Player {session.session_id}] Loading {identity.key} {from_date}..{to_date}")

        check = asyncio.create_task(fetch_manifest(self._client, session.manifest_url))
        session.tasks.add(check)
        # asyncio.wait: a check cancelled by teardown must not raise here
        await asyncio.wait({check})
        session.tasks.discard(check)

        if check.cancelled() or session.closed:
            logger.debug(f"[Player {session.session_id}] Superseded while loading manifest")
            return session

        error = check.exception()
        if isinstance(error, NoContentError):
            self._fail(session, no_content_message(from_date, to_date), expected=True)
            return session
        if isinstance(error, ManifestFetchError):
            self._fail(session, str(error) if error.status_code else CHECK_ERROR_MESSAGE)
            return session
        if error is not None:
            logger.error(f"[Player {session.session_id}] Manifest check failed: {error}")
            self._fail(session, CHECK_ERROR_MESSAGE)
            return session

        self._attach(session)
        return session

    def _attach(self, session: PlaybackSession) -> None:
        engine = self._engine_factory()
        session.engine = engine
        session.handler = lambda event: self._handle(session, event)
        engine.on(session.handler)

        session.sink_listeners = {
            LOADED_METADATA: lambda: self._on_loaded_metadata(session),
            TIME_UPDATE: lambda: self._on_time_update(session),
        }
        for event_name, callback in session.sink_listeners.items():
            self.sink.add_listener(event_name, callback)

        engine.load_source(session.manifest_url)
        try:
            engine.attach_media(self.sink)
        except Exception as e:
            logger.error(f"[Player {session.session_id}] Could not attach to sink: {e}")
            self._fail(session, PLAYBACK_ERROR_MESSAGE)
            return

        # Attaching resets the sink's own rate
        self._apply_rate(session)
        session.buffer_state = BufferState.BUFFERING
        session.last_fragment_received_at = self._clock()
        self._spawn(session, self._stall_watch(session))

    def teardown(self) -> None:
        """Release the current session: listeners, tasks, engine, sink."""
        session = self._session
        if session is None:
            return
        self._session = None
        session.closed = True

        for task in list(session.tasks):
            task.cancel()
        session.tasks.clear()

        for event_name, callback in session.sink_listeners.items():
            self.sink.remove_listener(event_name, callback)
        session.sink_listeners = {}

        if session.engine is not None:
            if session.handler is not None:
                session.engine.off(session.handler)
            session.engine.destroy()
            session.engine = None

        if session.buffer_state != BufferState.ERROR:
            session.buffer_state = BufferState.IDLE
        logger.debug(f"[Player {session.session_id}] Torn down")

    async def close(self) -> None:
        self.teardown()
        if self._owns_client:
            await self._client.aclose()

    # ── Playback rate ───────────────────────────────────────────────

    def set_playback_rate(self, rate: float) -> None:
        if rate <= 0:
            raise ValueError(f"Playback rate must be positive, got {rate}")
        self._playback_rate = rate
        if self._session is not None:
            self._session.playback_rate = rate
            self._apply_rate(self._session)

    def _apply_rate(self, session: PlaybackSession) -> None:
        if session.engine is not None and not session.closed:
            self.sink.playback_rate = session.playback_rate

    # ── Engine events ───────────────────────────────────────────────

    def handle_event(self, event: EngineEvent) -> None:
        """Dispatch an engine event to the current session."""
        if self._session is not None:
            self._handle(self._session, event)

    def _handle(self, session: PlaybackSession, event: EngineEvent) -> None:
        if session is not self._session or session.closed:
            logger.debug(f"[Player {session.session_id}] Ignoring {type(event).__name__} from old session")
            return

        if isinstance(event, ManifestParsed):
            self._on_manifest_parsed(session, event)
        elif isinstance(event, FragmentLoaded):
            self._on_fragment_loaded(session, event)
        elif isinstance(event, FatalError):
            self._on_fatal_error(session, event)
        elif isinstance(event, NonFatalBufferFull):
            self._on_buffer_full(session)

    def _on_manifest_parsed(self, session: PlaybackSession, event: ManifestParsed) -> None:
        session.total_segment_count = event.total_segments
        session.target_segment_count = readiness_target(event.total_segments, self.settings.readiness_ratio)
        session.loaded_segment_count = 0
        if session.engine is not None:
            session.engine.config = session.engine.config.adapted(
                event.total_segments, event.max_duration, self.settings.readiness_ratio
            )
        self._apply_rate(session)
        logger.info(
            f"[Player {session.session_id}] Manifest parsed: {event.total_segments} segments, "
            f"{event.total_duration:.0f}s, playback at {session.target_segment_count}"
        )

    def _on_fragment_loaded(self, session: PlaybackSession, event: FragmentLoaded) -> None:
        session.loaded_segment_count += 1
        session.last_fragment_received_at = self._clock()
        logger.debug(
            f"[Player {session.session_id}] Segment {event.sequence_number} loaded "
            f"({session.loaded_segment_count}/{session.target_segment_count})"
        )

        # Only trim while playing, never during the initial preload
        if not self.sink.paused and self.sink.current_time > 0:
            self.purge_buffer()

        if session.buffer_state == BufferState.BUFFERING and session.target_reached:
            logger.info(f"[Player {session.session_id}] Readiness target reached, starting playback")
            self._start_playback(session)

    def _on_fatal_error(self, session: PlaybackSession, event: FatalError) -> None:
        logger.warning(f"[Player {session.session_id}] Fatal {event.category.value} error: {event.details}")

        if event.category == ErrorCategory.NETWORK:
            if event.details == ErrorDetails.MANIFEST_LOAD_ERROR:
                self._fail(session, no_content_message(session.from_date, session.to_date), expected=True)
                return
            self._schedule(session, self.settings.network_retry_delay, self._restart_load)
        elif event.category == ErrorCategory.MEDIA:
            if session.media_recovery_attempted:
                self._fail(session, PLAYBACK_ERROR_MESSAGE)
                return
            session.media_recovery_attempted = True
            self._schedule(session, self.settings.media_recovery_delay, self._recover_media)
        else:
            self._fail(session, f"{PLAYBACK_ERROR_MESSAGE}: {event.details}")

    def _on_buffer_full(self, session: PlaybackSession) -> None:
        if session.loaded_segment_count >= session.target_segment_count:
            # Enough is buffered already
            logger.debug(f"[Player {session.session_id}] Buffer full with target reached, not reloading")
            return

        logger.info(f"[Player {session.session_id}] Buffer full, trimming before resuming")
        self.purge_buffer()
        self._schedule(session, self.settings.buffer_full_resume_delay, self._resume_after_buffer_full)

    def _resume_after_buffer_full(self, session: PlaybackSession) -> None:
        if session.loaded_segment_count < session.target_segment_count:
            self._restart_load(session)

    def _restart_load(self, session: PlaybackSession) -> None:
        if session.engine is not None:
            session.engine.start_load()

    def _recover_media(self, session: PlaybackSession) -> None:
        if session.engine is not None:
            session.engine.recover_media_error()

    # ── Sink events ─────────────────────────────────────────────────

    def _on_loaded_metadata(self, session: PlaybackSession) -> None:
        if session is self._session:
            self._apply_rate(session)

    def _on_time_update(self, session: PlaybackSession) -> None:
        if session is not self._session or self.sink.current_time <= 0:
            return
        now = self._clock()
        if session.last_purge_at is None or now - session.last_purge_at > self.settings.purge_throttle_seconds:
            session.last_purge_at = now
            self.purge_buffer()

    # ── Buffer trimming ─────────────────────────────────────────────

    def purge_buffer(self) -> int:
        """
        Drop buffered media ending more than the retention window behind the
        playback position. Nothing at or after the position is touched.

        Best effort: failures are logged and otherwise ignored.

        Returns:
            Number of ranges trimmed
        """
        session = self._session
        if session is None or session.engine is None:
            return 0

        cutoff = self.sink.current_time - self.settings.purge_retention_seconds
        trimmed = 0
        try:
            for start, end in list(self.sink.buffered):
                if end < cutoff:
                    session.engine.flush_buffer(start, end)
                elif start < cutoff < end:
                    session.engine.flush_buffer(start, cutoff)
                else:
                    continue
                trimmed += 1
                logger.debug(f"[Player {session.session_id}] Trimmed {start:.1f}s-{min(end, cutoff):.1f}s")
        except Exception as e:
            logger.warning(f"[Player {session.session_id}] Buffer trim failed: {e}")
        return trimmed

    # ── Stall detection ─────────────────────────────────────────────

    async def _stall_watch(self, session: PlaybackSession) -> None:
        while not session.closed:
            await asyncio.sleep(self.settings.stall_check_interval)
            self.check_stall()

    def check_stall(self) -> None:
        """
        React to segments no longer arriving while below the readiness target.

        Long stall: force the engine to reload, at most once per long-stall
        interval. Short stall with something loaded: start playing what is there.
        """
        session = self._session
        if session is None or session.engine is None:
            return
        if session.buffer_state not in (BufferState.BUFFERING, BufferState.PLAYABLE):
            return
        if session.target_reached or session.last_fragment_received_at is None:
            return

        now = self._clock()
        idle = now - session.last_fragment_received_at

        if idle > self.settings.long_stall_seconds and (
            session.last_forced_reload_at is None
            or now - session.last_forced_reload_at >= self.settings.long_stall_seconds
        ):
            logger.warning(
                f"[Player {session.session_id}] Stalled for {idle:.0f}s at "
                f"{session.loaded_segment_count}/{session.target_segment_count}, forcing reload"
            )
            session.last_forced_reload_at = now
            session.forced_reloads += 1
            try:
                session.engine.start_load()
            except Exception as e:
                logger.warning(f"[Player {session.session_id}] Forced reload failed: {e}")

        if (idle > self.settings.short_stall_seconds and session.loaded_segment_count > 0
                and session.buffer_state == BufferState.BUFFERING):
            logger.info(
                f"[Player {session.session_id}] Starting early with "
                f"{session.loaded_segment_count}/{session.target_segment_count} segments"
            )
            self._start_playback(session)

    # ── Helpers ─────────────────────────────────────────────────────

    def _start_playback(self, session: PlaybackSession) -> None:
        session.buffer_state = BufferState.PLAYABLE
        try:
            self.sink.play()
        except Exception as e:
            logger.warning(f"[Player {session.session_id}] Autoplay failed: {e}")

    def _fail(self, session: PlaybackSession, message: str, expected: bool = False) -> None:
        session.buffer_state = BufferState.ERROR
        session.error = message
        if expected:
            logger.info(f"[Player {session.session_id}] {message}")
        else:
            logger.error(f"[Player {session.session_id}] {message}")

    def _spawn(self, session: PlaybackSession, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        session.tasks.add(task)
        task.add_done_callback(session.tasks.discard)
        return task

    def _schedule(self, session: PlaybackSession, delay: float,
                  callback: Callable[[PlaybackSession], None]) -> asyncio.Task:
        async def _delayed():
            await asyncio.sleep(delay)
            if session is self._session and not session.closed:
                callback(session)

        return self._spawn(session, _delayed())
