"""
Segment-fetch engine.

Loads an HLS media playlist, then fetches its segments in order over HTTP and
appends them to a video sink. Progress and failures are reported as typed
events (see events.py) to the handlers registered with on().

Architecture:
    playlist URL -> httpx -> m3u8 parse -> segment fetch loop -> VideoSink
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import List, Optional, Protocol
from urllib.parse import urljoin

import httpx
import m3u8

from .config import READINESS_RATIO
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
from .sink import BufferFullError, MediaDecodeError, VideoSink

logger = logging.getLogger(__name__)


def readiness_target(total_segments: int, ratio: float = READINESS_RATIO) -> int:
    """Segments needed before playback may start: ceil(total * ratio), exactly."""
    fraction = Fraction(ratio).limit_denominator(1000)
    return -(-total_segments * fraction.numerator // fraction.denominator)


@dataclass
class EngineConfig:
    """Buffering and retry settings, tuned for long VOD timelapses."""
    # Buffer
    max_buffer_length: float = 30.0  # seconds ahead of the playback position
    max_buffer_size: int = 100 * 1000 * 1000  # 100MB, on top of the sink's own budget

    # Timeouts and retries
    manifest_loading_timeout: float = 60.0
    manifest_loading_max_retry: int = 3
    frag_loading_timeout: float = 300.0
    frag_loading_max_retry: int = 3
    frag_loading_retry_delay: float = 1.0
    frag_loading_max_retry_timeout: float = 30.0

    start_frag_prefetch: bool = True
    buffer_poll_interval: float = 0.25

    def adapted(self, total_segments: int, max_duration: float,
                ratio: float = READINESS_RATIO) -> "EngineConfig":
        """Config resized to the actual stream.

        The look-ahead window grows so that the readiness target fits in it
        while the sink is still paused at the start; otherwise loading would
        stop short of the target.
        """
        target = readiness_target(total_segments, ratio)
        return replace(
            self,
            max_buffer_length=max(self.max_buffer_length, target * max_duration),
        )


@dataclass(frozen=True)
class Fragment:
    sequence_number: int
    url: str
    start: float
    duration: float


class SegmentEngine(Protocol):
    config: EngineConfig

    def on(self, handler: EventHandler) -> None: ...

    def off(self, handler: EventHandler) -> None: ...

    def load_source(self, url: str) -> None: ...

    def attach_media(self, sink: VideoSink) -> None: ...

    def start_load(self) -> None: ...

    def recover_media_error(self) -> None: ...

    def flush_buffer(self, start: float, end: float) -> None: ...

    def destroy(self) -> None: ...


class _RetryableError(Exception):
    pass


class HttpSegmentEngine:
    """Fetches playlist segments with httpx and feeds them to a sink."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = "",
    ):
        self.config = config or EngineConfig()
        self.engine_id = str(uuid.uuid4())[:8]
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, follow_redirects=True)

        self._handlers: List[EventHandler] = []
        self._url: Optional[str] = None
        self._sink: Optional[VideoSink] = None
        self._fragments: List[Fragment] = []
        self._next_index = 0
        self._manifest_task: Optional[asyncio.Task] = None
        self._load_task: Optional[asyncio.Task] = None
        self._destroyed = False

    # ── Event registration ──────────────────────────────────────────

    def on(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def off(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def _emit(self, event: EngineEvent) -> None:
        if self._destroyed:
            return
        for handler in list(self._handlers):
            handler(event)

    # ── Public state ────────────────────────────────────────────────

    @property
    def fragments(self) -> List[Fragment]:
        return list(self._fragments)

    @property
    def next_index(self) -> int:
        return self._next_index

    @property
    def is_loading(self) -> bool:
        return self._load_task is not None and not self._load_task.done()

    # ── Source / media ──────────────────────────────────────────────

    def load_source(self, url: str) -> None:
        self._url = url
        if self._sink is not None:
            self._start_manifest_load()

    def attach_media(self, sink: VideoSink) -> None:
        sink.attach(self)
        self._sink = sink
        if self._url is not None:
            self._start_manifest_load()

    def _start_manifest_load(self) -> None:
        if self._manifest_task is None and not self._destroyed:
            self._manifest_task = asyncio.create_task(self._load_manifest())

    async def _load_manifest(self) -> None:
        url = self._url
        try:
            text = await self._fetch(
                url,
                timeout=self.config.manifest_loading_timeout,
                max_retry=self.config.manifest_loading_max_retry,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Engine {self.engine_id}] Manifest load failed for {url}: {e}")
            self._emit(FatalError(ErrorCategory.NETWORK, ErrorDetails.MANIFEST_LOAD_ERROR))
            return

        try:
            playlist = m3u8.loads(text.decode("utf-8"))
        except Exception as e:
            logger.error(f"[Engine {self.engine_id}] Manifest parse failed: {e}")
            self._emit(FatalError(ErrorCategory.OTHER, ErrorDetails.MANIFEST_PARSING_ERROR))
            return

        if not playlist.segments:
            self._emit(FatalError(ErrorCategory.OTHER, ErrorDetails.MANIFEST_PARSING_ERROR))
            return

        position = 0.0
        first_sn = playlist.media_sequence or 0
        fragments = []
        for index, segment in enumerate(playlist.segments):
            duration = float(segment.duration or 0.0)
            fragments.append(Fragment(
                sequence_number=first_sn + index,
                url=urljoin(url, segment.uri),
                start=position,
                duration=duration,
            ))
            position += duration
        self._fragments = fragments
        self._next_index = 0

        logger.info(f"[Engine {self.engine_id}] Manifest parsed: {len(fragments)} segments, {position:.1f}s")
        if self._sink is not None:
            self._sink.set_duration(position)
        self._emit(ManifestParsed(
            total_segments=len(fragments),
            max_duration=max(f.duration for f in fragments),
            total_duration=position,
        ))

        if self.config.start_frag_prefetch:
            self.start_load()

    # ── Segment loading ─────────────────────────────────────────────

    def start_load(self) -> None:
        """(Re)start fetching from the first segment not yet buffered.

        A fetch already in progress is abandoned and retried.
        """
        if self._destroyed or not self._fragments or self._sink is None:
            return
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = asyncio.create_task(self._load_fragments())

    async def _load_fragments(self) -> None:
        while self._next_index < len(self._fragments) and not self._destroyed:
            # Don't run further ahead of playback than the buffer allows
            while self._sink.buffered_ahead() >= self.config.max_buffer_length:
                await asyncio.sleep(self.config.buffer_poll_interval)

            fragment = self._fragments[self._next_index]
            try:
                data = await self._fetch(
                    fragment.url,
                    timeout=self.config.frag_loading_timeout,
                    max_retry=self.config.frag_loading_max_retry,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[Engine {self.engine_id}] Segment {fragment.sequence_number} failed: {e}")
                self._emit(FatalError(ErrorCategory.NETWORK, ErrorDetails.FRAG_LOAD_ERROR))
                return

            # A full buffer is reported once, then the segment waits until
            # trimming or playback frees enough room for it
            reported_full = False
            while True:
                try:
                    self._append(fragment, data)
                    break
                except BufferFullError:
                    if not reported_full:
                        logger.info(f"[Engine {self.engine_id}] Buffer full at segment {fragment.sequence_number}")
                        reported_full = True
                        self._emit(NonFatalBufferFull())
                    await asyncio.sleep(self.config.buffer_poll_interval)
                except MediaDecodeError as e:
                    logger.error(f"[Engine {self.engine_id}] Segment {fragment.sequence_number} not decodable: {e}")
                    self._emit(FatalError(ErrorCategory.MEDIA, ErrorDetails.BUFFER_APPEND_ERROR))
                    return

            self._next_index += 1
            self._emit(FragmentLoaded(sequence_number=fragment.sequence_number, duration=fragment.duration))

    def _append(self, fragment: Fragment, data: bytes) -> None:
        if self._sink.buffered_bytes + len(data) > self.config.max_buffer_size:
            raise BufferFullError(f"Engine buffer budget of {self.config.max_buffer_size} bytes reached")
        self._sink.append(fragment.start, fragment.duration, data)

    async def _fetch(self, url: str, timeout: float, max_retry: int) -> bytes:
        """GET with retries on transport errors and 5xx, exponential backoff."""
        attempt = 0
        while True:
            try:
                response = await self._client.get(url, timeout=timeout)
                if response.status_code >= 500:
                    raise _RetryableError(f"HTTP {response.status_code}")
                response.raise_for_status()
                return response.content
            except (httpx.TransportError, _RetryableError) as e:
                if attempt >= max_retry:
                    raise
                delay = min(
                    self.config.frag_loading_retry_delay * (2 ** attempt),
                    self.config.frag_loading_max_retry_timeout,
                )
                logger.debug(f"[Engine {self.engine_id}] Retry {attempt + 1}/{max_retry} for {url} in {delay:.1f}s: {e}")
                attempt += 1
                await asyncio.sleep(delay)

    # ── Recovery / cleanup ──────────────────────────────────────────

    def recover_media_error(self) -> None:
        """Reset the decode path and resume from the failed segment."""
        logger.info(f"[Engine {self.engine_id}] Recovering from media error at segment {self._next_index}")
        self.start_load()

    def flush_buffer(self, start: float, end: float) -> None:
        if self._sink is not None:
            self._sink.remove(start, end)

    def destroy(self) -> None:
        """Stop all loading, release the sink and drop every handler."""
        if self._destroyed:
            return
        self._destroyed = True
        self._handlers.clear()

        for task in (self._manifest_task, self._load_task):
            if task is not None and not task.done():
                task.cancel()
        self._manifest_task = None
        self._load_task = None

        if self._sink is not None:
            self._sink.detach(self)
            self._sink = None

        if self._owns_client:
            try:
                asyncio.get_running_loop().create_task(self._client.aclose())
            except RuntimeError:
                # No running loop left to close on; the client goes with the process
                logger.debug(f"[Engine {self.engine_id}] Client left open (no event loop)")

        logger.debug(f"[Engine {self.engine_id}] Destroyed")
