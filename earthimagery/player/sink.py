"""
Video output sinks.

A sink is what segments are buffered into and what plays them: in a browser
it is the <video> element. The sink belongs to whoever displays it; a
controller only attaches to it for the lifetime of one session.

BufferedVideoSink is an in-memory sink that keeps track of buffered time
ranges and a playback position. It is used headless (CLI) and in tests.
"""
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

LOADED_METADATA = "loadedmetadata"
TIME_UPDATE = "timeupdate"

# Ranges closer than this are reported as one
RANGE_TOLERANCE = 1e-6


class BufferFullError(Exception):
    """The sink cannot take more data until something is removed."""


class MediaDecodeError(Exception):
    """Appended data could not be decoded."""


class SinkBusyError(RuntimeError):
    """The sink is already attached to another owner."""


class VideoSink(Protocol):
    current_time: float
    paused: bool
    playback_rate: float

    @property
    def buffered(self) -> List[Tuple[float, float]]: ...

    @property
    def buffered_bytes(self) -> int: ...

    def buffered_ahead(self) -> float: ...

    def attach(self, owner: object) -> None: ...

    def detach(self, owner: object) -> None: ...

    def append(self, start: float, duration: float, data: bytes) -> None: ...

    def remove(self, start: float, end: float) -> None: ...

    def set_duration(self, duration: float) -> None: ...

    def play(self) -> None: ...

    def add_listener(self, event: str, callback: Callable[[], None]) -> None: ...

    def remove_listener(self, event: str, callback: Callable[[], None]) -> None: ...


class BufferedVideoSink:
    """In-memory video sink with a byte budget."""

    def __init__(self, max_buffer_bytes: int = 100 * 1000 * 1000):
        self.max_buffer_bytes = max_buffer_bytes
        self.current_time = 0.0
        self.paused = True
        self.playback_rate = 1.0
        self.duration = 0.0
        self.play_calls = 0

        self._chunks: List[List[float]] = []  # [start, end, bytes]
        self._owner: Optional[object] = None
        self._listeners: Dict[str, List[Callable[[], None]]] = defaultdict(list)

    # ── Attachment ──────────────────────────────────────────────────

    @property
    def owner(self) -> Optional[object]:
        return self._owner

    @property
    def is_attached(self) -> bool:
        return self._owner is not None

    def attach(self, owner: object) -> None:
        """Attach a new source. Like a media element, this resets the playback rate."""
        if self._owner is not None and self._owner is not owner:
            raise SinkBusyError("Sink is already attached to another source")
        self._owner = owner
        self.playback_rate = 1.0

    def detach(self, owner: object) -> None:
        """Drop the source and everything buffered from it."""
        if self._owner is not owner:
            return
        self._owner = None
        self._chunks.clear()
        self.current_time = 0.0
        self.duration = 0.0
        self.paused = True

    # ── Buffer ──────────────────────────────────────────────────────

    @property
    def buffered_bytes(self) -> int:
        return int(sum(chunk[2] for chunk in self._chunks))

    @property
    def buffered(self) -> List[Tuple[float, float]]:
        """Buffered time ranges, merged and sorted."""
        ranges: List[Tuple[float, float]] = []
        for start, end, _ in sorted(self._chunks):
            if ranges and start <= ranges[-1][1] + RANGE_TOLERANCE:
                ranges[-1] = (ranges[-1][0], max(ranges[-1][1], end))
            else:
                ranges.append((start, end))
        return ranges

    def buffered_ahead(self) -> float:
        """Seconds buffered contiguously from the playback position."""
        for start, end in self.buffered:
            if start - RANGE_TOLERANCE <= self.current_time < end:
                return end - self.current_time
        return 0.0

    def append(self, start: float, duration: float, data: bytes) -> None:
        if self._owner is None:
            raise RuntimeError("No source attached")
        if self.buffered_bytes + len(data) > self.max_buffer_bytes:
            raise BufferFullError(f"Buffer full ({self.buffered_bytes} bytes buffered)")
        self._chunks.append([start, start + duration, len(data)])

    def remove(self, start: float, end: float) -> None:
        """Remove buffered media in [start, end)."""
        kept: List[List[float]] = []
        for c_start, c_end, size in self._chunks:
            if c_end <= start or c_start >= end:
                kept.append([c_start, c_end, size])
                continue
            length = c_end - c_start
            # Keep whatever lies outside the removed window, sized pro rata
            if c_start < start:
                kept.append([c_start, start, size * (start - c_start) / length])
            if c_end > end:
                kept.append([end, c_end, size * (c_end - end) / length])
        self._chunks = kept

    def set_duration(self, duration: float) -> None:
        self.duration = duration
        self._emit(LOADED_METADATA)

    # ── Playback ────────────────────────────────────────────────────

    def play(self) -> None:
        self.paused = False
        self.play_calls += 1

    def pause(self) -> None:
        self.paused = True

    def seek(self, position: float) -> None:
        self.current_time = max(0.0, position)
        self._emit(TIME_UPDATE)

    def advance(self, seconds: float) -> None:
        """Move the playback position forward by wall-clock seconds, if playing."""
        if self.paused:
            return
        position = self.current_time + seconds * self.playback_rate
        if self.duration:
            position = min(position, self.duration)
        self.current_time = position
        self._emit(TIME_UPDATE)

    # ── Events ──────────────────────────────────────────────────────

    def add_listener(self, event: str, callback: Callable[[], None]) -> None:
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable[[], None]) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def _emit(self, event: str) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback()
            except Exception as e:
                logger.warning(f"[Sink] {event} listener failed: {e}")
