"""
Timelapse playback client.

Fetches a date-range playlist from the server, buffers its segments into a
video sink and decides when playback may start.
"""
from .config import PLAYBACK_RATES, PlayerSettings

from .events import (
    ErrorCategory,
    ErrorDetails,
    FatalError,
    FragmentLoaded,
    ManifestParsed,
    NonFatalBufferFull,
)

from .sink import BufferedVideoSink, BufferFullError, MediaDecodeError, SinkBusyError

from .manifest import ManifestFetchError, NoContentError, fetch_manifest, inspect_manifest

from .engine import EngineConfig, HttpSegmentEngine, readiness_target

from .controller import (
    BufferState,
    PlaybackController,
    PlaybackSession,
    build_playlist_url,
    no_content_message,
)

__all__ = [
    "PLAYBACK_RATES",
    "PlayerSettings",
    "ErrorCategory",
    "ErrorDetails",
    "FatalError",
    "FragmentLoaded",
    "ManifestParsed",
    "NonFatalBufferFull",
    "BufferedVideoSink",
    "BufferFullError",
    "MediaDecodeError",
    "SinkBusyError",
    "ManifestFetchError",
    "NoContentError",
    "fetch_manifest",
    "inspect_manifest",
    "EngineConfig",
    "HttpSegmentEngine",
    "readiness_target",
    "BufferState",
    "PlaybackController",
    "PlaybackSession",
    "build_playlist_url",
    "no_content_message",
]
