"""
HLS playlist synthesis service.

Stitches the per-day HLS playlists of a dataset into one on-demand playlist
spanning a date range, and resolves the segment URLs it emits back to files.

Layout on disk:
    <data root>/<hls dir>/<satellite>.<sector>.<product>.<resolution>/<YYYY-MM-DD>/playlist.m3u8
"""
from .identity import DatasetIdentity, KEY_DELIMITER

from .day_manifest import (
    DAY_PLAYLIST_NAME,
    DayManifest,
    SegmentEntry,
    day_manifest_path,
    parse_day_manifest,
    read_day_manifest,
)

from .synthesizer import (
    DEFAULT_TARGET_DURATION,
    PlaylistSegment,
    RangeInfo,
    VirtualPlaylist,
    format_duration,
    iter_days,
    list_dataset_keys,
    range_info,
    synthesize,
)

from .validation import InvalidRequest, validate_identity, validate_range

from .cache import PlaylistCache

from .gateway import (
    PathTraversalError,
    media_type_for,
    resolve_gateway_path,
)

__all__ = [
    "DatasetIdentity",
    "KEY_DELIMITER",
    "DAY_PLAYLIST_NAME",
    "DayManifest",
    "SegmentEntry",
    "day_manifest_path",
    "parse_day_manifest",
    "read_day_manifest",
    "DEFAULT_TARGET_DURATION",
    "PlaylistSegment",
    "RangeInfo",
    "VirtualPlaylist",
    "format_duration",
    "iter_days",
    "list_dataset_keys",
    "range_info",
    "synthesize",
    "InvalidRequest",
    "validate_identity",
    "validate_range",
    "PlaylistCache",
    "PathTraversalError",
    "media_type_for",
    "resolve_gateway_path",
]
