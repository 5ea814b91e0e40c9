"""
Playlist synthesis - stitch per-day manifests into one VOD playlist.

A request for a date range reads the day manifest of every calendar day in the
range (oldest first) and concatenates their segments, in their original order,
into a single playlist. Segment URIs are rewritten to go through the HLS
gateway so players never need to know where the files live on disk.

Days without a manifest contribute nothing. The result is a pure function of
the inputs and of the day manifests on disk.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Iterator, List, Optional

from .day_manifest import DAY_PLAYLIST_NAME, parse_day_manifest, read_day_manifest
from .identity import DatasetIdentity

logger = logging.getLogger(__name__)

DEFAULT_TARGET_DURATION = 12
DEFAULT_GATEWAY_PREFIX = "/api/hls"
DEFAULT_SEGMENT_TIME = 10

DISCONTINUITY = "#EXT-X-DISCONTINUITY"
ENDLIST = "#EXT-X-ENDLIST"


@dataclass(frozen=True)
class PlaylistSegment:
    duration: float
    uri: str
    extinf: str
    discontinuity: bool = False


@dataclass
class VirtualPlaylist:
    """A date range of segments rendered as a single on-demand playlist."""
    identity: DatasetIdentity
    from_date: date
    to_date: date
    segments: List[PlaylistSegment] = field(default_factory=list)
    max_duration: float = 0.0
    days_with_data: int = 0
    default_target_duration: int = DEFAULT_TARGET_DURATION

    @property
    def segment_count(self) -> int:
        return len(self.segments)

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @property
    def target_duration(self) -> int:
        return math.ceil(self.max_duration) or self.default_target_duration

    @property
    def total_duration(self) -> float:
        return sum(s.duration for s in self.segments)

    @property
    def text(self) -> str:
        """The playlist in wire format."""
        lines = [
            "#EXTM3U",
            "#EXT-X-VERSION:3",
            "#EXT-X-PLAYLIST-TYPE:VOD",
            f"#EXT-X-TARGETDURATION:{self.target_duration}",
            "#EXT-X-MEDIA-SEQUENCE:0",
        ]
        for segment in self.segments:
            if segment.discontinuity:
                lines.append(DISCONTINUITY)
            lines.append(segment.extinf)
            lines.append(segment.uri)
        lines.append(ENDLIST)
        return "\n".join(lines) + "\n"


@dataclass
class RangeInfo:
    """Aggregate availability figures for a date range."""
    available_days: int = 0
    total_segments: int = 0
    estimated_duration_seconds: int = 0

    @property
    def estimated_duration_formatted(self) -> str:
        return format_duration(self.estimated_duration_seconds)

    def to_dict(self) -> dict:
        return {
            "availableDays": self.available_days,
            "totalSegments": self.total_segments,
            "estimatedDurationSeconds": self.estimated_duration_seconds,
            "estimatedDurationFormatted": self.estimated_duration_formatted,
        }


def iter_days(from_date: date, to_date: date) -> Iterator[date]:
    """Every calendar day from from_date to to_date inclusive, ascending."""
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)


def segment_url(gateway_prefix: str, identity: DatasetIdentity, day: date, filename: str) -> str:
    return f"{gateway_prefix.rstrip('/')}/{identity.key}/{day.isoformat()}/{filename}"


def synthesize(
    identity: DatasetIdentity,
    from_date: date,
    to_date: date,
    hls_root: Path,
    gateway_prefix: str = DEFAULT_GATEWAY_PREFIX,
    insert_discontinuities: bool = False,
    default_target_duration: int = DEFAULT_TARGET_DURATION,
) -> VirtualPlaylist:
    """
    Build the virtual playlist for a dataset over an inclusive date range.

    The range length is not checked here; that belongs to request validation.

    Args:
        identity: Dataset to stream
        from_date: First day (inclusive)
        to_date: Last day (inclusive)
        hls_root: Directory holding <dataset key>/<date>/playlist.m3u8
        gateway_prefix: URL prefix of the segment gateway
        insert_discontinuities: Mark each day boundary with #EXT-X-DISCONTINUITY
        default_target_duration: Target duration when no segment was found

    Returns:
        VirtualPlaylist (possibly empty)
    """
    playlist = VirtualPlaylist(
        identity=identity,
        from_date=from_date,
        to_date=to_date,
        default_target_duration=default_target_duration,
    )

    for day in iter_days(from_date, to_date):
        manifest = read_day_manifest(hls_root, identity, day)
        if manifest is None or not manifest.segments:
            continue

        first_of_day = True
        for entry in manifest.segments:
            playlist.max_duration = max(playlist.max_duration, entry.duration)
            playlist.segments.append(PlaylistSegment(
                duration=entry.duration,
                uri=segment_url(gateway_prefix, identity, day, entry.filename),
                extinf=entry.extinf_line,
                discontinuity=insert_discontinuities and first_of_day and playlist.days_with_data > 0,
            ))
            first_of_day = False
        playlist.days_with_data += 1

    logger.debug(
        f"[Playlist] {identity.key} {from_date}..{to_date}: "
        f"{playlist.segment_count} segments over {playlist.days_with_data} days"
    )
    return playlist


def _count_day_segments(path: Path) -> int:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return 0
    return len(parse_day_manifest(text))


def list_dataset_keys(hls_root: Path) -> List[str]:
    """Dataset directories (4-part keys) present under the HLS root."""
    root = Path(hls_root)
    if not root.is_dir():
        return []
    return sorted(
        entry.name for entry in root.iterdir()
        if entry.is_dir() and DatasetIdentity.is_key(entry.name)
    )


def range_info(
    from_date: date,
    to_date: date,
    hls_root: Path,
    identity: Optional[DatasetIdentity] = None,
    segment_time: int = DEFAULT_SEGMENT_TIME,
) -> RangeInfo:
    """
    Availability statistics for a range, without building the playlist.

    With an identity, the counts come from exactly the day manifests synthesize()
    would read. Without one, every dataset under the HLS root is aggregated and a
    day counts as available when any dataset has a manifest for it.

    The duration is an estimate: total segments times the nominal segment time.
    """
    if identity is not None:
        keys = [identity.key]
    else:
        keys = list_dataset_keys(hls_root)

    info = RangeInfo()
    for day in iter_days(from_date, to_date):
        day_segments = 0
        for key in keys:
            path = Path(hls_root) / key / day.isoformat() / DAY_PLAYLIST_NAME
            if path.is_file():
                day_segments += _count_day_segments(path)
        if day_segments > 0:
            info.available_days += 1
            info.total_segments += day_segments

    info.estimated_duration_seconds = info.total_segments * segment_time
    return info


def format_duration(seconds: int) -> str:
    """Format seconds as '1h 2m 3s', '2m 3s' or '3s'."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
