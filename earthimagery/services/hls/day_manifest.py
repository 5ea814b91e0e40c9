"""
Per-day micro-manifest reader.

Each dataset has one HLS playlist per calendar day, written by the encoding
pipeline at::

    <hls root>/<dataset key>/<YYYY-MM-DD>/playlist.m3u8

Only the (duration, segment file) pairs are of interest here; everything else
in the day playlist is ignored.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import List, Optional

from .identity import DatasetIdentity

logger = logging.getLogger(__name__)

DAY_PLAYLIST_NAME = "playlist.m3u8"
EXTINF = "#EXTINF:"


@dataclass(frozen=True)
class SegmentEntry:
    """One segment of a day manifest."""
    duration: float
    filename: str
    extinf: str = ""  # #EXTINF line as written in the day playlist, preserved verbatim when present

    @property
    def extinf_line(self) -> str:
        if self.extinf:
            return self.extinf
        return f"{EXTINF}{self.duration:g},"


@dataclass
class DayManifest:
    """Ordered segments captured on one day for one dataset."""
    identity: DatasetIdentity
    day: date
    segments: List[SegmentEntry] = field(default_factory=list)
    path: Optional[Path] = None

    @property
    def segment_count(self) -> int:
        return len(self.segments)

    @property
    def total_duration(self) -> float:
        return sum(s.duration for s in self.segments)

    @property
    def max_duration(self) -> float:
        return max((s.duration for s in self.segments), default=0.0)


def day_dir(hls_root: Path, identity: DatasetIdentity, day: date) -> Path:
    """Directory holding one day of segments for a dataset."""
    return Path(hls_root) / identity.key / day.isoformat()


def day_manifest_path(hls_root: Path, identity: DatasetIdentity, day: date) -> Path:
    return day_dir(hls_root, identity, day) / DAY_PLAYLIST_NAME


def _parse_duration(line: str) -> float:
    """Extract the duration from an ``#EXTINF:<duration>,<title>`` line."""
    value = line[len(EXTINF):].split(",", 1)[0].strip()
    return float(value)


def parse_day_manifest(text: str) -> List[SegmentEntry]:
    """
    Parse the segment list out of a day playlist.

    Every #EXTINF line is paired with the next URI line. Entries whose duration
    cannot be parsed, or that have no URI before the next #EXTINF, are dropped.

    Args:
        text: Raw playlist content

    Returns:
        Segments in playlist order
    """
    entries: List[SegmentEntry] = []
    pending: Optional[tuple] = None  # (duration, extinf line)

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue

        if line.startswith(EXTINF):
            if pending is not None:
                logger.warning(f"[DayManifest] Segment without URI dropped: {pending[1]}")
            try:
                duration = _parse_duration(line)
            except ValueError:
                logger.warning(f"[DayManifest] Unparseable duration dropped: {line}")
                pending = None
                continue
            pending = (duration, line)
            continue

        if line.startswith("#"):
            continue

        if pending is not None:
            duration, extinf = pending
            entries.append(SegmentEntry(duration=duration, filename=line, extinf=extinf))
            pending = None

    return entries


def read_day_manifest(hls_root: Path, identity: DatasetIdentity, day: date) -> Optional[DayManifest]:
    """
    Load the day manifest of a dataset, if there is one.

    A missing or unreadable file means nothing was captured that day; it is
    reported as None, never raised.
    """
    path = day_manifest_path(hls_root, identity, day)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug(f"[DayManifest] No video for {identity.key}/{day.isoformat()}")
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"[DayManifest] Could not read {path}: {e}")
        return None

    return DayManifest(identity=identity, day=day, segments=parse_day_manifest(text), path=path)
