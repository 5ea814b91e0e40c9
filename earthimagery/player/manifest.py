"""
Manifest fetch and validation.

Before a segment engine is attached, the playlist is fetched once to tell
"nothing recorded in this range" apart from a real playlist. No timeout is
applied beyond the HTTP client's own defaults.
"""
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

EXTINF = "#EXTINF"


class NoContentError(Exception):
    """The requested range has no segments."""


class ManifestFetchError(Exception):
    """The playlist could not be fetched."""

    def __init__(self, status_code: int = 0, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Error {status_code}: {reason}" if status_code else reason)


@dataclass
class ManifestCheck:
    url: str
    text: str
    segment_count: int
    max_duration: float


def inspect_manifest(text: str) -> ManifestCheck:
    """
    Count segments in a playlist without fully parsing it.

    Raises:
        NoContentError: no #EXTINF line, or no segment reference line
    """
    segment_count = 0
    references = 0
    max_duration = 0.0
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith(EXTINF + ":"):
            segment_count += 1
            try:
                max_duration = max(max_duration, float(line.split(":", 1)[1].split(",", 1)[0]))
            except ValueError:
                pass
        elif line and not line.startswith("#"):
            references += 1

    if segment_count == 0 or references == 0:
        raise NoContentError("Playlist has no segments")

    return ManifestCheck(url="", text=text, segment_count=segment_count, max_duration=max_duration)


async def fetch_manifest(client: httpx.AsyncClient, url: str) -> ManifestCheck:
    """
    Fetch a playlist and make sure it has something to play.

    Raises:
        NoContentError: 404, or a playlist without segments
        ManifestFetchError: any other failure status or a transport error
    """
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        logger.warning(f"[Manifest] Fetch failed for {url}: {e}")
        raise ManifestFetchError(reason=str(e) or type(e).__name__)

    if response.status_code == 404:
        raise NoContentError("No video available for this period")
    if not response.is_success:
        raise ManifestFetchError(response.status_code, response.reason_phrase)

    check = inspect_manifest(response.text)
    check.url = url
    logger.debug(f"[Manifest] {url}: {check.segment_count} segments")
    return check
