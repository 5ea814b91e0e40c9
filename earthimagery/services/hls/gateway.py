"""
Segment gateway - maps playlist segment URLs back to files under the HLS root.
"""
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Content types by extension; anything else is served as a plain byte stream
MEDIA_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".m4s": "video/mp4",
    ".mp4": "video/mp4",
}
DEFAULT_MEDIA_TYPE = "application/octet-stream"


class PathTraversalError(ValueError):
    """Requested path resolves outside the HLS root."""


def media_type_for(path) -> str:
    return MEDIA_TYPES.get(Path(str(path)).suffix.lower(), DEFAULT_MEDIA_TYPE)


def resolve_gateway_path(hls_root: Path, relative_path: str) -> Path:
    """
    Resolve a gateway path (``<dataset key>/<date>/<file>``) to a file path.

    Symlinks and ``..`` components are resolved before the containment check,
    so nothing outside the HLS root can be reached.

    Raises:
        ValueError: empty path
        PathTraversalError: the resolved path escapes the HLS root
    """
    if not relative_path or not relative_path.strip("/"):
        raise ValueError("Path required")

    base = Path(hls_root).resolve()
    candidate = (base / relative_path.lstrip("/")).resolve()

    if candidate != base and base not in candidate.parents:
        logger.warning(f"[HLS] Rejected path outside data root: {relative_path}")
        raise PathTraversalError(relative_path)

    return candidate
