"""
Datasets router - read-only views of the datasets and their daily playlists.

Dataset lifecycle (discovery, enable/disable, sync) is handled by external
scripts; these endpoints only report what is configured and what is on disk.
"""
import logging
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..config import Settings, get_settings
from ..services.dataset_status import get_status_report
from ..services.hls import (
    DAY_PLAYLIST_NAME,
    DatasetIdentity,
    InvalidRequest,
    list_dataset_keys,
    parse_day_manifest,
    validate_identity,
)
from .models import DayPlaylist

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status")
async def get_datasets_status(settings: Settings = Depends(get_settings)):
    """Known datasets with their enabled / auto-download / status flags."""
    try:
        return get_status_report(Path(settings.config_dir))
    except Exception as e:
        logger.error(f"[Datasets] Failed to read dataset status: {e}")
        raise HTTPException(status_code=500, detail="Failed to read dataset status")


def _day_playlists(hls_root: Path, identity: DatasetIdentity, gateway_prefix: str) -> List[DayPlaylist]:
    dataset_dir = hls_root / identity.key
    playlists = []
    if not dataset_dir.is_dir():
        return playlists

    for day_dir in dataset_dir.iterdir():
        playlist_path = day_dir / DAY_PLAYLIST_NAME
        try:
            stats = playlist_path.stat()
            segments = parse_day_manifest(playlist_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError):
            # Not a day directory, or nothing encoded yet
            continue

        playlists.append(DayPlaylist(
            satellite=identity.source,
            sector=identity.sector,
            product=identity.product,
            resolution=identity.resolution,
            date=day_dir.name,
            playlist_url=f"{gateway_prefix.rstrip('/')}/{identity.key}/{day_dir.name}/{DAY_PLAYLIST_NAME}",
            segments=len(segments),
            duration=round(sum(s.duration for s in segments)),
            file_size=stats.st_size,
        ))
    return playlists


@router.get("/playlists")
async def get_dataset_playlists(
    satellite: Optional[str] = None,
    sector: Optional[str] = None,
    product: Optional[str] = None,
    resolution: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    """List the daily playlists of one dataset, or of every dataset on disk."""
    hls_root = settings.hls_root

    if any((satellite, sector, product, resolution)):
        try:
            identities = [validate_identity(satellite, sector, product, resolution)]
        except InvalidRequest as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        identities = [DatasetIdentity.from_key(key) for key in list_dataset_keys(hls_root)]

    playlists: List[DayPlaylist] = []
    for identity in identities:
        playlists.extend(_day_playlists(hls_root, identity, settings.gateway_prefix))

    # Newest first
    playlists.sort(key=lambda p: p.date, reverse=True)

    return {
        "success": True,
        "playlists": [p.model_dump() for p in playlists],
        "total": len(playlists),
    }
