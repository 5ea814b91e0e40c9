"""
Playlist router - one on-demand HLS playlist for a dataset over a date range.
"""
import asyncio
import logging
import traceback
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from ..config import Settings, get_settings
from ..services.hls import (
    InvalidRequest,
    PlaylistCache,
    range_info,
    synthesize,
    validate_identity,
    validate_range,
)
from .models import RangeInfoRequest, RangeInfoResponse

logger = logging.getLogger(__name__)

router = APIRouter()

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
NO_CONTENT_DETAIL = "No video available for this period"


@lru_cache()
def get_playlist_cache() -> PlaylistCache:
    return PlaylistCache(ttl=get_settings().playlist_cache_ttl)


@router.get("")
async def get_playlist(
    satellite: Optional[str] = None,
    sector: Optional[str] = None,
    product: Optional[str] = None,
    resolution: Optional[str] = None,
    from_date: Optional[str] = Query(default=None, alias="from"),
    to_date: Optional[str] = Query(default=None, alias="to"),
    settings: Settings = Depends(get_settings),
    cache: PlaylistCache = Depends(get_playlist_cache),
):
    """Synthesize the playlist of a dataset between two dates (inclusive)."""
    if not all((satellite, sector, product, resolution, from_date, to_date)):
        raise HTTPException(
            status_code=400,
            detail='Parameters "from", "to", "satellite", "sector", "product", "resolution" are required',
        )

    try:
        identity = validate_identity(satellite, sector, product, resolution)
        start, end = validate_range(from_date, to_date, settings.max_date_range_days)
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))

    def _build():
        return synthesize(
            identity,
            start,
            end,
            settings.hls_root,
            gateway_prefix=settings.gateway_prefix,
            insert_discontinuities=settings.insert_day_discontinuities,
            default_target_duration=settings.default_target_duration,
        )

    try:
        playlist = await cache.get_or_compute(
            (identity.key, start, end),
            lambda: asyncio.to_thread(_build),
        )
    except Exception as e:
        logger.error(f"[Playlist] Generation failed for {identity.key} {start}..{end}: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if playlist.is_empty:
        logger.info(f"[Playlist] No video for {identity.key} from {start} to {end}")
        raise HTTPException(status_code=404, detail=NO_CONTENT_DETAIL)

    logger.info(f"[Playlist] {identity.key} {start}..{end}: {playlist.segment_count} segments")
    return Response(
        content=playlist.text,
        media_type=PLAYLIST_MEDIA_TYPE,
        headers={"Cache-Control": f"public, max-age={settings.playlist_max_age}"},
    )


@router.post("", response_model=RangeInfoResponse)
async def get_range_info(body: RangeInfoRequest, settings: Settings = Depends(get_settings)):
    """Availability preview for a date range (days with data, segments, estimated duration)."""
    if not body.from_date or not body.to_date:
        raise HTTPException(status_code=400, detail='Parameters "from" and "to" are required')

    identity_parts = (body.satellite, body.sector, body.product, body.resolution)
    try:
        start, end = validate_range(body.from_date, body.to_date, settings.max_date_range_days)
        identity = validate_identity(*identity_parts) if any(identity_parts) else None
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        info = await asyncio.to_thread(
            range_info,
            start,
            end,
            settings.hls_root,
            identity=identity,
            segment_time=settings.hls_segment_time,
        )
    except Exception as e:
        logger.error(f"[Playlist] Range info failed for {start}..{end}: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return info.to_dict()
