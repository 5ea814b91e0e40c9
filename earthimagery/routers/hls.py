"""
HLS gateway router - serves the segments referenced by synthesized playlists.

URLs look like /api/hls/<dataset key>/<YYYY-MM-DD>/<file> and map onto the
same layout under the HLS root. Nothing outside the HLS root is ever served.
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, Response

from ..config import Settings, get_settings
from ..services.hls import PathTraversalError, media_type_for, resolve_gateway_path

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Range",
}


@router.api_route("/{path:path}", methods=["GET", "HEAD"])
async def serve_hls_file(path: str, settings: Settings = Depends(get_settings)):
    """Serve a day playlist or segment file. Starlette FileResponse handles Range/206 and HEAD."""
    try:
        file_path = resolve_gateway_path(settings.hls_root, path)
    except PathTraversalError:
        return Response(content="Access denied", status_code=403)
    except ValueError:
        return Response(content="Path required", status_code=400)

    if not file_path.is_file():
        logger.debug(f"[HLS] File not found: {path}")
        return Response(content="File not found", status_code=404)

    return FileResponse(
        path=str(file_path),
        media_type=media_type_for(file_path),
        headers={
            **CORS_HEADERS,
            "Cache-Control": f"public, max-age={settings.segment_max_age}",
            "Accept-Ranges": "bytes",
        },
    )


@router.options("/{path:path}")
async def hls_options(path: str):
    return Response(status_code=200, headers=CORS_HEADERS)
