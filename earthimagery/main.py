"""
EarthImagery API - date-range timelapse playlists over daily satellite HLS segments
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from .config import get_settings

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    print("Starting EarthImagery API...")

    hls_root = settings.hls_root
    if hls_root.is_dir():
        print(f"[Startup] Serving HLS data from {hls_root}")
    else:
        print(f"[Startup] Warning: HLS root {hls_root} does not exist yet")

    yield

    # Shutdown
    print("[Shutdown] Clearing playlist cache...")
    from .routers.playlist import get_playlist_cache
    get_playlist_cache().clear()
    print("EarthImagery shutdown complete.")


app = FastAPI(
    title="EarthImagery",
    description="Satellite imagery timelapse streaming",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware - segments are fetched by browser players from any origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers - all under /api prefix
from .routers import playlist, hls, datasets

app.include_router(playlist.router, prefix="/api/playlist", tags=["Playlist"])
app.include_router(hls.router, prefix="/api/hls", tags=["HLS"])
app.include_router(datasets.router, prefix="/api/datasets", tags=["Datasets"])


@app.get("/api")
async def api_root():
    return {
        "name": "EarthImagery",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "earthimagery.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
