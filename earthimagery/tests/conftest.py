"""
Shared fixtures: a throwaway HLS tree and an app wired to it.
"""
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from earthimagery.config import Settings, get_settings
from earthimagery.services.hls import DatasetIdentity, PlaylistCache


GOES = DatasetIdentity("GOES18", "hi", "GEOCOLOR", "600x600")


def write_day(hls_root: Path, identity: DatasetIdentity, day: str, durations, prefix: str = "segment") -> Path:
    """Write a day playlist (and empty segment files) the way the encoder lays them out."""
    day_dir = hls_root / identity.key / day
    day_dir.mkdir(parents=True, exist_ok=True)
    lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:12", "#EXT-X-MEDIA-SEQUENCE:0"]
    for i, duration in enumerate(durations):
        name = f"{prefix}_{i:03d}.ts"
        lines.append(f"#EXTINF:{duration:.6f},")
        lines.append(name)
        (day_dir / name).write_bytes(b"\x47" * 188)
    lines.append("#EXT-X-ENDLIST")
    path = day_dir / "playlist.m3u8"
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def data_root():
    root = Path(tempfile.mkdtemp())
    (root / "hls").mkdir()
    yield root
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def hls_root(data_root):
    return data_root / "hls"


@pytest.fixture
def settings(data_root):
    return Settings(
        data_root_path=str(data_root),
        config_dir=str(data_root / "config"),
        playlist_cache_ttl=30.0,
    )


@pytest.fixture
def playlist_cache(settings):
    return PlaylistCache(ttl=settings.playlist_cache_ttl)


@pytest.fixture
def client(settings, playlist_cache):
    from earthimagery.main import app
    from earthimagery.routers.playlist import get_playlist_cache

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_playlist_cache] = lambda: playlist_cache
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
