"""
EarthImagery configuration - data locations and playlist tuning
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
import os


def get_data_root() -> Path:
    """Get the default data root (where the per-day HLS directories live)"""
    return Path(os.environ.get('DATA_ROOT_PATH', Path.cwd() / 'public' / 'data'))


class Settings(BaseSettings):
    # Storage
    data_root_path: str = str(get_data_root())
    hls_dir: str = "hls"  # Sub-directory of data_root_path holding <dataset>/<date>/playlist.m3u8
    config_dir: str = "./config"  # datasets-status.json and download-tracking.json

    # Playlist synthesis
    max_date_range_days: int = 365
    hls_segment_time: int = 10  # Nominal segment duration used by range-info estimates
    default_target_duration: int = 12  # Target duration when a range has no segments
    gateway_prefix: str = "/api/hls"
    insert_day_discontinuities: bool = False

    # Caching
    playlist_cache_ttl: float = 30.0  # Short, so "today" picks up new segments
    playlist_max_age: int = 300  # Cache-Control for synthesized playlists
    segment_max_age: int = 300  # Cache-Control for gateway responses

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "EARTHIMAGERY_"

    @property
    def hls_root(self) -> Path:
        return Path(self.data_root_path) / self.hls_dir


@lru_cache()
def get_settings() -> Settings:
    return Settings()
