"""
Playback controller tuning.

The thresholds below drive readiness gating, stall recovery and buffer
trimming. They are plain constants so they can be referenced directly, and
PlayerSettings exposes them for override through the environment.
"""
from pydantic_settings import BaseSettings

# Playback may start once this share of the total segments is buffered
READINESS_RATIO = 2 / 3

# Stall handling (seconds without a newly received segment)
LONG_STALL_SECONDS = 30.0  # below target: force the engine to reload
SHORT_STALL_SECONDS = 10.0  # below target but something loaded: start anyway
STALL_CHECK_INTERVAL = 5.0

# Buffer trimming
PURGE_RETENTION_SECONDS = 5.0  # keep this much behind the playback position
PURGE_THROTTLE_SECONDS = 10.0  # at most one time-driven purge per interval

# Recovery delays
BUFFER_FULL_RESUME_DELAY = 1.0
MEDIA_RECOVERY_DELAY = 2.0
NETWORK_RETRY_DELAY = 2.0

# Speeds offered by the UI
PLAYBACK_RATES = (0.1, 0.25, 0.5, 1.0, 1.5, 2.0, 5.0, 10.0)


class PlayerSettings(BaseSettings):
    base_url: str = "http://127.0.0.1:3000"
    playlist_path: str = "/api/playlist"

    readiness_ratio: float = READINESS_RATIO
    long_stall_seconds: float = LONG_STALL_SECONDS
    short_stall_seconds: float = SHORT_STALL_SECONDS
    stall_check_interval: float = STALL_CHECK_INTERVAL
    purge_retention_seconds: float = PURGE_RETENTION_SECONDS
    purge_throttle_seconds: float = PURGE_THROTTLE_SECONDS
    buffer_full_resume_delay: float = BUFFER_FULL_RESUME_DELAY
    media_recovery_delay: float = MEDIA_RECOVERY_DELAY
    network_retry_delay: float = NETWORK_RETRY_DELAY

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "EARTHIMAGERY_PLAYER_"
