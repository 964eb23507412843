"""Configuration via environment variables, config.json, and .env files."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vpipe.core.constants import (
    CONFIG_FILE_PATH,
    DEFAULT_DB_PATH,
    DEFAULT_FFMPEG_TIMEOUT,
    DEFAULT_FFPROBE_TIMEOUT,
    DEFAULT_PROCESSING_STALE_SEC,
    DEFAULT_QUEUE_ATTEMPTS,
    DEFAULT_QUEUE_BACKOFF_SEC,
    DEFAULT_QUEUE_NAME,
    DEFAULT_QUEUE_STALL_SEC,
    DEFAULT_SPRITE_COLUMNS,
    DEFAULT_SPRITE_INTERVAL_SEC,
    DEFAULT_SPRITE_THUMB_WIDTH,
    DEFAULT_SYNC_MAX_WORKERS,
    DEFAULT_TEMP_DIR,
    DEFAULT_WORKER_CONCURRENCY,
)

# Keys that may be persisted in config.json
FILE_KEYS = (
    "r2_endpoint",
    "r2_bucket",
    "r2_access_key",
    "r2_secret_key",
    "r2_region",
    "r2_public_url",
    "signed_url_expires",
    "use_video_queue",
    "redis_url",
    "queue_name",
    "ffmpeg_bin",
    "ffprobe_bin",
    "temp_dir",
)


def _load_config_file() -> dict:
    """Read ~/.config/vpipe/config.json if it exists, return as dict."""
    if not CONFIG_FILE_PATH.exists():
        return {}
    try:
        return json.loads(CONFIG_FILE_PATH.read_text())
    except Exception:
        return {}


def save_config(data: dict) -> Path:
    """Write config dict to ~/.config/vpipe/config.json. Returns the path."""
    CONFIG_FILE_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE_PATH.write_text(json.dumps(data, indent=2) + "\n")
    return CONFIG_FILE_PATH


class VPipeConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    db_path: Path = Field(default=DEFAULT_DB_PATH)

    # Object storage (S3-compatible, Cloudflare R2)
    r2_endpoint: str = Field(default="")
    r2_bucket: str = Field(default="")
    r2_access_key: str = Field(default="")
    r2_secret_key: str = Field(default="")
    r2_region: str = Field(default="auto")
    r2_public_url: str = Field(default="")
    signed_url_expires: int = Field(default=3600, gt=0)

    # Queue
    use_video_queue: bool = Field(default=False)
    redis_url: str = Field(default="")
    queue_name: str = Field(default=DEFAULT_QUEUE_NAME)
    queue_attempts: int = Field(default=DEFAULT_QUEUE_ATTEMPTS, ge=1)
    queue_backoff_seconds: float = Field(default=DEFAULT_QUEUE_BACKOFF_SEC, ge=0)
    queue_stall_seconds: float = Field(default=DEFAULT_QUEUE_STALL_SEC, ge=0)
    worker_concurrency: int = Field(default=DEFAULT_WORKER_CONCURRENCY, ge=1)
    sync_max_workers: int = Field(default=DEFAULT_SYNC_MAX_WORKERS, ge=1)

    # Media engine
    ffmpeg_bin: str = Field(default="ffmpeg")
    ffprobe_bin: str = Field(default="ffprobe")
    ffprobe_timeout: int = Field(default=DEFAULT_FFPROBE_TIMEOUT)
    ffmpeg_timeout: int = Field(default=DEFAULT_FFMPEG_TIMEOUT)

    # Pipeline
    temp_dir: Path = Field(default=DEFAULT_TEMP_DIR)
    sprite_interval_seconds: int = Field(default=DEFAULT_SPRITE_INTERVAL_SEC, gt=0)
    sprite_columns: int = Field(default=DEFAULT_SPRITE_COLUMNS, gt=0)
    sprite_thumb_width: int = Field(default=DEFAULT_SPRITE_THUMB_WIDTH, gt=0)
    processing_stale_seconds: int = Field(default=DEFAULT_PROCESSING_STALE_SEC)

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @property
    def queue_enabled(self) -> bool:
        """Queue dispatch requires both the feature flag and a Redis URL."""
        return self.use_video_queue and bool(self.redis_url)


def get_config(db_path: Path | None = None) -> VPipeConfig:
    """Create config with priority: env vars > config.json > defaults."""
    file_data = _load_config_file()

    # pydantic treats __init__ kwargs as highest priority, so only pass
    # config.json values for keys the environment does not set
    init_kwargs: dict = {}
    for key in FILE_KEYS:
        env_name = f"VPIPE_{key.upper()}"
        if key in file_data and env_name not in os.environ:
            init_kwargs[key] = file_data[key]

    config = VPipeConfig(**init_kwargs)

    if db_path is not None:
        config.db_path = db_path
    return config
