"""Defaults and fixed parameters for the processing pipeline."""

from pathlib import Path

# Paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "vpipe"
DEFAULT_DB_PATH = DEFAULT_CONFIG_DIR / "vpipe.db"
DEFAULT_TEMP_DIR = Path("temp-processing")

# Config file
CONFIG_FILE_PATH = DEFAULT_CONFIG_DIR / "config.json"

# Bitrate matrix (kbps). Tiers are checked top-down; height bounds are inclusive.
TIER_4K = "4K"
TIER_FHD = "FHD"
TIER_SD = "SD"
BITRATE_TIERS: list[tuple[str, int, int, int]] = [
    # (tier, min_height, limit_kbps, target_kbps)
    (TIER_4K, 2160, 50000, 35000),
    (TIER_FHD, 1080, 20000, 15000),
    (TIER_SD, 0, 15000, 10000),
]
UNKNOWN_HEIGHT_FALLBACK = 1080

# Thumbnail
THUMBNAIL_WIDTH = 640
THUMBNAIL_AT_SECONDS = 1.0

# Proxy (720p, bounded bitrate)
PROXY_MAX_HEIGHT = 720
PROXY_CRF = 23
PROXY_VIDEO_KBPS = 5000
PROXY_AUDIO_KBPS = 192

# Streaming high
STREAMING_HIGH_AUDIO_KBPS = 320
AUDIO_SAMPLE_RATE = 48000

# Sprite sheet
DEFAULT_SPRITE_INTERVAL_SEC = 5
DEFAULT_SPRITE_COLUMNS = 10
DEFAULT_SPRITE_THUMB_WIDTH = 160
DEFAULT_ASPECT_RATIO = 9 / 16

# Subprocess timeouts (seconds)
DEFAULT_FFPROBE_TIMEOUT = 30
DEFAULT_FFMPEG_TIMEOUT = 3600

# Queue
DEFAULT_QUEUE_NAME = "video-processing"
DEFAULT_QUEUE_ATTEMPTS = 3
DEFAULT_QUEUE_BACKOFF_SEC = 1.0
DEFAULT_WORKER_CONCURRENCY = 1
# A claimed job with no heartbeat for this long is requeued
DEFAULT_QUEUE_STALL_SEC = 300.0
DEFAULT_SYNC_MAX_WORKERS = 4

# A 'processing' row older than this is considered abandoned and can be reclaimed.
# Longer than a run whose four ffmpeg invocations all hit their timeout.
DEFAULT_PROCESSING_STALE_SEC = 4 * DEFAULT_FFMPEG_TIMEOUT + 2 * 3600

# Content types
CONTENT_TYPE_JPEG = "image/jpeg"
CONTENT_TYPE_MP4 = "video/mp4"
CONTENT_TYPE_VTT = "text/vtt"
CONTENT_TYPE_DEFAULT = "application/octet-stream"

# Remote key prefixes
PREFIX_VIDEOS = "videos"
PREFIX_THUMBNAILS = "thumbnails"
PREFIX_PROXIES = "proxies"
PREFIX_SPRITES = "sprites"

# Original filenames are sanitized to this many characters before the extension
MAX_FILENAME_STEM = 50

# Video extensions accepted by `vpipe upload`
VIDEO_EXTENSIONS = {
    ".mp4", ".mkv", ".avi", ".mov", ".webm", ".flv",
    ".wmv", ".m4v", ".mpg", ".mpeg", ".3gp", ".ts",
}
