"""Remote key layout. Every derivative key gets a fresh uuid so reruns never collide."""

from __future__ import annotations

import re
import uuid

from vpipe.core.constants import (
    MAX_FILENAME_STEM,
    PREFIX_PROXIES,
    PREFIX_SPRITES,
    PREFIX_THUMBNAILS,
    PREFIX_VIDEOS,
)


def sanitize_filename(filename: str) -> tuple[str, str]:
    """Split into (safe stem, extension). Unsafe characters become underscores."""
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        stem, ext = filename, ""
    safe = re.sub(r"[^a-zA-Z0-9_-]", "_", stem)[:MAX_FILENAME_STEM] or "video"
    return safe, (ext.lower() or "mp4")


def original_key(project_id: str, filename: str) -> str:
    stem, ext = sanitize_filename(filename)
    return f"{PREFIX_VIDEOS}/{project_id}/{uuid.uuid4()}-{stem}.{ext}"


def thumbnail_key(project_id: str) -> str:
    return f"{PREFIX_THUMBNAILS}/{project_id}/{uuid.uuid4()}.jpg"


def proxy_key(project_id: str) -> str:
    return f"{PREFIX_PROXIES}/{project_id}/{uuid.uuid4()}.mp4"


def sprite_key(project_id: str) -> str:
    return f"{PREFIX_SPRITES}/{project_id}/{uuid.uuid4()}.jpg"


def sprite_index_key(project_id: str) -> str:
    return f"{PREFIX_SPRITES}/{project_id}/{uuid.uuid4()}.vtt"


def streaming_high_key(project_id: str) -> str:
    return f"{PREFIX_VIDEOS}/{project_id}/high-{uuid.uuid4()}.mp4"
