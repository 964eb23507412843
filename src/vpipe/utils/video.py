"""Video file discovery and validation."""

from __future__ import annotations

import mimetypes
from pathlib import Path

from vpipe.core.constants import CONTENT_TYPE_DEFAULT, VIDEO_EXTENSIONS


def is_video_file(path: Path) -> bool:
    """Check if path points to a video file by extension."""
    return path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS


def guess_content_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or CONTENT_TYPE_DEFAULT
