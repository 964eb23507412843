"""Pydantic models for database entities and command output."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class VideoStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class VideoRecord(BaseModel):
    id: str
    project_id: str
    source_key: str
    source_url: str | None = None
    title: str | None = None
    original_filename: str | None = None
    mime_type: str | None = None
    file_size_bytes: int | None = None

    proxy_key: str | None = None
    proxy_url: str | None = None
    thumbnail_key: str | None = None
    thumbnail_url: str | None = None
    sprite_key: str | None = None
    sprite_url: str | None = None
    sprite_vtt_key: str | None = None
    sprite_vtt_url: str | None = None
    streaming_high_key: str | None = None
    streaming_high_url: str | None = None

    # Probed metadata; None means unknown, never zero
    duration_sec: float | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    bitrate: int | None = None

    status: VideoStatus = VideoStatus.UPLOADED
    error_message: str | None = None
    processing_started_at: str | None = None
    claim_token: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class AssetCommit(BaseModel):
    """Fields written together with status='ready'.

    Only explicitly set fields are written, so a field passed as None clears
    the column while an omitted field keeps its value.
    """

    model_config = ConfigDict(extra="forbid")

    proxy_key: str | None = None
    proxy_url: str | None = None
    thumbnail_key: str | None = None
    thumbnail_url: str | None = None
    sprite_key: str | None = None
    sprite_url: str | None = None
    sprite_vtt_key: str | None = None
    sprite_vtt_url: str | None = None
    streaming_high_key: str | None = None
    streaming_high_url: str | None = None
    duration_sec: float | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    bitrate: int | None = None


class VideoInfo(BaseModel):
    video_id: str
    project_id: str
    title: str | None = None
    status: VideoStatus
    duration_formatted: str | None = None
    resolution: str | None = None
    fps: float | None = None
    bitrate_kbps: int | None = None
    source_url: str | None = None
    assets: dict[str, str | None]
    error_message: str | None = None
    updated_at: str | None = None


class VideoListItem(BaseModel):
    video_id: str
    project_id: str
    title: str | None = None
    status: VideoStatus
    duration_formatted: str | None = None
