"""Backfill thumbnails and scrubber sprites for videos that are missing them."""

from __future__ import annotations

import logging

from vpipe.core.config import VPipeConfig
from vpipe.core.constants import CONTENT_TYPE_JPEG, CONTENT_TYPE_VTT
from vpipe.core.exceptions import VPipeError
from vpipe.db.models import AssetCommit, VideoStatus
from vpipe.db.repository import Repository
from vpipe.pipeline.ffmpeg import MediaEngine
from vpipe.pipeline.sprites import write_sprite_index
from vpipe.storage import keys
from vpipe.storage.base import ObjectStore
from vpipe.utils.workdir import scoped_workdir

logger = logging.getLogger(__name__)


def _discard(store: ObjectStore, uploaded: list[str]) -> None:
    for key in uploaded:
        try:
            store.delete(key)
        except VPipeError as e:
            logger.warning("Could not delete orphan %s: %s", key, e)


def ensure_video_assets(
    video_id: str,
    repo: Repository,
    store: ObjectStore,
    engine: MediaEngine,
    config: VPipeConfig,
) -> dict:
    """Generate whichever of thumbnail / sprite sheet a ready video lacks.

    Works from the proxy when one exists. All new references are committed
    in a single update, which only applies while the video is still ready.
    If a run claims it in the meantime the new assets are discarded and the
    result is marked skipped. Errors are reported in the result, not raised.
    """
    result = {
        "video_id": video_id,
        "thumbnail_generated": False,
        "sprite_generated": False,
        "skipped": False,
        "error": None,
    }

    try:
        video = repo.get_video(video_id)
        if video.status != VideoStatus.READY:
            result["error"] = f"Video is {video.status.value}, not ready"
            return result

        needs_thumbnail = not video.thumbnail_url
        needs_sprite = not video.sprite_vtt_url
        if not needs_thumbnail and not needs_sprite:
            return result

        source_key = video.proxy_key or video.source_key
        uploaded: list[str] = []
        commit = AssetCommit()

        with scoped_workdir(config.temp_dir, prefix=f"assets-{video_id}-") as workdir:
            local = workdir / "source.mp4"
            store.download_to(source_key, local)

            duration, width, height = video.duration_sec, video.width, video.height
            if not duration or not width or not height:
                meta = engine.probe(local)
                duration = duration or meta.duration_sec
                width = width or meta.width
                height = height or meta.height

            try:
                if needs_thumbnail:
                    logger.info("Generating thumbnail video_id=%s", video_id)
                    thumb = engine.extract_thumbnail(local, workdir / "thumbnail.jpg", duration_sec=duration)
                    key = keys.thumbnail_key(video.project_id)
                    commit.thumbnail_url = store.upload_file(thumb, key, CONTENT_TYPE_JPEG)
                    commit.thumbnail_key = key
                    uploaded.append(key)

                if needs_sprite:
                    logger.info("Generating sprites video_id=%s", video_id)
                    sheet = engine.generate_sprite_sheet(
                        local,
                        workdir / "sprite.jpg",
                        interval_seconds=config.sprite_interval_seconds,
                        columns=config.sprite_columns,
                        thumb_width=config.sprite_thumb_width,
                        duration=duration,
                        width=width,
                        height=height,
                    )
                    sprite_key = keys.sprite_key(video.project_id)
                    commit.sprite_url = store.upload_file(sheet.path, sprite_key, CONTENT_TYPE_JPEG)
                    commit.sprite_key = sprite_key
                    uploaded.append(sprite_key)

                    index = write_sprite_index(workdir / "sprite.vtt", commit.sprite_url, sheet)
                    vtt_key = keys.sprite_index_key(video.project_id)
                    commit.sprite_vtt_url = store.upload_file(index, vtt_key, CONTENT_TYPE_VTT)
                    commit.sprite_vtt_key = vtt_key
                    uploaded.append(vtt_key)

                committed = repo.commit_video_assets(video_id, commit, expected_status=VideoStatus.READY)
            except VPipeError:
                _discard(store, uploaded)
                raise

        if not committed:
            _discard(store, uploaded)
            logger.warning("Video changed state during backfill, commit skipped video_id=%s", video_id)
            result["skipped"] = True
            return result

        result["thumbnail_generated"] = needs_thumbnail
        result["sprite_generated"] = needs_sprite
        logger.info("Assets ensured video_id=%s", video_id)
    except (VPipeError, OSError) as e:
        logger.error("Asset backfill failed video_id=%s: %s", video_id, e)
        result["error"] = str(e)

    return result


def process_videos_with_missing_assets(
    repo: Repository,
    store: ObjectStore,
    engine: MediaEngine,
    config: VPipeConfig,
    limit: int = 10,
) -> dict:
    """Run ensure_video_assets over up to `limit` videos. Returns a summary."""
    summary = {"total": 0, "processed": 0, "skipped": 0, "failed": 0, "results": []}

    videos = repo.list_videos_missing_assets(limit)
    summary["total"] = len(videos)

    for video in videos:
        result = ensure_video_assets(video.id, repo, store, engine, config)
        summary["results"].append(result)
        if result["skipped"]:
            summary["skipped"] += 1
        elif result["error"]:
            summary["failed"] += 1
        else:
            summary["processed"] += 1

    return summary
