"""Asset pipeline orchestrator.

One run takes an uploaded source video to status 'ready' or 'failed':

    claim -> download -> probe -> policy -> generate -> upload -> commit

Nothing is written to the video record between the claim and the final
commit, so a run either records every derivative or none of them.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from vpipe.core.config import VPipeConfig
from vpipe.core.constants import CONTENT_TYPE_JPEG, CONTENT_TYPE_MP4, CONTENT_TYPE_VTT
from vpipe.core.exceptions import (
    ClaimLostError,
    CommitError,
    DatabaseError,
    DownloadError,
    PipelineError,
    StoreError,
    UploadError,
    VideoBusyError,
    VideoNotFoundError,
)
from vpipe.db.models import AssetCommit, VideoStatus
from vpipe.db.repository import Repository
from vpipe.pipeline import policy
from vpipe.pipeline.ffmpeg import MediaEngine, MediaMeta
from vpipe.pipeline.sprites import write_sprite_index
from vpipe.storage import keys
from vpipe.storage.base import ObjectStore
from vpipe.utils.workdir import scoped_workdir

logger = logging.getLogger(__name__)

THUMBNAIL = "thumbnail"
PROXY = "proxy"
SPRITE = "sprite"
SPRITE_VTT = "sprite_vtt"
STREAMING_HIGH = "streaming_high"


@dataclass
class DerivedAsset:
    kind: str
    local_path: Path
    key: str
    content_type: str


def _source_suffix(source_key: str) -> str:
    return PurePosixPath(source_key).suffix or ".mp4"


class AssetPipeline:
    def __init__(
        self,
        repo: Repository,
        store: ObjectStore,
        engine: MediaEngine,
        config: VPipeConfig,
    ):
        self.repo = repo
        self.store = store
        self.engine = engine
        self.config = config

    def run(
        self,
        video_id: str,
        *,
        source_key: str | None = None,
        project_id: str | None = None,
    ) -> dict:
        """Process one video. Returns {"status": "completed", ...} or raises PipelineError."""
        start_time = time.time()
        video = self.repo.get_video(video_id)
        source_key = source_key or video.source_key
        project_id = project_id or video.project_id

        # Step 1: claim. Nothing to roll back if this fails.
        claim_token = uuid.uuid4().hex
        try:
            claimed = self.repo.claim_for_processing(
                video_id, self.config.processing_stale_seconds, claim_token=claim_token,
            )
        except DatabaseError as e:
            raise PipelineError(f"Could not mark video {video_id} processing: {e}", video_id) from e
        if not claimed:
            raise VideoBusyError(f"Video {video_id} is already being processed", video_id)

        logger.info("Processing video_id=%s source=%s", video_id, source_key, extra={"video_id": video_id})

        try:
            with scoped_workdir(self.config.temp_dir, prefix=f"video-{video_id}-") as workdir:
                source = self._download(video_id, source_key, workdir)

                meta = self.engine.probe(source)
                logger.info(
                    "Probed video_id=%s codec=%s duration=%s size=%sx%s fps=%s bitrate=%s",
                    video_id, meta.codec, meta.duration_sec, meta.width, meta.height, meta.fps, meta.bitrate,
                )

                decision = policy.classify(meta.height, meta.bitrate_kbps)
                logger.info(
                    "Bitrate policy video_id=%s tier=%s bitrate_kbps=%s limit_kbps=%s streaming_high=%s",
                    video_id, decision.tier, meta.bitrate_kbps, decision.limit_kbps,
                    decision.needs_high_bitrate_derivative,
                )

                assets = self._generate(source, workdir, meta, decision, project_id)
                urls = self._upload(video_id, assets)
                self._commit(video_id, meta, assets, urls, claim_token)
        except BaseException as e:
            self._mark_failed(video_id, e, claim_token)
            if isinstance(e, PipelineError) or not isinstance(e, Exception):
                raise
            raise PipelineError(f"Processing failed for video {video_id}: {e}", video_id) from e

        elapsed = round(time.time() - start_time, 2)
        logger.info(
            "Processing complete video_id=%s elapsed=%ss", video_id, elapsed,
            extra={"video_id": video_id, "elapsed_sec": elapsed},
        )
        return {
            "status": "completed",
            "video_id": video_id,
            "tier": decision.tier,
            "streaming_high": decision.needs_high_bitrate_derivative,
            "elapsed_sec": elapsed,
        }

    # --- Steps ---

    def _download(self, video_id: str, source_key: str, workdir: Path) -> Path:
        local = workdir / f"original{_source_suffix(source_key)}"
        try:
            self.store.download_to(source_key, local)
        except (StoreError, OSError) as e:
            raise DownloadError(f"Download of {source_key} failed: {e}", video_id) from e
        logger.info("Downloaded %s video_id=%s", source_key, video_id)
        return local

    def _generate(
        self,
        source: Path,
        workdir: Path,
        meta: MediaMeta,
        decision: policy.BitratePolicyResult,
        project_id: str,
    ) -> list[DerivedAsset]:
        assets: list[DerivedAsset] = []

        thumb = self.engine.extract_thumbnail(
            source, workdir / "thumbnail.jpg", duration_sec=meta.duration_sec
        )
        assets.append(DerivedAsset(THUMBNAIL, thumb, keys.thumbnail_key(project_id), CONTENT_TYPE_JPEG))

        proxy = self.engine.generate_proxy(source, workdir / "proxy.mp4")
        assets.append(DerivedAsset(PROXY, proxy, keys.proxy_key(project_id), CONTENT_TYPE_MP4))

        sheet = self.engine.generate_sprite_sheet(
            source,
            workdir / "sprite.jpg",
            interval_seconds=self.config.sprite_interval_seconds,
            columns=self.config.sprite_columns,
            thumb_width=self.config.sprite_thumb_width,
            duration=meta.duration_sec,
            width=meta.width,
            height=meta.height,
        )
        sprite_key = keys.sprite_key(project_id)
        assets.append(DerivedAsset(SPRITE, sheet.path, sprite_key, CONTENT_TYPE_JPEG))

        # The index points at the sprite's public URL, which is known before upload
        index = write_sprite_index(workdir / "sprite.vtt", self.store.public_url(sprite_key), sheet)
        assets.append(DerivedAsset(SPRITE_VTT, index, keys.sprite_index_key(project_id), CONTENT_TYPE_VTT))

        if decision.needs_high_bitrate_derivative:
            high = self.engine.generate_streaming_high(
                source, workdir / "streaming_high.mp4", decision.target_bitrate_kbps
            )
            assets.append(
                DerivedAsset(STREAMING_HIGH, high, keys.streaming_high_key(project_id), CONTENT_TYPE_MP4)
            )

        return assets

    def _upload(self, video_id: str, assets: list[DerivedAsset]) -> dict[str, str]:
        urls: dict[str, str] = {}
        uploaded: list[str] = []
        for asset in assets:
            try:
                urls[asset.kind] = self.store.upload_file(asset.local_path, asset.key, asset.content_type)
            except (StoreError, OSError) as e:
                self._discard(video_id, uploaded)
                raise UploadError(f"Upload of {asset.kind} to {asset.key} failed: {e}", video_id) from e
            uploaded.append(asset.key)
            logger.info("Uploaded %s -> %s video_id=%s", asset.kind, asset.key, video_id)
        return urls

    def _discard(self, video_id: str, uploaded_keys: list[str]) -> None:
        """Best-effort removal of objects written by a run that will not be committed."""
        for key in uploaded_keys:
            try:
                self.store.delete(key)
            except StoreError as e:
                logger.warning("Could not delete orphan %s video_id=%s: %s", key, video_id, e)

    def _commit(
        self,
        video_id: str,
        meta: MediaMeta,
        assets: list[DerivedAsset],
        urls: dict[str, str],
        claim_token: str,
    ) -> None:
        by_kind = {a.kind: a for a in assets}
        high = by_kind.get(STREAMING_HIGH)
        commit = AssetCommit(
            proxy_key=by_kind[PROXY].key,
            proxy_url=urls[PROXY],
            thumbnail_key=by_kind[THUMBNAIL].key,
            thumbnail_url=urls[THUMBNAIL],
            sprite_key=by_kind[SPRITE].key,
            sprite_url=urls[SPRITE],
            sprite_vtt_key=by_kind[SPRITE_VTT].key,
            sprite_vtt_url=urls[SPRITE_VTT],
            # Cleared when not needed so a rerun never keeps a stale copy
            streaming_high_key=high.key if high else None,
            streaming_high_url=urls.get(STREAMING_HIGH),
            duration_sec=meta.duration_sec,
            width=meta.width,
            height=meta.height,
            fps=meta.fps,
            bitrate=meta.bitrate,
        )
        try:
            committed = self.repo.commit_video_assets(video_id, commit, claim_token=claim_token)
        except (DatabaseError, VideoNotFoundError) as e:
            logger.critical(
                "Commit failed after upload; remote assets are unrecorded video_id=%s keys=%s: %s",
                video_id, [a.key for a in assets], e,
                extra={"video_id": video_id},
            )
            raise CommitError(f"Commit failed for video {video_id}: {e}", video_id) from e
        if not committed:
            logger.error(
                "Claim lost to a newer run, discarding uploads video_id=%s", video_id,
                extra={"video_id": video_id},
            )
            self._discard(video_id, [a.key for a in assets])
            raise ClaimLostError(f"Video {video_id} was taken over by another run before commit", video_id)

    def _mark_failed(self, video_id: str, error: BaseException, claim_token: str) -> None:
        logger.error(
            "Processing failed video_id=%s: %s: %s", video_id, type(error).__name__, error,
            extra={"video_id": video_id, "status": VideoStatus.FAILED.value},
        )
        try:
            updated = self.repo.update_video_status(
                video_id, VideoStatus.FAILED, f"{type(error).__name__}: {error}"[:1000], claim_token=claim_token,
            )
            if not updated:
                logger.warning("Video held by a newer run, status left unchanged video_id=%s", video_id)
        except Exception:
            logger.exception("Could not mark video failed video_id=%s", video_id)
