"""CRUD operations for video records."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from vpipe.core.exceptions import DatabaseError, VideoNotFoundError
from vpipe.db.connection import get_connection
from vpipe.db.models import (
    AssetCommit,
    VideoInfo,
    VideoListItem,
    VideoRecord,
    VideoStatus,
)
from vpipe.db.schema import migrate

_INSERT_COLUMNS = (
    "id", "project_id", "title", "original_filename", "mime_type",
    "file_size_bytes", "source_key", "source_url", "status",
)


def _fmt_duration(secs: float | None) -> str | None:
    """Format seconds as HH:MM:SS."""
    if secs is None:
        return None
    h = int(secs // 3600)
    m = int((secs % 3600) // 60)
    s = int(secs % 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


class Repository:
    def __init__(self, db_path: Path | None = None):
        self.conn = get_connection(db_path)
        # One connection is shared by the CLI thread and pipeline threads
        self._lock = threading.RLock()
        migrate(self.conn)

    def close(self) -> None:
        self.conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cur = self.conn.execute(sql, params)
                self.conn.commit()
                return cur
            except sqlite3.Error as e:
                self.conn.rollback()
                raise DatabaseError(f"Database write failed: {e}") from e

    def _fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    # --- Videos ---

    def insert_video(self, video: VideoRecord) -> None:
        values = (
            video.id, video.project_id, video.title, video.original_filename,
            video.mime_type, video.file_size_bytes, video.source_key,
            video.source_url, video.status.value,
        )
        placeholders = ", ".join("?" for _ in _INSERT_COLUMNS)
        with self._lock:
            try:
                self.conn.execute(
                    f"INSERT INTO videos ({', '.join(_INSERT_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                self.conn.commit()
            except sqlite3.IntegrityError as e:
                self.conn.rollback()
                raise DatabaseError(f"Video already exists: {e}") from e

    def get_video(self, video_id: str) -> VideoRecord:
        row = self._fetchone("SELECT * FROM videos WHERE id = ?", (video_id,))
        if not row:
            raise VideoNotFoundError(f"Video not found: {video_id}")
        return VideoRecord(**dict(row))

    def update_video_status(
        self,
        video_id: str,
        status: VideoStatus,
        error_message: str | None = None,
        claim_token: str | None = None,
    ) -> bool:
        """Set the status. With `claim_token`, only while that claim still holds the row.

        Returns False when the claim was lost to another run.
        """
        sql = """UPDATE videos
               SET status = ?, error_message = ?,
                   processing_started_at = CASE WHEN ? = 'processing'
                       THEN datetime('now') ELSE NULL END,
                   claim_token = NULL,
                   updated_at = datetime('now')
               WHERE id = ?"""
        params: tuple = (status.value, error_message, status.value, video_id)
        if claim_token is not None:
            sql += " AND claim_token = ?"
            params += (claim_token,)
        cur = self._execute(sql, params)
        if cur.rowcount == 0:
            self.get_video(video_id)
            return False
        return True

    def claim_for_processing(self, video_id: str, stale_after_sec: int, claim_token: str | None = None) -> bool:
        """Move a video to 'processing' unless another run already holds it.

        A 'processing' row whose claim is older than `stale_after_sec` is
        treated as abandoned (the worker died without reaching its failure
        handler) and can be claimed again. `claim_token` identifies this claim
        so later writes can check they still own the row.
        """
        cur = self._execute(
            """UPDATE videos
               SET status = 'processing', error_message = NULL,
                   processing_started_at = datetime('now'),
                   claim_token = ?,
                   updated_at = datetime('now')
               WHERE id = ?
                 AND (status != 'processing'
                      OR processing_started_at IS NULL
                      OR processing_started_at < datetime('now', ?))""",
            (claim_token, video_id, f"-{int(stale_after_sec)} seconds"),
        )
        if cur.rowcount == 1:
            return True
        # Distinguish "held by another run" from "no such video"
        self.get_video(video_id)
        return False

    def commit_video_assets(
        self,
        video_id: str,
        assets: AssetCommit,
        *,
        expected_status: VideoStatus | None = None,
        claim_token: str | None = None,
    ) -> bool:
        """Write derived assets, probed metadata and status='ready' in one statement.

        `expected_status` and `claim_token` make the write conditional on the
        row still being in that state or held by that claim. Returns False
        when the condition no longer matched and nothing was written.
        """
        fields = assets.model_dump(exclude_unset=True)
        assignments = [f"{name} = ?" for name in fields]
        assignments += [
            "status = 'ready'",
            "error_message = NULL",
            "processing_started_at = NULL",
            "claim_token = NULL",
            "updated_at = datetime('now')",
        ]
        where = ["id = ?"]
        params: list = [*fields.values(), video_id]
        if expected_status is not None:
            where.append("status = ?")
            params.append(expected_status.value)
        if claim_token is not None:
            where.append("claim_token = ?")
            params.append(claim_token)
        cur = self._execute(
            f"UPDATE videos SET {', '.join(assignments)} WHERE {' AND '.join(where)}",
            tuple(params),
        )
        if cur.rowcount == 0:
            self.get_video(video_id)
            return False
        return True

    def list_videos(self, status: VideoStatus | None = None) -> list[VideoListItem]:
        if status:
            rows = self._fetchall(
                "SELECT * FROM videos WHERE status = ? ORDER BY created_at DESC",
                (status.value,),
            )
        else:
            rows = self._fetchall("SELECT * FROM videos ORDER BY created_at DESC")
        return [
            VideoListItem(
                video_id=r["id"],
                project_id=r["project_id"],
                title=r["title"],
                status=r["status"],
                duration_formatted=_fmt_duration(r["duration_sec"]),
            )
            for r in rows
        ]

    def list_videos_missing_assets(self, limit: int = 10) -> list[VideoRecord]:
        """Ready videos that are missing a thumbnail or scrubber sprite."""
        rows = self._fetchall(
            """SELECT * FROM videos
               WHERE (sprite_vtt_url IS NULL OR thumbnail_url IS NULL)
                 AND (source_key IS NOT NULL OR proxy_key IS NOT NULL)
                 AND status = 'ready'
               ORDER BY created_at DESC
               LIMIT ?""",
            (limit,),
        )
        return [VideoRecord(**dict(r)) for r in rows]

    def get_video_info(self, video_id: str) -> VideoInfo:
        video = self.get_video(video_id)

        resolution = None
        if video.width and video.height:
            resolution = f"{video.width}x{video.height}"

        return VideoInfo(
            video_id=video.id,
            project_id=video.project_id,
            title=video.title,
            status=video.status,
            duration_formatted=_fmt_duration(video.duration_sec),
            resolution=resolution,
            fps=video.fps,
            bitrate_kbps=video.bitrate // 1000 if video.bitrate else None,
            source_url=video.source_url,
            assets={
                "proxy": video.proxy_url,
                "thumbnail": video.thumbnail_url,
                "sprite": video.sprite_url,
                "sprite_vtt": video.sprite_vtt_url,
                "streaming_high": video.streaming_high_url,
            },
            error_message=video.error_message,
            updated_at=video.updated_at,
        )
