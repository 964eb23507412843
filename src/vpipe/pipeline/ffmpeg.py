"""FFmpeg/ffprobe wrapper: probe metadata and render derivative media."""

from __future__ import annotations

import json
import logging
import math
import subprocess
from dataclasses import dataclass
from pathlib import Path

from vpipe.core.constants import (
    AUDIO_SAMPLE_RATE,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_FFMPEG_TIMEOUT,
    DEFAULT_FFPROBE_TIMEOUT,
    DEFAULT_SPRITE_COLUMNS,
    DEFAULT_SPRITE_INTERVAL_SEC,
    DEFAULT_SPRITE_THUMB_WIDTH,
    PROXY_AUDIO_KBPS,
    PROXY_CRF,
    PROXY_MAX_HEIGHT,
    PROXY_VIDEO_KBPS,
    STREAMING_HIGH_AUDIO_KBPS,
    THUMBNAIL_AT_SECONDS,
    THUMBNAIL_WIDTH,
)
from vpipe.core.exceptions import MediaError, ProbeError, TranscodeError

logger = logging.getLogger(__name__)


@dataclass
class MediaMeta:
    """Probed stream properties. Any field may be None when the container omits it."""

    duration_sec: float | None
    width: int | None
    height: int | None
    fps: float | None
    bitrate: int | None  # bits/sec
    codec: str | None = None

    @property
    def bitrate_kbps(self) -> float | None:
        return self.bitrate / 1000 if self.bitrate else None


@dataclass
class SpriteSheet:
    path: Path
    columns: int
    rows: int
    thumb_width: int
    thumb_height: int
    interval_seconds: float
    duration: float
    total_frames: int


def _trim_tail(s: str | None, limit: int = 2000) -> str:
    if not s:
        return ""
    return s[-limit:] if len(s) > limit else s


def _positive_float(value) -> float | None:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) and f > 0 else None


def _positive_int(value) -> int | None:
    f = _positive_float(value)
    return int(f) if f is not None else None


def _parse_frame_rate(rate) -> float | None:
    """Parse ffprobe frame rates such as "30000/1001", "25/1" or "29.97"."""
    if not rate:
        return None
    rate = str(rate)
    if "/" in rate:
        num, _, den = rate.partition("/")
        n, d = _positive_float(num), _positive_float(den)
        return n / d if n and d else None
    return _positive_float(rate)


def thumbnail_timestamp(duration_sec: float | None, at_seconds: float = THUMBNAIL_AT_SECONDS) -> float:
    """Seek position for the poster frame, clamped to the middle of short clips."""
    if duration_sec is None:
        return at_seconds
    return max(0.0, min(at_seconds, duration_sec / 2))


def sprite_geometry(
    duration: float | None,
    interval_seconds: float,
    columns: int,
    thumb_width: int,
    width: int | None,
    height: int | None,
) -> dict:
    """Grid layout for a sprite sheet covering the whole duration."""
    safe_duration = duration if duration and duration > 0 else float(interval_seconds)
    total_frames = max(1, math.ceil(safe_duration / interval_seconds))
    safe_columns = max(1, columns)
    rows = max(1, math.ceil(total_frames / safe_columns))
    aspect = height / width if width and height else DEFAULT_ASPECT_RATIO
    thumb_height = max(1, round(thumb_width * aspect))
    return {
        "duration": safe_duration,
        "total_frames": total_frames,
        "columns": safe_columns,
        "rows": rows,
        "thumb_width": thumb_width,
        "thumb_height": thumb_height,
    }


class MediaEngine:
    """Runs ffprobe/ffmpeg as subprocesses. The only code that touches the media engine."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        ffprobe_timeout: int = DEFAULT_FFPROBE_TIMEOUT,
        ffmpeg_timeout: int = DEFAULT_FFMPEG_TIMEOUT,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.ffprobe_timeout = ffprobe_timeout
        self.ffmpeg_timeout = ffmpeg_timeout

    @classmethod
    def from_config(cls, config) -> MediaEngine:
        return cls(
            ffmpeg_bin=config.ffmpeg_bin,
            ffprobe_bin=config.ffprobe_bin,
            ffprobe_timeout=config.ffprobe_timeout,
            ffmpeg_timeout=config.ffmpeg_timeout,
        )

    def _run(
        self,
        cmd: list[str],
        label: str,
        timeout: int,
        error_cls: type[MediaError] = TranscodeError,
    ) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
        except FileNotFoundError:
            raise error_cls(f"{cmd[0]} not found. Install ffmpeg or set VPIPE_FFMPEG_BIN", cmd=" ".join(cmd))
        except subprocess.CalledProcessError as e:
            raise error_cls(
                f"{label} failed: {_trim_tail(e.stderr)}",
                cmd=" ".join(cmd),
                returncode=e.returncode,
            )
        except subprocess.TimeoutExpired:
            raise error_cls(f"{label} timed out after {timeout}s", cmd=" ".join(cmd))

    @staticmethod
    def _ensure_output(path: Path, label: str) -> Path:
        if not path.exists() or path.stat().st_size == 0:
            raise TranscodeError(f"{label} produced no output: {path.name}")
        return path

    # --- Inspection ---

    def probe(self, path: Path) -> MediaMeta:
        """Extract duration, dimensions, frame rate and bitrate using ffprobe."""
        cmd = [
            self.ffprobe_bin, "-v", "quiet",
            "-print_format", "json",
            "-show_format", "-show_streams",
            str(path),
        ]
        result = self._run(cmd, "ffprobe", self.ffprobe_timeout, error_cls=ProbeError)

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe returned invalid JSON: {e}", cmd=" ".join(cmd))

        fmt = data.get("format") or {}
        streams = data.get("streams") or []
        if not fmt and not streams:
            raise ProbeError(f"Not a media container: {path.name}", cmd=" ".join(cmd))

        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)

        width = height = fps = codec = None
        stream_bitrate = None
        if video_stream:
            width = _positive_int(video_stream.get("width"))
            height = _positive_int(video_stream.get("height"))
            codec = video_stream.get("codec_name")
            fps = _parse_frame_rate(video_stream.get("avg_frame_rate")) or _parse_frame_rate(
                video_stream.get("r_frame_rate")
            )
            stream_bitrate = _positive_int(video_stream.get("bit_rate"))

        return MediaMeta(
            duration_sec=_positive_float(fmt.get("duration")),
            width=width,
            height=height,
            fps=fps,
            bitrate=_positive_int(fmt.get("bit_rate")) or stream_bitrate,
            codec=codec,
        )

    # --- Derivatives ---

    def extract_thumbnail(
        self,
        video_path: Path,
        output_path: Path,
        at_seconds: float | None = None,
        duration_sec: float | None = None,
    ) -> Path:
        """Grab one JPEG frame scaled to 640px wide."""
        at = thumbnail_timestamp(duration_sec, THUMBNAIL_AT_SECONDS if at_seconds is None else at_seconds)

        cmd = [
            self.ffmpeg_bin, "-y",
            "-ss", f"{at:.3f}",
            "-i", str(video_path),
            "-frames:v", "1",
            "-vf", f"scale={THUMBNAIL_WIDTH}:-2",
            "-q:v", "2",
            str(output_path),
        ]
        logger.info("Generating thumbnail at %.3fs", at)
        self._run(cmd, "Thumbnail", self.ffmpeg_timeout)
        return self._ensure_output(output_path, "Thumbnail")

    def generate_proxy(self, video_path: Path, output_path: Path) -> Path:
        """Re-encode to H.264/AAC at most 720p with a bounded bitrate and fast-start layout."""
        cmd = [
            self.ffmpeg_bin, "-y", "-i", str(video_path),
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", str(PROXY_CRF),
            "-vf", f"scale=-2:'min({PROXY_MAX_HEIGHT},ih)'",
            "-maxrate", f"{PROXY_VIDEO_KBPS}k",
            "-bufsize", f"{PROXY_VIDEO_KBPS * 2}k",
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", f"{PROXY_AUDIO_KBPS}k",
            "-ac", "2",
            "-ar", str(AUDIO_SAMPLE_RATE),
            "-movflags", "+faststart",
            str(output_path),
        ]
        logger.info("Generating %dp proxy", PROXY_MAX_HEIGHT)
        self._run(cmd, "Proxy", self.ffmpeg_timeout)
        return self._ensure_output(output_path, "Proxy")

    def generate_streaming_high(self, video_path: Path, output_path: Path, target_bitrate_kbps: int) -> Path:
        """Re-encode at original resolution with the target bitrate as a ceiling."""
        cmd = [
            self.ffmpeg_bin, "-y", "-i", str(video_path),
            "-c:v", "libx264",
            "-preset", "slow",
            "-profile:v", "high",
            "-b:v", f"{target_bitrate_kbps}k",
            "-maxrate", f"{target_bitrate_kbps}k",
            "-bufsize", f"{target_bitrate_kbps * 2}k",
            "-pix_fmt", "yuv420p",
            "-color_primaries", "1",
            "-color_trc", "1",
            "-colorspace", "1",
            "-c:a", "aac",
            "-b:a", f"{STREAMING_HIGH_AUDIO_KBPS}k",
            "-ac", "2",
            "-ar", str(AUDIO_SAMPLE_RATE),
            "-movflags", "+faststart",
            str(output_path),
        ]
        logger.info("Generating streaming high (%dk)", target_bitrate_kbps)
        self._run(cmd, "Streaming high", self.ffmpeg_timeout)
        return self._ensure_output(output_path, "Streaming high")

    def generate_sprite_sheet(
        self,
        video_path: Path,
        output_path: Path,
        *,
        interval_seconds: float = DEFAULT_SPRITE_INTERVAL_SEC,
        columns: int = DEFAULT_SPRITE_COLUMNS,
        thumb_width: int = DEFAULT_SPRITE_THUMB_WIDTH,
        duration: float | None = None,
        width: int | None = None,
        height: int | None = None,
    ) -> SpriteSheet:
        """Tile one frame every `interval_seconds` into a single JPEG grid."""
        geo = sprite_geometry(duration, interval_seconds, columns, thumb_width, width, height)
        vf = (
            f"fps=1/{interval_seconds},"
            f"scale={geo['thumb_width']}:{geo['thumb_height']},"
            f"tile={geo['columns']}x{geo['rows']}"
        )
        cmd = [
            self.ffmpeg_bin, "-y", "-i", str(video_path),
            "-vf", vf,
            "-frames:v", "1",
            "-q:v", "2",
            str(output_path),
        ]
        logger.info(
            "Generating sprite sheet: %d frames, %dx%d grid",
            geo["total_frames"], geo["columns"], geo["rows"],
        )
        self._run(cmd, "Sprite sheet", self.ffmpeg_timeout)
        self._ensure_output(output_path, "Sprite sheet")
        return SpriteSheet(
            path=output_path,
            columns=geo["columns"],
            rows=geo["rows"],
            thumb_width=geo["thumb_width"],
            thumb_height=geo["thumb_height"],
            interval_seconds=interval_seconds,
            duration=geo["duration"],
            total_frames=geo["total_frames"],
        )
