"""WebVTT time index mapping scrubber positions to sprite-sheet tiles."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path


@dataclass
class SpriteCue:
    start_sec: float
    end_sec: float
    x: int
    y: int
    width: int
    height: int


def _fmt_vtt_time(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm."""
    total_ms = round(seconds * 1000) if math.isfinite(seconds) and seconds > 0 else 0
    ms = total_ms % 1000
    total_s = total_ms // 1000
    h = total_s // 3600
    m = (total_s % 3600) // 60
    s = total_s % 60
    return f"{h:02d}:{m:02d}:{s:02d}.{ms:03d}"


def sprite_cues(
    duration: float | None,
    interval_seconds: float,
    columns: int,
    thumb_width: int,
    thumb_height: int,
) -> list[SpriteCue]:
    """One cue per interval; the last cue ends at the real duration."""
    safe_duration = duration if duration and duration > 0 else float(interval_seconds)
    total = max(1, math.ceil(safe_duration / interval_seconds))
    cues = []
    for i in range(total):
        start = i * interval_seconds
        col, row = i % columns, i // columns
        cues.append(
            SpriteCue(
                start_sec=start,
                end_sec=min(safe_duration, start + interval_seconds),
                x=col * thumb_width,
                y=row * thumb_height,
                width=thumb_width,
                height=thumb_height,
            )
        )
    return cues


def build_sprite_index(
    sprite_url: str,
    duration: float | None,
    interval_seconds: float,
    columns: int,
    thumb_width: int,
    thumb_height: int,
) -> str:
    lines = ["WEBVTT", ""]
    for cue in sprite_cues(duration, interval_seconds, columns, thumb_width, thumb_height):
        lines.append(f"{_fmt_vtt_time(cue.start_sec)} --> {_fmt_vtt_time(cue.end_sec)}")
        lines.append(f"{sprite_url}#xywh={cue.x},{cue.y},{cue.width},{cue.height}")
        lines.append("")
    return "\n".join(lines)


def write_sprite_index(output_path: Path, sprite_url: str, sheet) -> Path:
    """Write the index for a SpriteSheet produced by MediaEngine.generate_sprite_sheet."""
    text = build_sprite_index(
        sprite_url,
        sheet.duration,
        sheet.interval_seconds,
        sheet.columns,
        sheet.thumb_width,
        sheet.thumb_height,
    )
    output_path.write_text(text, encoding="utf-8")
    return output_path
