"""Bitrate policy: decide whether a source needs a bitrate-capped streaming copy."""

from __future__ import annotations

from dataclasses import dataclass

from vpipe.core.constants import BITRATE_TIERS, UNKNOWN_HEIGHT_FALLBACK


@dataclass(frozen=True)
class BitratePolicyResult:
    tier: str
    needs_high_bitrate_derivative: bool
    target_bitrate_kbps: int
    limit_kbps: int


def classify(height_px: int | None, bitrate_kbps: float | None) -> BitratePolicyResult:
    """Bucket the source by height and compare its bitrate to the tier ceiling.

    Unknown height is treated as 1080p. Unknown bitrate never triggers a
    derivative.
    """
    height = height_px or UNKNOWN_HEIGHT_FALLBACK
    for tier, min_height, limit, target in BITRATE_TIERS:
        if height >= min_height:
            break
    needs = bitrate_kbps is not None and bitrate_kbps > limit
    return BitratePolicyResult(
        tier=tier,
        needs_high_bitrate_derivative=needs,
        target_bitrate_kbps=target,
        limit_kbps=limit,
    )
