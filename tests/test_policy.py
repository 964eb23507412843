"""Tests for the bitrate policy tiers."""

from __future__ import annotations

import pytest

from vpipe.pipeline.policy import classify


def test_4k_under_limit_needs_no_derivative() -> None:
    assert classify(2160, 40000).needs_high_bitrate_derivative is False


def test_4k_over_limit() -> None:
    result = classify(2160, 60000)
    assert result.tier == "4K"
    assert result.needs_high_bitrate_derivative is True
    assert result.target_bitrate_kbps == 35000


def test_fhd_over_limit() -> None:
    result = classify(1080, 25000)
    assert result.tier == "FHD"
    assert result.needs_high_bitrate_derivative is True
    assert result.target_bitrate_kbps == 15000


def test_sd_under_limit() -> None:
    result = classify(480, 5000)
    assert result.tier == "SD"
    assert result.needs_high_bitrate_derivative is False


@pytest.mark.parametrize(
    ("height", "tier"),
    [(2160, "4K"), (2159, "FHD"), (1080, "FHD"), (1079, "SD"), (4320, "4K")],
)
def test_tier_boundaries_inclusive_on_lower_bound(height: int, tier: str) -> None:
    assert classify(height, 1000).tier == tier


def test_limit_itself_is_not_exceeded() -> None:
    assert classify(1080, 20000).needs_high_bitrate_derivative is False
    assert classify(1080, 20000.5).needs_high_bitrate_derivative is True


def test_unknown_height_falls_back_to_fhd() -> None:
    result = classify(None, 22000)
    assert result.tier == "FHD"
    assert result.needs_high_bitrate_derivative is True


def test_unknown_bitrate_never_triggers_derivative() -> None:
    assert classify(2160, None).needs_high_bitrate_derivative is False
