"""Tests for the remote object key layout."""

from __future__ import annotations

import re

from vpipe.storage import keys

UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


def test_original_key_layout() -> None:
    key = keys.original_key("p1", "My Clip (final).MOV")
    assert re.fullmatch(rf"videos/p1/{UUID}-My_Clip__final_\.mov", key)


def test_original_key_truncates_long_names() -> None:
    key = keys.original_key("p1", "x" * 200 + ".mp4")
    stem = key.rsplit("-", 1)[1]
    assert stem == "x" * 50 + ".mp4"


def test_sanitize_filename_without_extension() -> None:
    assert keys.sanitize_filename("clip") == ("clip", "mp4")
    assert keys.sanitize_filename("???.webm") == ("___", "webm")


def test_derivative_layouts() -> None:
    assert re.fullmatch(rf"thumbnails/p1/{UUID}\.jpg", keys.thumbnail_key("p1"))
    assert re.fullmatch(rf"proxies/p1/{UUID}\.mp4", keys.proxy_key("p1"))
    assert re.fullmatch(rf"sprites/p1/{UUID}\.jpg", keys.sprite_key("p1"))
    assert re.fullmatch(rf"sprites/p1/{UUID}\.vtt", keys.sprite_index_key("p1"))
    assert re.fullmatch(rf"videos/p1/high-{UUID}\.mp4", keys.streaming_high_key("p1"))


def test_keys_are_unique_per_call() -> None:
    assert keys.proxy_key("p1") != keys.proxy_key("p1")
