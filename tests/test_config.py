"""Tests for config loading: env vars > config.json > defaults."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from vpipe.core.config import VPipeConfig, _load_config_file, get_config, save_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("VPIPE_"):
            monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# save / load round-trip
# ---------------------------------------------------------------------------

def test_save_and_load_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake_config = tmp_path / "config.json"
    monkeypatch.setattr("vpipe.core.config.CONFIG_FILE_PATH", fake_config)

    result = save_config({"r2_bucket": "media", "use_video_queue": True})
    assert result == fake_config

    loaded = json.loads(fake_config.read_text())
    assert loaded == {"r2_bucket": "media", "use_video_queue": True}


def test_load_config_file_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("vpipe.core.config.CONFIG_FILE_PATH", tmp_path / "nope.json")
    assert _load_config_file() == {}


def test_load_config_file_invalid_json(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    bad = tmp_path / "config.json"
    bad.write_text("not json {{{")
    monkeypatch.setattr("vpipe.core.config.CONFIG_FILE_PATH", bad)
    assert _load_config_file() == {}


# ---------------------------------------------------------------------------
# Priority: env vars > config.json > defaults
# ---------------------------------------------------------------------------

def test_defaults_without_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("vpipe.core.config.CONFIG_FILE_PATH", tmp_path / "nope.json")

    config = get_config()
    assert config.use_video_queue is False
    assert config.queue_enabled is False
    assert config.queue_name == "video-processing"
    assert config.queue_attempts == 3
    assert config.queue_backoff_seconds == 1.0
    assert config.queue_stall_seconds == 300.0
    assert config.worker_concurrency == 1
    assert config.sprite_interval_seconds == 5
    assert config.sprite_columns == 10
    assert config.sprite_thumb_width == 160
    assert config.r2_region == "auto"
    assert config.ffmpeg_timeout > 0
    assert config.signed_url_expires == 3600
    # A run whose ffmpeg steps all hit their timeout is not mistaken for an abandoned one
    assert config.processing_stale_seconds > 4 * config.ffmpeg_timeout


def test_config_file_overrides_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_file = tmp_path / "config.json"
    cfg_file.write_text(json.dumps({
        "r2_bucket": "review-media",
        "r2_public_url": "https://media.example.com",
        "use_video_queue": True,
        "redis_url": "redis://queue:6379/0",
    }))
    monkeypatch.setattr("vpipe.core.config.CONFIG_FILE_PATH", cfg_file)

    config = get_config()
    assert config.r2_bucket == "review-media"
    assert config.r2_public_url == "https://media.example.com"
    assert config.queue_enabled is True


def test_env_var_overrides_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_file = tmp_path / "config.json"
    cfg_file.write_text(json.dumps({"r2_bucket": "from-file", "use_video_queue": True}))
    monkeypatch.setattr("vpipe.core.config.CONFIG_FILE_PATH", cfg_file)
    monkeypatch.setenv("VPIPE_USE_VIDEO_QUEUE", "false")

    config = get_config()
    # Env var wins
    assert config.use_video_queue is False
    # Config file value still applies for non-overridden fields
    assert config.r2_bucket == "from-file"


def test_queue_requires_redis_url() -> None:
    assert VPipeConfig(use_video_queue=True, redis_url="").queue_enabled is False
    assert VPipeConfig(use_video_queue=True, redis_url="redis://x").queue_enabled is True


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValueError):
        VPipeConfig(queue_attempts=0)
    with pytest.raises(ValueError):
        VPipeConfig(sprite_interval_seconds=0)


def test_db_path_override() -> None:
    custom = Path("/tmp/test.db")
    config = get_config(db_path=custom)
    assert config.db_path == custom
