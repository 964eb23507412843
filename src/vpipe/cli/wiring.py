"""Construct collaborators from configuration for CLI commands."""

from __future__ import annotations

from pathlib import Path

from vpipe.core.config import VPipeConfig, get_config
from vpipe.core.logging import setup_logging
from vpipe.db.repository import Repository
from vpipe.pipeline.assets import AssetPipeline
from vpipe.pipeline.dispatch import Dispatcher
from vpipe.pipeline.ffmpeg import MediaEngine
from vpipe.queue.redis_queue import RedisJobQueue
from vpipe.storage.r2 import R2ObjectStore


def load_config(db: str | None) -> VPipeConfig:
    config = get_config(db_path=Path(db) if db else None)
    setup_logging(config.log_level, config.log_json)
    return config


def build_pipeline(config: VPipeConfig, repo: Repository) -> AssetPipeline:
    return AssetPipeline(
        repo=repo,
        store=R2ObjectStore.from_config(config),
        engine=MediaEngine.from_config(config),
        config=config,
    )


def build_queue(config: VPipeConfig) -> RedisJobQueue | None:
    if not config.queue_enabled:
        return None
    return RedisJobQueue.from_config(config)


def build_dispatcher(config: VPipeConfig, repo: Repository) -> Dispatcher:
    return Dispatcher(build_pipeline(config, repo), config, queue=build_queue(config))
