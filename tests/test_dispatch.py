"""Tests for Dispatcher: queue when possible, otherwise run in-process."""

from __future__ import annotations

import threading
from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest

from conftest import FakeRedis
from vpipe.core.exceptions import JobValidationError, QueueInfraError
from vpipe.db.models import VideoStatus
from vpipe.pipeline.assets import AssetPipeline
from vpipe.pipeline.dispatch import MODE_QUEUED, MODE_SYNC, Dispatcher, make_job_handler
from vpipe.queue.redis_queue import ConnectionState, RedisJobQueue


def _counting_pipeline(result: dict | None = None) -> MagicMock:
    pipeline = MagicMock(spec=AssetPipeline)
    pipeline.run.return_value = result or {"status": "completed"}
    return pipeline


def test_queue_disabled_runs_pipeline_once_in_process(config) -> None:
    config.use_video_queue = False
    fake = FakeRedis()
    queue = RedisJobQueue(fake, name="vp")
    pipeline = _counting_pipeline()
    dispatcher = Dispatcher(pipeline, config, queue=queue)

    handle = dispatcher.dispatch("vid-1", "videos/p/a.mp4", "p")
    assert handle.mode == MODE_SYNC
    assert handle.wait(timeout=5) == {"status": "completed"}
    dispatcher.shutdown()

    pipeline.run.assert_called_once_with("vid-1", source_key="videos/p/a.mp4", project_id="p")
    assert fake.lists == {}


def test_no_queue_object_runs_in_process(config) -> None:
    config.use_video_queue = True
    pipeline = _counting_pipeline()
    dispatcher = Dispatcher(pipeline, config, queue=None)

    handle = dispatcher.dispatch("vid-1", "k", "p")
    handle.wait(timeout=5)
    dispatcher.shutdown()
    assert handle.mode == MODE_SYNC
    pipeline.run.assert_called_once()


def test_queue_available_enqueues_without_running(config) -> None:
    config.use_video_queue = True
    fake = FakeRedis()
    queue = RedisJobQueue(fake, name="vp")
    pipeline = _counting_pipeline()
    dispatcher = Dispatcher(pipeline, config, queue=queue)

    handle = dispatcher.dispatch("vid-1", "videos/p/a.mp4", "p")
    dispatcher.shutdown()

    assert handle.mode == MODE_QUEUED
    assert handle.job.queue == "vp"
    assert handle.wait() is None
    assert len(fake.lists["vp:jobs"]) == 1
    pipeline.run.assert_not_called()


def test_unreachable_queue_falls_back_silently(config) -> None:
    config.use_video_queue = True
    queue = RedisJobQueue(FakeRedis(down=True), name="vp")
    pipeline = _counting_pipeline()
    dispatcher = Dispatcher(pipeline, config, queue=queue)

    handle = dispatcher.dispatch("vid-1", "k", "p")
    handle.wait(timeout=5)
    dispatcher.shutdown()

    assert handle.mode == MODE_SYNC
    pipeline.run.assert_called_once()


def test_enqueue_failure_falls_back(config) -> None:
    config.use_video_queue = True
    queue = MagicMock(spec=RedisJobQueue)
    queue.check_connection.return_value = ConnectionState.AVAILABLE
    queue.enqueue.side_effect = QueueInfraError("Queue enqueue failed: reset by peer")
    pipeline = _counting_pipeline()
    dispatcher = Dispatcher(pipeline, config, queue=queue)

    handle = dispatcher.dispatch("vid-1", "k", "p")
    handle.wait(timeout=5)
    dispatcher.shutdown()

    assert handle.mode == MODE_SYNC
    pipeline.run.assert_called_once()


def test_in_process_failure_is_observable_through_handle(config) -> None:
    config.use_video_queue = False
    pipeline = _counting_pipeline()
    pipeline.run.side_effect = RuntimeError("crashed")
    seen: list[Future] = []
    done = threading.Event()

    def on_complete(f: Future) -> None:
        seen.append(f)
        done.set()

    dispatcher = Dispatcher(pipeline, config)
    handle = dispatcher.dispatch("vid-1", "k", "p", on_complete=on_complete)

    with pytest.raises(RuntimeError, match="crashed"):
        handle.wait(timeout=5)
    assert done.wait(timeout=5)
    assert seen[0] is handle.future
    dispatcher.shutdown()


def test_invalid_dispatch_arguments_are_rejected(config) -> None:
    dispatcher = Dispatcher(_counting_pipeline(), config)
    with pytest.raises(JobValidationError):
        dispatcher.dispatch("", "k", "p")
    dispatcher.shutdown()


def test_dispatch_runs_real_pipeline_to_ready(repo, store, engine, config, make_video) -> None:
    config.use_video_queue = False
    video = make_video()
    dispatcher = Dispatcher(AssetPipeline(repo, store, engine, config), config)

    handle = dispatcher.dispatch(video.id, video.source_key, video.project_id)
    assert handle.wait(timeout=10)["status"] == "completed"
    dispatcher.shutdown()

    assert repo.get_video(video.id).status == VideoStatus.READY


def test_job_handler_accepts_queue_payload_shape() -> None:
    pipeline = _counting_pipeline()
    handler = make_job_handler(pipeline)

    result = handler({"videoId": "vid-9", "r2Key": "videos/p/x.mp4", "projectId": "p"})

    assert result == {"status": "completed"}
    pipeline.run.assert_called_once_with("vid-9", source_key="videos/p/x.mp4", project_id="p")


def test_job_handler_rejects_malformed_payload() -> None:
    pipeline = _counting_pipeline()
    with pytest.raises(JobValidationError):
        make_job_handler(pipeline)({"videoId": "vid-9"})
    pipeline.run.assert_not_called()
