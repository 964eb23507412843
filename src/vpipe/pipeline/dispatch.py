"""Route a pipeline run to the durable queue, or run it in-process when the queue is off or down."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable

from vpipe.core.config import VPipeConfig
from vpipe.pipeline.assets import AssetPipeline
from vpipe.queue.jobs import PipelineJob
from vpipe.queue.redis_queue import ConnectionState, JobHandle, RedisJobQueue

logger = logging.getLogger(__name__)

MODE_QUEUED = "queued"
MODE_SYNC = "sync"


@dataclass
class DispatchHandle:
    video_id: str
    mode: str
    job: JobHandle | None = None
    future: Future | None = None

    def wait(self, timeout: float | None = None) -> dict | None:
        """Block until an in-process run finishes. Queued runs return None immediately."""
        if self.future is None:
            return None
        return self.future.result(timeout)


def make_job_handler(pipeline: AssetPipeline) -> Callable[[dict], dict]:
    """Queue job handler: validate the payload, run the pipeline, raise on failure."""

    def handle(payload: dict) -> dict:
        job = PipelineJob.from_payload(payload)
        return pipeline.run(job.video_id, source_key=job.source_key, project_id=job.project_id)

    return handle


class Dispatcher:
    def __init__(
        self,
        pipeline: AssetPipeline,
        config: VPipeConfig,
        queue: RedisJobQueue | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.pipeline = pipeline
        self.config = config
        self.queue = queue
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.sync_max_workers, thread_name_prefix="vpipe-sync"
        )

    def queue_available(self) -> bool:
        if not self.config.use_video_queue or self.queue is None:
            return False
        return self.queue.check_connection() == ConnectionState.AVAILABLE

    def dispatch(
        self,
        video_id: str,
        source_key: str,
        project_id: str,
        on_complete: Callable[[Future], None] | None = None,
    ) -> DispatchHandle:
        """Enqueue the run, or start it in the background. Never raises for queue trouble."""
        job = PipelineJob.from_payload(
            {"video_id": video_id, "source_key": source_key, "project_id": project_id}
        )

        if self.queue_available():
            try:
                handle = self.queue.enqueue(job)
            except Exception as e:
                logger.warning(
                    "Enqueue failed, falling back to in-process run video_id=%s: %s", job.video_id, e,
                    extra={"video_id": job.video_id},
                )
            else:
                logger.info(
                    "Queued video_id=%s job=%s", job.video_id, handle.id,
                    extra={"video_id": job.video_id, "job_id": handle.id, "mode": MODE_QUEUED},
                )
                return DispatchHandle(job.video_id, MODE_QUEUED, job=handle)

        return self._run_in_process(job, on_complete)

    def _run_in_process(
        self,
        job: PipelineJob,
        on_complete: Callable[[Future], None] | None,
    ) -> DispatchHandle:
        future = self._executor.submit(
            self.pipeline.run, job.video_id, source_key=job.source_key, project_id=job.project_id
        )
        future.add_done_callback(partial(_log_outcome, job.video_id))
        if on_complete is not None:
            future.add_done_callback(on_complete)
        logger.info(
            "Running in-process video_id=%s", job.video_id,
            extra={"video_id": job.video_id, "mode": MODE_SYNC},
        )
        return DispatchHandle(job.video_id, MODE_SYNC, future=future)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


def _log_outcome(video_id: str, future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("In-process run failed video_id=%s: %s", video_id, exc, extra={"video_id": video_id})
    else:
        logger.info("In-process run finished video_id=%s", video_id, extra={"video_id": video_id})
