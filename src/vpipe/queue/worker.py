"""Queue consumer: claim, run, then ack, retry or dead-letter."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from vpipe.core.exceptions import QueueInfraError
from vpipe.queue.redis_queue import ClaimedJob, RedisJobQueue, backoff_delay

logger = logging.getLogger(__name__)

JobHandler = Callable[[dict], dict]

INFRA_BACKOFF_BASE_SEC = 1.0
INFRA_BACKOFF_CAP_SEC = 30.0


class Heartbeat:
    """Keeps a claimed job's heartbeat fresh while its handler runs."""

    def __init__(self, queue: RedisJobQueue, job: ClaimedJob, interval: float):
        self.queue = queue
        self.job = job
        self.interval = max(0.1, interval)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> Heartbeat:
        self._thread = threading.Thread(
            target=self._run,
            name=f"heartbeat-{self.job.id}",
            daemon=True,
        )
        self._thread.start()
        return self

    def __exit__(self, *exc) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                if not self.queue.touch(self.job):
                    logger.warning("Job %s lost its claim while running", self.job.id)
                    return
            except QueueInfraError as e:
                # Retried on the next beat
                logger.warning("Heartbeat failed for job %s: %s", self.job.id, e)


class QueueWorker:
    def __init__(
        self,
        queue: RedisJobQueue,
        handler: JobHandler,
        concurrency: int = 1,
        claim_timeout: int = 5,
    ):
        self.queue = queue
        self.handler = handler
        self.concurrency = max(1, concurrency)
        self.claim_timeout = claim_timeout
        self.stats: Counter[str] = Counter()
        self._lock = threading.Lock()

    @property
    def heartbeat_interval(self) -> float | None:
        if not self.queue.stall_seconds:
            return None
        return self.queue.stall_seconds / 3

    def _handle(self, job: ClaimedJob) -> None:
        interval = self.heartbeat_interval
        if interval is None:
            self.handler(job.payload)
            return
        with Heartbeat(self.queue, job, interval):
            self.handler(job.payload)

    def process_one(self) -> str | None:
        """Handle at most one job. Returns the outcome, or None when the queue was empty.

        Raises QueueInfraError when Redis cannot be reached.
        """
        job = self.queue.claim(timeout=self.claim_timeout)
        if job is None:
            return None

        extra = {"job_id": job.id, "attempt": job.attempt + 1}
        logger.info("Job %s started (attempt %d)", job.id, job.attempt + 1, extra=extra)
        try:
            self._handle(job)
        except Exception as e:
            retryable = getattr(e, "retryable", True)
            outcome = self.queue.retry_or_dead(job, f"{type(e).__name__}: {e}", retryable=retryable)
            logger.error(
                "Job %s failed (%s, %s): %s", job.id, type(e).__name__, outcome, e,
                extra={**extra, "status": outcome},
            )
            return outcome

        self.queue.ack(job)
        logger.info("Job %s completed", job.id, extra={**extra, "status": "completed"})
        return "completed"

    def _loop(self, stop: threading.Event, max_jobs: int | None) -> None:
        failures = 0
        while not stop.is_set():
            try:
                outcome = self.process_one()
            except QueueInfraError as e:
                failures += 1
                delay = min(INFRA_BACKOFF_CAP_SEC, backoff_delay(failures, INFRA_BACKOFF_BASE_SEC))
                logger.warning("Queue unavailable, retrying in %.1fs: %s", delay, e)
                stop.wait(delay)
                continue
            failures = 0
            if outcome is None:
                continue
            with self._lock:
                self.stats[outcome] += 1
                if max_jobs is not None and sum(self.stats.values()) >= max_jobs:
                    stop.set()

    def run(self, stop_event: threading.Event | None = None, max_jobs: int | None = None) -> dict:
        """Consume until stop_event is set (or max_jobs jobs have finished)."""
        stop = stop_event or threading.Event()
        logger.info("Worker started on queue %s (concurrency=%d)", self.queue.name, self.concurrency)
        if self.concurrency == 1:
            self._loop(stop, max_jobs)
        else:
            with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="vpipe-worker") as pool:
                futures = [pool.submit(self._loop, stop, max_jobs) for _ in range(self.concurrency)]
                for f in futures:
                    f.result()
        return dict(self.stats)
