"""Durable job queue on Redis lists with delayed retries and a dead-letter list.

Keys (for queue name Q):
    Q:jobs        pending envelopes (LPUSH / BRPOPLPUSH)
    Q:processing  envelopes claimed by a worker and not yet acked
    Q:claimed     sorted set of claimed envelopes, scored by the claim's last heartbeat
    Q:delayed     sorted set of envelopes waiting out their backoff, scored by due time
    Q:dead        envelopes that exhausted their attempts or cannot succeed

A claimed envelope whose heartbeat is older than the stall window is assumed to
belong to a dead worker and goes back onto Q:jobs, counted as an attempt.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum

import redis

from vpipe.core.constants import (
    DEFAULT_QUEUE_ATTEMPTS,
    DEFAULT_QUEUE_BACKOFF_SEC,
    DEFAULT_QUEUE_NAME,
    DEFAULT_QUEUE_STALL_SEC,
)
from vpipe.core.exceptions import QueueInfraError
from vpipe.queue.jobs import PipelineJob

logger = logging.getLogger(__name__)

_INFRA_ERRORS = (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)

UNPARSEABLE_ID = "unparseable"
UNIDENTIFIED_ID = "unidentified"

# Outcome when a job was requeued as stalled before its worker settled it
OUTCOME_REQUEUED = "requeued"


class ConnectionState(str, Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class JobHandle:
    id: str
    queue: str


@dataclass
class ClaimedJob:
    raw: str
    envelope: dict

    @property
    def id(self) -> str:
        return str(self.envelope.get("id") or UNIDENTIFIED_ID)

    @property
    def attempt(self) -> int:
        """Attempts already made before this one."""
        try:
            return int(self.envelope.get("attempt") or 0)
        except (TypeError, ValueError):
            return 0

    @property
    def payload(self) -> dict:
        payload = self.envelope.get("payload")
        return payload if isinstance(payload, dict) else {}


def decode_envelope(raw: str) -> dict:
    """Parse a queued entry into an envelope dict.

    A bare job payload (no id/payload keys) is wrapped so it can still be
    handled and settled like any other job.
    """
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError:
        return {"id": UNPARSEABLE_ID, "payload": None, "attempt": 0}
    if not isinstance(envelope, dict):
        return {"id": UNPARSEABLE_ID, "payload": envelope, "attempt": 0}
    if "id" not in envelope or "payload" not in envelope:
        return {"id": UNIDENTIFIED_ID, "payload": envelope, "attempt": 0}
    return envelope


def backoff_delay(attempts_made: int, base: float) -> float:
    """Exponential backoff: base, 2*base, 4*base, ..."""
    return base * (2 ** max(0, attempts_made - 1))


class RedisJobQueue:
    def __init__(
        self,
        client: redis.Redis,
        name: str = DEFAULT_QUEUE_NAME,
        max_attempts: int = DEFAULT_QUEUE_ATTEMPTS,
        backoff_seconds: float = DEFAULT_QUEUE_BACKOFF_SEC,
        stall_seconds: float = DEFAULT_QUEUE_STALL_SEC,
    ):
        self.r = client
        self.name = name
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.stall_seconds = stall_seconds
        self.jobs = f"{name}:jobs"
        self.processing = f"{name}:processing"
        self.claimed = f"{name}:claimed"
        self.delayed = f"{name}:delayed"
        self.dead = f"{name}:dead"
        self._state = ConnectionState.UNKNOWN

    @classmethod
    def from_config(cls, config) -> RedisJobQueue:
        client = redis.from_url(
            config.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=30,
        )
        return cls(
            client,
            name=config.queue_name,
            max_attempts=config.queue_attempts,
            backoff_seconds=config.queue_backoff_seconds,
            stall_seconds=config.queue_stall_seconds,
        )

    # --- Connection state ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    def check_connection(self) -> ConnectionState:
        """Ping Redis and record the result."""
        try:
            self.r.ping()
            self._state = ConnectionState.AVAILABLE
        except _INFRA_ERRORS as e:
            if self._state != ConnectionState.UNAVAILABLE:
                logger.warning("Queue %s unavailable: %s", self.name, e)
            self._state = ConnectionState.UNAVAILABLE
        return self._state

    def _infra_failure(self, op: str, e: Exception) -> QueueInfraError:
        self._state = ConnectionState.UNAVAILABLE
        return QueueInfraError(f"Queue {op} failed: {e}")

    # --- Producer ---

    def enqueue(self, job: PipelineJob) -> JobHandle:
        envelope = {
            "id": str(uuid.uuid4()),
            "payload": job.to_payload(),
            "attempt": 0,
            "max_attempts": self.max_attempts,
            "enqueued_at": time.time(),
        }
        try:
            self.r.lpush(self.jobs, json.dumps(envelope))
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("enqueue", e) from e
        self._state = ConnectionState.AVAILABLE
        return JobHandle(id=envelope["id"], queue=self.name)

    # --- Consumer ---

    def promote_due(self, now: float | None = None) -> int:
        """Move delayed envelopes whose backoff has elapsed back onto the jobs list."""
        now = time.time() if now is None else now
        try:
            due = self.r.zrangebyscore(self.delayed, 0, now)
            moved = 0
            for raw in due:
                # ZREM decides the winner when several workers promote at once
                if self.r.zrem(self.delayed, raw):
                    self.r.lpush(self.jobs, raw)
                    moved += 1
            return moved
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("promote", e) from e

    def requeue_stalled(self, now: float | None = None) -> int:
        """Put back claimed envelopes whose heartbeat is older than the stall window.

        Each requeue counts as an attempt. A job that exhausts its attempts this
        way is dead-lettered instead.
        """
        if not self.stall_seconds:
            return 0
        now = time.time() if now is None else now
        try:
            stalled = self.r.zrangebyscore(self.claimed, 0, now - self.stall_seconds)
            moved = 0
            for raw in stalled:
                if not self.r.zrem(self.claimed, raw):
                    continue
                job = ClaimedJob(raw=raw, envelope=decode_envelope(raw))
                envelope = self._next_envelope(job, f"stalled: no heartbeat for {self.stall_seconds:g}s")
                dest = self.dead if envelope["attempt"] >= self._max_attempts(job) else self.jobs
                pipe = self.r.pipeline(transaction=True)
                pipe.lrem(self.processing, 1, raw)
                pipe.lpush(dest, json.dumps(envelope))
                pipe.execute()
                logger.warning(
                    "Job %s stalled, moved to %s (attempt %d)", job.id, dest, envelope["attempt"],
                    extra={"job_id": job.id, "attempt": envelope["attempt"]},
                )
                moved += 1
            return moved
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("requeue", e) from e

    def claim(self, timeout: int = 5) -> ClaimedJob | None:
        self.requeue_stalled()
        self.promote_due()
        try:
            raw = self.r.brpoplpush(self.jobs, self.processing, timeout)
            if raw is not None:
                self.r.zadd(self.claimed, {raw: time.time()})
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("claim", e) from e
        self._state = ConnectionState.AVAILABLE
        if raw is None:
            return None
        return ClaimedJob(raw=raw, envelope=decode_envelope(raw))

    def touch(self, job: ClaimedJob) -> bool:
        """Refresh the job's heartbeat. False when it was already requeued as stalled."""
        try:
            if not self._owns(job):
                return False
            self.r.zadd(self.claimed, {job.raw: time.time()}, xx=True)
            return True
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("heartbeat", e) from e

    def _owns(self, job: ClaimedJob) -> bool:
        return self.r.zscore(self.claimed, job.raw) is not None

    def ack(self, job: ClaimedJob) -> None:
        try:
            pipe = self.r.pipeline(transaction=True)
            pipe.lrem(self.processing, 1, job.raw)
            pipe.zrem(self.claimed, job.raw)
            pipe.execute()
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("ack", e) from e

    def _max_attempts(self, job: ClaimedJob) -> int:
        return int(job.envelope.get("max_attempts") or self.max_attempts)

    @staticmethod
    def _next_envelope(job: ClaimedJob, reason: str) -> dict:
        envelope = dict(job.envelope)
        envelope["id"] = job.id
        envelope["attempt"] = job.attempt + 1
        envelope["error"] = reason
        return envelope

    def retry_or_dead(self, job: ClaimedJob, reason: str, retryable: bool = True) -> str:
        """Schedule another attempt with backoff, or dead-letter the job.

        The ack and the reschedule commit together in one MULTI/EXEC. Returns
        "retry", "dead", or "requeued" when the job had already been requeued
        as stalled and belongs to another claim.
        """
        envelope = self._next_envelope(job, reason)
        attempts_made = envelope["attempt"]
        try:
            if not self._owns(job):
                logger.warning("Job %s was requeued as stalled, dropping this outcome", job.id)
                return OUTCOME_REQUEUED
            pipe = self.r.pipeline(transaction=True)
            pipe.lrem(self.processing, 1, job.raw)
            pipe.zrem(self.claimed, job.raw)
            if not retryable or attempts_made >= self._max_attempts(job):
                pipe.lpush(self.dead, json.dumps(envelope))
                outcome = "dead"
            else:
                due = time.time() + backoff_delay(attempts_made, self.backoff_seconds)
                pipe.zadd(self.delayed, {json.dumps(envelope): due})
                outcome = "retry"
            pipe.execute()
            return outcome
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("retry", e) from e

    def counts(self) -> dict[str, int]:
        try:
            return {
                "pending": self.r.llen(self.jobs),
                "processing": self.r.llen(self.processing),
                "delayed": self.r.zcard(self.delayed),
                "dead": self.r.llen(self.dead),
            }
        except redis.exceptions.RedisError as e:
            raise self._infra_failure("counts", e) from e
