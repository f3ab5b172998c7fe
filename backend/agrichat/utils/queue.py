# /agrichat/utils/queue.py

import time
import uuid
import asyncio
import logging
import redis as redis_package
from typing import Awaitable, Callable, Dict, List, Optional

from agrichat.config.settings import settings
from agrichat.models.outbound import OutboundJob
from agrichat.services.cache_service import cache_service
from agrichat.utils.alerting import alerting_service
from agrichat.utils.metrics import outbound_jobs_counter, outbound_queue_gauge

# Durable outbound message queue on Redis Streams. Every WhatsApp send goes
# through here so that a fixed pool of workers is the only thing talking to the
# Graph API. Failed jobs wait in a sorted set until their exponential backoff
# has elapsed and are then put back on the stream; jobs that exhaust the attempt
# budget are dead-lettered into a capped list for inspection.

logger = logging.getLogger(__name__)

Processor = Callable[[OutboundJob], Awaitable[None]]


class OutboundQueue:
    def __init__(
        self,
        redis_client,
        name: str = "wa-send",
        max_attempts: int = 5,
        backoff_base_ms: int = 2000,
        keep_completed: int = 1000,
        keep_failed: int = 5000,
        concurrency: int = 5,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.redis = redis_client
        self.name = name
        self.stream_name = f"{name}:stream"
        self.consumer_group = f"{name}:senders"
        self.delayed_key = f"{name}:delayed"
        self.completed_key = f"{name}:completed"
        self.dead_key = f"{name}:dead"
        self.max_attempts = max_attempts
        self.backoff_base_ms = backoff_base_ms
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed
        self.concurrency = concurrency
        self._clock = clock or (lambda: int(time.time() * 1000))
        self.processor: Optional[Processor] = None
        self.workers: List[asyncio.Task] = []
        self.running = False

    def backoff_ms(self, attempt: int) -> int:
        """Delay before retrying after the given (1-based) failed attempt."""
        return self.backoff_base_ms * (2 ** (max(attempt, 1) - 1))

    async def initialize(self):
        try:
            await self.redis.xgroup_create(self.stream_name, self.consumer_group, id="0", mkstream=True)
        except redis_package.exceptions.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def enqueue(self, payload: Dict, meta: Optional[Dict] = None) -> str:
        """Returns once the job is durably on the stream, not once it is delivered."""
        job = OutboundJob(payload=payload, meta=meta or {})
        await self.redis.xadd(self.stream_name, {"job": job.model_dump_json()})
        outbound_jobs_counter.labels(outcome="enqueued").inc()
        return job.id

    async def start(self, processor: Processor):
        self.processor = processor
        await self.initialize()
        self.running = True
        for i in range(self.concurrency):
            consumer = f"sender-{i}-{uuid.uuid4().hex[:4]}"
            self.workers.append(asyncio.create_task(self._worker(consumer)))
        self.workers.append(asyncio.create_task(self._promoter(f"promoter-{uuid.uuid4().hex[:4]}")))
        logger.info(f"Started {self.concurrency} outbound senders on '{self.stream_name}'.")

    async def stop(self):
        self.running = False
        for worker in self.workers:
            worker.cancel()
        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers = []

    async def _worker(self, consumer_name: str):
        while self.running:
            try:
                await self.process_next(consumer_name, block_ms=1000)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Outbound sender '{consumer_name}' error: {e}", exc_info=True)
                await asyncio.sleep(1)

    async def _promoter(self, consumer_name: str):
        while self.running:
            try:
                await self.promote_due()
                await self.reclaim_stale(consumer_name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Outbound promoter error: {e}", exc_info=True)
            await asyncio.sleep(0.5)

    async def process_next(self, consumer_name: str, block_ms: Optional[int] = None) -> bool:
        """Claims and runs at most one job. Returns False when the stream was empty."""
        entries = await self.redis.xreadgroup(
            self.consumer_group, consumer_name, {self.stream_name: ">"}, count=1, block=block_ms
        )
        if not entries:
            return False
        _, messages = entries[0]
        if not messages:
            return False
        for entry_id, fields in messages:
            await self._run(entry_id, fields)
        return True

    async def _run(self, entry_id: str, fields: Dict):
        try:
            job = OutboundJob.model_validate_json(fields["job"])
        except Exception as e:
            logger.error(f"Dropping undecodable outbound entry {entry_id}: {e}")
            await self._ack(entry_id)
            return

        job.attempts += 1
        try:
            if not self.processor:
                raise RuntimeError("No processor registered for the outbound queue")
            await self.processor(job)
        except Exception as e:
            job.last_error = str(e)[:500]
            # Stays pending until the retry is scheduled or dead-lettered;
            # reclaim_stale picks it up again if that fails.
            await self._on_failure(job)
            await self._ack(entry_id)
            return

        await self._ack(entry_id)
        job.finished_at = self._clock()
        await self.redis.lpush(self.completed_key, job.model_dump_json())
        await self.redis.ltrim(self.completed_key, 0, self.keep_completed - 1)
        outbound_jobs_counter.labels(outcome="sent").inc()

    async def _ack(self, entry_id: str):
        await self.redis.xack(self.stream_name, self.consumer_group, entry_id)
        await self.redis.xdel(self.stream_name, entry_id)

    async def _on_failure(self, job: OutboundJob):
        if job.attempts >= self.max_attempts:
            job.finished_at = self._clock()
            await self.redis.lpush(self.dead_key, job.model_dump_json())
            await self.redis.ltrim(self.dead_key, 0, self.keep_failed - 1)
            outbound_jobs_counter.labels(outcome="dead").inc()
            logger.error(
                f"Outbound job {job.id} dead-lettered after {job.attempts} attempts: {job.last_error}",
                extra={"meta": job.meta},
            )
            await alerting_service.send_critical_alert(
                "WhatsApp send dead-lettered",
                {"job_id": job.id, "to": job.payload.get("to"), "error": job.last_error, "meta": job.meta},
            )
            return

        due = self._clock() + self.backoff_ms(job.attempts)
        await self.redis.zadd(self.delayed_key, {job.model_dump_json(): due})
        outbound_jobs_counter.labels(outcome="retried").inc()
        logger.warning(
            f"Outbound job {job.id} failed (attempt {job.attempts}/{self.max_attempts}), "
            f"retrying in {self.backoff_ms(job.attempts)}ms: {job.last_error}"
        )

    async def promote_due(self) -> int:
        """Moves delayed jobs whose backoff has elapsed back onto the stream."""
        due = await self.redis.zrangebyscore(self.delayed_key, "-inf", self._clock())
        moved = 0
        for member in due:
            # zrem guards against two promoters moving the same job
            if await self.redis.zrem(self.delayed_key, member):
                await self.redis.xadd(self.stream_name, {"job": member})
                moved += 1
        outbound_queue_gauge.set(await self.redis.zcard(self.delayed_key))
        return moved

    async def reclaim_stale(self, consumer_name: str, min_idle_ms: int = 60000) -> int:
        """Re-runs entries left pending by a sender that died mid-job."""
        result = await self.redis.xautoclaim(
            self.stream_name, self.consumer_group, consumer_name, min_idle_time=min_idle_ms, start_id="0-0", count=10
        )
        messages = result[1] if result and len(result) > 1 else []
        for entry_id, fields in messages:
            if fields:
                await self._run(entry_id, fields)
        return len(messages)

    async def stats(self) -> Dict[str, int]:
        return {
            "queued": await self.redis.xlen(self.stream_name),
            "delayed": await self.redis.zcard(self.delayed_key),
            "completed": await self.redis.llen(self.completed_key),
            "dead": await self.redis.llen(self.dead_key),
        }

    async def dead_letters(self, limit: int = 50) -> List[OutboundJob]:
        raw = await self.redis.lrange(self.dead_key, 0, max(limit, 1) - 1)
        return [OutboundJob.model_validate_json(item) for item in raw]


# Globally accessible instance
outbound_queue = OutboundQueue(
    cache_service.redis,
    name=settings.outbound_queue_name,
    max_attempts=settings.outbound_max_attempts,
    backoff_base_ms=settings.outbound_backoff_base_ms,
    keep_completed=settings.outbound_keep_completed,
    keep_failed=settings.outbound_keep_failed,
    concurrency=settings.outbound_worker_concurrency,
)
