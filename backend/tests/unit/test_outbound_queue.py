# backend/tests/unit/test_outbound_queue.py
import pytest
from unittest.mock import AsyncMock

from agrichat.models.outbound import OutboundJob
from agrichat.utils.queue import OutboundQueue


@pytest.fixture
def clock():
    return {"now": 1_000_000}


@pytest.fixture
def queue(fake_redis, clock, mocker):
    mocker.patch("agrichat.utils.queue.alerting_service.send_critical_alert", new_callable=AsyncMock)
    return OutboundQueue(fake_redis, name="test-send", max_attempts=3, backoff_base_ms=2000,
                         clock=lambda: clock["now"])


def test_backoff_doubles_per_attempt(queue):
    assert [queue.backoff_ms(n) for n in (1, 2, 3)] == [2000, 4000, 8000]


@pytest.mark.asyncio
async def test_successful_job_is_acked_and_recorded(queue, fake_redis):
    processor = AsyncMock()
    queue.processor = processor
    await queue.enqueue({"to": "1555", "type": "text"}, {"kind": "text"})

    assert await queue.process_next("c1") is True
    processor.assert_awaited_once()
    job = processor.await_args.args[0]
    assert job.attempts == 1 and job.meta == {"kind": "text"}
    stats = await queue.stats()
    assert stats == {"queued": 0, "delayed": 0, "completed": 1, "dead": 0}


@pytest.mark.asyncio
async def test_failed_job_waits_for_backoff_before_retry(queue, clock):
    queue.processor = AsyncMock(side_effect=RuntimeError("upstream 500"))
    await queue.enqueue({"to": "1555"})
    await queue.process_next("c1")

    assert (await queue.stats())["delayed"] == 1
    assert await queue.promote_due() == 0

    clock["now"] += 2000
    assert await queue.promote_due() == 1
    assert (await queue.stats())["queued"] == 1


@pytest.mark.asyncio
async def test_job_is_dead_lettered_after_attempt_budget(queue, clock):
    queue.processor = AsyncMock(side_effect=RuntimeError("bad payload"))
    await queue.enqueue({"to": "1555"})

    for _ in range(3):
        await queue.process_next("c1")
        clock["now"] += 10_000
        await queue.promote_due()

    assert queue.processor.await_count == 3
    stats = await queue.stats()
    assert stats["dead"] == 1 and stats["queued"] == 0 and stats["delayed"] == 0

    dead = await queue.dead_letters()
    assert dead[0].attempts == 3
    assert dead[0].last_error == "bad payload"


@pytest.mark.asyncio
async def test_undecodable_entry_is_dropped(queue, fake_redis):
    queue.processor = AsyncMock()
    await fake_redis.xadd(queue.stream_name, {"job": "not json"})
    await queue.process_next("c1")
    queue.processor.assert_not_awaited()
    assert await fake_redis.xlen(queue.stream_name) == 0


def test_job_defaults():
    job = OutboundJob(payload={"to": "1"})
    assert job.attempts == 0 and job.id and job.enqueued_at > 0


@pytest.mark.asyncio
async def test_job_stays_pending_when_retry_cannot_be_scheduled(queue, fake_redis, mocker):
    queue.processor = AsyncMock(side_effect=RuntimeError("upstream 500"))
    mocker.patch.object(fake_redis, "zadd", new_callable=AsyncMock, side_effect=ConnectionError("redis down"))
    ack = mocker.spy(fake_redis, "xack")
    await queue.enqueue({"to": "1555"})

    with pytest.raises(ConnectionError):
        await queue.process_next("c1")

    ack.assert_not_called()
    assert await fake_redis.xlen(queue.stream_name) == 1
    assert (await queue.stats())["delayed"] == 0
