# backend/tests/integration/test_worker.py
import pytest
from unittest.mock import AsyncMock

from agrichat.models.outbound import OutboundJob
from agrichat.services.whatsapp_service import UpstreamSendError
from agrichat.utils.queue import OutboundQueue
from agrichat.workers.whatsapp_sender import deliver


def sample_job():
    return OutboundJob(
        payload={"messaging_product": "whatsapp", "to": "15551234567", "type": "text", "text": {"body": "hi"}},
        meta={"kind": "text"},
    )


@pytest.mark.asyncio
async def test_worker_delivers_job(mocker):
    """Tests the worker's delivery logic for a successful send."""
    mock_post = mocker.patch(
        "agrichat.workers.whatsapp_sender.whatsapp_service.post_message",
        new_callable=AsyncMock,
        return_value="wamid.1",
    )
    mock_alert = mocker.patch(
        "agrichat.workers.whatsapp_sender.alerting_service.send_critical_alert",
        new_callable=AsyncMock,
    )

    job = sample_job()
    await deliver(job)

    mock_post.assert_awaited_once_with(job.payload)
    mock_alert.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_alerts_on_rejected_credentials(mocker):
    mocker.patch(
        "agrichat.workers.whatsapp_sender.whatsapp_service.post_message",
        new_callable=AsyncMock,
        side_effect=UpstreamSendError(401, "Invalid OAuth access token", code=190),
    )
    mock_alert = mocker.patch(
        "agrichat.workers.whatsapp_sender.alerting_service.send_critical_alert",
        new_callable=AsyncMock,
    )

    with pytest.raises(UpstreamSendError):
        await deliver(sample_job())
    mock_alert.assert_awaited_once()


@pytest.mark.asyncio
async def test_worker_failures_go_back_to_the_queue(mocker, fake_redis):
    """A rejected send is retried by the queue, never swallowed by the worker."""
    mocker.patch(
        "agrichat.workers.whatsapp_sender.whatsapp_service.post_message",
        new_callable=AsyncMock,
        side_effect=UpstreamSendError(400, "Bad payload", code=100),
    )
    mocker.patch("agrichat.utils.queue.alerting_service.send_critical_alert", new_callable=AsyncMock)
    queue = OutboundQueue(fake_redis, name="wa-send-test", max_attempts=2, backoff_base_ms=1)
    queue.processor = deliver

    job_id = await queue.enqueue(sample_job().payload, {"kind": "text"})
    assert await queue.process_next("c1") is True

    stats = await queue.stats()
    assert job_id
    assert stats["completed"] == 0
    assert stats["delayed"] == 1 and stats["dead"] == 0
