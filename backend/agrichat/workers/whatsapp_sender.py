#!/usr/bin/env python3
"""
WhatsApp Sender Worker

Drains the outbound queue and delivers each job to the WhatsApp Cloud API.
Runs inside the web process when RUN_SENDER_IN_PROCESS is set, or standalone:

    python -m agrichat.workers.whatsapp_sender
"""

import asyncio
import logging
import signal

from agrichat.models.outbound import OutboundJob
from agrichat.services.cache_service import cache_service
from agrichat.services.whatsapp_service import UpstreamSendError, whatsapp_service
from agrichat.utils.alerting import alerting_service
from agrichat.utils.logging import setup_logging
from agrichat.utils.queue import outbound_queue

logger = logging.getLogger("WhatsAppSender")


async def deliver(job: OutboundJob) -> None:
    """
    Sends one queued payload. Any exception hands the job back to the queue,
    which owns the retry budget and dead-lettering.
    """
    recipient = str(job.payload.get("to", ""))
    try:
        wamid = await whatsapp_service.post_message(job.payload)
    except UpstreamSendError as e:
        logger.error(
            f"WhatsApp rejected job {job.id} to {recipient[:4]}... (attempt {job.attempts})",
            extra={"status": e.status, "code": e.code, "subcode": e.subcode, "meta": job.meta},
        )
        if e.status == 401:
            await alerting_service.send_critical_alert(
                "WhatsApp credentials rejected", {"job_id": job.id, "code": e.code, "subcode": e.subcode}
            )
        raise
    logger.info(f"Job {job.id} sent to {recipient[:4]}... as {wamid} ({job.meta.get('kind', 'message')})")


async def _run():
    setup_logging()
    logger.info("Starting WhatsApp Sender Worker...")
    logger.info(f"Queue: {outbound_queue.stream_name}, concurrency: {outbound_queue.concurrency}")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    await outbound_queue.start(deliver)
    try:
        await stop_event.wait()
    finally:
        logger.info("Worker stopping...")
        await outbound_queue.stop()
        await whatsapp_service.close()
        await alerting_service.cleanup()
        await cache_service.close()
        logger.info("Worker stopped")


def run_worker():
    asyncio.run(_run())


if __name__ == "__main__":
    run_worker()
