# /agrichat/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from agrichat.config.settings import settings
from agrichat.services.cache_service import cache_service
from agrichat.services.marketplace import marketplace
from agrichat.services.media_service import media_service
from agrichat.services.session_store import session_backend, session_store
from agrichat.services.whatsapp_service import whatsapp_service
from agrichat.utils.alerting import alerting_service
from agrichat.utils.logging import setup_logging
from agrichat.utils.queue import outbound_queue
from agrichat.workers.whatsapp_sender import deliver

# Application lifespan: starts the session sweeper and (optionally) the
# in-process outbound senders, and closes every HTTP and Redis client on the
# way out.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    logger.info(f"Application starting up (session backend: {session_backend})...")

    await session_store.start()
    if settings.run_sender_in_process:
        await outbound_queue.start(deliver)
    else:
        await outbound_queue.initialize()

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")
    await outbound_queue.stop()
    await session_store.stop()
    await media_service.close()
    await whatsapp_service.close()
    await marketplace.close()
    await alerting_service.cleanup()
    await cache_service.close()
