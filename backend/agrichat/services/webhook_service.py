# /agrichat/services/webhook_service.py

import time
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from agrichat.config import strings
from agrichat.config.settings import settings
from agrichat.conversation.context import Reply, Turn
from agrichat.conversation.engine import ConversationEngine, conversation_engine
from agrichat.models.inbound import InboundMessage
from agrichat.services.cache_service import cache_service
from agrichat.services.security_service import AdvancedRateLimiter
from agrichat.services.send_service import SendService, send_service
from agrichat.services.session_store import SessionStore, session_store
from agrichat.services.template_service import TemplateService, last_inbound_key, template_service
from agrichat.utils.metrics import duplicate_messages_counter, inbound_messages_counter

# Ingestion side of the WhatsApp channel: turns one verified webhook body into
# at most one engine turn and flushes the turn's replies into the outbound
# queue. Deduplication happens before any session read so redelivered
# messages produce no side effects.

logger = logging.getLogger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"
RATE_LIMITED = "rate_limited"


def dedupe_key(message_id: str) -> str:
    return f"wa:msg:{message_id}"


class WebhookProcessor:
    def __init__(
        self,
        engine: ConversationEngine,
        store: SessionStore,
        sender: SendService,
        templates: TemplateService,
        redis_client,
        phone_id: Optional[str] = None,
        serialize_per_channel: bool = False,
        rate_limit_per_minute: int = 30,
        dedupe_ttl_seconds: int = 600,
        last_inbound_ttl_seconds: int = 60 * 60 * 48,
    ):
        self.engine = engine
        self.store = store
        self.sender = sender
        self.templates = templates
        self.redis = redis_client
        self.phone_id = phone_id
        self.serialize_per_channel = serialize_per_channel
        self.rate_limit_per_minute = rate_limit_per_minute
        self.dedupe_ttl_seconds = dedupe_ttl_seconds
        self.last_inbound_ttl_seconds = last_inbound_ttl_seconds
        self.rate_limiter = AdvancedRateLimiter(redis_client)

    async def is_first_delivery(self, message_id: Optional[str]) -> bool:
        """SET NX on the message id; deliveries without an id are never deduplicated."""
        if not message_id:
            return True
        return bool(await self.redis.set(dedupe_key(message_id), "1", ex=self.dedupe_ttl_seconds, nx=True))

    async def stamp_last_inbound(self, phone: str):
        await self.redis.set(last_inbound_key(phone), str(int(time.time() * 1000)), ex=self.last_inbound_ttl_seconds)

    @asynccontextmanager
    async def _channel(self, phone: str):
        if not self.serialize_per_channel:
            yield
            return
        async with self.store.lock(phone):
            yield

    async def process(self, body: Dict[str, Any]) -> str:
        message = InboundMessage.from_webhook(body)
        if message is None:
            return IGNORED
        if self.phone_id and message.phone_number_id and message.phone_number_id != self.phone_id:
            logger.info(f"Ignored message for phone id {message.phone_number_id}")
            return IGNORED

        phone = message.from_number
        if not await self.is_first_delivery(message.id):
            duplicate_messages_counter.inc()
            logger.info(f"Duplicate delivery {message.id} from {phone} dropped")
            return DUPLICATE

        await self.stamp_last_inbound(phone)
        event = message.to_event()
        inbound_messages_counter.labels(kind=event.kind.value).inc()

        if not await self.rate_limiter.check_phone_rate_limit(phone, limit=self.rate_limit_per_minute):
            logger.warning(f"Inbound rate limit exceeded for {phone}")
            return RATE_LIMITED

        async with self._channel(phone):
            turn = await self.engine.handle(phone, event)
            await self.flush(turn)
        return PROCESSED

    async def flush(self, turn: Turn) -> List[str]:
        """Enqueues the turn's replies in order. Returns the job ids (or template outcomes)."""
        results = []
        for reply in turn.outbox:
            try:
                results.append(await self._send(turn.phone, reply))
            except Exception as e:
                logger.error(f"Could not enqueue {reply.kind} reply for {turn.phone} in flow {turn.flow.value}: {e}")
                raise
        return results

    async def _send(self, to: str, reply: Reply) -> str:
        args = reply.args
        if reply.kind == "text":
            return await self.sender.text(to, args["body"])
        if reply.kind == "buttons":
            return await self.sender.buttons(to, args["body"], args["buttons"])
        if reply.kind == "list":
            return await self.sender.list(to, args["header"], args["body"], args["button"], args["sections"])
        if reply.kind == "image":
            return await self.sender.image(to, args["link"], args.get("caption"))
        if reply.kind == "otp":
            return await self.templates.send_otp(to, args["otp"], args.get("locale"))
        if reply.kind == "order_update":
            return await self.templates.send_order_update(
                to, args["order_number"], args["status"], args.get("tracking"), args.get("locale")
            )
        logger.error(f"Unknown reply kind '{reply.kind}' for {to}")
        return await self.sender.text(to, strings.GENERIC_RETRY)


# Globally accessible instance
webhook_processor = WebhookProcessor(
    conversation_engine,
    session_store,
    send_service,
    template_service,
    cache_service.redis,
    phone_id=settings.whatsapp_phone_id or None,
    serialize_per_channel=settings.session_serialize_per_channel,
    rate_limit_per_minute=settings.inbound_rate_limit_per_minute,
    dedupe_ttl_seconds=settings.dedupe_ttl_seconds,
    last_inbound_ttl_seconds=settings.last_inbound_ttl_seconds,
)
