# /agrichat/services/template_service.py

import time
import logging
from typing import Any, Callable, Optional, Sequence

from agrichat.config.settings import settings
from agrichat.services.cache_service import cache_service
from agrichat.services.security_service import SecurityService
from agrichat.services.send_service import SendService, send_service
from agrichat.utils.metrics import templates_suppressed_counter

# Notification sends that may happen outside an active conversation. WhatsApp
# only allows free-form messages within 24 hours of the user's last inbound
# message; outside that window a pre-approved template must be used instead.
# Each public method returns what it did: "template", "text", "suppressed" or
# "skipped".

logger = logging.getLogger(__name__)

TEMPLATE = "template"
TEXT = "text"
SUPPRESSED = "suppressed"
SKIPPED = "skipped"


def last_inbound_key(phone: str) -> str:
    return f"wa:last_inbound:{phone}"


def optout_key(phone: str) -> str:
    return f"wa:optout:{phone}"


def fingerprint_key(user_id: str) -> str:
    return f"wa:fp:{user_id}"


def template_language(locale: Optional[str]) -> str:
    return "es_ES" if locale == "es" else "en_US"


class TemplateService:
    def __init__(self, sender: SendService, redis_client, window_hours: int = 24, clock: Optional[Callable[[], int]] = None):
        self.sender = sender
        self.redis = redis_client
        self.window_ms = window_hours * 60 * 60 * 1000
        self._clock = clock or (lambda: int(time.time() * 1000))

    async def is_outside_window(self, phone: str) -> bool:
        """No recorded inbound message counts as outside the window."""
        ts = await self.redis.get(last_inbound_key(phone))
        if not ts:
            return True
        try:
            return self._clock() - int(ts) > self.window_ms
        except ValueError:
            return True

    async def is_opted_out(self, phone: str) -> bool:
        return bool(await self.redis.get(optout_key(phone)))

    async def set_opt_out(self, phone: str, opted_out: bool = True):
        if opted_out:
            await self.redis.set(optout_key(phone), "1")
        else:
            await self.redis.delete(optout_key(phone))
        logger.info(f"Template opt-out for {phone[:4]}... set to {opted_out}")

    async def is_paired(self, user_id: str, phone_e164: str) -> bool:
        stored = await self.redis.get(fingerprint_key(user_id))
        if not stored:
            return False
        return stored == SecurityService.phone_fingerprint(phone_e164)

    async def send_template(self, to: str, name: str, parameters: Sequence[Any], locale: Optional[str]) -> str:
        if await self.is_opted_out(to):
            logger.warning(f"Template '{name}' suppressed due to opt-out for {to[:4]}...")
            templates_suppressed_counter.inc()
            return SUPPRESSED
        language = template_language(locale)
        await self.sender.template(to, name, parameters, language, language_code=language, outside_window=True)
        return TEMPLATE

    async def send_otp(self, to: str, otp: str, locale: Optional[str] = "en") -> str:
        if await self.is_outside_window(to):
            return await self.send_template(to, "otp_verify", [otp], locale)
        await self.sender.text(to, f"Your {settings.brand_name} verification code is: {otp}")
        return TEXT

    async def send_new_order_to_seller(
        self,
        to: str,
        order_number: str,
        buyer_name: str,
        total_amount: float,
        currency: str,
        manage_url: str,
        locale: Optional[str] = "en",
    ) -> str:
        total = f"{float(total_amount):.2f}"
        if await self.is_outside_window(to):
            return await self.send_template(
                to, "new_order_to_seller", [order_number, buyer_name, total, currency, manage_url], locale
            )
        await self.sender.text(
            to, f"New order {order_number} from {buyer_name}. Total: {currency} {total}\nManage: {manage_url}"
        )
        return TEXT

    async def send_order_update(
        self,
        to: str,
        order_number: str,
        status: str,
        tracking: Optional[str] = None,
        locale: Optional[str] = "en",
    ) -> str:
        # Inside the window the chat confirmation already told the user.
        if not await self.is_outside_window(to):
            return SKIPPED
        if tracking:
            return await self.send_template(to, "order_update_with_tracking", [order_number, status, tracking], locale)
        return await self.send_template(to, "order_update_no_tracking", [order_number, status], locale)

    async def send_new_order_to_seller_if_paired(
        self,
        user_id: str,
        phone_e164: str,
        order_number: str,
        buyer_name: str,
        total_amount: float,
        currency: str,
        manage_url: Optional[str] = None,
        locale: Optional[str] = "en",
    ) -> str:
        if not await self.is_paired(user_id, phone_e164):
            logger.info(f"New-order notice for user {user_id} skipped: number not paired.")
            return SKIPPED
        to = phone_e164.lstrip("+")
        return await self.send_new_order_to_seller(
            to, order_number, buyer_name, total_amount, currency, manage_url or settings.seller_portal_url, locale
        )

    async def send_order_update_if_paired(
        self,
        user_id: str,
        phone_e164: str,
        order_number: str,
        status: str,
        tracking: Optional[str] = None,
        locale: Optional[str] = "en",
    ) -> str:
        if not await self.is_paired(user_id, phone_e164):
            logger.info(f"Order update for user {user_id} skipped: number not paired.")
            return SKIPPED
        return await self.send_order_update(phone_e164.lstrip("+"), order_number, status, tracking, locale)


# Globally accessible instance
template_service = TemplateService(send_service, cache_service.redis, window_hours=settings.template_window_hours)
