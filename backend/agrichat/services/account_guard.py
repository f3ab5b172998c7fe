# /agrichat/services/account_guard.py

import time
import logging
from typing import Callable, Optional

from agrichat.config.settings import settings
from agrichat.services.cache_service import cache_service
from agrichat.services.security_service import AttemptCounter, SecurityService

# Per-user lock and phone pairing state. A locked account can only be
# unlocked with a one-time code sent to the paired number; a successful OTP
# stores the pairing fingerprint that gates sensitive operations and seller
# notifications.

logger = logging.getLogger(__name__)

YEAR_SECONDS = 60 * 60 * 24 * 365
LAST_ACTIVE_TTL_SECONDS = 60 * 60 * 24 * 60
LOCKED, UNLOCKED = "1", "0"


class AccountGuard:
    def __init__(
        self,
        redis_client,
        idle_lock_days: int = 14,
        otp_ttl_seconds: int = 600,
        otp_max_attempts: int = 5,
        pairing_ttl_days: int = 90,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.redis = redis_client
        self.idle_ms = idle_lock_days * 24 * 60 * 60 * 1000
        self.otp_ttl_seconds = otp_ttl_seconds
        self.pairing_ttl_seconds = pairing_ttl_days * 24 * 60 * 60
        self._clock = clock or (lambda: int(time.time() * 1000))
        self.unlock_attempts = AttemptCounter(redis_client, "wa:unlock:attempts", otp_max_attempts, otp_ttl_seconds)
        self.otp_attempts = AttemptCounter(redis_client, "wa:otp:attempts", otp_max_attempts, otp_ttl_seconds)

    # ---------------- Lock state ---------------- #

    async def is_locked(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        return await self.redis.get(f"wa:locked:{user_id}") == LOCKED

    async def lock(self, user_id: str):
        await self.redis.set(f"wa:locked:{user_id}", LOCKED, ex=YEAR_SECONDS)
        logger.info(f"Account {user_id} locked")

    async def unlock(self, user_id: str):
        await self.redis.set(f"wa:locked:{user_id}", UNLOCKED, ex=YEAR_SECONDS)

    async def touch(self, user_id: str):
        await self.redis.set(f"wa:last_active:{user_id}", str(self._clock()), ex=LAST_ACTIVE_TTL_SECONDS)

    async def lock_if_idle(self, user_id: str) -> bool:
        """Locks the account when its last activity is older than the idle limit. True if it just locked."""
        raw = await self.redis.get(f"wa:last_active:{user_id}")
        last = int(raw) if raw and str(raw).isdigit() else 0
        if not last or self._clock() - last <= self.idle_ms:
            return False
        if await self.is_locked(user_id):
            return False
        await self.lock(user_id)
        return True

    # ---------------- Unlock OTP ---------------- #

    async def issue_unlock_otp(self, user_id: str, phone: str) -> str:
        otp = SecurityService.generate_otp()
        await self.redis.set(f"wa:unlock:otp:{user_id}", otp, ex=self.otp_ttl_seconds)
        await self.unlock_attempts.arm(phone)
        return otp

    async def register_unlock_attempt(self, phone: str) -> bool:
        return await self.unlock_attempts.register(phone)

    async def check_unlock_otp(self, user_id: str, code: str) -> bool:
        expected = await self.redis.get(f"wa:unlock:otp:{user_id}")
        return SecurityService.otp_matches(code, expected)

    async def complete_unlock(self, user_id: str, phone: str):
        await self.redis.delete(f"wa:unlock:otp:{user_id}")
        await self.unlock(user_id)
        await self.pair(user_id, phone)
        await self.touch(user_id)

    # ---------------- Signup / login OTP ---------------- #

    async def register_otp_attempt(self, phone: str) -> bool:
        return await self.otp_attempts.register(phone)

    async def reset_otp_attempts(self, phone: str):
        await self.otp_attempts.reset(phone)

    # ---------------- Pairing ---------------- #

    async def pair(self, user_id: str, phone: str):
        fingerprint = SecurityService.phone_fingerprint(phone)
        await self.redis.set(f"wa:fp:{user_id}", fingerprint, ex=self.pairing_ttl_seconds)

    async def unpair(self, user_id: str):
        await self.redis.delete(f"wa:fp:{user_id}")

    async def is_paired(self, user_id: Optional[str], phone: str) -> bool:
        if not user_id:
            return False
        stored = await self.redis.get(f"wa:fp:{user_id}")
        return bool(stored) and stored == SecurityService.phone_fingerprint(phone)

    # ---------------- Logout ---------------- #

    async def mark_logged_out(self, phone: str):
        await self.redis.set(f"wa:logged_out:{phone}", "1", ex=YEAR_SECONDS)

    async def clear_logged_out(self, phone: str):
        await self.redis.delete(f"wa:logged_out:{phone}")

    async def is_logged_out(self, phone: str) -> bool:
        return await self.redis.get(f"wa:logged_out:{phone}") == "1"


# Globally accessible instance
account_guard = AccountGuard(
    cache_service.redis,
    idle_lock_days=settings.idle_lock_days,
    otp_ttl_seconds=settings.otp_ttl_seconds,
    otp_max_attempts=settings.otp_max_attempts,
    pairing_ttl_days=settings.pairing_ttl_days,
)
