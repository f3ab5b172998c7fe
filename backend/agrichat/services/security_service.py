# /agrichat/services/security_service.py

import hmac
import hashlib
import re
import secrets
import bcrypt

from agrichat.config.settings import settings

# Core security helpers: webhook signature verification, phone pairing
# fingerprints, OTP and password generation, and Redis-backed attempt counters.


class SecurityService:
    @staticmethod
    def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
        if not signature or not signature.startswith('sha256='):
            return False
        expected_signature = hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected_signature, signature[7:])

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=12)).decode('utf-8')

    @staticmethod
    def to_e164(phone: str) -> str:
        """WhatsApp sends bare digits; the marketplace stores `+<digits>`."""
        digits = re.sub(r"\D", "", phone or "")
        return f"+{digits}" if digits else ""

    @staticmethod
    def phone_fingerprint(phone: str, secret: str | None = None) -> str:
        """Keyed hash of the E.164 number proving a pairing without storing the number."""
        key = (secret or settings.pairing_secret).encode('utf-8')
        e164 = SecurityService.to_e164(phone)
        return hmac.new(key, e164.encode('utf-8'), hashlib.sha256).hexdigest()

    @staticmethod
    def generate_otp() -> str:
        return f"{secrets.randbelow(900000) + 100000}"

    @staticmethod
    def generate_random_password() -> str:
        return f"Wa!{secrets.token_urlsafe(18)}"

    @staticmethod
    def is_valid_otp_format(code: str) -> bool:
        return bool(re.fullmatch(r"[0-9]{6}", (code or "").strip()))

    @staticmethod
    def otp_matches(code: str, expected: str | None) -> bool:
        if not expected:
            return False
        return hmac.compare_digest(code.strip(), str(expected))


class AttemptCounter:
    """Bounded attempt counter per key with a cool-down window (incr + expire)."""

    def __init__(self, redis_client, prefix: str, max_attempts: int, window: int):
        self.redis = redis_client
        self.prefix = prefix
        self.max_attempts = max_attempts
        self.window = window

    def _key(self, subject: str) -> str:
        return f"{self.prefix}:{subject}"

    async def register(self, subject: str) -> bool:
        """Counts one attempt. Returns False once the bound has been exceeded."""
        key = self._key(subject)
        current = await self.redis.incr(key)
        if current == 1:
            await self.redis.expire(key, self.window)
        return current <= self.max_attempts

    async def reset(self, subject: str):
        await self.redis.delete(self._key(subject))

    async def arm(self, subject: str):
        """Starts a fresh window with zero attempts."""
        await self.redis.set(self._key(subject), "0", ex=self.window)


class AdvancedRateLimiter:
    def __init__(self, redis_client):
        self.redis = redis_client

    async def check_phone_rate_limit(self, phone_number: str, limit: int = 30, window: int = 60) -> bool:
        if not self.redis:
            return True
        key = f"rate_limit:phone:{phone_number}"
        current_count = await self.redis.incr(key)
        if current_count == 1:
            await self.redis.expire(key, window)
        return current_count <= limit
