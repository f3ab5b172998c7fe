# /agrichat/services/credentials.py

import time
import logging
from abc import ABC, abstractmethod
from typing import Optional

from agrichat.config.settings import settings
from agrichat.services.cache_service import cache_service

# The Graph API bearer token can be rotated at runtime from the admin API.
# Web processes and sender workers never share memory, so the current token is
# published to Redis and every consumer polls it with a short local cache.

logger = logging.getLogger(__name__)

TOKEN_KEY = "wa:token"


class CredentialError(RuntimeError):
    pass


class CredentialProvider(ABC):
    @abstractmethod
    async def current_token(self) -> str:
        """Returns the token to use for the next upstream call."""

    @abstractmethod
    async def refresh(self) -> str:
        """Forces a re-read from the shared rotation channel."""

    @abstractmethod
    async def rotate(self, token: str) -> None:
        """Replaces the token for this process and publishes it to all others."""


class StaticCredentialProvider(CredentialProvider):
    def __init__(self, token: str):
        self._token = token

    async def current_token(self) -> str:
        if not self._token:
            raise CredentialError("No WhatsApp access token configured")
        return self._token

    async def refresh(self) -> str:
        return await self.current_token()

    async def rotate(self, token: str) -> None:
        self._token = token


class RedisCredentialProvider(CredentialProvider):
    def __init__(
        self,
        redis_client,
        fallback_token: str,
        poll_seconds: int = 30,
        ttl_seconds: int = 60 * 60 * 24,
        clock=time.monotonic,
    ):
        self.redis = redis_client
        self.fallback_token = fallback_token
        self.poll_seconds = poll_seconds
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._fetched_at: float = 0.0

    async def current_token(self) -> str:
        if self._token and self._clock() - self._fetched_at < self.poll_seconds:
            return self._token
        return await self.refresh()

    async def refresh(self) -> str:
        published = None
        try:
            published = await self.redis.get(TOKEN_KEY) if self.redis else None
        except Exception as e:
            logger.warning(f"Could not read rotated WhatsApp token, using cached value: {e}")
        token = published or self._token or self.fallback_token
        if not token:
            raise CredentialError("No WhatsApp access token configured")
        if self._token and token != self._token:
            logger.info("WhatsApp token changed on the rotation channel.")
        self._token = token
        self._fetched_at = self._clock()
        return token

    async def rotate(self, token: str) -> None:
        if not token or not isinstance(token, str):
            raise CredentialError("Invalid token")
        self._token = token
        self._fetched_at = self._clock()
        if self.redis:
            await self.redis.set(TOKEN_KEY, token, ex=self.ttl_seconds)
        logger.info("WhatsApp token updated and published for workers.")


# Globally accessible instance
credential_provider = RedisCredentialProvider(
    cache_service.redis,
    settings.whatsapp_access_token,
    poll_seconds=settings.whatsapp_token_poll_seconds,
    ttl_seconds=settings.whatsapp_token_ttl_seconds,
)
