# /agrichat/services/media_service.py

import base64
import httpx
import logging
import tenacity

from agrichat.config.settings import settings
from agrichat.services.cache_service import cache_service
from agrichat.services.marketplace import MarketplaceFacade, marketplace
from agrichat.services.whatsapp_service import WhatsAppService, whatsapp_service

# Moves inbound WhatsApp images into marketplace storage. Downloaded bytes are
# cached briefly so a retried step does not fetch the same media twice.

logger = logging.getLogger(__name__)

MEDIA_CACHE_TTL_SECONDS = 600


class MediaService:
    def __init__(self, whatsapp: WhatsAppService, facade: MarketplaceFacade, redis_client, public_base_url: str):
        self.whatsapp = whatsapp
        self.facade = facade
        self.redis = redis_client
        self.public_base_url = public_base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=5.0))

    async def _media_bytes(self, media_id: str) -> bytes:
        cache_key = f"wa:media:{media_id}"
        cached = await self.redis.get(cache_key)
        if cached:
            return base64.b64decode(cached)
        media_url = await self.whatsapp.get_media_url(media_id)
        content = await self.whatsapp.download_media(media_url)
        await self.redis.set(cache_key, base64.b64encode(content).decode("ascii"), ex=MEDIA_CACHE_TTL_SECONDS)
        return content

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=1, min=1, max=8),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _upload(self, signed_url: str, content: bytes, content_type: str):
        response = await self.http_client.put(
            signed_url, content=content, headers={"Content-Type": content_type, "x-upsert": "true"}
        )
        response.raise_for_status()

    def public_url(self, bucket: str, object_path: str) -> str:
        return f"{self.public_base_url}/storage/v1/object/public/{bucket}/{object_path}"

    async def store(
        self,
        media_id: str,
        object_path: str,
        bucket: str = "public",
        content_type: str = "image/jpeg",
    ) -> str:
        """Returns the public URL for public buckets, otherwise the object path."""
        content = await self._media_bytes(media_id)
        signed_url = await self.facade.create_signed_upload_url(bucket, object_path)
        await self._upload(signed_url, content, content_type)
        logger.info(f"Stored WhatsApp media {media_id} at {bucket}/{object_path}")
        if bucket == "public":
            return self.public_url(bucket, object_path)
        return object_path

    async def close(self):
        await self.http_client.aclose()


# Globally accessible instance
media_service = MediaService(whatsapp_service, marketplace, cache_service.redis, settings.storage_public_base_url)
