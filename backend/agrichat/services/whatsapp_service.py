# /agrichat/services/whatsapp_service.py

import httpx
import logging
import tenacity
from typing import Any, Dict, Optional

from agrichat.config.settings import settings
from agrichat.services.credentials import CredentialProvider, credential_provider

# Thin client for the WhatsApp Cloud (Graph) API: message sends for the
# outbound worker and media metadata/downloads for inbound images. Every call
# re-reads the bearer token once when the provider reports it expired.

logger = logging.getLogger(__name__)

EXPIRED_TOKEN_CODE = 190


class UpstreamSendError(Exception):
    def __init__(self, status: int, message: str, code: Optional[int] = None, subcode: Optional[int] = None):
        super().__init__(f"WhatsApp API error {status}: {message}")
        self.status = status
        self.message = message
        self.code = code
        self.subcode = subcode

    @classmethod
    def from_response(cls, response: httpx.Response) -> "UpstreamSendError":
        try:
            error = (response.json() or {}).get("error") or {}
        except ValueError:
            error = {}
        return cls(
            status=response.status_code,
            message=error.get("message") or response.text[:200],
            code=error.get("code"),
            subcode=error.get("error_subcode"),
        )

    @property
    def is_expired_token(self) -> bool:
        return self.status == 401 and self.code == EXPIRED_TOKEN_CODE


def _is_expired_token(response: httpx.Response) -> bool:
    if response.status_code != 401:
        return False
    try:
        return ((response.json() or {}).get("error") or {}).get("code") == EXPIRED_TOKEN_CODE
    except ValueError:
        return False


class WhatsAppService:
    def __init__(self, credentials: CredentialProvider, phone_id: str, base_url: str):
        self.credentials = credentials
        self.phone_id = phone_id
        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(timeout=15.0)

    async def _authorized(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        token = await self.credentials.current_token()
        response = await self.http_client.request(method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs)
        if _is_expired_token(response):
            logger.warning("WhatsApp token expired, re-reading rotation channel and retrying once.")
            token = await self.credentials.refresh()
            response = await self.http_client.request(
                method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
        return response

    async def post_message(self, payload: Dict[str, Any]) -> Optional[str]:
        """Sends one message payload. Returns the provider message id (wamid)."""
        url = f"{self.base_url}/{self.phone_id}/messages"
        response = await self._authorized("POST", url, json=payload)
        if response.status_code >= 400:
            raise UpstreamSendError.from_response(response)
        data = response.json() or {}
        return (data.get("messages") or [{}])[0].get("id")

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=1, min=1, max=8),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def get_media_url(self, media_id: str) -> str:
        response = await self._authorized("GET", f"{self.base_url}/{media_id}")
        if response.status_code >= 400:
            raise UpstreamSendError.from_response(response)
        return response.json()["url"]

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=1, min=1, max=8),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def download_media(self, media_url: str) -> bytes:
        response = await self._authorized("GET", media_url)
        if response.status_code >= 400:
            raise UpstreamSendError.from_response(response)
        return response.content

    async def close(self):
        await self.http_client.aclose()


# Globally accessible instance
whatsapp_service = WhatsAppService(credential_provider, settings.whatsapp_phone_id, settings.graph_base_url)
