# /agrichat/utils/dependencies.py

import secrets
import structlog
from fastapi import Request, HTTPException

from agrichat.config.settings import settings
from agrichat.services.security_service import SecurityService
from agrichat.utils.metrics import webhook_signature_counter
from agrichat.utils.rate_limiter import get_remote_address

# FastAPI dependencies guarding the HTTP surface: the Meta webhook signature,
# the admin shared secret and the optional metrics API key.

log = structlog.get_logger(__name__)


async def verify_webhook_signature(request: Request) -> bytes:
    """Returns the raw body once the X-Hub-Signature-256 header matches (or no secret is configured)."""
    body = await request.body()
    if not settings.whatsapp_app_secret:
        webhook_signature_counter.labels(status="skipped").inc()
        return body
    signature = request.headers.get("x-hub-signature-256", "")
    if not SecurityService.verify_webhook_signature(body, signature, settings.whatsapp_app_secret):
        webhook_signature_counter.labels(status="invalid").inc()
        log.error("Invalid webhook signature.", client_ip=get_remote_address(request), signature=signature[:20])
        raise HTTPException(status_code=403, detail="Invalid signature")
    webhook_signature_counter.labels(status="valid").inc()
    return body


async def verify_admin_secret(request: Request):
    expected = settings.whatsapp_admin_secret
    provided = request.headers.get("X-Admin-Secret", "")
    if not expected or not (provided and secrets.compare_digest(provided, expected)):
        log.warning("Admin request rejected.", client_ip=get_remote_address(request), path=request.url.path)
        raise HTTPException(status_code=403, detail="Forbidden")


async def verify_metrics_access(request: Request):
    if settings.api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not (provided_key and secrets.compare_digest(provided_key, settings.api_key)):
            raise HTTPException(status_code=403, detail="Invalid or missing API key")
