# /agrichat/routes/webhooks.py

import json
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from agrichat.config.settings import settings
from agrichat.services.webhook_service import webhook_processor
from agrichat.utils.dependencies import verify_webhook_signature
from agrichat.utils.metrics import response_time_histogram
from agrichat.utils.rate_limiter import limiter

# Meta webhook endpoints: the subscription handshake and the signed delivery
# path. Deliveries are processed inline; the only asynchronous hop is the
# outbound queue.

router = APIRouter(
    tags=["Webhooks"]
)

log = structlog.get_logger(__name__)


@router.get("/whatsapp")
async def verify_whatsapp_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge")
):
    """WhatsApp webhook verification (GET request)."""
    if hub_mode == "subscribe" and hub_verify_token == settings.whatsapp_verify_token:
        log.info("WhatsApp webhook verification successful.")
        return PlainTextResponse(hub_challenge)
    log.error("WhatsApp webhook verification failed.", mode=hub_mode)
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/whatsapp")
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def handle_whatsapp_webhook(
    request: Request,
    verified_body: bytes = Depends(verify_webhook_signature)
):
    """Signed delivery. Always answers ok once the signature passes so Meta stops redelivering."""
    with response_time_histogram.labels(endpoint="whatsapp_webhook").time():
        try:
            data = json.loads(verified_body.decode() or "{}")
        except ValueError:
            log.warning("Webhook body is not JSON; ignoring.")
            return JSONResponse({"status": "ok"})

        try:
            outcome = await webhook_processor.process(data)
            log.info("Webhook processed.", outcome=outcome)
        except Exception as e:
            log.exception("Webhook processing failed.", error=str(e))
        return JSONResponse({"status": "ok"})
