# /agrichat/routes/admin.py

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from agrichat.config.settings import settings
from agrichat.models.api import (
    APIResponse, NewOrderNotification, OptOutRequest, OrderUpdateNotification, TokenRotationRequest
)
from agrichat.services.credentials import CredentialError, credential_provider
from agrichat.services.security_service import SecurityService
from agrichat.services.template_service import template_service
from agrichat.utils.dependencies import verify_admin_secret
from agrichat.utils.queue import outbound_queue
from agrichat.utils.rate_limiter import limiter

# Operator and service-to-service endpoints for the WhatsApp channel. Every
# route requires the X-Admin-Secret header.

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/whatsapp",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_secret)]
)


@router.post("/token", response_model=APIResponse)
@limiter.limit("10/minute")
async def rotate_token(request: Request, body: TokenRotationRequest):
    """Publishes a new Graph API bearer token to this process and every worker."""
    try:
        await credential_provider.rotate(body.token)
    except CredentialError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return APIResponse(success=True, message="Token rotated", version=settings.api_version)


@router.get("/queue", response_model=APIResponse)
async def queue_stats(request: Request):
    stats = await outbound_queue.stats()
    return APIResponse(success=True, message="Outbound queue statistics", data=stats, version=settings.api_version)


@router.get("/dead-letters", response_model=APIResponse)
async def dead_letters(request: Request, limit: int = 50):
    jobs = await outbound_queue.dead_letters(min(max(limit, 1), 500))
    return APIResponse(
        success=True,
        message=f"Retrieved {len(jobs)} dead-lettered jobs",
        data={"jobs": [job.model_dump() for job in jobs]},
        version=settings.api_version,
    )


@router.post("/optout", response_model=APIResponse)
async def set_opt_out(request: Request, body: OptOutRequest):
    phone = SecurityService.to_e164(body.phone).lstrip("+")
    await template_service.set_opt_out(phone, body.opted_out)
    state = "opted out" if body.opted_out else "opted in"
    return APIResponse(success=True, message=f"Recipient {state}", version=settings.api_version)


@router.post("/notify/new-order", response_model=APIResponse)
async def notify_new_order(request: Request, body: NewOrderNotification):
    outcome = await template_service.send_new_order_to_seller_if_paired(
        body.user_id,
        SecurityService.to_e164(body.phone),
        body.order_number,
        body.buyer_name,
        body.total_amount,
        body.currency,
        body.manage_url,
        body.locale,
    )
    logger.info(f"New-order notice for order {body.order_number}: {outcome}")
    return APIResponse(success=True, message="Notification processed", data={"outcome": outcome},
                       version=settings.api_version)


@router.post("/notify/order-update", response_model=APIResponse)
async def notify_order_update(request: Request, body: OrderUpdateNotification):
    outcome = await template_service.send_order_update_if_paired(
        body.user_id,
        SecurityService.to_e164(body.phone),
        body.order_number,
        body.status,
        body.tracking_number,
        body.locale,
    )
    logger.info(f"Order update for order {body.order_number}: {outcome}")
    return APIResponse(success=True, message="Notification processed", data={"outcome": outcome},
                       version=settings.api_version)
