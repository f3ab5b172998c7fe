# /agrichat/routes/public.py

from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest

from agrichat.config.settings import settings
from agrichat.services.cache_service import cache_service
from agrichat.services.session_store import session_backend
from agrichat.utils.dependencies import verify_metrics_access

# Unauthenticated probes for load balancers and the (optionally key-protected)
# Prometheus endpoint.

router = APIRouter()


@router.get("/")
async def root():
    return {
        "service": f"{settings.brand_name} WhatsApp channel",
        "status": "operational",
        "environment": settings.environment,
    }


@router.get("/health", summary="Basic Health Check")
async def health_check():
    return {"status": "healthy", "session_backend": session_backend, "timestamp": datetime.now(timezone.utc)}


@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check():
    """Ready once Redis answers a ping."""
    if not await cache_service.ping():
        raise HTTPException(status_code=503, detail="Service not ready: redis unavailable")
    return {"status": "ready"}


@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    return {"status": "alive"}


@router.get("/metrics", tags=["Monitoring"])
async def metrics(request: Request, _: bool = Depends(verify_metrics_access)):
    """Prometheus metrics, guarded by X-API-KEY when an api key is configured."""
    return PlainTextResponse(generate_latest(), media_type="text/plain")
