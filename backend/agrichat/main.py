# /agrichat/main.py

# FastAPI app for the WhatsApp channel: webhook, admin and health routes.
# Run it under gunicorn (see gunicorn_conf.py) or directly with uvicorn for
# local development.

import os
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from agrichat.config.settings import settings
from agrichat.utils.lifecycle import lifespan
from agrichat.utils.rate_limiter import limiter
from agrichat.routes import admin, public, webhooks

app = FastAPI(
    title=f"{settings.brand_name} WhatsApp Channel",
    version="1.0.0",
    lifespan=lifespan,
    openapi_url=f"/api/{settings.api_version}/openapi.json" if settings.environment != "production" else None,
    docs_url=None,
    redoc_url=None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

allowed_hosts = [host.strip() for host in settings.allowed_hosts.split(",") if host.strip()]
if settings.environment != "test" and allowed_hosts:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

app.include_router(public.router)
app.include_router(admin.router, prefix=f"/api/{settings.api_version}")
app.include_router(webhooks.router, prefix=f"/api/{settings.api_version}/webhooks")

if __name__ == "__main__":
    uvicorn.run(
        "agrichat.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=settings.environment == "development",
    )
