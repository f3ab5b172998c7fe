# /agrichat/utils/rate_limiter.py

from fastapi import Request
from slowapi import Limiter

from agrichat.config.settings import settings

# Shared slowapi limiter. Lives in its own module so both main.py and the
# route modules can import it without a cycle.


def get_remote_address(request: Request) -> str:
    """First X-Forwarded-For hop when behind the proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
)
