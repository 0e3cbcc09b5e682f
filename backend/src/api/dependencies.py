"""FastAPI dependencies for injection."""
from fastapi import Depends, Request

from core.auth import get_current_identity, get_session_token
from core.config import get_settings
from core.email import get_mailer
from core.rate_limiter import (
    RateLimitExceededError,
    RateLimitResult,
    get_operation_type,
    rate_limiter,
)
from db.session import get_async_session
from services.oauth import get_oauth_providers


def get_client_key(request: Request) -> str:
    """
    Rate limit key for the calling client: the peer address of the connection.

    Forwarding headers are not read here, since any caller can set them. Behind
    a reverse proxy, run uvicorn with `--proxy-headers --forwarded-allow-ips`
    naming the proxy so the peer address is rewritten to the real client.
    """
    return request.client.host if request.client else "unknown"


async def check_rate_limit(
    request: Request,
    client_key: str = Depends(get_client_key),
) -> RateLimitResult:
    """
    Dependency that enforces rate limits.

    Stores the result in request.state so the headers middleware can report it.
    Raises RateLimitExceededError for 429 responses (handled in api/main.py).
    """
    operation_type = get_operation_type(request.method, request.url.path)

    result = await rate_limiter.check(client_key, operation_type)

    if not result.allowed:
        raise RateLimitExceededError(result)

    request.state.rate_limit_info = {
        "limit": result.limit,
        "remaining": result.remaining,
        "reset": result.reset,
    }

    return result


__all__ = [
    "check_rate_limit",
    "get_async_session",
    "get_client_key",
    "get_current_identity",
    "get_mailer",
    "get_oauth_providers",
    "get_session_token",
    "get_settings",
]
