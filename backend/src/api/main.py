"""FastAPI application entry point."""
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import accounts, auth, categories, health, user
from core.config import get_settings
from core.exceptions import AppError
from core.rate_limiter import RateLimitExceededError
from core.redis import RedisClient, get_redis_client, set_redis_client

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: ARG001
    """Connect Redis on startup and close it on shutdown."""
    redis_client = RedisClient(settings.redis_url, enabled=settings.redis_enabled)
    await redis_client.connect()
    set_redis_client(redis_client)
    try:
        yield
    finally:
        client = get_redis_client()
        if client is not None:
            await client.close()
        set_redis_client(None)


app = FastAPI(
    title="Dump Pad API",
    description="Accounts, sessions and categories for the Dump Pad note-taking app.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def rate_limit_headers(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Copy the rate limit check result (if any) onto the response headers."""
    response = await call_next(request)
    info = getattr(request.state, "rate_limit_info", None)
    if info:
        response.headers["X-RateLimit-Limit"] = str(info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
        response.headers["X-RateLimit-Reset"] = str(info["reset"])
    return response


def _route_tag(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "name", None) or request.url.path


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map the error taxonomy to status codes with a user-safe message."""
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            extra={"operation": _route_tag(request), "error": exc.message},
            exc_info=exc.__cause__ or exc,
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request,  # noqa: ARG001
    exc: RequestValidationError,
) -> JSONResponse:
    """Report the first invalid field as a 400."""
    first = exc.errors()[0] if exc.errors() else {}
    message = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    return JSONResponse(
        status_code=400,
        content={"error": message, "field": ".".join(loc) or None},
    )


@app.exception_handler(RateLimitExceededError)
async def rate_limit_handler(
    request: Request,  # noqa: ARG001
    exc: RateLimitExceededError,
) -> JSONResponse:
    """429 with the standard rate limit headers."""
    result = exc.result
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests. Please try again later."},
        headers={
            "Retry-After": str(result.retry_after),
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset),
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log anything unexpected and hide the details from the client."""
    logger.error(
        "unhandled_error",
        extra={"operation": _route_tag(request)},
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal Error"})


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(accounts.router)
app.include_router(user.router)
app.include_router(categories.router)
