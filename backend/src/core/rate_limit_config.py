"""
Rate limiting policy.

Separates what the limits are (this module) from how they are enforced
(rate_limiter.py). Limits are keyed on the client address: most of the endpoints
worth limiting (sign-in, register, password reset) run before a session exists.
"""
from dataclasses import dataclass
from enum import Enum


class OperationType(Enum):
    """Operation class used to pick a limit."""

    READ = "read"
    WRITE = "write"
    SENSITIVE = "sensitive"  # Password checks, outbound email


@dataclass
class RateLimitConfig:
    """Limits for one operation class."""

    requests_per_minute: int
    requests_per_day: int


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check, with everything the headers need."""

    allowed: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp when the window resets
    retry_after: int  # Seconds until a retry is allowed (0 if allowed)


class RateLimitExceededError(Exception):
    """Raised when a client is over its limit."""

    def __init__(self, result: RateLimitResult) -> None:
        self.result = result
        super().__init__("Rate limit exceeded")


RATE_LIMITS: dict[OperationType, RateLimitConfig] = {
    OperationType.READ: RateLimitConfig(requests_per_minute=180, requests_per_day=4000),
    OperationType.WRITE: RateLimitConfig(requests_per_minute=60, requests_per_day=2000),
    OperationType.SENSITIVE: RateLimitConfig(requests_per_minute=10, requests_per_day=100),
}


# Format: (HTTP_METHOD, path_without_query_params)
SENSITIVE_ENDPOINTS: set[tuple[str, str]] = {
    ("POST", "/api/auth/signin/credentials"),
    ("POST", "/api/auth/register"),
    ("POST", "/api/auth/verify/resend"),
    ("POST", "/api/auth/reset-password"),
    ("PUT", "/api/auth/reset-password"),
    ("POST", "/api/user/change-password"),
}


def get_operation_type(method: str, path: str) -> OperationType:
    """Classify a request by HTTP method and path."""
    if (method, path) in SENSITIVE_ENDPOINTS:
        return OperationType.SENSITIVE
    if method == "GET":
        return OperationType.READ
    return OperationType.WRITE
