"""Password hashing, random secrets and signed tokens."""
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt
from starlette.concurrency import run_in_threadpool

from core.exceptions import ExpiredTokenError, InvalidTokenError, ValidationError


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def _hash(value: str, rounds: int) -> str:
    return bcrypt.hashpw(value.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def _check(value: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(value.encode(), hashed.encode())
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


async def hash_secret(value: str, rounds: int) -> str:
    """
    Hash a password or token secret with bcrypt.

    bcrypt is deliberately slow, so the work runs in the threadpool to keep the
    event loop free for other requests.
    """
    return await run_in_threadpool(_hash, value, rounds)


async def verify_secret(value: str, hashed: str | None) -> bool:
    """Check a candidate against a bcrypt hash. A missing hash never matches."""
    if not hashed:
        return False
    return await run_in_threadpool(_check, value, hashed)


def check_password_policy(password: str, min_length: int) -> None:
    """Server-side password rule, applied whatever the client already checked."""
    if len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")


def generate_secret(nbytes: int = 32) -> str:
    """High-entropy hex secret for links sent by email."""
    return secrets.token_hex(nbytes)


def encode_token(
    claims: dict[str, Any],
    secret_key: str,
    expires_in: int,
    algorithm: str = "HS256",
) -> str:
    """Sign claims as a JWT with `iat` and `exp` set from now."""
    now = utcnow()
    payload = {
        **claims,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_token(
    token: str,
    secret_key: str,
    algorithm: str = "HS256",
    purpose: str | None = None,
) -> dict[str, Any]:
    """
    Verify a JWT and return its claims.

    Raises:
        ExpiredTokenError: signature is valid but `exp` has passed.
        InvalidTokenError: any other decoding failure, or a purpose mismatch.
    """
    try:
        claims = jwt.decode(token, secret_key, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as e:
        raise ExpiredTokenError() from e
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError() from e
    if purpose is not None and claims.get("purpose") != purpose:
        raise InvalidTokenError()
    return claims
