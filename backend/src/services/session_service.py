"""
Session Authority: authenticates sign-ins and mints stateless session tokens.

Sessions are HS256 JWTs; nothing is stored server-side. A profile change is
reflected by re-signing the token immediately (`refresh_session`), so the next
request already sees the new identity.
"""
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.exceptions import InvalidCredentialsError, InvalidTokenError, UnauthorizedError
from core.security import decode_token, encode_token, utcnow, verify_secret
from models.user import User
from schemas.session import SessionIdentity
from services.account_linker import link_oauth_account
from services.credentials import get_user_by_email
from services.oauth import OAuthProfile

logger = logging.getLogger(__name__)

SESSION_PURPOSE = "session"


def identity_from_user(user: User) -> SessionIdentity:
    """Project a user row onto the session fields."""
    return SessionIdentity(id=user.id, email=user.email, name=user.name, image=user.image)


async def authenticate_credentials(
    db: AsyncSession,
    email: str,
    password: str,
) -> SessionIdentity:
    """
    Check an email/password pair.

    Raises:
        InvalidCredentialsError: same error for unknown email, OAuth-only user
            and wrong password.
    """
    user = await get_user_by_email(db, email)
    if user is None or not user.password:
        raise InvalidCredentialsError()
    if not await verify_secret(password, user.password):
        raise InvalidCredentialsError()
    logger.info("signin_credentials", extra={"user_id": user.id})
    return identity_from_user(user)


async def authenticate_oauth(
    db: AsyncSession,
    profile: OAuthProfile,
) -> tuple[SessionIdentity, bool]:
    """
    Sign in through an OAuth identity.

    Returns:
        The session identity and whether this sign-in created the user.
    """
    result = await link_oauth_account(db, profile)
    logger.info(
        "signin_oauth",
        extra={"user_id": result.user.id, "provider": profile.provider},
    )
    return identity_from_user(result.user), result.is_new_user


def create_session_token(identity: SessionIdentity, settings: Settings) -> str:
    """Sign a session token for `identity`."""
    return encode_token(
        {
            "sub": identity.id,
            "email": identity.email,
            "name": identity.name,
            "picture": identity.image,
            "purpose": SESSION_PURPOSE,
        },
        settings.secret_key,
        settings.session_max_age,
        settings.jwt_algorithm,
    )


def read_session_claims(token: str, settings: Settings) -> dict[str, Any]:
    """
    Verify a session token and return its raw claims.

    Raises:
        UnauthorizedError: the token is invalid or expired.
    """
    try:
        claims = decode_token(
            token, settings.secret_key, settings.jwt_algorithm, purpose=SESSION_PURPOSE,
        )
    except InvalidTokenError as e:
        raise UnauthorizedError() from e
    if not claims.get("sub") or not claims.get("email"):
        raise UnauthorizedError()
    return claims


def decode_session_token(token: str, settings: Settings) -> SessionIdentity:
    """Turn a session token back into the identity it carries."""
    claims = read_session_claims(token, settings)
    return SessionIdentity(
        id=claims["sub"],
        email=claims["email"],
        name=claims.get("name"),
        image=claims.get("picture"),
    )


def session_needs_renewal(claims: dict[str, Any], settings: Settings) -> bool:
    """True once the token is older than the update age."""
    issued_at = int(claims.get("iat", 0))
    return int(utcnow().timestamp()) - issued_at >= settings.session_update_age


def refresh_session(
    identity: SessionIdentity,
    settings: Settings,
    **fields: str | None,
) -> tuple[SessionIdentity, str]:
    """
    Re-sign the session with updated name/email/image.

    Returns:
        The updated identity and its freshly signed token.
    """
    updated = identity.with_fields(**fields)
    return updated, create_session_token(updated, settings)
