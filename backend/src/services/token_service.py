"""
Token Issuer: single-use tokens for email verification and password reset.

The two kinds make different secrecy trade-offs:

- Verification tokens are signed JWTs stored verbatim. The signature and expiry
  can be checked without the database, but a token is only honoured while its
  row exists, so a correctly signed token that was never issued (or was already
  used) is still rejected.
- Reset tokens are random secrets of which only a bcrypt hash is stored. A
  database leak does not yield usable reset links, at the cost of having to
  check the candidate against every unexpired row.

Consumption of either kind is a conditional DELETE ... RETURNING, so two
concurrent redemptions of the same token cannot both succeed.
"""
import logging
from datetime import timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.email import Mailer
from core.exceptions import InvalidTokenError
from core.security import (
    check_password_policy,
    decode_token,
    encode_token,
    generate_secret,
    hash_secret,
    utcnow,
    verify_secret,
)
from models.tokens import PasswordResetToken, VerificationToken
from models.user import User

logger = logging.getLogger(__name__)

VERIFY_EMAIL_PURPOSE = "verify_email"


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


async def issue_verification_token(
    db: AsyncSession,
    settings: Settings,
    email: str,
) -> str:
    """Sign a verification token for `email` and record it as live."""
    token = encode_token(
        # jti keeps two tokens issued within the same second distinct
        {"email": email, "purpose": VERIFY_EMAIL_PURPOSE, "jti": generate_secret(8)},
        settings.secret_key,
        settings.verification_token_ttl,
        settings.jwt_algorithm,
    )
    db.add(
        VerificationToken(
            identifier=email,
            token=token,
            expires=utcnow() + timedelta(seconds=settings.verification_token_ttl),
        ),
    )
    await db.flush()
    return token


async def consume_verification_token(
    db: AsyncSession,
    settings: Settings,
    token: str,
) -> str:
    """
    Redeem a verification token and mark the owner's email as verified.

    Returns:
        The verified email address.

    Raises:
        ExpiredTokenError: the token's signed expiry has passed.
        InvalidTokenError: bad signature, no live row (never issued, already
            used, or expired in the store), or no account holds the address any
            more.
    """
    claims = decode_token(
        token, settings.secret_key, settings.jwt_algorithm, purpose=VERIFY_EMAIL_PURPOSE,
    )
    email = claims.get("email")
    if not isinstance(email, str) or not email:
        raise InvalidTokenError()

    now = utcnow()
    claimed = await db.execute(
        delete(VerificationToken)
        .where(
            VerificationToken.identifier == email,
            VerificationToken.token == token,
            VerificationToken.expires > now,
        )
        .returning(VerificationToken.identifier)
        .execution_options(synchronize_session=False),
    )
    if claimed.scalar_one_or_none() is None:
        raise InvalidTokenError()

    result = await db.execute(
        update(User)
        .where(User.email == email)
        .values(email_verified=now)
        .execution_options(synchronize_session=False),
    )
    if result.rowcount == 0:
        # Address no longer belongs to any account
        raise InvalidTokenError()
    logger.info("email_verified")
    return email


async def send_verification_email(
    mailer: Mailer,
    settings: Settings,
    email: str,
    token: str,
) -> None:
    """Mail the verification link."""
    link = f"{settings.app_base_url.rstrip('/')}/auth/verify?token={token}"
    await mailer.send(
        to=email,
        subject="Verify your email address",
        html=(
            "<p>Welcome to Dump Pad! Confirm your email address to finish signing up:</p>"
            f'<a href="{link}">Verify Email</a>'
            "<p>This link will expire in 24 hours.</p>"
        ),
    )


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


async def issue_reset_token(
    db: AsyncSession,
    settings: Settings,
    email: str,
) -> str:
    """
    Create a reset grant for `email` and return the raw secret.

    Only the bcrypt hash is persisted; the caller must deliver the returned
    secret to the user and then drop it. Expired grants for the same address are
    purged here so stale rows do not accumulate in the scan.
    """
    now = utcnow()
    await db.execute(
        delete(PasswordResetToken)
        .where(
            PasswordResetToken.identifier == email,
            PasswordResetToken.expires <= now,
        )
        .execution_options(synchronize_session=False),
    )

    secret = generate_secret()
    db.add(
        PasswordResetToken(
            identifier=email,
            token=await hash_secret(secret, settings.bcrypt_rounds),
            expires=now + timedelta(seconds=settings.reset_token_ttl),
        ),
    )
    await db.flush()
    logger.info("password_reset_requested")
    return secret


async def find_reset_token(db: AsyncSession, secret: str) -> PasswordResetToken | None:
    """
    Find the unexpired reset grant whose hash matches `secret`.

    Hashes cannot be indexed, so this checks every live row: O(active tokens).
    """
    rows = await db.scalars(
        select(PasswordResetToken).where(PasswordResetToken.expires > utcnow()),
    )
    for row in rows.all():
        if await verify_secret(secret, row.token):
            return row
    return None


async def claim_reset_token(db: AsyncSession, token_id: str) -> str | None:
    """
    Atomically delete a live reset grant.

    Returns the grant's identifier, or None if another request already claimed
    it (or it expired in the meantime).
    """
    claimed = await db.execute(
        delete(PasswordResetToken)
        .where(
            PasswordResetToken.id == token_id,
            PasswordResetToken.expires > utcnow(),
        )
        .returning(PasswordResetToken.identifier)
        .execution_options(synchronize_session=False),
    )
    return claimed.scalar_one_or_none()


async def consume_reset_token(
    db: AsyncSession,
    settings: Settings,
    secret: str,
    new_password: str,
) -> str:
    """
    Redeem a reset secret and set a new password.

    Claiming the grant and writing the password happen in the caller's
    transaction: if the password write fails, the rollback restores the grant.

    Returns:
        The email whose password changed.

    Raises:
        ValidationError: the new password breaks the password policy.
        InvalidTokenError: no live grant matches, or a concurrent request won.
    """
    check_password_policy(new_password, settings.password_min_length)

    match = await find_reset_token(db, secret)
    if match is None:
        raise InvalidTokenError()

    # Hash before claiming so the claim and the write stay close together
    password_hash = await hash_secret(new_password, settings.bcrypt_rounds)

    identifier = await claim_reset_token(db, match.id)
    if identifier is None:
        raise InvalidTokenError()

    result = await db.execute(
        update(User)
        .where(User.email == identifier)
        .values(password=password_hash)
        .execution_options(synchronize_session=False),
    )
    if result.rowcount == 0:
        # Account email changed after the reset was requested
        raise InvalidTokenError()

    logger.info("password_reset_completed")
    return identifier


async def send_reset_email(
    mailer: Mailer,
    settings: Settings,
    email: str,
    secret: str,
) -> None:
    """Mail the reset link carrying the raw secret."""
    link = f"{settings.app_base_url.rstrip('/')}/auth/reset-password/{secret}"
    await mailer.send(
        to=email,
        subject="Reset your password",
        html=(
            "<p>Click the link below to reset your password:</p>"
            f'<a href="{link}">Reset Password</a>'
            "<p>This link will expire in 1 hour.</p>"
        ),
    )
