"""Credential store access: user lookups and credential sign-up."""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.exceptions import ConflictError
from core.security import check_password_policy, hash_secret
from models.user import User

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Exact, case-sensitive email lookup."""
    return await db.scalar(select(User).where(User.email == email))


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    """Primary key lookup."""
    return await db.get(User, user_id)


async def register_user(
    db: AsyncSession,
    settings: Settings,
    name: str,
    email: str,
    password: str,
) -> User:
    """
    Create a credentials user with a bcrypt-hashed password.

    The user starts unverified (`email_verified` is null).

    Raises:
        ConflictError: a user with this email already exists.
    """
    check_password_policy(password, settings.password_min_length)
    if await get_user_by_email(db, email) is not None:
        raise ConflictError("User already exists")

    user = User(
        name=name,
        email=email,
        password=await hash_secret(password, settings.bcrypt_rounds),
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent registration for the same email
        raise ConflictError("User already exists") from e
    await db.refresh(user)
    logger.info("user_registered", extra={"user_id": user.id})
    return user
