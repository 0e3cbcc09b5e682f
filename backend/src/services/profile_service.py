"""Profile / Password Service: self-service mutations for the signed-in user."""
import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.security import check_password_policy, hash_secret, verify_secret
from models.account import Account
from models.user import User
from schemas.session import SessionIdentity

logger = logging.getLogger(__name__)


async def get_current_user_record(db: AsyncSession, identity: SessionIdentity) -> User:
    """
    Load the user behind a session.

    Raises:
        NotFoundError: the session outlived its user row.
    """
    user = await db.get(User, identity.id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def get_profile(db: AsyncSession, identity: SessionIdentity) -> User:
    """Return the caller's user row (projected by the response schema)."""
    return await get_current_user_record(db, identity)


async def update_profile(
    db: AsyncSession,
    identity: SessionIdentity,
    name: str,
    email: str,
) -> User:
    """
    Change the caller's name and email.

    Keeping one's own email is allowed; taking another user's is not. The
    caller is responsible for re-issuing the session afterwards.

    Raises:
        ConflictError: the email belongs to a different user.
    """
    user = await get_current_user_record(db, identity)

    taken_by = await db.scalar(
        select(User.id).where(User.email == email, User.id != user.id),
    )
    if taken_by is not None:
        raise ConflictError("Email is already in use")

    user.name = name
    user.email = email
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("Email is already in use") from e
    await db.refresh(user)
    logger.info("profile_updated", extra={"user_id": user.id})
    return user


async def change_password(
    db: AsyncSession,
    settings: Settings,
    identity: SessionIdentity,
    current_password: str,
    new_password: str,
) -> None:
    """
    Replace the caller's password after re-checking the current one.

    Users without a password (OAuth-only) always fail the current-password check.

    Raises:
        ValidationError: missing fields, weak new password, or wrong current
            password.
    """
    if not current_password or not new_password:
        raise ValidationError("Missing required fields")
    check_password_policy(new_password, settings.password_min_length)

    user = await get_current_user_record(db, identity)
    if not await verify_secret(current_password, user.password):
        raise ValidationError("Current password is incorrect")

    user.password = await hash_secret(new_password, settings.bcrypt_rounds)
    await db.flush()
    logger.info("password_changed", extra={"user_id": user.id})


async def complete_setup(
    db: AsyncSession,
    identity: SessionIdentity,
    name: str,
) -> User | None:
    """
    Set the display name on first login.

    Returns:
        The updated user, or None when the user already had a name (no change).
    """
    user = await get_current_user_record(db, identity)
    if user.name:
        return None
    user.name = name
    await db.flush()
    await db.refresh(user)
    logger.info("user_setup_completed", extra={"user_id": user.id})
    return user


async def list_linked_accounts(db: AsyncSession, identity: SessionIdentity) -> list[Account]:
    """The caller's linked provider identities."""
    result = await db.scalars(
        select(Account).where(Account.user_id == identity.id).order_by(Account.provider),
    )
    return list(result.all())


async def disconnect_account(
    db: AsyncSession,
    identity: SessionIdentity,
    provider: str | None,
) -> None:
    """
    Unlink a provider from the caller.

    Refuses while the user has one linked account or fewer, whether or not a
    password is set. The user's account rows are locked first so two concurrent
    disconnects cannot both pass the count check.

    Raises:
        ValidationError: no provider given.
        ConflictError: this would remove the last linked account.
    """
    if not provider:
        raise ValidationError("Provider is required")

    locked = await db.scalars(
        select(Account.id).where(Account.user_id == identity.id).with_for_update(),
    )
    if len(locked.all()) <= 1:
        raise ConflictError("Cannot disconnect the last account")

    await db.execute(
        delete(Account)
        .where(Account.user_id == identity.id, Account.provider == provider)
        .execution_options(synchronize_session=False),
    )
    logger.info("account_disconnected", extra={"user_id": identity.id, "provider": provider})
