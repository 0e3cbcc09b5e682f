"""
Account Linker: decides what an OAuth callback does to the credential store.

Trust assumption: an existing user is matched to an incoming OAuth identity by
email alone, and the provider's account is then linked silently. This relies on
the provider having verified that address. A provider that hands out unverified
emails (or is compromised) lets its users take over local accounts with the
same address. Only enable providers that verify email ownership.
"""
import logging
from dataclasses import dataclass, replace

from pydantic import ValidationError as EmailFormatError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import OAuthAccountNotLinkedError
from models.account import Account
from models.user import User
from schemas.user import normalize_email
from services.credentials import get_user_by_email
from services.oauth import OAuthProfile

logger = logging.getLogger(__name__)


@dataclass
class LinkResult:
    """Outcome of an OAuth sign-in."""

    user: User
    is_new_user: bool


async def get_account_by_provider_id(
    db: AsyncSession,
    provider: str,
    provider_account_id: str,
) -> Account | None:
    """Account bound to this provider identity, if any."""
    return await db.scalar(
        select(Account).where(
            Account.provider == provider,
            Account.provider_account_id == provider_account_id,
        ),
    )


async def get_account_for_user(
    db: AsyncSession,
    user_id: str,
    provider: str,
) -> Account | None:
    """The user's binding for `provider`, if any."""
    return await db.scalar(
        select(Account).where(Account.user_id == user_id, Account.provider == provider),
    )


def _store_tokens(account: Account, profile: OAuthProfile) -> None:
    account.access_token = profile.access_token
    account.refresh_token = profile.refresh_token
    account.token_type = profile.token_type
    account.scope = profile.scope
    account.id_token = profile.id_token
    account.expires_at = profile.expires_at


def _new_account(user_id: str, profile: OAuthProfile) -> Account:
    account = Account(
        user_id=user_id,
        type="oauth",
        provider=profile.provider,
        provider_account_id=profile.provider_account_id,
    )
    _store_tokens(account, profile)
    return account


async def link_oauth_account(db: AsyncSession, profile: OAuthProfile) -> LinkResult:
    """
    Resolve an OAuth identity to a user, creating or linking rows as needed.

    1. Identity already bound: sign in as its owner and refresh stored tokens.
    2. No user with the asserted email: create user + account (new user).
    3. User exists and already has this provider: sign in, no mutation.
    4. User exists without this provider: link it (silent link by email).

    Inserts run in a savepoint. A unique violation means a concurrent callback
    got there first; if that left the identity bound to the same user the
    sign-in still succeeds, so retries are idempotent.

    Raises:
        OAuthAccountNotLinkedError: no valid email asserted, or the identity is
            bound to a different user.
    """
    if not profile.email:
        raise OAuthAccountNotLinkedError(
            f"Your {profile.provider} account did not share an email address.",
        )
    try:
        profile = replace(profile, email=normalize_email(profile.email))
    except EmailFormatError as e:
        raise OAuthAccountNotLinkedError(
            f"Your {profile.provider} account did not share a valid email address.",
        ) from e

    existing = await get_account_by_provider_id(
        db, profile.provider, profile.provider_account_id,
    )
    if existing is not None:
        _store_tokens(existing, profile)
        await db.flush()
        user = await db.get(User, existing.user_id)
        return LinkResult(user=user, is_new_user=False)

    user = await get_user_by_email(db, profile.email)
    if user is not None and await get_account_for_user(db, user.id, profile.provider):
        return LinkResult(user=user, is_new_user=False)

    try:
        async with db.begin_nested():
            if user is None:
                user = User(email=profile.email, name=profile.name, image=profile.image)
                db.add(user)
                await db.flush()
                db.add(_new_account(user.id, profile))
                is_new_user = True
            else:
                if not user.image and profile.image:
                    user.image = profile.image
                db.add(_new_account(user.id, profile))
                is_new_user = False
            await db.flush()
    except IntegrityError as e:
        return await _resolve_link_race(db, profile, e)

    await db.refresh(user)
    logger.info(
        "oauth_account_linked",
        extra={"provider": profile.provider, "user_id": user.id, "new_user": is_new_user},
    )
    return LinkResult(user=user, is_new_user=is_new_user)


async def _resolve_link_race(
    db: AsyncSession,
    profile: OAuthProfile,
    error: IntegrityError,
) -> LinkResult:
    """After a unique violation, accept the row a concurrent request created."""
    bound = await get_account_by_provider_id(
        db, profile.provider, profile.provider_account_id,
    )
    owner = await get_user_by_email(db, profile.email)
    if bound is not None and owner is not None and bound.user_id == owner.id:
        return LinkResult(user=owner, is_new_user=False)

    logger.warning(
        "oauth_account_not_linked",
        extra={"provider": profile.provider},
    )
    raise OAuthAccountNotLinkedError() from error
