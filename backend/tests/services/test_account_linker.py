"""Tests for resolving OAuth identities to users."""
from collections.abc import Awaitable, Callable
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import OAuthAccountNotLinkedError
from models import Account, User
from services import account_linker
from services.oauth import OAuthProfile


def _profile(**overrides: str | None) -> OAuthProfile:
    fields = {
        "provider": "google",
        "provider_account_id": "google-123",
        "email": "ada@example.com",
        "name": "Ada Lovelace",
        "image": "https://example.com/ada.png",
        "access_token": "access-1",
    }
    fields.update(overrides)
    return OAuthProfile(**fields)


async def _count(db: AsyncSession, model: type) -> int:
    return await db.scalar(select(func.count()).select_from(model))


async def test_new_identity_creates_user_and_account(db_session: AsyncSession) -> None:
    """An unknown identity with an unknown email creates both rows."""
    result = await account_linker.link_oauth_account(db_session, _profile())
    await db_session.commit()

    assert result.is_new_user is True
    assert result.user.email == "ada@example.com"
    assert result.user.name == "Ada Lovelace"
    assert result.user.password is None
    assert await _count(db_session, User) == 1
    assert await _count(db_session, Account) == 1


async def test_linking_is_idempotent(db_session: AsyncSession) -> None:
    """Repeating the same callback signs in the same user without new rows."""
    first = await account_linker.link_oauth_account(db_session, _profile())
    await db_session.commit()
    second = await account_linker.link_oauth_account(
        db_session, _profile(access_token="access-2"),
    )
    await db_session.commit()

    assert second.is_new_user is False
    assert second.user.id == first.user.id
    assert await _count(db_session, Account) == 1
    account = await db_session.scalar(select(Account))
    assert account is not None
    assert account.access_token == "access-2"


async def test_existing_email_is_linked_silently(
    db_session: AsyncSession,
    create_user: Callable[..., Awaitable[User]],
) -> None:
    """A registered user gains the provider account and keeps their name."""
    user = await create_user(email="ada@example.com", name="Ada")

    result = await account_linker.link_oauth_account(db_session, _profile())
    await db_session.commit()

    assert result.is_new_user is False
    assert result.user.id == user.id
    assert result.user.name == "Ada"
    assert result.user.image == "https://example.com/ada.png"
    account = await db_session.scalar(select(Account))
    assert account is not None
    assert account.user_id == user.id


async def test_second_provider_links_to_same_user(db_session: AsyncSession) -> None:
    """Google then GitHub with the same email yields one user with two accounts."""
    google = await account_linker.link_oauth_account(db_session, _profile())
    github = await account_linker.link_oauth_account(
        db_session,
        _profile(provider="github", provider_account_id="42"),
    )
    await db_session.commit()

    assert github.user.id == google.user.id
    providers = (await db_session.scalars(select(Account.provider))).all()
    assert sorted(providers) == ["github", "google"]


async def test_missing_email_is_refused(db_session: AsyncSession) -> None:
    """Providers that do not share an email cannot sign anyone in."""
    with pytest.raises(OAuthAccountNotLinkedError):
        await account_linker.link_oauth_account(db_session, _profile(email=None))


async def test_provider_email_matches_like_request_emails(
    db_session: AsyncSession,
    create_user: Callable[..., Awaitable[User]],
) -> None:
    """A mixed-case domain from the provider finds the user registered by form."""
    user = await create_user(email="bob@example.com", name="Bob")

    result = await account_linker.link_oauth_account(
        db_session, _profile(email="bob@Example.COM"),
    )
    await db_session.commit()

    assert result.is_new_user is False
    assert result.user.id == user.id
    assert await _count(db_session, User) == 1


async def test_new_user_stores_normalised_email(db_session: AsyncSession) -> None:
    """Users created from a provider profile are stored in the canonical form."""
    result = await account_linker.link_oauth_account(
        db_session, _profile(email="ada@Example.COM"),
    )
    await db_session.commit()

    assert result.user.email == "ada@example.com"


async def test_malformed_email_is_refused(db_session: AsyncSession) -> None:
    """An address that would not pass request validation cannot sign anyone in."""
    with pytest.raises(OAuthAccountNotLinkedError):
        await account_linker.link_oauth_account(db_session, _profile(email="not-an-address"))
    assert await _count(db_session, User) == 0


async def test_race_with_same_user_is_accepted(db_session: AsyncSession) -> None:
    """
    A concurrent callback that already bound the identity to the same user.

    The stale reads make this call try the insert; the unique violation is
    resolved by re-reading, and the sign-in succeeds.
    """
    first = await account_linker.link_oauth_account(db_session, _profile())
    await db_session.commit()

    async def nothing(*args: object) -> None:  # noqa: ARG001
        return None

    real_lookup = account_linker.get_account_by_provider_id
    calls = []

    async def stale_once(
        db: AsyncSession, provider: str, provider_account_id: str,
    ) -> Account | None:
        calls.append(provider_account_id)
        if len(calls) == 1:
            return None
        return await real_lookup(db, provider, provider_account_id)

    with (
        patch.object(account_linker, "get_account_by_provider_id", stale_once),
        patch.object(account_linker, "get_account_for_user", nothing),
    ):
        result = await account_linker.link_oauth_account(db_session, _profile())
    await db_session.commit()

    assert result.user.id == first.user.id
    assert result.is_new_user is False
    assert await _count(db_session, Account) == 1


async def test_race_with_other_user_is_refused(
    db_session: AsyncSession,
    create_user: Callable[..., Awaitable[User]],
) -> None:
    """An identity bound to a different user is not re-pointed."""
    owner = await create_user(email="owner@example.com")
    db_session.add(
        Account(user_id=owner.id, provider="google", provider_account_id="google-123"),
    )
    await db_session.commit()
    await create_user(email="ada@example.com")

    async def stale(*args: object) -> None:  # noqa: ARG001
        return None

    real_lookup = account_linker.get_account_by_provider_id
    calls = []

    async def stale_once(
        db: AsyncSession, provider: str, provider_account_id: str,
    ) -> Account | None:
        calls.append(provider_account_id)
        if len(calls) == 1:
            return None
        return await real_lookup(db, provider, provider_account_id)

    with (
        patch.object(account_linker, "get_account_by_provider_id", stale_once),
        patch.object(account_linker, "get_account_for_user", stale),
        pytest.raises(OAuthAccountNotLinkedError),
    ):
        await account_linker.link_oauth_account(db_session, _profile())

    await db_session.rollback()
    bound = await db_session.scalar(select(Account))
    assert bound is not None
    assert bound.user_id == owner.id
