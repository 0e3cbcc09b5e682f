"""Linked OAuth account endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import check_rate_limit, get_async_session, get_current_identity
from schemas.auth import LinkedAccount
from schemas.session import SessionIdentity
from services import profile_service

router = APIRouter(prefix="/api/auth/accounts", tags=["accounts"])


@router.get("", response_model=list[LinkedAccount])
async def list_accounts(
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> list[LinkedAccount]:
    """Providers linked to the current user. OAuth tokens are never returned."""
    accounts = await profile_service.list_linked_accounts(db, identity)
    return [LinkedAccount.model_validate(a) for a in accounts]


@router.delete("", status_code=204, dependencies=[Depends(check_rate_limit)])
async def disconnect_account(
    provider: str | None = Query(default=None),
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> None:
    """Unlink a provider. Refused when it is the user's last linked account."""
    await profile_service.disconnect_account(db, identity, provider)
    await db.commit()
