"""Profile and password endpoints for the signed-in user."""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    check_rate_limit,
    get_async_session,
    get_current_identity,
    get_settings,
)
from core.auth import set_session_cookie
from core.config import Settings
from schemas.session import SessionIdentity
from schemas.user import (
    ChangePasswordRequest,
    MessageResponse,
    ProfileResponse,
    ProfileUpdate,
    SetupRequest,
)
from services import profile_service, session_service

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> ProfileResponse:
    """Get the current user's profile."""
    user = await profile_service.get_profile(db, identity)
    return ProfileResponse.model_validate(user)


@router.put(
    "/profile",
    response_model=ProfileResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def update_profile(
    data: ProfileUpdate,
    response: Response,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> ProfileResponse:
    """
    Update name and email.

    The session cookie is re-issued in the same response, so the very next
    request already carries the new identity.
    """
    user = await profile_service.update_profile(db, identity, data.name, data.email)
    await db.commit()
    _, token = session_service.refresh_session(
        identity, settings, name=user.name, email=user.email, image=user.image,
    )
    set_session_cookie(response, token, settings)
    return ProfileResponse.model_validate(user)


@router.post(
    "/change-password",
    response_model=MessageResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def change_password(
    data: ChangePasswordRequest,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Change password after re-checking the current one."""
    await profile_service.change_password(
        db, settings, identity, data.current_password, data.new_password,
    )
    await db.commit()
    return MessageResponse(message="Password updated successfully")


@router.post(
    "/setup",
    response_model=ProfileResponse | MessageResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def complete_setup(
    data: SetupRequest,
    response: Response,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> ProfileResponse | MessageResponse:
    """First-login setup: record the display name if none is set yet."""
    user = await profile_service.complete_setup(db, identity, data.name)
    if user is None:
        return MessageResponse(message="User already set up")
    await db.commit()
    _, token = session_service.refresh_session(identity, settings, name=user.name)
    set_session_cookie(response, token, settings)
    return ProfileResponse.model_validate(user)
