"""Authentication endpoints: sign-up, sign-in, sessions, verification and reset."""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    check_rate_limit,
    get_async_session,
    get_mailer,
    get_oauth_providers,
    get_session_token,
    get_settings,
)
from core.auth import clear_session_cookie, set_session_cookie
from core.config import Settings
from core.email import Mailer
from core.exceptions import (
    InvalidTokenError,
    NotFoundError,
    OAuthAccountNotLinkedError,
    UnauthorizedError,
    UpstreamFailureError,
)
from core.security import decode_token, encode_token
from schemas.auth import (
    CredentialsSignIn,
    ResendVerificationRequest,
    ResetPasswordConfirm,
    ResetPasswordRequest,
    SessionResponse,
    SessionUser,
)
from schemas.session import SessionIdentity
from schemas.user import MessageResponse, RegisterRequest, RegisterResponse, UserResponse
from services import credentials, session_service, token_service
from services.oauth import OAuthProvider, select_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_PURPOSE = "oauth_state"
OAUTH_STATE_TTL = 10 * 60


def _session_response(
    response: Response,
    identity: SessionIdentity,
    settings: Settings,
) -> SessionResponse:
    """Issue a session cookie for `identity` and describe it in the body."""
    token = session_service.create_session_token(identity, settings)
    set_session_cookie(response, token, settings)
    claims = session_service.read_session_claims(token, settings)
    return SessionResponse(
        user=SessionUser(**vars(identity)),
        expires=claims["exp"],
    )


# ---------------------------------------------------------------------------
# Registration and email verification
# ---------------------------------------------------------------------------


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_async_session),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> RegisterResponse:
    """
    Create a credentials account and mail a verification link.

    The account and token are committed before the email goes out. If sending
    fails the account stays in place and the client is told to request a new
    link through /api/auth/verify/resend.
    """
    user = await credentials.register_user(
        db, settings, data.name, data.email, data.password,
    )
    token = await token_service.issue_verification_token(db, settings, user.email)
    await db.commit()

    try:
        await token_service.send_verification_email(mailer, settings, user.email, token)
    except UpstreamFailureError as e:
        raise UpstreamFailureError(
            "Your account was created, but the verification email could not be sent. "
            "Request a new verification link to finish signing up.",
        ) from e

    return RegisterResponse(
        user=UserResponse.model_validate(user),
        message="User created successfully",
    )


@router.get("/verify", response_model=MessageResponse)
async def verify_email(
    token: str = Query(min_length=1),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Redeem the token from a verification email."""
    await token_service.consume_verification_token(db, settings, token)
    await db.commit()
    return MessageResponse(message="Email verified")


@router.post(
    "/verify/resend",
    response_model=MessageResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def resend_verification(
    data: ResendVerificationRequest,
    db: AsyncSession = Depends(get_async_session),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """
    Send a fresh verification link.

    Answers the same way whether or not the address is registered or already
    verified.
    """
    user = await credentials.get_user_by_email(db, data.email)
    if user is not None and user.email_verified is None:
        token = await token_service.issue_verification_token(db, settings, user.email)
        await db.commit()
        await token_service.send_verification_email(mailer, settings, user.email, token)
    return MessageResponse(
        message="If that address needs verifying, a new link has been sent.",
    )


# ---------------------------------------------------------------------------
# Sign-in and sessions
# ---------------------------------------------------------------------------


@router.post(
    "/signin/credentials",
    response_model=SessionResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def signin_credentials(
    data: CredentialsSignIn,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    """Sign in with email and password."""
    identity = await session_service.authenticate_credentials(db, data.email, data.password)
    return _session_response(response, identity, settings)


@router.get("/signin/{provider}")
async def signin_oauth(
    provider: str,
    providers: dict[str, OAuthProvider] = Depends(get_oauth_providers),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Start the OAuth flow: redirect to the provider with a signed state."""
    client = select_provider(providers, provider)
    state = encode_token(
        {"purpose": OAUTH_STATE_PURPOSE, "provider": provider},
        settings.secret_key,
        OAUTH_STATE_TTL,
        settings.jwt_algorithm,
    )
    redirect_uri = f"{settings.oauth_redirect_base}/{provider}"
    response = RedirectResponse(client.authorization_url(state, redirect_uri))
    response.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state,
        max_age=OAUTH_STATE_TTL,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )
    return response


def _frontend_redirect(settings: Settings, path: str, **params: str) -> RedirectResponse:
    url = f"{settings.app_base_url.rstrip('/')}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    response = RedirectResponse(url)
    response.delete_cookie(OAUTH_STATE_COOKIE, path="/")
    return response


def _state_is_valid(
    request: Request,
    state: str | None,
    provider: str,
    settings: Settings,
) -> bool:
    expected = request.cookies.get(OAUTH_STATE_COOKIE)
    if not state or state != expected:
        return False
    try:
        claims = decode_token(
            state, settings.secret_key, settings.jwt_algorithm, purpose=OAUTH_STATE_PURPOSE,
        )
    except InvalidTokenError:
        return False
    return claims.get("provider") == provider


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_async_session),
    providers: dict[str, OAuthProvider] = Depends(get_oauth_providers),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """
    Finish the OAuth flow.

    Always answers with a redirect to the frontend: home for returning users,
    the setup page for users without a display name, or the error page with a
    NextAuth-style error code.
    """
    client = select_provider(providers, provider)
    if error:
        return _frontend_redirect(settings, "/auth/error", error="AccessDenied")
    if not code or not _state_is_valid(request, state, provider, settings):
        return _frontend_redirect(settings, "/auth/error", error="OAuthCallback")

    redirect_uri = f"{settings.oauth_redirect_base}/{provider}"
    try:
        profile = await client.fetch_profile(code, redirect_uri)
        identity, is_new_user = await session_service.authenticate_oauth(db, profile)
    except OAuthAccountNotLinkedError:
        return _frontend_redirect(settings, "/auth/error", error="OAuthAccountNotLinked")
    except UpstreamFailureError:
        return _frontend_redirect(settings, "/auth/error", error="OAuthCallback")
    await db.commit()

    target = "/auth/new-user" if is_new_user or not identity.name else "/"
    response = _frontend_redirect(settings, target)
    set_session_cookie(
        response, session_service.create_session_token(identity, settings), settings,
    )
    return response


@router.get("/session", response_model=SessionResponse)
async def get_session(
    response: Response,
    token: str = Depends(get_session_token),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    """
    Current session, re-derived from the database.

    The token is re-issued when the stored profile differs from what it carries
    or once it is older than the update age, which keeps active sessions alive.
    """
    claims = session_service.read_session_claims(token, settings)
    user = await credentials.get_user_by_id(db, claims["sub"])
    if user is None:
        raise UnauthorizedError()

    identity = session_service.identity_from_user(user)
    carried = session_service.decode_session_token(token, settings)
    if identity != carried or session_service.session_needs_renewal(claims, settings):
        return _session_response(response, identity, settings)
    return SessionResponse(user=SessionUser(**vars(identity)), expires=claims["exp"])


@router.post("/signout", response_model=MessageResponse)
async def signout(
    response: Response,
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Drop the session cookie."""
    clear_session_cookie(response, settings)
    return MessageResponse(message="Signed out")


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def request_password_reset(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_async_session),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """
    Mail a password reset link.

    Unknown addresses get the same answer as known ones unless
    REVEAL_UNKNOWN_RESET_EMAIL is set, in which case they get a 404.
    """
    generic = MessageResponse(
        message="If an account exists for this email, a password reset link has been sent.",
    )
    user = await credentials.get_user_by_email(db, data.email)
    if user is None:
        if settings.reveal_unknown_reset_email:
            raise NotFoundError("No user found with this email")
        return generic

    secret = await token_service.issue_reset_token(db, settings, user.email)
    await db.commit()
    try:
        await token_service.send_reset_email(mailer, settings, user.email, secret)
    except UpstreamFailureError as e:
        raise UpstreamFailureError("Error processing password reset") from e
    return generic


@router.put(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def confirm_password_reset(
    data: ResetPasswordConfirm,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Set a new password using the secret from the reset email."""
    await token_service.consume_reset_token(db, settings, data.token, data.password)
    await db.commit()
    return MessageResponse(message="Password updated successfully")
