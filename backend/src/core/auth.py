"""Session transport: reading the session from requests and writing it to responses."""
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import Settings, get_settings
from core.exceptions import UnauthorizedError
from schemas.session import SessionIdentity
from services.session_service import decode_session_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Raw session token from the session cookie, or from a Bearer header.

    Raises:
        UnauthorizedError: neither is present.
    """
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    raise UnauthorizedError()


def get_current_identity(
    token: str = Depends(get_session_token),
    settings: Settings = Depends(get_settings),
) -> SessionIdentity:
    """Identity of the signed-in caller; 401 when absent or invalid."""
    return decode_session_token(token, settings)


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    """Attach a (re-)issued session token to the response."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    """Remove the session cookie."""
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )
