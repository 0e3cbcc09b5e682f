"""Pydantic schemas for sign-in, session, token and linked-account endpoints."""
from pydantic import BaseModel, EmailStr, Field

from schemas.user import CamelModel


class CredentialsSignIn(CamelModel):
    """Email/password sign-in."""

    email: EmailStr
    password: str = Field(min_length=1)


class SessionUser(CamelModel):
    """Identity exposed to the frontend."""

    id: str
    email: str
    name: str | None = None
    image: str | None = None


class SessionResponse(BaseModel):
    """Current session, as returned by sign-in and GET /api/auth/session."""

    user: SessionUser
    expires: int  # Unix timestamp


class ResetPasswordRequest(CamelModel):
    """Start a password reset."""

    email: EmailStr


class ResetPasswordConfirm(CamelModel):
    """Finish a password reset with the secret from the email."""

    token: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ResendVerificationRequest(CamelModel):
    """Ask for a fresh verification link."""

    email: EmailStr


class LinkedAccount(CamelModel):
    """Linked OAuth identity. Tokens are deliberately absent."""

    id: str
    provider: str
    provider_account_id: str
    type: str
