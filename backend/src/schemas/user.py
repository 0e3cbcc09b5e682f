"""Pydantic schemas for account registration and profile endpoints."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


_email_adapter = TypeAdapter(EmailStr)


def normalize_email(value: str) -> str:
    """
    Stored form of an email address, exactly as `EmailStr` request fields yield it.

    Lookups compare emails for equality, so addresses that arrive outside a
    request body (from OAuth providers) go through the same normalisation.

    Raises:
        pydantic.ValidationError: not a valid address.
    """
    return _email_adapter.validate_python(value)


def _strip_required(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


class RegisterRequest(CamelModel):
    """Schema for credential sign-up."""

    name: str = Field(min_length=2)
    email: EmailStr
    password: str = Field(min_length=8)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        """Trim surrounding whitespace."""
        value = v.strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        return value


class UserResponse(CamelModel):
    """A user as returned to its owner. Never includes the password hash."""

    id: str
    name: str | None
    email: str
    image: str | None
    email_verified: datetime | None
    created_at: datetime
    updated_at: datetime


class RegisterResponse(BaseModel):
    """Response body for a successful registration."""

    user: UserResponse
    message: str


class ProfileResponse(CamelModel):
    """Profile fields the settings page edits."""

    id: str
    name: str | None
    email: str
    image: str | None


class ProfileUpdate(CamelModel):
    """Schema for PUT /api/user/profile. Both fields are required."""

    name: str
    email: EmailStr

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        """Reject blank names."""
        return _strip_required(v, "Name")


class ChangePasswordRequest(CamelModel):
    """Schema for POST /api/user/change-password."""

    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class SetupRequest(CamelModel):
    """Schema for first-login setup."""

    name: str

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        """Reject blank names."""
        return _strip_required(v, "Name")


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    message: str
