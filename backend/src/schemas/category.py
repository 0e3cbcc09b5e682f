"""Pydantic schemas for category endpoints."""
from datetime import datetime

from pydantic import field_validator

from schemas.user import CamelModel


class CategoryCreate(CamelModel):
    """Schema for creating a category."""

    name: str
    description: str | None = None
    color: str | None = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        """Reject blank names."""
        value = v.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class CategoryUpdate(CamelModel):
    """Partial update; omitted fields keep their value."""

    name: str | None = None
    description: str | None = None
    color: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        """A provided name must not be blank."""
        if v is None:
            return None
        value = v.strip()
        if not value:
            raise ValueError("Name must not be empty")
        return value


class CategoryResponse(CamelModel):
    """Category as returned by the API."""

    id: str
    name: str
    description: str | None
    color: str | None
    user_id: str
    created_at: datetime
    updated_at: datetime
