"""SQLAlchemy models."""
from models.account import Account
from models.base import Base, IdMixin, TimestampMixin
from models.category import Category
from models.tokens import PasswordResetToken, VerificationToken
from models.user import User

__all__ = [
    "Account",
    "Base",
    "Category",
    "IdMixin",
    "PasswordResetToken",
    "TimestampMixin",
    "User",
    "VerificationToken",
]
