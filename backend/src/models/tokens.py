"""Single-use tokens for email verification and password reset."""
from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, IdMixin


class VerificationToken(Base):
    """
    Proof-of-email token. Looked up by (identifier, token) and deleted on use.

    `token` is the signed JWT that was mailed out; it embeds the identifier and
    expiry, but is only honoured while this row exists.
    """

    __tablename__ = "verification_tokens"

    identifier: Mapped[str] = mapped_column(String(255), primary_key=True)
    token: Mapped[str] = mapped_column(String(1024), primary_key=True)
    expires: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class PasswordResetToken(Base, IdMixin):
    """
    Password reset grant.

    `token` is a bcrypt hash of the secret sent to the user, so rows cannot be
    found by token value; validation scans the unexpired rows instead.
    """

    __tablename__ = "password_reset_tokens"

    identifier: Mapped[str] = mapped_column(String(255), index=True)
    token: Mapped[str] = mapped_column(Text)
    expires: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
