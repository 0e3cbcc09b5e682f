"""
Application error taxonomy.

Services raise these; the API layer maps them to HTTP responses in one place
(see api/main.py). Messages are safe to show to end users.
"""


class AppError(Exception):
    """Base class for errors that translate to a client-facing response."""

    status_code: int = 500
    default_message: str = "Internal Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Missing or malformed input."""

    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(AppError):
    """No session, or the session could not be validated."""

    status_code = 401
    default_message = "Unauthorized"


class InvalidCredentialsError(UnauthorizedError):
    """Email/password pair rejected. Never says which half was wrong."""

    default_message = "Invalid credentials"


class NotFoundError(AppError):
    """Requested record does not exist (or is not owned by the caller)."""

    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    """Request conflicts with existing state (email in use, last account)."""

    status_code = 400
    default_message = "Conflict"


class InvalidTokenError(ValidationError):
    """Verification or reset token is unknown, forged, or already consumed."""

    default_message = "Invalid or expired token"


class ExpiredTokenError(InvalidTokenError):
    """Token signature is valid but its expiry has passed."""

    default_message = "Token has expired"


class OAuthAccountNotLinkedError(AppError):
    """OAuth identity could not be attached to the matching user."""

    status_code = 400
    default_message = (
        "This account is linked to a different user. "
        "Sign in with the method you originally used."
    )


class UpstreamFailureError(AppError):
    """An external collaborator (SMTP, OAuth provider) failed."""

    status_code = 500
    default_message = "Upstream service failure"
