"""Session identity carried in the signed session token."""
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class SessionIdentity:
    """
    Identity attached to an authenticated request.

    Built from the session token alone, without a database round trip. Only the
    fields a handler needs to scope its queries and render a header:
    - id: str
    - email: str
    - name: str | None
    - image: str | None

    Anything else (password hash, linked accounts) must be loaded from the
    database by id.
    """

    id: str
    email: str
    name: str | None = None
    image: str | None = None

    def with_fields(self, **fields: str | None) -> "SessionIdentity":
        """Copy with name/email/image replaced; None values are ignored."""
        allowed = {"name", "email", "image"}
        updates = {k: v for k, v in fields.items() if k in allowed and v is not None}
        return replace(self, **updates)
