"""
Shared fixtures.

Tests run against a throwaway SQLite database per test and a recording mailer,
with Redis absent (the rate limiter fails open). Environment defaults are set
before the application is imported because settings are read at import time.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("APP_BASE_URL", "http://localhost:3000")

import re  # noqa: E402
from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from api.main import app  # noqa: E402
from core.config import Settings, get_settings  # noqa: E402
from core.email import Mailer, get_mailer  # noqa: E402
from core.redis import set_redis_client  # noqa: E402
from core.security import hash_secret, utcnow  # noqa: E402
from db.session import get_async_session  # noqa: E402
from models import Account, Base, User  # noqa: E402
from services import session_service  # noqa: E402
from services.oauth import OAuthProfile, OAuthProvider, get_oauth_providers  # noqa: E402

DEFAULT_PASSWORD = "password123"


class RecordingMailer(Mailer):
    """Mailer that keeps messages in memory instead of talking SMTP."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.sent: list[dict[str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html})

    def last_to(self, to: str) -> dict[str, str]:
        """Most recent message sent to `to`."""
        matching = [m for m in self.sent if m["to"] == to]
        assert matching, f"no email sent to {to}"
        return matching[-1]

    def verification_token(self, to: str) -> str:
        """Token from the latest verification link sent to `to`."""
        match = re.search(r"/auth/verify\?token=([^\"]+)", self.last_to(to)["html"])
        assert match
        return match.group(1)

    def reset_secret(self, to: str) -> str:
        """Secret from the latest reset link sent to `to`."""
        match = re.search(r"/auth/reset-password/([0-9a-f]+)", self.last_to(to)["html"])
        assert match
        return match.group(1)


class FakeOAuthProvider(OAuthProvider):
    """Provider that returns a preset profile instead of calling out."""

    authorize_url = "https://provider.test/authorize"

    def __init__(self, name: str, profile: OAuthProfile | None = None) -> None:
        super().__init__(client_id=f"{name}-client", client_secret=f"{name}-secret")
        self.name = name
        self.profile = profile
        self.error: Exception | None = None

    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:  # noqa: ARG002
        if self.error is not None:
            raise self.error
        return await self._read_profile(None, code)

    async def _read_profile(  # noqa: ARG002
        self, client: object, access_token: str,
    ) -> OAuthProfile:
        assert self.profile is not None
        return OAuthProfile(**vars(self.profile))


@pytest.fixture(autouse=True)
def no_redis() -> None:
    """Run without Redis; rate limiting fails open."""
    set_redis_client(None)


@pytest.fixture
def settings() -> Settings:
    """Settings as the application sees them."""
    return get_settings()


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """File-backed SQLite engine with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # noqa: ANN001, ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """A session for calling services directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mailer(settings: Settings) -> RecordingMailer:
    """Captures outgoing email."""
    return RecordingMailer(settings)


@pytest.fixture
def oauth_providers() -> dict[str, OAuthProvider]:
    """Enabled providers; tests add fakes as needed."""
    return {}


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    mailer: RecordingMailer,
    oauth_providers: dict[str, OAuthProvider],
) -> AsyncGenerator[AsyncClient]:
    """HTTP client wired to the app with test dependencies."""

    async def _get_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = _get_session
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_oauth_providers] = lambda: oauth_providers

    # https so the Secure session cookie is sent back
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="https://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def create_user(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> Callable[..., Awaitable[User]]:
    """Insert a user directly, optionally with linked provider accounts."""

    async def _create(
        email: str = "user@example.com",
        password: str | None = DEFAULT_PASSWORD,
        name: str | None = "Test User",
        verified: bool = True,
        providers: tuple[str, ...] = (),
    ) -> User:
        async with session_factory() as session:
            user = User(
                email=email,
                name=name,
                password=(
                    await hash_secret(password, settings.bcrypt_rounds) if password else None
                ),
                email_verified=utcnow() if verified else None,
            )
            session.add(user)
            await session.flush()
            for provider in providers:
                session.add(
                    Account(
                        user_id=user.id,
                        provider=provider,
                        provider_account_id=f"{provider}-{user.id}",
                    ),
                )
            await session.commit()
            await session.refresh(user)
            return user

    return _create


@pytest.fixture
def signin(client: AsyncClient, settings: Settings) -> Callable[..., Awaitable[dict[str, str]]]:
    """
    Sign in with credentials and return Bearer headers for the session.

    The cookie jar is cleared so each test controls which session it sends.
    """

    async def _signin(
        email: str = "user@example.com",
        password: str = DEFAULT_PASSWORD,
    ) -> dict[str, str]:
        response = await client.post(
            "/api/auth/signin/credentials",
            json={"email": email, "password": password},
        )
        assert response.status_code == 200, response.text
        token = response.cookies[settings.session_cookie_name]
        client.cookies.clear()
        return {"Authorization": f"Bearer {token}"}

    return _signin


@pytest.fixture
def auth_headers(settings: Settings) -> Callable[[User], dict[str, str]]:
    """Bearer headers for a session minted directly for `user`."""

    def _headers(user: User) -> dict[str, str]:
        identity = session_service.identity_from_user(user)
        token = session_service.create_session_token(identity, settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
