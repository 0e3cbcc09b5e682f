"""Tests for the GitHub and Google code exchange against mocked provider APIs."""
import json

import httpx
import pytest

from core.config import Settings
from core.exceptions import NotFoundError, UpstreamFailureError
from services.oauth import (
    GitHubProvider,
    GoogleProvider,
    OAuthProvider,
    build_providers,
    select_provider,
)

REDIRECT_URI = "http://localhost:3000/api/auth/callback/github"


def _github_transport(
    user: dict,
    emails: list[dict] | None = None,
    token_status: int = 200,
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/login/oauth/access_token":
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "bad_verification_code"})
            return httpx.Response(
                200,
                json={"access_token": "gh-token", "token_type": "bearer", "scope": "read:user"},
            )
        assert request.headers["Authorization"] == "Bearer gh-token"
        if request.url.path == "/user":
            return httpx.Response(200, json=user)
        if request.url.path == "/user/emails":
            return httpx.Response(200, json=emails or [])
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestGitHubProvider:
    """Tests for the GitHub client."""

    async def test__fetch_profile__public_email(self) -> None:
        """Profile fields and tokens come from the API responses."""
        provider = GitHubProvider(
            "id", "secret",
            transport=_github_transport(
                {"id": 42, "email": "ada@example.com", "name": "Ada", "avatar_url": "https://a"},
            ),
        )

        profile = await provider.fetch_profile("code", REDIRECT_URI)

        assert profile.provider == "github"
        assert profile.provider_account_id == "42"
        assert profile.email == "ada@example.com"
        assert profile.name == "Ada"
        assert profile.image == "https://a"
        assert profile.access_token == "gh-token"
        assert profile.token_type == "bearer"
        assert profile.expires_at is None

    async def test__fetch_profile__private_email_uses_primary_verified(self) -> None:
        """Without a public email, the primary verified address is used."""
        provider = GitHubProvider(
            "id", "secret",
            transport=_github_transport(
                {"id": 42, "email": None, "name": "Ada"},
                emails=[
                    {"email": "old@example.com", "primary": False, "verified": True},
                    {"email": "ada@example.com", "primary": True, "verified": True},
                ],
            ),
        )

        profile = await provider.fetch_profile("code", REDIRECT_URI)

        assert profile.email == "ada@example.com"

    async def test__fetch_profile__no_verified_email(self) -> None:
        """An unverified primary address is not trusted."""
        provider = GitHubProvider(
            "id", "secret",
            transport=_github_transport(
                {"id": 42, "email": None},
                emails=[{"email": "ada@example.com", "primary": True, "verified": False}],
            ),
        )

        profile = await provider.fetch_profile("code", REDIRECT_URI)

        assert profile.email is None

    async def test__fetch_profile__rejected_code(self) -> None:
        """A failed token exchange is an upstream failure."""
        provider = GitHubProvider(
            "id", "secret", transport=_github_transport({"id": 42}, token_status=401),
        )

        with pytest.raises(UpstreamFailureError):
            await provider.fetch_profile("bad-code", REDIRECT_URI)

    async def test__fetch_profile__network_error(self) -> None:
        """Connection problems are upstream failures too."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = GitHubProvider("id", "secret", transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamFailureError):
            await provider.fetch_profile("code", REDIRECT_URI)

    def test__authorization_url__carries_state(self) -> None:
        """The authorize URL includes client id, scope and state."""
        url = GitHubProvider("gh-id", "secret").authorization_url("s1", REDIRECT_URI)
        assert url.startswith("https://github.com/login/oauth/authorize?")
        assert "client_id=gh-id" in url
        assert "state=s1" in url


class TestGoogleProvider:
    """Tests for the Google client."""

    async def test__fetch_profile__userinfo(self) -> None:
        """Profile comes from the OpenID userinfo endpoint; expiry is computed."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "oauth2.googleapis.com":
                form = dict(httpx.QueryParams(request.content.decode()))
                assert form["grant_type"] == "authorization_code"
                return httpx.Response(
                    200,
                    content=json.dumps(
                        {"access_token": "g-token", "expires_in": 3600, "id_token": "idt"},
                    ),
                )
            return httpx.Response(
                200,
                json={
                    "sub": "1234",
                    "email": "ada@example.com",
                    "name": "Ada",
                    "picture": "https://p",
                },
            )

        provider = GoogleProvider("id", "secret", transport=httpx.MockTransport(handler))

        profile = await provider.fetch_profile("code", REDIRECT_URI)

        assert profile.provider == "google"
        assert profile.provider_account_id == "1234"
        assert profile.image == "https://p"
        assert profile.id_token == "idt"
        assert profile.expires_at is not None

    async def test__fetch_profile__missing_access_token(self) -> None:
        """A token response without an access token is refused."""

        def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
            return httpx.Response(200, json={"error": "invalid_grant"})

        provider = GoogleProvider("id", "secret", transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamFailureError):
            await provider.fetch_profile("code", REDIRECT_URI)


class TestProviderRegistry:
    """Tests for enabling providers from settings."""

    def test__build_providers__only_configured(self, settings: Settings) -> None:
        """Providers without a client id are not enabled."""
        configured = settings.model_copy(
            update={"github_client_id": "gh", "google_client_id": ""},
        )
        assert set(build_providers(configured)) == {"github"}

    def test__provider_without_profile_reader__cannot_be_built(self) -> None:
        """A provider must say how it reads the profile."""

        class Incomplete(OAuthProvider):
            name = "incomplete"

        with pytest.raises(TypeError):
            Incomplete("id", "secret")

    def test__select_provider__unknown(self) -> None:
        """Unknown provider names are a 404."""
        with pytest.raises(NotFoundError):
            select_provider({}, "gitlab")
