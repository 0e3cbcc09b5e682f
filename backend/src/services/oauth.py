"""OAuth provider clients: authorize URL and code-for-profile exchange."""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from core.config import Settings, get_settings
from core.exceptions import NotFoundError, UpstreamFailureError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass
class OAuthProfile:
    """Identity asserted by a provider after a successful code exchange."""

    provider: str
    provider_account_id: str
    email: str | None
    name: str | None = None
    image: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    id_token: str | None = None
    expires_at: int | None = None


class OAuthProvider(ABC):
    """
    Authorization-code flow for one provider.

    Subclasses set the endpoint URLs and implement `_read_profile`.
    """

    name: str = ""
    authorize_url: str = ""
    token_url: str = ""
    scope: str = ""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self._transport = transport

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        """URL the browser is sent to in order to start sign-in."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        """
        Exchange an authorization code for the user's profile.

        Raises:
            UpstreamFailureError: the provider rejected the code or could not be
                reached.
        """
        try:
            async with self._client() as client:
                token_response = await client.post(
                    self.token_url,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                        "grant_type": "authorization_code",
                        "redirect_uri": redirect_uri,
                    },
                )
                token_response.raise_for_status()
                tokens = token_response.json()
                if "access_token" not in tokens:
                    raise UpstreamFailureError(f"{self.name} did not return an access token")
                profile = await self._read_profile(client, tokens["access_token"])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(
                "oauth_exchange_failed",
                extra={"provider": self.name, "error": str(e)},
            )
            raise UpstreamFailureError(f"Sign-in with {self.name} failed") from e

        profile.access_token = tokens.get("access_token")
        profile.refresh_token = tokens.get("refresh_token")
        profile.token_type = tokens.get("token_type")
        profile.scope = tokens.get("scope")
        profile.id_token = tokens.get("id_token")
        if tokens.get("expires_in"):
            profile.expires_at = int(time.time()) + int(tokens["expires_in"])
        return profile

    @abstractmethod
    async def _read_profile(self, client: httpx.AsyncClient, access_token: str) -> OAuthProfile:
        """Load the signed-in user's identity with a fresh access token."""


class GitHubProvider(OAuthProvider):
    """GitHub OAuth app."""

    name = "github"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    scope = "read:user user:email"

    async def _read_profile(self, client: httpx.AsyncClient, access_token: str) -> OAuthProfile:
        headers = {"Authorization": f"Bearer {access_token}"}
        user_response = await client.get("https://api.github.com/user", headers=headers)
        user_response.raise_for_status()
        user = user_response.json()

        email = user.get("email")
        if not email:
            # Private email: fall back to the primary verified address
            emails_response = await client.get(
                "https://api.github.com/user/emails", headers=headers,
            )
            emails_response.raise_for_status()
            email = next(
                (
                    entry["email"]
                    for entry in emails_response.json()
                    if entry.get("primary") and entry.get("verified")
                ),
                None,
            )

        return OAuthProfile(
            provider=self.name,
            provider_account_id=str(user["id"]),
            email=email,
            name=user.get("name"),
            image=user.get("avatar_url"),
        )


class GoogleProvider(OAuthProvider):
    """Google OpenID Connect."""

    name = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    scope = "openid email profile"

    async def _read_profile(self, client: httpx.AsyncClient, access_token: str) -> OAuthProfile:
        response = await client.get(
            "https://openidconnect.googleapis.com/v1/userinfo",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        info = response.json()
        return OAuthProfile(
            provider=self.name,
            provider_account_id=str(info["sub"]),
            email=info.get("email"),
            name=info.get("name"),
            image=info.get("picture"),
        )


def build_providers(settings: Settings) -> dict[str, OAuthProvider]:
    """Instantiate every provider whose client id is configured."""
    providers: dict[str, OAuthProvider] = {}
    if settings.github_client_id:
        providers["github"] = GitHubProvider(
            settings.github_client_id, settings.github_client_secret,
        )
    if settings.google_client_id:
        providers["google"] = GoogleProvider(
            settings.google_client_id, settings.google_client_secret,
        )
    return providers


def get_oauth_providers() -> dict[str, OAuthProvider]:
    """FastAPI dependency: enabled providers by name."""
    return build_providers(get_settings())


def select_provider(providers: dict[str, OAuthProvider], name: str) -> OAuthProvider:
    """Look up an enabled provider or raise NotFoundError."""
    provider = providers.get(name)
    if provider is None:
        raise NotFoundError(f"Unknown sign-in provider: {name}")
    return provider
