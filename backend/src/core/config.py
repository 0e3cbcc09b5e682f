"""Application configuration using pydantic-settings."""
from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str

    # Signing key for sessions and verification tokens; required and non-empty
    # NEXTAUTH_SECRET is accepted so existing deployments keep their secret
    secret_key: str = Field(
        min_length=1,
        validation_alias=AliasChoices("SECRET_KEY", "NEXTAUTH_SECRET", "secret_key"),
    )
    jwt_algorithm: str = "HS256"

    # Sessions (seconds)
    session_max_age: int = 30 * 24 * 60 * 60
    session_update_age: int = 24 * 60 * 60
    session_cookie_name: str = "session_token"
    session_cookie_secure: bool = True

    # Credentials and tokens
    bcrypt_rounds: int = 12
    password_min_length: int = 8
    verification_token_ttl: int = 24 * 60 * 60
    reset_token_ttl: int = 60 * 60
    # Forgot-password returns 404 for unknown emails when enabled (leaks existence)
    reveal_unknown_reset_email: bool = False

    # Public URL used to build links in emails and OAuth redirect URIs
    app_base_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("APP_BASE_URL", "NEXTAUTH_URL", "app_base_url"),
    )

    # SMTP
    email_server_host: str = "localhost"
    email_server_port: int = 587
    email_server_user: str = ""
    email_server_password: str = ""
    email_from: str = "Dump Pad <noreply@localhost>"

    # OAuth providers; a provider is enabled when its client id is set
    github_client_id: str = Field(
        default="",
        validation_alias=AliasChoices("GITHUB_CLIENT_ID", "GITHUB_ID", "github_client_id"),
    )
    github_client_secret: str = Field(
        default="",
        validation_alias=AliasChoices(
            "GITHUB_CLIENT_SECRET", "GITHUB_SECRET", "github_client_secret",
        ),
    )
    google_client_id: str = ""
    google_client_secret: str = ""

    # Redis (rate limiting)
    redis_url: str = "redis://localhost:6379"
    redis_enabled: bool = True

    # CORS
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    log_level: str = "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def oauth_redirect_base(self) -> str:
        """Base URL for OAuth callbacks; the provider name is appended."""
        return f"{self.app_base_url.rstrip('/')}/api/auth/callback"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
