"""Client credentials and per-provider configuration.

Endpoints and the redirect URI are instance configuration rather than
module constants, so clients for different providers can coexist.
"""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

GOOGLE_AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"


class ClientCredentials(BaseModel):
    """OAuth 2.0 client credentials supplied by the host application."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: SecretStr


class ProviderConfig(BaseModel):
    """Authorization server endpoints and client behaviour settings."""

    model_config = ConfigDict(frozen=True)

    authorization_endpoint: str
    token_endpoint: str
    redirect_uri: str

    timeout: float = Field(default=30.0, gt=0)
    expiry_buffer_seconds: float = Field(default=60.0, ge=0)

    # Google needs both to issue a refresh token on every consent
    extra_authorization_params: dict[str, str] = Field(
        default_factory=lambda: {"access_type": "offline", "prompt": "consent"}
    )

    @field_validator("authorization_endpoint", "token_endpoint", "redirect_uri")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Must be an absolute http(s) URL: {v}")
        return v

    @classmethod
    def google(cls, redirect_uri: str, **kwargs) -> ProviderConfig:
        """Build a configuration for Google's OAuth 2.0 endpoints."""
        return cls(
            authorization_endpoint=GOOGLE_AUTHORIZATION_ENDPOINT,
            token_endpoint=GOOGLE_TOKEN_ENDPOINT,
            redirect_uri=redirect_uri,
            **kwargs,
        )
