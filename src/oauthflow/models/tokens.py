"""Token set and token endpoint models for OAuth 2.0.

Contains the persisted token set and the request/response shapes used
against the token endpoint (RFC 6749 Sections 4.1.3, 5 and 6).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


@dataclass(frozen=True)
class TokenSet:
    """The current credentials for the authorized user.

    Immutable so that every exchange or refresh replaces it as a whole.
    ``expires_at`` is the real expiry; safety buffers are applied by readers.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None  # Unix timestamp

    def is_expired(self, now: float, buffer_seconds: float = 60.0) -> bool:
        """Check if the access token should be treated as expired.

        A token without a recorded expiry is always treated as expired.
        """
        if self.expires_at is None:
            return True
        return now >= self.expires_at - buffer_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenSet:
        expires_at = data.get("expires_at")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=float(expires_at) if expires_at is not None else None,
        )


class TokenResponse(BaseModel):
    """OAuth 2.0 token response (RFC 6749 Section 5).

    Represents both successful responses (Section 5.1) and error
    responses (Section 5.2) from the token endpoint.
    """

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        """Check if token response indicates an error."""
        return self.error is not None

    def error_detail(self) -> str:
        """Human readable provider error, preferring the description."""
        return self.error_description or self.error or "unknown_error"

    def calculate_expires_at(self, now: float) -> float | None:
        if self.expires_in is None:
            return None
        return now + self.expires_in

    def to_token_set(
        self, now: float, previous_refresh_token: str | None = None
    ) -> TokenSet:
        """Convert a successful response into a new TokenSet.

        Args:
            now: Current Unix time, used to make ``expires_in`` absolute
            previous_refresh_token: Kept when the response omits a refresh token

        Raises:
            ValueError: If response is not successful
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to TokenSet")

        return TokenSet(
            access_token=self.access_token,
            refresh_token=self.refresh_token or previous_refresh_token,
            expires_at=self.calculate_expires_at(now),
        )


@dataclass(frozen=True)
class AuthorizationCodeRequest:
    """Authorization code exchange parameters (RFC 6749 Section 4.1.3)."""

    token_endpoint: str
    code: str
    redirect_uri: str
    client_id: str
    client_secret: str

    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).
        """
        return {
            "code": self.code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "grant_type": self.grant_type,
        }


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Refresh token request parameters (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str
    client_id: str
    client_secret: str

    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        return {
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": self.grant_type,
        }
