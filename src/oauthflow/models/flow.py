"""Authorization flow models.

Contains the authorization request, the parsed provider callback and the
client status derived from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlencode


class ClientStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the authorization code flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    scope: str
    state: str
    extra_params: dict[str, str] = field(default_factory=dict)

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        # Core parameters go last so extra params cannot replace them
        params = dict(self.extra_params)
        params.update(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": self.scope,
                "state": self.state,
            }
        )

        return f"{self.authorization_endpoint}?{urlencode(params)}"


@dataclass(frozen=True)
class AuthorizationResponse:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None
