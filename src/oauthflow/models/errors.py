"""Exception hierarchy for the OAuth 2.0 authorization code client.

Every error names the corrective action a caller should take, so a host
application can present a short message plus a next step without
inspecting exception types.
"""

from __future__ import annotations

from enum import Enum


class RecommendedAction(str, Enum):
    """Next step a user or caller should take after a failure."""

    REAUTHORIZE = "reauthorize"
    CHECK_SCOPES = "check_scopes"
    CHECK_NETWORK = "check_network"
    RETRY = "retry"
    ABORT = "abort"


class OAuth2Error(Exception):
    """Base exception for all OAuth client errors."""

    recommended_action: RecommendedAction = RecommendedAction.REAUTHORIZE

    @property
    def user_message(self) -> str:
        return f"{self}. Recommended action: {self.recommended_action.value}."


class ProviderError(OAuth2Error):
    """Raised when the authorization server answered with an OAuth error.

    Carries the provider's ``error`` code and ``error_description`` when
    they were present in the response.
    """

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class TokenError(ProviderError):
    """Raised when token endpoint operations fail."""

    pass


class TokenExchangeError(TokenError):
    """Raised when authorization code to token exchange fails."""

    pass


class TokenRefreshError(TokenError):
    """Raised when token refresh fails.

    Stored tokens have already been cleared when this is raised.
    """

    pass


class NoRefreshTokenError(TokenError):
    """Raised when a refresh is needed but no refresh token is stored."""

    pass


class NotAuthorizedError(OAuth2Error):
    """Raised when no access token is stored."""

    pass


class AuthenticationFailedError(OAuth2Error):
    """Raised when an API call is still rejected after one refresh and retry."""

    pass


class AuthorizationCallbackError(OAuth2Error):
    """Raised when authorization server callback data is malformed or invalid."""

    pass


class CsrfMismatchError(AuthorizationCallbackError):
    """Raised when the callback state does not match the stored nonce.

    This indicates either a replayed callback, a callback for a flow this
    client never started, or a CSRF attempt.
    """

    pass


class AuthorizationDeniedError(AuthorizationCallbackError):
    """Raised when the provider redirected back with an OAuth error."""

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description

    @property
    def recommended_action(self) -> RecommendedAction:  # type: ignore[override]
        if self.error == "invalid_scope":
            return RecommendedAction.CHECK_SCOPES
        return RecommendedAction.REAUTHORIZE


class ApiRequestError(OAuth2Error):
    """Raised when an outbound API call fails for a reason other than 401.

    ``status`` is None when no HTTP response was received at all.
    """

    def __init__(self, status: int | None, message: str):
        if status is None:
            super().__init__(f"API request failed: {message}")
        else:
            super().__init__(f"API request failed ({status}): {message}")
        self.status = status
        self.message = message

    @property
    def recommended_action(self) -> RecommendedAction:  # type: ignore[override]
        if self.status is None:
            return RecommendedAction.CHECK_NETWORK
        if self.status == 403:
            return RecommendedAction.CHECK_SCOPES
        if self.status == 429 or self.status >= 500:
            return RecommendedAction.RETRY
        return RecommendedAction.ABORT
