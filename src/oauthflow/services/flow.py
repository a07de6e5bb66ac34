"""Authorization code flow coordination.

The browser redirect splits the flow into two independent operations
connected only through the stored nonce and the token store: building the
authorization URL, and later consuming the provider's callback.
"""

from __future__ import annotations

import logging
import time
import webbrowser
from typing import Callable, Iterable, Protocol
from urllib.parse import parse_qs, urlparse

from oauthflow.models.config import ClientCredentials, ProviderConfig
from oauthflow.models.errors import (
    AuthorizationCallbackError,
    AuthorizationDeniedError,
    TokenError,
    TokenExchangeError,
)
from oauthflow.models.flow import AuthorizationRequest, AuthorizationResponse
from oauthflow.models.tokens import AuthorizationCodeRequest, TokenSet
from oauthflow.services.security import generate_state, validate_state
from oauthflow.services.storage import NonceStore, TokenStore
from oauthflow.services.tokens import OAuth2TokenEndpoint

logger = logging.getLogger(__name__)


class Navigator(Protocol):
    """Transfers the user agent to the authorization URL.

    Allows different strategies for the page transfer:
    - Browser launch for desktop and CLI tools
    - HTTP redirect response in a web application
    - Printing the URL for manual copy/paste
    """

    def navigate(self, url: str) -> None: ...


class BrowserNavigator:
    """Opens the authorization URL in the system web browser."""

    def navigate(self, url: str) -> None:
        logger.info("Opening authorization URL in browser")
        if not webbrowser.open(url):
            logger.warning(f"Could not open a browser. Please visit: {url}")


class CallbackNavigator:
    """Hands the authorization URL to a host supplied function."""

    def __init__(self, callback: Callable[[str], None]):
        self.callback = callback

    def navigate(self, url: str) -> None:
        self.callback(url)


def join_scopes(scopes: str | Iterable[str]) -> str:
    if isinstance(scopes, str):
        return scopes
    return " ".join(scopes)


class AuthorizationFlowCoordinator:
    """Starts the authorization code flow and completes it on callback.

    Handles:
    - Single-use state nonce generation (CSRF protection)
    - Authorization URL construction
    - State validation and nonce consumption on callback
    - Authorization code to token set exchange
    """

    def __init__(
        self,
        credentials: ClientCredentials,
        config: ProviderConfig,
        token_store: TokenStore,
        nonce_store: NonceStore,
        token_endpoint: OAuth2TokenEndpoint,
        navigator: Navigator | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.credentials = credentials
        self.config = config
        self.token_store = token_store
        self.nonce_store = nonce_store
        self.navigator = navigator or BrowserNavigator()
        self._token_endpoint = token_endpoint
        self._clock = clock

    def has_pending_authorization(self) -> bool:
        return self.nonce_store.peek() is not None

    def build_authorization_url(self, scopes: str | Iterable[str]) -> str:
        """Create a fresh nonce and return the URL the user must visit.

        Any previously pending nonce is overwritten and can no longer
        complete a callback.

        Args:
            scopes: A space separated scope string or an iterable of scopes

        Returns:
            Authorization URL carrying the new state nonce
        """
        state = generate_state()
        self.nonce_store.set(state)

        auth_request = AuthorizationRequest(
            authorization_endpoint=self.config.authorization_endpoint,
            client_id=self.credentials.client_id,
            redirect_uri=self.config.redirect_uri,
            scope=join_scopes(scopes),
            state=state,
            extra_params=dict(self.config.extra_authorization_params),
        )
        authorization_url = auth_request.build_authorization_url()

        logger.info(
            f"Generated authorization URL for client {self.credentials.client_id}"
        )
        return authorization_url

    def authorize(self, scopes: str | Iterable[str]) -> None:
        """Start the flow by sending the user agent to the provider.

        Control leaves the application here; the flow resumes through
        ``handle_callback`` in a later, separate invocation.
        """
        self.navigator.navigate(self.build_authorization_url(scopes))

    async def handle_callback(self, code: str, state: str) -> TokenSet:
        """Validate the callback state and exchange the code for tokens.

        The stored nonce is deleted before validation, so a callback can be
        attempted only once whatever its outcome.

        Args:
            code: Authorization code from the callback query
            state: State parameter from the callback query

        Returns:
            TokenSet: The newly stored token set

        Raises:
            CsrfMismatchError: If state does not match; no network call is made
            TokenExchangeError: If the exchange fails; stored tokens are untouched
        """
        expected_state = self.nonce_store.pop()
        try:
            validate_state(expected_state, state)
        except AuthorizationCallbackError:
            logger.warning("Rejected authorization callback with invalid state")
            raise

        return await self._exchange_code(code)

    async def handle_callback_url(self, callback_url: str) -> TokenSet:
        """Handle a full callback URL as received on the redirect URI.

        Raises:
            CsrfMismatchError: If state does not match
            AuthorizationDeniedError: If the provider returned an error
            AuthorizationCallbackError: If the URL carries no code
            TokenExchangeError: If the exchange fails
        """
        # Consumed before parsing so a malformed callback still burns the nonce
        expected_state = self.nonce_store.pop()
        auth_response = parse_callback_url(callback_url)

        validate_state(expected_state, auth_response.state)

        if auth_response.is_error():
            logger.warning(
                f"Authorization callback contained error: {auth_response.error} - "
                f"{auth_response.error_description}"
            )
            raise AuthorizationDeniedError(
                f"Authorization failed: {auth_response.error}"
                + (
                    f" ({auth_response.error_description})"
                    if auth_response.error_description
                    else ""
                ),
                error=auth_response.error,
                error_description=auth_response.error_description,
            )
        if not auth_response.is_success():
            raise AuthorizationCallbackError("Authorization callback missing code")

        return await self._exchange_code(auth_response.code)

    async def _exchange_code(self, code: str) -> TokenSet:
        token_request = AuthorizationCodeRequest(
            token_endpoint=self.config.token_endpoint,
            code=code,
            redirect_uri=self.config.redirect_uri,
            client_id=self.credentials.client_id,
            client_secret=self.credentials.client_secret.get_secret_value(),
        )

        try:
            token_response = await self._token_endpoint.exchange_code_for_token(
                token_request
            )
        except TokenError as e:
            raise TokenExchangeError(f"Token exchange failed: {e}") from e

        if not token_response.is_success():
            raise TokenExchangeError(
                f"Token exchange failed: {token_response.error_detail()}",
                error=token_response.error,
                error_description=token_response.error_description,
            )

        token_set = token_response.to_token_set(self._clock())
        self.token_store.set(token_set)

        logger.info("Authorization complete - tokens stored")
        return token_set


def parse_callback_url(callback_url: str) -> AuthorizationResponse:
    """Parse an OAuth callback URL into AuthorizationResponse.

    Raises:
        AuthorizationCallbackError: If URL is malformed
    """
    try:
        query_params = parse_qs(urlparse(callback_url).query)
    except ValueError as e:
        raise AuthorizationCallbackError(f"Failed to parse callback URL: {e}") from e

    def get_single_param(key: str) -> str | None:
        values = query_params.get(key, [])
        return values[0] if values else None

    return AuthorizationResponse(
        code=get_single_param("code"),
        state=get_single_param("state"),
        error=get_single_param("error"),
        error_description=get_single_param("error_description"),
    )
