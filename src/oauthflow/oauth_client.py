"""OAuth 2.0 authorization code client.

Wires token storage, the authorization flow, token lifecycle management
and authenticated request dispatch into one object for host applications.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable

import httpx

from oauthflow.models.config import ClientCredentials, ProviderConfig
from oauthflow.models.errors import AuthorizationCallbackError
from oauthflow.models.flow import ClientStatus
from oauthflow.models.requests import RequestDescriptor
from oauthflow.models.tokens import TokenSet
from oauthflow.services.dispatcher import RequestDispatcher
from oauthflow.services.flow import (
    AuthorizationFlowCoordinator,
    Navigator,
    parse_callback_url,
)
from oauthflow.services.lifecycle import TokenLifecycleManager
from oauthflow.services.storage import (
    InMemoryNonceStore,
    InMemoryTokenStore,
    NonceStore,
    TokenStore,
)
from oauthflow.services.tokens import OAuth2TokenEndpoint


class OAuth2Client:
    """Authorization code flow client for a single user and provider.

    Typical use::

        client = OAuth2Client(credentials, ProviderConfig.google(redirect_uri))
        client.authorize(["https://www.googleapis.com/auth/classroom.courses"])
        # ... later, on the redirect URI
        await client.handle_callback(code, state)
        courses = await client.make_request(endpoint=COURSES_URL)

    Storage and navigation are pluggable; by default tokens live in memory
    and ``authorize`` opens the system browser.
    """

    def __init__(
        self,
        credentials: ClientCredentials,
        config: ProviderConfig,
        token_store: TokenStore | None = None,
        nonce_store: NonceStore | None = None,
        navigator: Navigator | None = None,
        clock: Callable[[], float] = time.time,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize OAuth client.

        Args:
            credentials: Client ID and secret issued by the provider
            config: Provider endpoints, redirect URI and timeouts
            token_store: Durable token storage, in-memory when omitted
            nonce_store: Session storage for the pending state nonce
            navigator: Performs the page transfer to the provider
            clock: Source of the current Unix time
            http_client: Shared HTTP client for token and API calls
        """
        self.credentials = credentials
        self.config = config
        self.token_store = token_store or InMemoryTokenStore()
        self.nonce_store = nonce_store or InMemoryNonceStore()

        self._http_client = http_client or httpx.AsyncClient(timeout=config.timeout)

        # Initialize service components
        self.token_endpoint = OAuth2TokenEndpoint(
            timeout=config.timeout, http_client=self._http_client
        )
        self.flow = AuthorizationFlowCoordinator(
            credentials,
            config,
            self.token_store,
            self.nonce_store,
            self.token_endpoint,
            navigator=navigator,
            clock=clock,
        )
        self.lifecycle = TokenLifecycleManager(
            credentials, config, self.token_store, self.token_endpoint, clock=clock
        )
        self.dispatcher = RequestDispatcher(
            self.lifecycle, timeout=config.timeout, http_client=self._http_client
        )

    @property
    def status(self) -> ClientStatus:
        if self.flow.has_pending_authorization():
            return ClientStatus.AWAITING_CALLBACK
        token_set = self.token_store.get()
        if token_set is not None and token_set.access_token:
            return ClientStatus.AUTHENTICATED
        return ClientStatus.UNAUTHENTICATED

    def is_authenticated(self) -> bool:
        """Access token present and not expired."""
        return self.lifecycle.is_authenticated()

    def build_authorization_url(self, scopes: str | Iterable[str]) -> str:
        return self.flow.build_authorization_url(scopes)

    def authorize(self, scopes: str | Iterable[str]) -> None:
        self.flow.authorize(scopes)

    async def handle_callback(self, code: str, state: str) -> TokenSet:
        return await self.flow.handle_callback(code, state)

    async def handle_callback_url(self, callback_url: str) -> TokenSet:
        return await self.flow.handle_callback_url(callback_url)

    async def ensure_valid_token(self) -> str:
        return await self.lifecycle.ensure_valid()

    async def refresh(self) -> TokenSet:
        return await self.lifecycle.refresh()

    def clear_tokens(self) -> None:
        self.lifecycle.clear_tokens()

    async def make_request(
        self,
        descriptor: RequestDescriptor | None = None,
        *,
        endpoint: str | None = None,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Call an API endpoint with the user's bearer token.

        Accepts either a ready RequestDescriptor or its fields as keywords.
        """
        if descriptor is None:
            if endpoint is None:
                raise ValueError("Either descriptor or endpoint is required")
            descriptor = RequestDescriptor(
                endpoint=endpoint, method=method, body=body, headers=headers
            )
        return await self.dispatcher.make_request(descriptor)

    async def request_or_authorize(
        self,
        scopes: str | Iterable[str],
        descriptor: RequestDescriptor,
        callback_url: str | None = None,
    ) -> Any:
        """Make an authenticated request, authorizing first when needed.

        With no usable token, a ``callback_url`` carrying a ``state`` and
        either a ``code`` or a provider ``error`` is consumed first. Without
        such a callback the user is sent to the provider and None is
        returned; the host calls again from the redirect URI.

        A stored token that has expired but can be refreshed counts as
        usable, so the request refreshes it instead of re-authorizing.
        """
        if not self._has_usable_token():
            if callback_url and _is_callback(callback_url):
                await self.handle_callback_url(callback_url)
            else:
                self.authorize(scopes)
                return None

        return await self.make_request(descriptor)

    def _has_usable_token(self) -> bool:
        if self.is_authenticated():
            return True
        token_set = self.token_store.get()
        return bool(token_set and token_set.access_token and token_set.refresh_token)

    async def close(self) -> None:
        """Close the shared HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self) -> OAuth2Client:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def _is_callback(url: str) -> bool:
    try:
        callback = parse_callback_url(url)
    except AuthorizationCallbackError:
        # Malformed callbacks still go through handle_callback_url to burn the nonce
        return True
    return bool(callback.state and (callback.code or callback.error))


def create_client(
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    **kwargs: Any,
) -> OAuth2Client:
    """Create a client for Google's endpoints with in-memory storage.

    Extra keyword arguments are passed to OAuth2Client.
    """
    credentials = ClientCredentials(client_id=client_id, client_secret=client_secret)
    return OAuth2Client(credentials, ProviderConfig.google(redirect_uri), **kwargs)
