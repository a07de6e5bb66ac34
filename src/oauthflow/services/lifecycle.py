"""Access token lifecycle management.

Decides whether the stored access token is still usable and performs the
refresh token exchange when it is not.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from oauthflow.models.config import ClientCredentials, ProviderConfig
from oauthflow.models.errors import (
    NoRefreshTokenError,
    NotAuthorizedError,
    TokenError,
    TokenRefreshError,
)
from oauthflow.models.tokens import RefreshTokenRequest, TokenSet
from oauthflow.services.storage import TokenStore
from oauthflow.services.tokens import OAuth2TokenEndpoint

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """Keeps the stored token set valid.

    Concurrent ``refresh()`` calls share a single in-flight exchange, so
    overlapping requests that all observe an expired token only hit the
    token endpoint once.
    """

    def __init__(
        self,
        credentials: ClientCredentials,
        config: ProviderConfig,
        token_store: TokenStore,
        token_endpoint: OAuth2TokenEndpoint,
        clock: Callable[[], float] = time.time,
    ):
        self.credentials = credentials
        self.config = config
        self.token_store = token_store
        self._token_endpoint = token_endpoint
        self._clock = clock
        self._refresh_task: asyncio.Task[TokenSet] | None = None

    @property
    def token_set(self) -> TokenSet | None:
        return self.token_store.get()

    def is_expired(self) -> bool:
        """True if no expiry is recorded or it falls within the safety buffer."""
        token_set = self.token_store.get()
        if token_set is None:
            return True
        return token_set.is_expired(self._clock(), self.config.expiry_buffer_seconds)

    def is_authenticated(self) -> bool:
        token_set = self.token_store.get()
        return bool(token_set and token_set.access_token) and not self.is_expired()

    def clear_tokens(self) -> None:
        self.token_store.clear()
        logger.info("Cleared stored tokens")

    async def ensure_valid(self) -> str:
        """Return a usable access token, refreshing it first if expired.

        Raises:
            NotAuthorizedError: If no access token is stored
            NoRefreshTokenError: If the token expired and cannot be refreshed
            TokenRefreshError: If the refresh was rejected or failed
        """
        token_set = self.token_store.get()
        if token_set is None or not token_set.access_token:
            raise NotAuthorizedError("No access token available. Please authorize first")

        if self.is_expired():
            logger.debug("Access token expired, refreshing")
            token_set = await self.refresh()

        return token_set.access_token

    async def refresh(self) -> TokenSet:
        """Exchange the refresh token for a new access token.

        Joins an in-flight refresh when one is already running.

        Raises:
            NoRefreshTokenError: If no refresh token is stored
            TokenRefreshError: If the exchange fails; stored tokens are cleared
        """
        if self._refresh_task is None or self._refresh_task.done():
            token_set = self.token_store.get()
            if token_set is None or not token_set.refresh_token:
                raise NoRefreshTokenError(
                    "No refresh token available. Please re-authorize"
                )
            self._refresh_task = asyncio.ensure_future(self._do_refresh(token_set))
            self._refresh_task.add_done_callback(self._clear_refresh_task)
        else:
            logger.debug("Joining in-flight token refresh")

        # Shield so one cancelled caller does not cancel the shared exchange
        return await asyncio.shield(self._refresh_task)

    def _clear_refresh_task(self, task: asyncio.Task[TokenSet]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        # Mark the exception retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _do_refresh(self, current: TokenSet) -> TokenSet:
        refresh_request = RefreshTokenRequest(
            token_endpoint=self.config.token_endpoint,
            refresh_token=current.refresh_token,
            client_id=self.credentials.client_id,
            client_secret=self.credentials.client_secret.get_secret_value(),
        )

        try:
            token_response = await self._token_endpoint.refresh_access_token(
                refresh_request
            )
        except TokenError as e:
            self.clear_tokens()
            raise TokenRefreshError(
                f"Token refresh failed: {e}. Please re-authorize"
            ) from e

        if not token_response.is_success():
            self.clear_tokens()
            logger.error(f"Token refresh failed: {token_response.error_detail()}")
            raise TokenRefreshError(
                f"Token refresh failed: {token_response.error_detail()}. "
                "Please re-authorize",
                error=token_response.error,
                error_description=token_response.error_description,
            )

        new_token_set = token_response.to_token_set(
            self._clock(), previous_refresh_token=current.refresh_token
        )
        self.token_store.set(new_token_set)
        logger.info("Successfully refreshed access token")
        return new_token_set
