"""Tests for access token lifecycle management."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from oauthflow.models.errors import (
    NoRefreshTokenError,
    NotAuthorizedError,
    TokenRefreshError,
)
from oauthflow.models.tokens import TokenSet
from oauthflow.services.lifecycle import TokenLifecycleManager
from oauthflow.services.storage import InMemoryTokenStore
from oauthflow.services.tokens import OAuth2TokenEndpoint


def mock_response(status_code, json_data):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    return response


class LifecycleTest:
    @pytest.fixture(autouse=True)
    def setup_manager(self, credentials, provider_config, clock):
        self.clock = clock
        self.store = InMemoryTokenStore()
        self.token_endpoint = OAuth2TokenEndpoint()
        self.token_endpoint._http_client = AsyncMock()
        self.manager = TokenLifecycleManager(
            credentials, provider_config, self.store, self.token_endpoint, clock=clock
        )

    @property
    def post(self) -> AsyncMock:
        return self.token_endpoint._http_client.post


class TestIsExpired(LifecycleTest):
    def test_nothing_stored(self):
        assert self.manager.is_expired()
        assert not self.manager.is_authenticated()

    def test_outside_buffer(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now + 61))

        assert not self.manager.is_expired()
        assert self.manager.is_authenticated()

    def test_inside_buffer(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now + 60))

        assert self.manager.is_expired()
        assert not self.manager.is_authenticated()

    def test_no_expiry_recorded(self):
        self.store.set(TokenSet("t1", "r1", None))

        assert self.manager.is_expired()

    def test_custom_buffer(self, credentials, provider_config):
        config = provider_config.model_copy(update={"expiry_buffer_seconds": 0})
        manager = TokenLifecycleManager(
            credentials, config, self.store, self.token_endpoint, clock=self.clock
        )
        self.store.set(TokenSet("t1", "r1", self.clock.now + 1))

        assert not manager.is_expired()


class TestEnsureValid(LifecycleTest):
    async def test_no_access_token(self):
        with pytest.raises(NotAuthorizedError):
            await self.manager.ensure_valid()

        self.post.assert_not_called()

    async def test_valid_token_returned_without_refresh(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now + 3600))

        assert await self.manager.ensure_valid() == "t1"
        self.post.assert_not_called()

    async def test_expired_token_is_refreshed(self):
        # Arrange
        self.store.set(TokenSet("t1", "r1", self.clock.now - 1))
        self.post.return_value = mock_response(
            200, {"access_token": "t2", "expires_in": 3600}
        )

        # Act
        token = await self.manager.ensure_valid()

        # Assert
        assert token == "t2"
        self.post.assert_awaited_once()

    async def test_expired_without_refresh_token(self):
        self.store.set(TokenSet("t1", None, self.clock.now - 1))

        with pytest.raises(NoRefreshTokenError):
            await self.manager.ensure_valid()

    async def test_refresh_failure_propagates_and_clears(self):
        # Arrange
        self.store.set(TokenSet("t1", "r1", self.clock.now - 1))
        self.post.return_value = mock_response(400, {"error": "invalid_grant"})

        # Act & Assert
        with pytest.raises(TokenRefreshError):
            await self.manager.ensure_valid()

        assert self.store.get() is None


class TestRefresh(LifecycleTest):
    async def test_no_refresh_token(self):
        self.store.set(TokenSet("t1", None, self.clock.now + 3600))

        with pytest.raises(NoRefreshTokenError):
            await self.manager.refresh()

        self.post.assert_not_called()
        # Not a refresh failure, tokens stay
        assert self.store.get() is not None

    async def test_successful_refresh_replaces_token_set(self):
        # Arrange
        old = TokenSet("t1", "r1", self.clock.now + 10)
        self.store.set(old)
        self.clock.advance(5)
        self.post.return_value = mock_response(
            200, {"access_token": "t2", "refresh_token": "r2", "expires_in": 3600}
        )

        # Act
        new = await self.manager.refresh()

        # Assert
        assert new.access_token != old.access_token
        assert new.expires_at > old.expires_at
        assert new.refresh_token == "r2"
        assert self.store.get() == new

        form_data = self.post.call_args[1]["data"]
        assert form_data["grant_type"] == "refresh_token"
        assert form_data["refresh_token"] == "r1"
        assert form_data["client_id"] == "client-456"
        assert form_data["client_secret"] == "secret-789"

    async def test_refresh_token_retained_when_omitted(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now))
        self.post.return_value = mock_response(
            200, {"access_token": "t2", "expires_in": 3600}
        )

        new = await self.manager.refresh()

        assert new.refresh_token == "r1"

    async def test_provider_rejection_clears_everything(self):
        # Arrange
        self.store.set(TokenSet("t1", "r1", self.clock.now))
        self.post.return_value = mock_response(
            400,
            {
                "error": "invalid_grant",
                "error_description": "Token has been expired or revoked.",
            },
        )

        # Act & Assert
        with pytest.raises(TokenRefreshError) as exc_info:
            await self.manager.refresh()

        assert "Token has been expired or revoked." in str(exc_info.value)
        assert exc_info.value.error == "invalid_grant"
        assert self.store.get() is None

    async def test_network_failure_clears_everything(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now))
        self.post.side_effect = httpx.ConnectError("down")

        with pytest.raises(TokenRefreshError):
            await self.manager.refresh()

        assert self.store.get() is None

    async def test_concurrent_refreshes_share_one_exchange(self):
        # Arrange
        self.store.set(TokenSet("t1", "r1", self.clock.now - 1))
        self.post.return_value = mock_response(
            200, {"access_token": "t2", "expires_in": 3600}
        )

        # Act
        tokens = await asyncio.gather(
            self.manager.ensure_valid(),
            self.manager.ensure_valid(),
            self.manager.refresh(),
        )

        # Assert
        assert tokens[0] == tokens[1] == "t2"
        assert tokens[2].access_token == "t2"
        self.post.assert_awaited_once()

    async def test_concurrent_failure_reaches_every_caller(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now - 1))
        self.post.return_value = mock_response(400, {"error": "invalid_grant"})

        results = await asyncio.gather(
            self.manager.ensure_valid(),
            self.manager.ensure_valid(),
            return_exceptions=True,
        )

        assert all(isinstance(r, TokenRefreshError) for r in results)
        self.post.assert_awaited_once()

    async def test_sequential_refreshes_each_hit_the_endpoint(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now))
        self.post.return_value = mock_response(
            200, {"access_token": "t2", "expires_in": 3600}
        )

        await self.manager.refresh()
        await self.manager.refresh()

        assert self.post.await_count == 2


class TestClearTokens(LifecycleTest):
    def test_clear(self):
        self.store.set(TokenSet("t1", "r1", self.clock.now + 3600))

        self.manager.clear_tokens()

        assert self.manager.token_set is None
        assert not self.manager.is_authenticated()
