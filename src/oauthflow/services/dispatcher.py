"""Authenticated request dispatch.

Sends API calls with the current bearer token and recovers once from an
authentication rejection by forcing a refresh and reissuing the call.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from oauthflow.models.errors import (
    ApiRequestError,
    AuthenticationFailedError,
    OAuth2Error,
)
from oauthflow.models.requests import RequestDescriptor
from oauthflow.services.lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)

MAX_AUTH_RETRIES = 1


class RequestDispatcher:
    """Issues authenticated HTTP calls against arbitrary endpoints.

    Every attempt goes through ``_send`` so the first call and the
    post-401 retry are built identically.
    """

    def __init__(
        self,
        lifecycle: TokenLifecycleManager,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._lifecycle = lifecycle
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def make_request(self, descriptor: RequestDescriptor) -> Any:
        """Send ``descriptor`` with a valid bearer token.

        Returns:
            Decoded JSON body, the text body if it is not JSON, or None if empty

        Raises:
            NotAuthorizedError, NoRefreshTokenError, TokenRefreshError:
                Propagated unchanged from obtaining a valid token
            AuthenticationFailedError: If the call is rejected with 401 and the
                single refresh-and-retry does not succeed
            ApiRequestError: For any other non-2xx status or transport failure
        """
        token = await self._lifecycle.ensure_valid()

        try:
            response = await self._send(descriptor, token)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ApiRequestError(None, str(e) or type(e).__name__) from e

        retries = 0
        while response.status_code == 401:
            if retries >= MAX_AUTH_RETRIES:
                raise AuthenticationFailedError(
                    "Authentication failed. Please re-authorize"
                )
            retries += 1
            logger.warning(
                f"{descriptor.method} {descriptor.endpoint} rejected with 401, "
                "refreshing token and retrying"
            )
            response = await self._retry_with_fresh_token(descriptor)

        return self._handle_response(descriptor, response)

    async def _retry_with_fresh_token(
        self, descriptor: RequestDescriptor
    ) -> httpx.Response:
        try:
            # Forced even if the stored token still looks unexpired
            token_set = await self._lifecycle.refresh()
            return await self._send(descriptor, token_set.access_token)
        except (OAuth2Error, httpx.HTTPError, httpx.InvalidURL) as e:
            raise AuthenticationFailedError(
                f"Authentication failed: {e}. Please re-authorize"
            ) from e

    async def _send(self, descriptor: RequestDescriptor, token: str) -> httpx.Response:
        headers = httpx.Headers({"Content-Type": "application/json"})
        headers.update(descriptor.headers or {})
        headers["Authorization"] = f"Bearer {token}"

        kwargs: dict[str, Any] = {"headers": headers}
        if descriptor.sends_body():
            kwargs["json"] = descriptor.body

        logger.debug(f"Sending {descriptor.method} {descriptor.endpoint}")
        return await self._http_client.request(
            descriptor.method, descriptor.endpoint, **kwargs
        )

    def _handle_response(
        self, descriptor: RequestDescriptor, response: httpx.Response
    ) -> Any:
        if not 200 <= response.status_code < 300:
            message = _extract_error_message(response)
            logger.warning(
                f"{descriptor.method} {descriptor.endpoint} failed with "
                f"{response.status_code}: {message}"
            )
            raise ApiRequestError(response.status_code, message)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def close(self) -> None:
        await self._http_client.aclose()


def _extract_error_message(response: httpx.Response) -> str:
    """Pull a readable message out of an API error response.

    Looks at ``error.message``, then ``message``, then falls back to the
    HTTP reason phrase.
    """
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("message"):
            return str(data["message"])

    return response.reason_phrase or f"HTTP {response.status_code}"
