"""OAuth 2.0 token endpoint client.

Implements RFC 6749 token endpoint interactions for the authorization code
and refresh token grants, authenticating with the client secret in the
form body.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from oauthflow.models.errors import TokenError
from oauthflow.models.tokens import (
    AuthorizationCodeRequest,
    RefreshTokenRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class OAuth2TokenEndpoint:
    """Performs token exchange and refresh requests.

    Handles the token endpoint interactions including:
    - Authorization code to access token exchange (RFC 6749 Section 4.1.3)
    - Access token refresh (RFC 6749 Section 6)

    Provider error responses are returned as error TokenResponses; only
    transport and parsing failures raise.
    """

    def __init__(
        self, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None
    ):
        """Initialize token endpoint client.

        Args:
            timeout: HTTP request timeout in seconds
            http_client: Optional shared client; created when omitted
        """
        self.timeout = timeout
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def exchange_code_for_token(
        self, token_request: AuthorizationCodeRequest
    ) -> TokenResponse:
        """Exchange authorization code for access token.

        Args:
            token_request: Token exchange request parameters

        Returns:
            TokenResponse: Token response (success or error)

        Raises:
            TokenError: If token exchange fails due to network/parsing issues
        """
        logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")
        form_data = token_request.to_form_data()

        # Log request details (without sensitive data)
        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={form_data['client_id']}"
        )

        try:
            response = await self._http_client.post(
                token_request.token_endpoint,
                data=form_data,
                headers=FORM_HEADERS,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TokenError(f"HTTP error during token exchange: {e}") from e

        return self._parse_token_response(response)

    async def refresh_access_token(
        self, refresh_request: RefreshTokenRequest
    ) -> TokenResponse:
        """Refresh an access token using a refresh token.

        Raises:
            TokenError: If token refresh fails due to network/parsing issues
        """
        logger.debug(f"Refreshing access token at {refresh_request.token_endpoint}")

        try:
            response = await self._http_client.post(
                refresh_request.token_endpoint,
                data=refresh_request.to_form_data(),
                headers=FORM_HEADERS,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TokenError(f"HTTP error during token refresh: {e}") from e

        return self._parse_token_response(response)

    def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse token endpoint response into TokenResponse.

        Handles both successful responses (2xx) and error responses (400+)
        according to RFC 6749 Section 5.

        Raises:
            TokenError: If a successful response cannot be parsed
        """
        succeeded = 200 <= response.status_code < 300

        try:
            response_data = response.json()
        except ValueError as e:
            if succeeded:
                raise TokenError(f"Invalid token response format: {e}") from e
            # Non-JSON error page, e.g. from a proxy
            logger.warning(
                f"Token endpoint returned non-JSON error {response.status_code}"
            )
            return TokenResponse(
                error=f"http_{response.status_code}",
                error_description=f"Token endpoint returned HTTP {response.status_code}",
            )

        if not isinstance(response_data, dict):
            if succeeded:
                raise TokenError(
                    "Invalid token response format: expected a JSON object"
                )
            response_data = {}

        if succeeded:
            if "access_token" not in response_data:
                raise TokenError("Token response missing required access_token")
            try:
                token_response = TokenResponse(**response_data)
            except ValidationError as e:
                raise TokenError(f"Invalid token response format: {e}") from e
            logger.info("Token request successful")
            return token_response

        # Error response (RFC 6749 Section 5.2)
        error_code = response_data.get("error") or f"http_{response.status_code}"
        error_description = response_data.get("error_description")
        if error_description is not None:
            error_description = str(error_description)
        logger.warning(
            f"Token request failed with {response.status_code}: "
            f"{error_code} - {error_description or 'No description provided'}"
        )
        return TokenResponse(
            error=str(error_code),
            error_description=error_description,
        )

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
