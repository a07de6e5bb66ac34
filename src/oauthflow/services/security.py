"""Security utilities for the authorization code flow.

Provides cryptographically secure state generation and validation for
CSRF protection across the browser redirect.
"""

from __future__ import annotations

import secrets

from oauthflow.models.errors import CsrfMismatchError

STATE_NUM_BYTES = 32


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    The state parameter provides CSRF protection by ensuring the callback
    matches the original authorization request.

    Returns:
        Hex encoded random state (32 bytes of entropy, 64 characters)
    """
    return secrets.token_hex(STATE_NUM_BYTES)


def validate_state(expected: str | None, actual: str | None) -> None:
    """Validate state parameter matches expected value.

    Args:
        expected: Nonce stored before the redirect, None if nothing is pending
        actual: State parameter from the callback

    Raises:
        CsrfMismatchError: If no nonce is pending or the values differ
    """
    if expected is None:
        raise CsrfMismatchError(
            "No authorization in progress - state cannot be verified"
        )
    if actual is None or not secrets.compare_digest(
        expected.encode("utf-8", "surrogatepass"),
        actual.encode("utf-8", "surrogatepass"),
    ):
        raise CsrfMismatchError("State parameter mismatch - possible CSRF attack")
