"""Pluggable persistence for tokens and the authorization nonce.

Storage is a capability with no logic beyond get/set/clear, so secure
backends can be swapped in without touching the token lifecycle.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Protocol

from oauthflow.models.tokens import TokenSet

logger = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Durable storage for the current token set.

    Implementations must write and clear the token set as one unit.
    """

    def get(self) -> TokenSet | None: ...

    def set(self, token_set: TokenSet) -> None: ...

    def clear(self) -> None: ...


class NonceStore(Protocol):
    """Session-scoped storage for the single pending authorization nonce."""

    def set(self, nonce: str) -> None: ...

    def peek(self) -> str | None: ...

    def pop(self) -> str | None:
        """Remove and return the stored nonce, or None if there is none."""
        ...


class InMemoryTokenStore:
    """Token store that lives for the process lifetime only."""

    def __init__(self, token_set: TokenSet | None = None):
        self._token_set = token_set

    def get(self) -> TokenSet | None:
        return self._token_set

    def set(self, token_set: TokenSet) -> None:
        self._token_set = token_set

    def clear(self) -> None:
        self._token_set = None


class InMemoryNonceStore:
    def __init__(self) -> None:
        self._nonce: str | None = None

    def set(self, nonce: str) -> None:
        self._nonce = nonce

    def peek(self) -> str | None:
        return self._nonce

    def pop(self) -> str | None:
        nonce, self._nonce = self._nonce, None
        return nonce


class FileTokenStore:
    """JSON file token store.

    The access token, refresh token and expiry are written together through
    a temporary file and ``os.replace``, so readers never observe a partial
    set. Files are chmod 0600 (owner-only read/write). Tokens are stored in
    clear text.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def get(self) -> TokenSet | None:
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text())
            return TokenSet.from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None

    def set(self, token_set: TokenSet) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(token_set.to_dict(), f, indent=2)
            os.chmod(tmp_name, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved tokens to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug(f"Deleted token file {self.path}")
