"""Outbound API request description."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


@dataclass(frozen=True)
class RequestDescriptor:
    """One authenticated API call, built per call and never persisted."""

    endpoint: str
    method: str = "GET"
    body: Any = None
    headers: dict[str, str] | None = None

    def __post_init__(self) -> None:
        if not self.endpoint:
            raise ValueError("endpoint must not be empty")
        object.__setattr__(self, "method", self.method.upper())

    def sends_body(self) -> bool:
        """Only mutating methods carry a JSON body."""
        return self.body is not None and self.method in BODY_METHODS
