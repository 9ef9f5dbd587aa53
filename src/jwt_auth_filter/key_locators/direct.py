"""
Fixed key locator.

Wraps a single pre-loaded secret or public key so it can be used wherever a
KeyLocator is expected.
"""

from __future__ import annotations

from typing import Any

from ..protocols import JwsHeader


class DirectKeyLocator:
    """Always returns the same key, the token header is ignored."""

    def __init__(self, key: Any) -> None:
        if key is None:
            raise ValueError("Key cannot be None")
        self._key = key

    def locate(self, header: JwsHeader) -> Any:
        return self._key

    def __str__(self) -> str:
        return f"DirectKeyLocator{{keyType={type(self._key).__name__}}}"
