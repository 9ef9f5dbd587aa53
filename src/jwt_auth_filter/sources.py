"""Token sources describing where in a request a JWT may be found.

A HeaderSource names a request header and an optional value prefix (an auth
scheme such as ``Bearer``). Sources are configured once per deployment and
tried in declaration order by the header based engine.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class HeaderSource:
    """A request header that may carry a token, plus an optional prefix.

    Attributes:
        header: Header name. Case-insensitive lookup is the binding's job.
        prefix: Optional scheme that must precede the token, separated from it
            by a space (e.g. ``Bearer`` for ``Authorization: Bearer <jwt>``).
            Matched case-insensitively.

    Example:
        >>> HeaderSource("Authorization", "Bearer").get_raw_token("Bearer abc")
        'abc'
        >>> HeaderSource("X-Token").get_raw_token("  abc ")
        'abc'
    """

    header: str
    prefix: str | None = None

    def __post_init__(self) -> None:
        if not self.header or not self.header.strip():
            raise ValueError("Header name cannot be blank")

    def get_raw_token(self, value: str | None) -> str | None:
        """Strip the prefix from a header value to obtain the raw token.

        Args:
            value: A single occurrence of the header's value.

        Returns:
            The raw token, or None if the value is blank, does not carry the
            expected prefix, or is blank once the prefix is removed.
        """
        if value is None or not value.strip():
            return None

        if self.prefix:
            expected = self.prefix + " "
            if not value[: len(expected)].lower() == expected.lower():
                return None
            value = value[len(expected) :]

        token = value.strip()
        return token or None

    def __str__(self) -> str:
        if self.prefix:
            return f"{self.header}: {self.prefix} <jwt>"
        return f"{self.header}: <jwt>"
