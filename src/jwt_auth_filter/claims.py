"""Claim paths for locating (possibly nested) values in verified claims.

Identity providers frequently nest custom claims, e.g. Keycloak's
``{"realm_access": {"roles": [...]}}``. A ClaimPath is the ordered list of keys
to walk to reach such a value and has a dotted configuration form
(``realm_access.roles``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from .protocols import Claims


@dataclass(frozen=True, slots=True)
class ClaimPath:
    """Ordered sequence of claim names leading to a value.

    An empty path means "no claim configured" and never finds anything.

    Example:
        >>> ClaimPath.of("realm_access", "roles").find(
        ...     {"realm_access": {"roles": ["admin"]}}
        ... )
        ['admin']
        >>> ClaimPath.parse("a.b").to_configuration_string()
        'a.b'
    """

    segments: tuple[str, ...] = ()

    EMPTY: ClassVar[ClaimPath]

    @classmethod
    def of(cls, *segments: str) -> ClaimPath:
        return cls(tuple(segments))

    @classmethod
    def top_level(cls, name: str) -> ClaimPath:
        return cls((name,))

    @classmethod
    def parse(cls, value: str | None) -> ClaimPath:
        """Parse the dotted configuration form, dropping blank segments."""
        if value is None:
            return cls.EMPTY
        return cls(tuple(s.strip() for s in value.split(".") if s.strip()))

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @property
    def is_top_level(self) -> bool:
        return len(self.segments) == 1

    def find(self, claims: Claims | None) -> Any:
        """Walk the claims one segment at a time.

        Returns:
            The value at the final segment, or None when the path is empty, a
            segment is missing, or an intermediate value is not a mapping.
        """
        if self.is_empty or claims is None:
            return None

        current: Any = claims
        for segment in self.segments:
            if not isinstance(current, Mapping):
                return None
            current = current.get(segment)
            if current is None:
                return None
        return current

    def to_configuration_string(self) -> str:
        return ".".join(self.segments)

    def __str__(self) -> str:
        return self.to_configuration_string()


ClaimPath.EMPTY = ClaimPath()


def find_claim(claims: Claims | None, path: ClaimPath) -> Any:
    """Module level equivalent of ``path.find(claims)``."""
    return path.find(claims)
