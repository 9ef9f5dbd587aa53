"""Path exclusions: request paths exempt from JWT authentication.

Typical exclusions are health checks and public documentation, e.g.
``/healthz,/docs/*``. Patterns containing ``*`` are wildcards: each ``*``
becomes ``.*`` and the result is treated as a regular expression that must
match the whole path. All other patterns require an exact match.

Security Note:
    Patterns that would exclude every path (``*``, ``/*``, ``**`` ...) are
    rejected at construction so a configuration typo cannot silently disable
    authentication. A blank request path never matches, so an unparseable
    path still requires authentication.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_EXCLUDE_ALL_CHARACTERS = frozenset(" /*")


class PathExclusion:
    """A single exact or wildcard path exclusion pattern.

    Raises:
        ValueError: If the pattern is blank, excludes all paths, or cannot be
            converted into a regular expression.

    Example:
        >>> PathExclusion("/status/*").matches("/status/health")
        True
        >>> PathExclusion("/status").matches("/status/health")
        False
    """

    __slots__ = ("_pattern", "_regex")

    def __init__(self, pattern: str) -> None:
        if pattern is None or not pattern.strip():
            raise ValueError("Cannot have a blank path exclusion")
        if all(c in _EXCLUDE_ALL_CHARACTERS for c in pattern):
            raise ValueError("Cannot have a path exclusion that excludes all paths")

        self._pattern = pattern
        self._regex: re.Pattern[str] | None = None
        if "*" in pattern:
            try:
                self._regex = re.compile(pattern.replace("*", ".*"))
            except re.error as e:
                raise ValueError(
                    f"Path pattern {pattern} can not be converted into a valid regular expression"
                ) from e

    @staticmethod
    def parse_path_patterns(patterns: str | None) -> list[PathExclusion]:
        """Parse a comma separated list of patterns, skipping blank entries."""
        if not patterns:
            return []
        return [PathExclusion(p.strip()) for p in patterns.split(",") if p.strip()]

    @property
    def pattern(self) -> str:
        return self._pattern

    @property
    def is_wildcard(self) -> bool:
        return self._regex is not None

    def matches(self, path: str | None) -> bool:
        if path is None or not path.strip():
            return False
        if self._regex is not None:
            return self._regex.fullmatch(path) is not None
        return self._pattern == path

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathExclusion):
            return NotImplemented
        return self._pattern == other._pattern

    def __hash__(self) -> int:
        return hash(self._pattern)

    def __repr__(self) -> str:
        return f"PathExclusion({self._pattern!r})"


def is_excluded(path: str | None, exclusions: Iterable[PathExclusion]) -> bool:
    """True if any exclusion matches the path, always False for a blank path."""
    if path is None or not path.strip():
        return False
    return any(exclusion.matches(path) for exclusion in exclusions)
