"""Role membership lookup over verified claims.

Security Notes
--------------
Extraction is fail-closed: a missing claim, an empty claim path or a value of
an unexpected type yields no roles, so role checks deny by default.
"""

from __future__ import annotations

from collections.abc import Iterable

from .claims import ClaimPath
from .protocols import Claims


class RolesHelper:
    """Answers "is the user in role X?" for a verified token.

    Supported claim value formats:
    - Comma separated string: ``"USER, ADMIN"``
    - Single string: ``"ADMIN"``
    - Collection of values: ``["USER", "ADMIN"]`` (items are str()-converted)

    Roles are extracted lazily on first use and then reused.

    Args:
        claims: Verified claims, may be None for an unauthenticated request.
        roles_claim: Where the roles live. An empty path means no roles.

    Examples:
        >>> helper = RolesHelper({"roles": "USER,ADMIN"}, ClaimPath.of("roles"))
        >>> helper.is_user_in_role("ADMIN")
        True
    """

    def __init__(self, claims: Claims | None, roles_claim: ClaimPath | None) -> None:
        self._claims = claims
        self._roles_claim = roles_claim or ClaimPath.EMPTY
        self._roles: frozenset[str] | None = None

    @property
    def roles(self) -> frozenset[str]:
        if self._roles is None:
            self._roles = self._load_roles()
        return self._roles

    def is_user_in_role(self, role: str) -> bool:
        if self._claims is None or self._roles_claim.is_empty:
            return False
        return role in self.roles

    def _load_roles(self) -> frozenset[str]:
        raw = self._roles_claim.find(self._claims)

        if isinstance(raw, str):
            if "," in raw:
                return frozenset(r.strip() for r in raw.split(",") if r.strip())
            role = raw.strip()
            return frozenset({role}) if role else frozenset()

        if isinstance(raw, Iterable) and not isinstance(raw, (bytes, dict)):
            return frozenset(
                str(item).strip() for item in raw if item is not None and str(item).strip()
            )

        # Fail-closed: unexpected types return empty set
        return frozenset()
