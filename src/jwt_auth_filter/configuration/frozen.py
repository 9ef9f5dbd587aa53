"""Configuration that can be set once and is then frozen.

A filter reads its engine, verifier and path exclusions from shared runtime
attributes. The first successfully read value of each is frozen for the life
of the filter, later changes to the attributes are ignored with a warning so
that a running deployment can not be silently reconfigured.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Any

from ..engine import JwtAuthenticationEngine
from ..errors import AuthenticationConfigurationError
from ..path_exclusion import PathExclusion
from ..protocols import Verifier

logger = logging.getLogger(__name__)

_NOT_CONFIGURED = "JwtAuthFilter not properly configured"


class FrozenFilterConfiguration:
    """Set-once holder for a filter's engine, verifier and path exclusions.

    Thread Safety:
        Every ``try_freeze_*`` call is serialised by a single lock and is a
        no-op once its slot is set, so the first writer wins.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._engine: JwtAuthenticationEngine[Any, Any] | None = None
        self._verifier: Verifier | None = None
        self._path_exclusions: Sequence[PathExclusion] | None = None

    @property
    def engine(self) -> JwtAuthenticationEngine[Any, Any]:
        if self._engine is None:
            raise AuthenticationConfigurationError(
                f"{_NOT_CONFIGURED}, no authentication engine available"
            )
        return self._engine

    @property
    def verifier(self) -> Verifier:
        if self._verifier is None:
            raise AuthenticationConfigurationError(
                f"{_NOT_CONFIGURED}, runtime configuration does not provide a JWT verifier"
            )
        return self._verifier

    @property
    def path_exclusions(self) -> Sequence[PathExclusion]:
        return () if self._path_exclusions is None else self._path_exclusions

    @property
    def is_engine_frozen(self) -> bool:
        return self._engine is not None

    @property
    def is_verifier_frozen(self) -> bool:
        return self._verifier is not None

    @property
    def are_path_exclusions_frozen(self) -> bool:
        return self._path_exclusions is not None

    def try_freeze_engine(
        self, raw_engine: Any, default_engine: JwtAuthenticationEngine[Any, Any] | None = None
    ) -> None:
        """Freeze the engine unless one is already frozen.

        Raises:
            AuthenticationConfigurationError: If ``raw_engine`` is not an engine,
                or neither it nor ``default_engine`` is available.
        """
        with self._lock:
            if self._engine is not None:
                return
            engine = default_engine if raw_engine is None else raw_engine
            if engine is None:
                raise AuthenticationConfigurationError(
                    f"{_NOT_CONFIGURED}, no authentication engine available"
                )
            if not isinstance(engine, JwtAuthenticationEngine):
                raise AuthenticationConfigurationError(
                    f"{_NOT_CONFIGURED}, runtime configuration provides an engine of the wrong "
                    f"type {type(engine).__qualname__}"
                )
            self._engine = engine

    def try_freeze_verifier(self, raw_verifier: Any) -> None:
        """Freeze the verifier unless one is already frozen.

        Raises:
            AuthenticationConfigurationError: If no verifier is provided or it
                does not implement ``verify``.
        """
        with self._lock:
            if self._verifier is not None:
                return
            if raw_verifier is None:
                raise AuthenticationConfigurationError(
                    f"{_NOT_CONFIGURED}, runtime configuration does not provide a JWT verifier"
                )
            if not isinstance(raw_verifier, Verifier):
                raise AuthenticationConfigurationError(
                    f"{_NOT_CONFIGURED}, runtime configuration provides a JWT verifier of the "
                    f"wrong type {type(raw_verifier).__qualname__}"
                )
            self._verifier = raw_verifier

    def try_freeze_path_exclusions(self, raw_exclusions: Any) -> None:
        """Freeze the path exclusions unless already frozen.

        ``None`` freezes an empty list.

        Raises:
            AuthenticationConfigurationError: If the value is not a list/tuple of
                PathExclusion objects.
        """
        with self._lock:
            if self._path_exclusions is not None:
                return
            if raw_exclusions is None:
                self._path_exclusions = []
                return
            if not isinstance(raw_exclusions, (list, tuple)) or not all(
                isinstance(e, PathExclusion) for e in raw_exclusions
            ):
                raise AuthenticationConfigurationError(
                    f"{_NOT_CONFIGURED}, runtime configuration provides path exclusions of the "
                    f"wrong type {type(raw_exclusions).__qualname__}"
                )
            self._path_exclusions = raw_exclusions

    @staticmethod
    def warn_if_modification_attempted(attribute: str, current: Any, frozen: Any) -> bool:
        """Warn when an attribute no longer holds the frozen object.

        Identity, not equality, is compared: the frozen value was read from the
        attribute so only a replacement changes it.

        Returns:
            True if a warning was logged.
        """
        if frozen is None or current is None or current is frozen:
            return False
        logger.warning(
            "An attempt was made to modify JWT filter configuration (via attribute %s) after the "
            "filter has been initialised, modified configuration is ignored",
            attribute,
        )
        return True
