"""Rate limiting for remote discovery attempts.

This module implements RefreshGate, a thread-safe throttle that refuses an
operation until a minimum interval has elapsed since the last permitted
attempt. The OpenID Connect discovery locator uses it so that an unreachable
authorization server is not hammered with a discovery request per inbound
request.

It is a "last attempt timestamp + minimum interval" throttle, not exponential
backoff.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Final

logger = logging.getLogger(__name__)

_DEFAULT_INTERVAL: Final[float] = 30
"""Default minimum interval between attempts in seconds."""

_DEFAULT_ALERT_THRESHOLD: Final[int] = 40
"""Default number of denials before a warning is logged (per interval)."""


class RefreshGate:
    """Thread-safe throttle for remote fetch attempts.

    The first call to allow() always succeeds. Subsequent calls succeed only
    once ``min_interval`` seconds have passed since the last successful call.
    Denied attempts are counted and a warning is logged each time the count
    reaches the alert threshold.

    Thread Safety:
        All operations are protected by an internal lock.

    Attributes:
        _min_interval: Minimum seconds between allowed attempts.
        _alert_threshold: Number of denials before alerting.
        _lock: Thread synchronization lock.
        _next_allowed_at: Unix timestamp when the next attempt is allowed.
        _retry_attempts: Count of denied attempts since last allow.
    """

    def __init__(
        self,
        min_interval: float = _DEFAULT_INTERVAL,
        alert_threshold: int = _DEFAULT_ALERT_THRESHOLD,
    ) -> None:
        """Initialize the gate.

        Args:
            min_interval: Minimum seconds between allowed attempts. Zero
                disables throttling.
            alert_threshold: Number of denied attempts before logging a warning.

        Raises:
            ValueError: If min_interval or alert_threshold are invalid.
        """
        if min_interval < 0:
            raise ValueError(f"min_interval cannot be negative, got {min_interval}")
        if alert_threshold < 1:
            raise ValueError(f"alert_threshold must be at least 1, got {alert_threshold}")

        self._min_interval = min_interval
        self._alert_threshold = alert_threshold

        self._lock = threading.Lock()
        self._next_allowed_at: float = 0.0
        self._retry_attempts: int = 0

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def allow(self) -> bool:
        """Check if an attempt is allowed now.

        Returns:
            True if allowed (and the interval restarts from now).
            False if denied (too soon since the last allowed attempt).
        """
        now = time.time()

        with self._lock:
            if now < self._next_allowed_at:
                self._retry_attempts += 1

                if self._retry_attempts % self._alert_threshold == 0:
                    logger.warning(
                        "Remote fetch throttled, %d attempts denied within the %ss retry interval",
                        self._retry_attempts,
                        self._min_interval,
                    )

                return False

            self._next_allowed_at = now + self._min_interval
            self._retry_attempts = 0
            return True
