"""Bounded in-memory cache with TTL expiry.

Used for:
- JWKS keys in CachedJwksKeyLocator (25 entries, expire after access)
- Keys resolved from cloud load balancer endpoints
- The OIDC configuration registry (5 entries, expire after write)
- The filter's "already warned about this excluded path" set

Behaviour:
    - Expired entries are removed lazily on access.
    - When full, the least recently used entry is evicted.
    - All operations hold an internal lock so a single instance can be shared
      by concurrent request threads.

Security Note:
    Caching keys introduces a TTL window in which a rotated key is still
    accepted. Balance cache TTL against key rotation frequency.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass


@dataclass(slots=True)
class _CacheItem[V]:
    """Internal cache entry with TTL tracking.

    Attributes:
        value: The cached value.
        expires_at: Unix timestamp when this entry should be considered expired.
    """

    value: V
    expires_at: float


class InMemoryCache[K, V]:
    """In-process LRU cache with per-entry TTL.

    Example:
        ```python
        cache: InMemoryCache[str, bytes] = InMemoryCache(max_entries=25, ttl_seconds=3600)

        cache.set("key-id-123", key)
        key = cache.get("key-id-123")  # Returns the key or None
        ```

    Attributes:
        _store: Entries in least to most recently used order.
        _max_entries: Capacity, the least recently used entry is evicted beyond it.
        _ttl: Time-to-live in seconds.
        _expire_after_access: Whether a successful get() restarts the TTL.
    """

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        *,
        expire_after_access: bool = False,
    ) -> None:
        """Initialize an empty cache.

        Args:
            max_entries: Maximum number of entries held.
            ttl_seconds: Time-to-live for each entry in seconds.
            expire_after_access: If True the TTL is measured from the last
                access, otherwise from when the entry was written.

        Raises:
            ValueError: If max_entries or ttl_seconds are invalid.
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._expire_after_access = expire_after_access
        self._lock = threading.Lock()
        self._store: OrderedDict[K, _CacheItem[V]] = OrderedDict()

    def get(self, key: K) -> V | None:
        """Retrieve a cached value.

        Returns:
            The value if cached and not expired, None otherwise.
        """
        now = time.time()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None

            if now >= item.expires_at:
                # Lazy removal of expired entry
                del self._store[key]
                return None

            self._store.move_to_end(key)
            if self._expire_after_access:
                item.expires_at = now + self._ttl
            return item.value

    def set(self, key: K, value: V) -> None:
        """Cache a value, evicting the least recently used entry if full."""
        now = time.time()
        with self._lock:
            self._store[key] = _CacheItem(value=value, expires_at=now + self._ttl)
            self._store.move_to_end(key)
            while len(self._store) > self._max_entries:
                self._store.popitem(last=False)

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._store.pop(key, None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        now = time.time()
        with self._lock:
            return sum(1 for item in self._store.values() if now < item.expires_at)
