"""Expiring key-value cache over a persistent store."""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from jira_timekeeper.core.exceptions import CacheCorruptionError
from jira_timekeeper.core.models import CacheEntry
from jira_timekeeper.core.storage import MemoryStore, PersistentStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60 * 60  # 1 hour, in seconds


class CacheStore:
    """Expiring cache whose entries are wrapped in a :class:`CacheEntry` envelope.

    The store knows nothing about identities or entity kinds; callers build
    scoped keys themselves.
    """

    def __init__(
        self,
        store: Optional[PersistentStore] = None,
        clock: Callable[[], float] = time.time,
        default_ttl: float = DEFAULT_TTL,
    ):
        """Initialize cache store.

        Args:
            store: Backing store. Creates an in-memory store if None.
            clock: Returns the current time in epoch seconds
            default_ttl: TTL in seconds used when set() gets none
        """
        self.store = store if store is not None else MemoryStore()
        self.clock = clock
        self.default_ttl = default_ttl

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _load(self, key: str) -> Optional[CacheEntry]:
        """Load and decode the envelope at key.

        Malformed entries are deleted and reported as missing.
        """
        raw = self.store.get(key)
        if raw is None:
            return None

        try:
            return CacheEntry.decode(raw)
        except CacheCorruptionError as e:
            logger.debug(f"Dropping corrupted cache entry {key}: {e}")
            self.remove(key)
            return None

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value.

        Args:
            key: Cache key

        Returns:
            Stored value, or None if missing, expired or malformed
        """
        entry = self._load(key)
        if entry is None:
            return None

        if entry.is_expired(self._now_ms()):
            logger.debug(f"Cache entry expired: {key}")
            self.remove(key)
            return None

        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds. Defaults to default_ttl.
        """
        if ttl is None:
            ttl = self.default_ttl

        now = self._now_ms()
        entry = CacheEntry(value=value, expiry=now + int(ttl * 1000), updated_at=now)
        self.store.set(key, entry.encode())

    def remove(self, key: str) -> None:
        """Delete a cached value. Missing keys are ignored."""
        self.store.delete(key)

    def last_written(self, key: str) -> Optional[datetime]:
        """Get when a key was last written.

        Independent of the TTL, so callers can apply their own staleness rules.

        Args:
            key: Cache key

        Returns:
            Local datetime of the last write, or None if not cached
        """
        raw = self.store.get(key)
        if raw is None:
            return None

        try:
            entry = CacheEntry.decode(raw)
        except CacheCorruptionError:
            return None
        return datetime.fromtimestamp(entry.updated_at / 1000)

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""
        return [k for k in self.store.keys() if k.startswith(prefix)]

    def remove_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix.

        Returns:
            Number of keys removed
        """
        keys = self.keys(prefix)
        for key in keys:
            self.store.delete(key)
        return len(keys)

    def clear_all(self) -> None:
        """Delete every cached entry."""
        self.store.clear()
