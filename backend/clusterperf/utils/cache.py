"""
Bounded in-memory TTL cache.

PriceSource keeps current quotes here for a few minutes so repeated lookups
never reach the rate-limited provider. Historical series are not cached.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, NamedTuple, Optional

from loguru import logger

from clusterperf.utils.clock import system_clock


class _Entry(NamedTuple):
    value: Any
    expires_at: datetime


class TTLCache:
    """
    Key/value store where every entry expires after a TTL.

    At most ``max_entries`` are held; when full, expired entries are purged
    first and then the least recently written entry is dropped.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 1024, clock=None):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock or system_clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock.now() >= entry.expires_at:
            del self._entries[key]
            logger.debug(f"Cache expired: {key}")
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> datetime:
        """Store value and return when it expires."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self.clock.now() + timedelta(seconds=ttl)

        self._entries.pop(key, None)
        if len(self._entries) >= self.max_entries:
            self._make_room()
        self._entries[key] = _Entry(value, expires_at)
        return expires_at

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup_expired(self) -> int:
        """Drop every expired entry; returns how many went."""
        now = self.clock.now()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _make_room(self) -> None:
        purged = self.cleanup_expired()
        while len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache full ({self.max_entries}), evicted {evicted}")
        if purged:
            logger.debug(f"Cache purged {purged} expired entries")
