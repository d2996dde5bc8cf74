"""
An in-memory key/value cache with per-entry time-to-live (TTL).
Expired entries are evicted lazily on access and by a periodic sweep.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from unit_storage.models.entry import Entry
from unit_storage.models.settings import DEFAULT_CACHE_PRUNE_INTERVAL_MS
from unit_storage.utils.prune_timer import PruneTimer

log = logging.getLogger(__name__)


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ExpiringCache:
    """
    Manages process-local entries with optional expiry and hit statistics.

    An entry is expired once the clock is strictly past its expiry; it is then
    never returned by ``has``/``get`` and is removed on the next access or
    sweep.
    """

    def __init__(
        self,
        prune_interval_ms: int = DEFAULT_CACHE_PRUNE_INTERVAL_MS,
        clock: Callable[[], int] = epoch_ms,
        stats_callback: Callable[[bool], None] | None = None,
    ):
        """
        Initializes the cache.

        Args:
            prune_interval_ms: Default period of the background sweep.
            clock: Returns the current time in epoch milliseconds.
            stats_callback: Optional callback to report hits (True) or misses
            (False).
        """
        self._entries: dict[str, Entry] = {}
        self._clock = clock
        self._stats_callback = stats_callback
        self.prune_interval_ms = prune_interval_ms
        self._timer = PruneTimer(self.prune, name="cache prune")

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        """Stores ``value``; a missing or non-positive TTL never expires."""
        # Re-insert so iteration order follows the latest write.
        self._entries.pop(key, None)
        self._entries[key] = Entry.create(value, ttl_ms, self._clock())

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def get(self, key: str) -> Entry | None:
        """Returns the live entry for ``key`` or None if absent or expired."""
        entry = self._live_entry(key)
        if self._stats_callback:
            self._stats_callback(entry is not None)
        return entry

    def delete(self, key: str) -> bool:
        """Removes ``key``; returns whether an entry was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        """Snapshot of the stored keys (may include not-yet-swept expired keys)."""
        return list(self._entries)

    def prune(self) -> int:
        """Removes every expired entry and returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            log.debug(f"Cache prune: removed {len(expired)} expired entries.")
        return len(expired)

    def _live_entry(self, key: str) -> Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    # Background sweep

    @property
    def prune_timer_running(self) -> bool:
        return self._timer.running

    def start_prune_timer(self, interval_ms: int | None = None) -> None:
        """Starts the periodic sweep, replacing any running one."""
        if interval_ms is not None:
            self.prune_interval_ms = interval_ms
        self._timer.start(self.prune_interval_ms)

    def pause_prune_timer(self) -> None:
        self._timer.pause()

    def resume_prune_timer(self) -> None:
        self._timer.resume()

    def stop_prune_timer(self) -> None:
        self._timer.stop()
