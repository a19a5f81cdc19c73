"""Debouncing of bursty file system notifications.

A single save in most editors produces several created/modified
notifications within a few milliseconds.  The :class:`Debouncer` keeps
the last time each (watch, path) pair was seen and suppresses any
evaluation that arrives within the debounce interval of the previous one.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from pathlib import Path

    from folder_mirror.config import WatchDefinition

logger = logging.getLogger(__name__)

DEBOUNCE_INTERVAL = 0.5  # seconds
RETENTION_FACTOR = 120  # entries idle for this many intervals are swept


class DebounceKey(NamedTuple):
    """Identifies one path as seen by one watch definition."""

    source_root: str
    path: str


class Debouncer:
    """Thread-safe sliding-window debouncer shared by all watch sessions.

    Every evaluation refreshes the key's timestamp, including suppressed
    ones, so a continuous burst of events faster than the interval stays
    suppressed until a quiet gap of at least one interval occurs.
    """

    def __init__(
        self,
        interval: float = DEBOUNCE_INTERVAL,
        retention: float | None = None,
    ):
        self._interval = interval
        self._retention = (
            retention if retention is not None else interval * RETENTION_FACTOR
        )
        # key -> last seen (time.time())
        self._last_seen: dict[DebounceKey, float] = {}
        self._lock = threading.Lock()
        self._last_sweep = time.time()

    @staticmethod
    def key_for(definition: WatchDefinition, path: str | Path) -> DebounceKey:
        """Build the table key for *path* under *definition*."""
        return DebounceKey(str(definition.source_root), str(path))

    def should_suppress(self, key: DebounceKey, now: float | None = None) -> bool:
        """Return True if *key* was seen less than one interval ago.

        Always records *now* as the key's new last-seen time.
        """
        if now is None:
            now = time.time()
        with self._lock:
            last = self._last_seen.get(key)
            self._last_seen[key] = now
            if now - self._last_sweep >= self._retention:
                self._sweep_locked(now)
        suppressed = last is not None and now - last < self._interval
        if suppressed:
            logger.debug("Debounced %s", key.path)
        return suppressed

    def touch(self, key: DebounceKey, now: float | None = None) -> None:
        """Record *now* as the last-seen time for *key*."""
        if now is None:
            now = time.time()
        with self._lock:
            self._last_seen[key] = now

    def sweep(self, now: float | None = None) -> int:
        """Evict entries idle for longer than the retention period.

        Returns the number of entries removed.
        """
        if now is None:
            now = time.time()
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        cutoff = now - max(self._retention, self._interval)
        stale = [k for k, seen in self._last_seen.items() if seen < cutoff]
        for k in stale:
            del self._last_seen[k]
        self._last_sweep = now
        if stale:
            logger.debug("Swept %d idle debounce entries", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)
