"""
IP Firewall - In-memory List Store.

Holds at most one live snapshot per list. Snapshots are loaded
lazily through a loader coroutine and replaced wholesale; readers
always see either the old or the new snapshot, never a mix.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable, Optional, Sequence

from ipfirewall.lists.models import Entry, ListSnapshot, ListType

logger = logging.getLogger("ipfirewall.lists.store")

Loader = Callable[[ListType], Awaitable[Sequence[Entry]]]


class ListStore:
    """Serves whitelist / blacklist snapshots with explicit invalidation."""

    def __init__(
        self,
        loader: Loader,
        max_age: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self.max_age = max_age
        self._clock = clock
        self._live: dict[ListType, Optional[ListSnapshot]] = {lt: None for lt in ListType}
        self._last_good: dict[ListType, Optional[ListSnapshot]] = {lt: None for lt in ListType}
        self._versions: dict[ListType, int] = {lt: 0 for lt in ListType}
        self._version_lock = threading.Lock()
        self._load_locks: dict[ListType, asyncio.Lock] = {}

    async def snapshot(self, list_type: ListType) -> ListSnapshot:
        """Return the live snapshot, loading it if absent or too old."""
        current = self._fresh(list_type)
        if current is not None:
            return current

        async with self._lock_for(list_type):
            # Another task may have loaded it while we waited
            current = self._fresh(list_type)
            if current is not None:
                return current
            return await self._load(list_type)

    def invalidate(self, list_type: ListType) -> None:
        """Drop the live snapshot; the next ``snapshot`` call reloads."""
        with self._version_lock:
            self._versions[list_type] += 1
            self._live[list_type] = None
        logger.debug("Invalidated %s snapshot", list_type.value)

    def invalidate_all(self) -> None:
        for list_type in ListType:
            self.invalidate(list_type)

    def peek(self, list_type: ListType) -> Optional[ListSnapshot]:
        """The live snapshot without loading (None if not loaded)."""
        return self._live[list_type]

    def last_good(self, list_type: ListType) -> Optional[ListSnapshot]:
        """Most recent successfully loaded snapshot, kept across invalidation."""
        return self._last_good[list_type]

    # ── Internal ─────────────────────────────────────────

    def _fresh(self, list_type: ListType) -> Optional[ListSnapshot]:
        current = self._live[list_type]
        if current is None:
            return None
        if self.max_age is not None and current.age(self._clock()) >= self.max_age:
            return None
        return current

    def _lock_for(self, list_type: ListType) -> asyncio.Lock:
        lock = self._load_locks.get(list_type)
        if lock is None:
            lock = self._load_locks[list_type] = asyncio.Lock()
        return lock

    async def _load(self, list_type: ListType) -> ListSnapshot:
        version = self._versions[list_type]
        entries = await self._loader(list_type)
        snap = ListSnapshot.build(list_type, entries, loaded_at=self._clock())

        with self._version_lock:
            # An invalidation during the load means these entries may predate
            # the mutation: hand them to this caller but do not install them.
            if self._versions[list_type] == version:
                self._live[list_type] = snap
                self._last_good[list_type] = snap
            elif self._last_good[list_type] is None:
                self._last_good[list_type] = snap

        logger.debug("Loaded %s snapshot (%d entries)", list_type.value, len(snap))
        return snap
