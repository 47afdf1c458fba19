"""
IP Firewall - Membership Cache.

Memoizes "is address X on list L" answers for a TTL so that
requests do not hit the store. Each list has a generation counter;
records written under an older generation read as misses, which
makes invalidating a whole list O(1).
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from ipfirewall.lists.models import ListType

logger = logging.getLogger("ipfirewall.lists.cache")


@dataclass(frozen=True)
class CacheRecord:
    result: bool
    expires_at: float
    generation: int


class MembershipCache:
    """TTL + generation-tagged cache of membership answers."""

    def __init__(
        self,
        ttl: float = 60.0,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._records: OrderedDict[tuple[str, ListType], CacheRecord] = OrderedDict()
        self._generations: dict[ListType, int] = {lt: 0 for lt in ListType}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._records)

    def generation(self, list_type: ListType) -> int:
        return self._generations[list_type]

    def get(self, address: str, list_type: ListType) -> Optional[bool]:
        """Return the cached answer, or None on miss / expiry / stale generation."""
        key = (address, list_type)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                self.misses += 1
                return None
            if (
                record.generation != self._generations[list_type]
                or record.expires_at <= self._clock()
            ):
                del self._records[key]
                self.misses += 1
                return None
            self.hits += 1
            return record.result

    def put(
        self,
        address: str,
        list_type: ListType,
        result: bool,
        ttl: Optional[float] = None,
        generation: Optional[int] = None,
    ) -> None:
        """
        Store an answer.

        ``generation`` should be the value read before the lookup began;
        if the list was invalidated meanwhile the record is dropped.
        """
        ttl = self.ttl if ttl is None else ttl
        if ttl <= 0:
            return
        key = (address, list_type)
        with self._lock:
            current = self._generations[list_type]
            if generation is None:
                generation = current
            elif generation != current:
                return
            self._records.pop(key, None)
            self._records[key] = CacheRecord(
                result=result,
                expires_at=self._clock() + ttl,
                generation=generation,
            )
            if len(self._records) > self.max_entries:
                self._evict()

    def invalidate_list(self, list_type: ListType) -> None:
        with self._lock:
            self._generations[list_type] += 1
        logger.debug(
            "Cache generation for %s -> %d",
            list_type.value, self._generations[list_type],
        )

    def clear(self) -> None:
        with self._lock:
            for list_type in ListType:
                self._generations[list_type] += 1
            self._records.clear()

    # ── Internal ─────────────────────────────────────────

    def _evict(self) -> None:
        """Drop expired / stale records, then the oldest until within bounds."""
        now = self._clock()
        stale = [
            key for key, rec in self._records.items()
            if rec.expires_at <= now or rec.generation != self._generations[key[1]]
        ]
        for key in stale:
            del self._records[key]
        while len(self._records) > self.max_entries:
            self._records.popitem(last=False)
