"""
IP Firewall - In-memory Store.

Process-local backend for development and tests. ``available`` can
be switched off to simulate an unreachable store.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

from ipfirewall.errors import StoreUnavailableError
from ipfirewall.lists.models import Entry, ListType
from ipfirewall.matching.patterns import Pattern
from ipfirewall.storage.base import EntryStore


class MemoryEntryStore(EntryStore):
    """Dict-backed store; keeps insertion order per list."""

    name = "memory"

    def __init__(self, entries: Iterable[Entry] = ()) -> None:
        self.available = True
        self.load_count = 0
        self._lists: dict[ListType, dict[str, Entry]] = {lt: {} for lt in ListType}
        self._lock = asyncio.Lock()
        for entry in entries:
            self._lists[entry.list_type].setdefault(entry.pattern.text, entry)

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailableError("memory store marked unavailable")

    async def load_entries(self, list_type: ListType) -> Sequence[Entry]:
        self._check()
        self.load_count += 1
        return list(self._lists[list_type].values())

    async def save_entry(self, entry: Entry) -> bool:
        self._check()
        async with self._lock:
            bucket = self._lists[entry.list_type]
            if entry.pattern.text in bucket:
                return False
            bucket[entry.pattern.text] = entry
            return True

    async def delete_entry(self, pattern: Pattern, list_type: ListType) -> bool:
        self._check()
        async with self._lock:
            return self._lists[list_type].pop(pattern.text, None) is not None

    async def clear_list(self, list_type: ListType) -> int:
        self._check()
        async with self._lock:
            count = len(self._lists[list_type])
            self._lists[list_type] = {}
            return count
