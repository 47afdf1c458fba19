"""
IP Firewall - Data Repository.

Ties the durable store, the in-memory list snapshots and the
membership cache together.

Read path (per request):
  cache -> snapshot (loaded from the store on first use) -> matcher

Write path (administrative):
  validate -> store -> invalidate snapshot + cache for that list

Store failures on the read path degrade to the last good snapshot or,
when no snapshot was ever loaded, to the configured fail policy.
Store failures on the write path always propagate.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional, Sequence, Union

from ipfirewall.config import FailPolicy
from ipfirewall.errors import StoreUnavailableError
from ipfirewall.lists.cache import MembershipCache
from ipfirewall.lists.models import SOURCE_ADMIN, SOURCE_CONFIG, Entry, ListSnapshot, ListType
from ipfirewall.lists.store import ListStore
from ipfirewall.matching.patterns import Address, Pattern, parse_address, parse_pattern
from ipfirewall.storage.base import EntryStore

logger = logging.getLogger("ipfirewall.repository")


class DataRepository:
    """Membership queries and list administration over an EntryStore."""

    def __init__(
        self,
        store: EntryStore,
        cache: Optional[MembershipCache] = None,
        fail_policy: FailPolicy = FailPolicy.CLOSED,
        store_timeout: Optional[float] = 5.0,
        snapshot_max_age: Optional[float] = None,
        static_entries: Iterable[Entry] = (),
    ) -> None:
        self.store = store
        self.cache = cache if cache is not None else MembershipCache()
        self.fail_policy = fail_policy
        self.store_timeout = store_timeout
        self.lists = ListStore(self._load, max_age=snapshot_max_age)
        self._static: dict[ListType, list[Entry]] = {lt: [] for lt in ListType}
        for entry in static_entries:
            self._static[entry.list_type].append(entry)

    @classmethod
    def with_static_lists(
        cls,
        store: EntryStore,
        whitelist: Sequence[str] = (),
        blacklist: Sequence[str] = (),
        **kwargs: Any,
    ) -> "DataRepository":
        """Build a repository whose snapshots always include these patterns."""
        static = [
            Entry(parse_pattern(p), ListType.WHITELIST, source=SOURCE_CONFIG)
            for p in whitelist
        ] + [
            Entry(parse_pattern(p), ListType.BLACKLIST, source=SOURCE_CONFIG)
            for p in blacklist
        ]
        return cls(store, static_entries=static, **kwargs)

    # ── Queries ──────────────────────────────────────────

    async def is_member(self, address: Union[str, Address], list_type: ListType) -> bool:
        """True if ``address`` matches any entry on ``list_type``."""
        addr = parse_address(address)
        key = str(addr)

        cached = self.cache.get(key, list_type)
        if cached is not None:
            return cached

        generation = self.cache.generation(list_type)
        try:
            snap = await self.lists.snapshot(list_type)
        except StoreUnavailableError as exc:
            return self._degraded(addr, list_type, exc)

        result = snap.contains(addr)
        self.cache.put(key, list_type, result, generation=generation)
        return result

    async def find(self, address: Union[str, Address], list_type: ListType) -> Optional[Entry]:
        """Return the entry that covers ``address`` on ``list_type``, if any."""
        addr = parse_address(address)
        snap = await self.lists.snapshot(list_type)
        return snap.find(addr)

    async def which_list(self, address: Union[str, Address]) -> Optional[ListType]:
        """Which list ``address`` is on; blacklist is reported first."""
        for list_type in (ListType.BLACKLIST, ListType.WHITELIST):
            if await self.is_member(address, list_type):
                return list_type
        return None

    async def report(self, list_type: ListType) -> list[Entry]:
        """Current entries of a list, in insertion order."""
        snap = await self.lists.snapshot(list_type)
        return list(snap.entries)

    async def export(self, list_type: Optional[ListType] = None) -> list[dict[str, Any]]:
        """Report rows as plain dicts (both lists when ``list_type`` is None)."""
        wanted = [list_type] if list_type is not None else list(ListType)
        rows: list[dict[str, Any]] = []
        for lt in wanted:
            rows.extend(entry.to_dict() for entry in await self.report(lt))
        return rows

    # ── Administration ───────────────────────────────────

    async def add(
        self,
        pattern: Union[str, Pattern],
        list_type: ListType,
        note: Optional[str] = None,
    ) -> Entry:
        """Add a pattern to a list. Adding an existing pattern returns the stored entry."""
        parsed = parse_pattern(pattern)

        existing = await self._stored_entry(parsed, list_type)
        if existing is not None:
            # May have been written by another process; drop local state either way
            self._invalidate(list_type)
            logger.debug("%s already on %s", parsed.text, list_type.value)
            return existing

        entry = Entry(pattern=parsed, list_type=list_type, note=note, source=SOURCE_ADMIN)
        created = await self._call(self.store.save_entry(entry))
        if not created:
            # Lost a race with another writer; report what it stored
            self._invalidate(list_type)
            existing = await self._stored_entry(parsed, list_type)
            return existing or entry

        self._invalidate(list_type)
        logger.info("Added %s to %s%s", parsed.text, list_type.value, f" ({note})" if note else "")
        return entry

    async def remove(self, pattern: Union[str, Pattern], list_type: ListType) -> bool:
        """Remove a pattern from a list. Returns False if it was not there."""
        parsed = parse_pattern(pattern)
        removed = await self._call(self.store.delete_entry(parsed, list_type))
        if removed:
            self._invalidate(list_type)
            logger.info("Removed %s from %s", parsed.text, list_type.value)
        return removed

    async def clear(self, list_type: ListType) -> int:
        """Remove every stored entry of a list. Returns how many were removed."""
        count = await self._call(self.store.clear_list(list_type))
        self._invalidate(list_type)
        logger.info("Cleared %s (%d entries)", list_type.value, count)
        return count

    def clear_cache(self) -> None:
        """Forget all snapshots and cached answers; next queries reload."""
        self.lists.invalidate_all()
        self.cache.clear()

    # ── Internal ─────────────────────────────────────────

    def _invalidate(self, list_type: ListType) -> None:
        self.lists.invalidate(list_type)
        self.cache.invalidate_list(list_type)

    async def _call(self, coro):
        """Run one store call, bounded by ``store_timeout``."""
        if self.store_timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.store_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(
                f"{self.store.name} store did not answer within {self.store_timeout}s"
            ) from exc

    async def _load(self, list_type: ListType) -> list[Entry]:
        stored = await self._call(self.store.load_entries(list_type))
        return [*self._static[list_type], *stored]

    async def _stored_entry(self, pattern: Pattern, list_type: ListType) -> Optional[Entry]:
        # Read the store directly: the snapshot may lag writes from other processes
        for entry in await self._call(self.store.load_entries(list_type)):
            if entry.pattern.text == pattern.text:
                return entry
        return None

    def _degraded(self, addr: Address, list_type: ListType, exc: Exception) -> bool:
        last = self.lists.last_good(list_type)
        if last is not None:
            logger.warning(
                "Store unavailable (%s), serving last %s snapshot for %s",
                exc, list_type.value, addr,
            )
            return last.contains(addr)

        static = ListSnapshot.build(list_type, self._static[list_type])
        if static.contains(addr):
            return True

        closed = self.fail_policy == FailPolicy.CLOSED
        result = closed if list_type == ListType.BLACKLIST else not closed
        logger.warning(
            "Store unavailable (%s), no %s snapshot; fail-%s -> %s for %s",
            exc, list_type.value, self.fail_policy.value, result, addr,
        )
        return result


